"""Unit tests for cargo_core.config."""

from __future__ import annotations

import pytest
from cargo_core.config import BillingSettings, load_billing_settings
from pydantic import ValidationError

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class TestBillingSettingsDefaults:
    def test_default_vat(self):
        assert BillingSettings().default_vat_percentage == 5.0

    def test_fallback_enabled_by_default(self):
        assert BillingSettings().allow_sequence_fallback is True

    def test_default_sequence_width(self):
        assert BillingSettings().sequence_width == 4


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


class TestEnvironmentOverrides:
    def test_vat_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("BILLING_DEFAULT_VAT_PERCENTAGE", "7.5")
        assert BillingSettings().default_vat_percentage == 7.5

    def test_fallback_switch_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("BILLING_ALLOW_SEQUENCE_FALLBACK", "false")
        assert load_billing_settings().allow_sequence_fallback is False

    def test_overrides_win(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("BILLING_SEQUENCE_WIDTH", "6")
        assert load_billing_settings(sequence_width=5).sequence_width == 5


class TestValidation:
    @pytest.mark.parametrize("vat", [-1, 101])
    def test_vat_range(self, vat):
        with pytest.raises(ValidationError):
            BillingSettings(default_vat_percentage=vat)

    def test_width_positive(self):
        with pytest.raises(ValidationError):
            BillingSettings(sequence_width=0)
