"""Billing configuration loaded from environment variables."""

from __future__ import annotations

import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class BillingSettings(BaseSettings):
    """Invoice billing knobs loaded from environment variables with BILLING_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="BILLING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # VAT applied to B2C lines when neither the request nor the stored
    # invoice names a percentage.
    default_vat_percentage: float = Field(5.0, ge=0, le=100)

    # When the atomic counter bump fails, estimate the next sequence from
    # the latest invoice instead of failing the create.  The estimate is
    # not atomic and can hand out duplicates under concurrent fallback.
    allow_sequence_fallback: bool = True

    # Zero-padding of the sequence part of invoice numbers.
    sequence_width: int = Field(4, ge=1, le=12)


def load_billing_settings(**overrides: object) -> BillingSettings:
    """Load settings from environment, with optional overrides for testing."""
    settings = BillingSettings(**overrides)  # type: ignore[arg-type]
    if not settings.allow_sequence_fallback:
        logger.info("Invoice sequence fallback disabled; counter failures will fail creates")
    return settings
