"""Tests for APISettings loading from API_* variables."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from cargo_api.config import APISettings, PlatformEnv


class TestAPISettings:
    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("API_DATABASE_URL", "sqlite+aiosqlite:///./ledger.db")
        monkeypatch.setenv("API_PLATFORM_ENV", "production")
        monkeypatch.setenv("API_LOG_LEVEL", "debug")

        settings = APISettings(_env_file=None)

        assert settings.uses_sqlite
        assert settings.platform_env is PlatformEnv.PRODUCTION
        assert settings.log_level == "DEBUG"

    def test_wildcard_origin_rejected(self) -> None:
        with pytest.raises(ValidationError, match="explicit origins"):
            APISettings(_env_file=None, cors_origins=["*"])

    @pytest.mark.parametrize(
        ("url", "env", "expected"),
        [
            ("postgresql+asyncpg://u:p@db/cargo", PlatformEnv.PRODUCTION, False),
            ("postgresql+asyncpg://u:p@db/cargo", PlatformEnv.DEV, True),
            ("sqlite+aiosqlite:///./ledger.db", PlatformEnv.STAGING, True),
        ],
    )
    def test_auto_create_tables(self, url: str, env: PlatformEnv, expected: bool) -> None:
        settings = APISettings(_env_file=None, database_url=url, platform_env=env)
        assert settings.auto_create_tables is expected
