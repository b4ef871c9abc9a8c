"""Tests for application settings."""

from __future__ import annotations

from zoneinfo import ZoneInfo

import pytest

from backend.api.config import Settings, _parse_cors_origins


class TestParseCorsOrigins:
    def test_json_array(self) -> None:
        assert _parse_cors_origins('["https://a.com", "https://b.com"]') == [
            "https://a.com",
            "https://b.com",
        ]

    def test_bracketed_without_quotes(self) -> None:
        assert _parse_cors_origins("[https://a.com,https://b.com]") == [
            "https://a.com",
            "https://b.com",
        ]

    def test_plain_comma_separated(self) -> None:
        assert _parse_cors_origins("https://a.com, https://b.com") == [
            "https://a.com",
            "https://b.com",
        ]


class TestSettings:
    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STREAK_BONUS_XP", "75")
        monkeypatch.setenv("REMOTE_PERSISTENCE_ENABLED", "false")
        settings = Settings(_env_file=None)  # type: ignore[call-arg]
        assert settings.streak_bonus_xp == 75
        assert settings.remote_persistence_enabled is False

    def test_timezone_resolution(self) -> None:
        assert Settings(_env_file=None, timezone="").tzinfo is None  # type: ignore[call-arg]
        settings = Settings(_env_file=None, timezone="Europe/Istanbul")  # type: ignore[call-arg]
        assert settings.tzinfo == ZoneInfo("Europe/Istanbul")

    def test_unknown_timezone(self) -> None:
        settings = Settings(_env_file=None, timezone="Mars/Olympus")  # type: ignore[call-arg]
        with pytest.raises(ValueError, match="Unknown timezone"):
            _ = settings.tzinfo
