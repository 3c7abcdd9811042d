"""Tests for environment-driven settings."""
from deckbridge.core.config import Settings, get_settings


class TestSettings:
    """Tests for Settings defaults and validators."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DECKBRIDGE_PARSE_TIMEOUT_MS", raising=False)
        monkeypatch.delenv("DECKBRIDGE_MOXFIELD_API_BASE", raising=False)

        settings = Settings(_env_file=None)

        assert settings.parse_timeout_ms == 30000
        assert settings.moxfield_api_base == "https://api2.moxfield.com/v3/decks"
        assert settings.fetch_failure_threshold == 5

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("DECKBRIDGE_PARSE_TIMEOUT_MS", "1500")
        monkeypatch.setenv("DECKBRIDGE_USER_AGENT", "TestAgent/2.0")

        settings = Settings(_env_file=None)

        assert settings.parse_timeout_ms == 1500
        assert settings.user_agent == "TestAgent/2.0"

    def test_endpoint_trailing_slash_stripped(self, monkeypatch):
        """Endpoint bases are joined with '/', so a trailing slash is dropped."""
        monkeypatch.setenv("DECKBRIDGE_ARCHIDEKT_API_BASE", "https://archidekt.example/api/decks/")

        settings = Settings(_env_file=None)

        assert settings.archidekt_api_base == "https://archidekt.example/api/decks"

    def test_log_level_normalized(self, monkeypatch):
        monkeypatch.setenv("DECKBRIDGE_LOG_LEVEL", " debug ")

        assert Settings(_env_file=None).log_level == "DEBUG"

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
