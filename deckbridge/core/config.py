"""
DeckBridge configuration settings.

All configuration is loaded from environment variables (prefix ``DECKBRIDGE_``)
with sensible defaults.
"""
from functools import lru_cache
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings for the platform-adapter subsystem."""

    # Application
    app_name: str = "DeckBridge"
    debug: bool = False
    log_level: str = "INFO"

    # Outbound HTTP (deck URL imports)
    external_api_timeout: float = 30.0  # seconds, per HTTP request
    parse_timeout_ms: int = 30000  # default budget for a whole parse call
    user_agent: str = "DeckBridge/1.0"

    # Platform endpoints
    moxfield_api_base: str = "https://api2.moxfield.com/v3/decks"
    archidekt_api_base: str = "https://archidekt.com/api/decks"
    edhrec_api_base: str = "https://json.edhrec.com"
    tappedout_base_url: str = "https://tappedout.net"
    mtggoldfish_base_url: str = "https://www.mtggoldfish.com"

    # Circuit breaker for platform fetches
    fetch_failure_threshold: int = 5
    fetch_recovery_timeout: float = 60.0

    @field_validator(
        "moxfield_api_base",
        "archidekt_api_base",
        "edhrec_api_base",
        "tappedout_base_url",
        "mtggoldfish_base_url",
        mode="before",
    )
    @classmethod
    def strip_trailing_slash(cls, v: Any) -> Any:
        """Endpoint bases are joined with '/', so drop any trailing slash."""
        if isinstance(v, str):
            return v.rstrip("/")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    class Config:
        env_prefix = "DECKBRIDGE_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
