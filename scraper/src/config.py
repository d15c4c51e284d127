"""
Scraper configuration loaded from environment variables or ``autarco.toml``.

Uses Pydantic BaseSettings for automatic env var loading and validation.
Environment variables carry the ``AUTARCO_`` prefix (``AUTARCO_USERNAME``,
``AUTARCO_SITE_ID``, ...). An ``autarco.toml`` file in the working directory
with plain ``username``, ``password`` and ``site_id`` keys is also accepted;
environment variables and ``.env`` take precedence over it.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from pydantic import SecretStr, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    TomlConfigSettingsSource,
)

from scraper.src.models import Credentials

DEFAULT_BASE_URL = "https://my.autarco.com"

# Autarco processes new inverter data every five minutes.
DEFAULT_MIN_REFRESH_INTERVAL_S = 300


class ScraperSettings(BaseSettings):
    """Configuration for the Autarco scraper service.

    Attributes:
        username: My Autarco account login.
        password: My Autarco account password.
        site_id: Autarco site identifier to track.
        base_url: Base URL of the My Autarco portal (must be HTTPS).
        min_refresh_interval_s: Seconds during which the cached record is
            served without contacting the portal. 0 fetches on every request.
        background_refresh: Also refresh in the background every
            ``min_refresh_interval_s`` seconds.
        request_timeout_s: Timeout for every upstream HTTP request.
        host: Address the HTTP server binds to.
        port: Port the HTTP server listens on.
        log_level: Root log level name.
    """

    username: str
    password: SecretStr
    site_id: str
    base_url: str = DEFAULT_BASE_URL
    min_refresh_interval_s: int = DEFAULT_MIN_REFRESH_INTERVAL_S
    background_refresh: bool = False
    request_timeout_s: float = 10.0
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    @field_validator("base_url")
    @classmethod
    def base_url_must_be_https(cls, v: str) -> str:
        """Validate that the portal URL uses HTTPS; credentials are posted to it."""
        if not v.lower().startswith("https://"):
            raise ValueError(
                f"AUTARCO_BASE_URL must use HTTPS (got: '{v[:30]}')"
            )
        return v.rstrip("/")

    @field_validator("username", "site_id")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        """Reject empty or whitespace-only account fields."""
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("min_refresh_interval_s")
    @classmethod
    def refresh_interval_must_be_non_negative(cls, v: int) -> int:
        """Validate the refresh interval is non-negative."""
        if v < 0:
            raise ValueError("AUTARCO_MIN_REFRESH_INTERVAL_S must be >= 0")
        return v

    @field_validator("request_timeout_s")
    @classmethod
    def timeout_must_be_positive(cls, v: float) -> float:
        """Validate the upstream request timeout is positive."""
        if v <= 0:
            raise ValueError("AUTARCO_REQUEST_TIMEOUT_S must be > 0")
        return v

    @field_validator("port")
    @classmethod
    def port_must_be_valid(cls, v: int) -> int:
        """Validate the listen port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("AUTARCO_PORT must be between 1 and 65535")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        """Normalise the log level and reject unknown names."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"AUTARCO_LOG_LEVEL '{v}' is not a valid level")
        return level

    def credentials(self) -> Credentials:
        """Return the immutable credentials the session manager logs in with."""
        return Credentials(
            username=self.username,
            password=self.password,
            site_id=self.site_id,
        )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Add ``autarco.toml`` as the lowest-priority source."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
            TomlConfigSettingsSource(settings_cls),
        )

    model_config = {
        "env_prefix": "AUTARCO_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "toml_file": "autarco.toml",
        "extra": "ignore",
    }
