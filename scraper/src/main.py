"""
Process entrypoint for the Autarco scraper.

Loads settings, configures structured JSON logging, logs a config summary
with the password masked, and serves the FastAPI application with uvicorn.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from datetime import UTC, datetime

import uvicorn

from scraper.src.api.main import create_app
from scraper.src.config import ScraperSettings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on stderr for the whole process.

    Args:
        level: Root log level name.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    # Request/response bodies of the portal would end up in debug logs.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _masked_secret(value: str | None) -> str:
    """Return a short non-reversible fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


def log_config_summary(settings: ScraperSettings) -> None:
    """Log a config summary at startup, with the password only fingerprinted."""
    logger.info(
        "Autarco scraper starting with config: "
        "base_url=%s, username=%s, site_id=%s, "
        "min_refresh_interval_s=%s, background_refresh=%s, "
        "request_timeout_s=%s, host=%s, port=%s, password_masked=%s",
        settings.base_url,
        settings.username,
        settings.site_id,
        settings.min_refresh_interval_s,
        settings.background_refresh,
        settings.request_timeout_s,
        settings.host,
        settings.port,
        _masked_secret(settings.password.get_secret_value()),
    )


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    """Synchronous entrypoint: load config and run the HTTP server."""
    settings = ScraperSettings()
    configure_logging(settings.log_level)
    log_config_summary(settings)

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
