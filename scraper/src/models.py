"""
Pydantic models for the scraper: account credentials and the statistics record.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class Credentials(BaseModel):
    """My Autarco account and the site to track.

    Immutable for the lifetime of the process. The password is kept as a
    ``SecretStr`` so it never shows up in reprs or log lines.

    Attributes:
        username: Account e-mail / login name.
        password: Account password.
        site_id: Identifier of the Autarco site whose statistics are fetched.
    """

    model_config = ConfigDict(frozen=True)

    username: str
    password: SecretStr
    site_id: str


class StatsRecord(BaseModel):
    """Current photovoltaic production snapshot.

    Strict validation: the fetcher converts upstream values to ``int`` before
    constructing a record, so anything else reaching here is a bug.

    Attributes:
        current_w: Current power production in watts.
        total_kwh: Total energy produced since installation in kilowatt-hours.
        last_updated: Unix timestamp (seconds) of the fetch that produced it.
        suspect: Set when ``last_updated`` went backwards compared to the
            previously cached record. Not part of the serialized record.
    """

    model_config = ConfigDict(frozen=True, strict=True)

    current_w: int = Field(ge=0)
    total_kwh: int = Field(ge=0)
    last_updated: int = Field(ge=0)
    suspect: bool = Field(default=False, exclude=True)
