"""
Error taxonomy for the upstream session and statistics fetch.

Every failure of a login or fetch cycle is raised as a subclass of
:class:`ScraperError`, so the HTTP layer can map each kind to a status code
without inspecting messages. The core never exits the process on any of
these.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from __future__ import annotations


class ScraperError(Exception):
    """Base class for all upstream failures."""

    kind: str = "error"


class AuthError(ScraperError):
    """Login failed: credentials rejected, upstream unreachable, or odd response.

    Args:
        message: Human readable description.
        reason: One of ``rejected``, ``unreachable`` or ``unexpected_response``.
    """

    kind = "auth_error"

    REJECTED = "rejected"
    UNREACHABLE = "unreachable"
    UNEXPECTED_RESPONSE = "unexpected_response"

    def __init__(self, message: str, *, reason: str = UNEXPECTED_RESPONSE) -> None:
        super().__init__(message)
        self.reason = reason


class FetchError(ScraperError):
    """The statistics request or its parsing failed."""

    kind = "fetch_error"


class AuthRejected(FetchError):
    """The statistics request was unauthorized again after a fresh login."""

    kind = "auth_rejected"


class ParseError(FetchError):
    """The upstream payload is missing fields or has the wrong shape."""

    kind = "parse_error"


class TransportError(FetchError):
    """Network failure or a non-2xx response unrelated to authentication.

    Args:
        message: Human readable description.
        timeout: True when the failure was a request timeout.
    """

    kind = "transport_error"

    def __init__(self, message: str, *, timeout: bool = False) -> None:
        super().__init__(message)
        self.timeout = timeout
