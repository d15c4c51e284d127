"""
Statistics fetcher for the My Autarco portal.

Requests the power and energy KPIs of the configured site with a session from
the :class:`~scraper.src.session.SessionManager`, parses them into a
:class:`~scraper.src.models.StatsRecord`, and keeps the latest record.

Fetch cycle:
1. Obtain a session (logs in if none is held or it was invalidated).
2. GET ``/api/site/{site_id}/kpis/power`` and ``.../kpis/energy``.
3. On an unauthorized answer: invalidate, log in again, retry exactly once.
   A second unauthorized answer raises AuthRejected.
4. Parse; a missing or malformed field raises ParseError (no retry).
5. Replace the cached record. Failures leave the previous record in place.

Concurrent ``fetch()`` calls share one in-flight cycle, and the cycle runs
under a lock, so at most one login and one statistics request reach the
portal at a time. Callers that get cancelled do not cancel the cycle.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx

from scraper.src.errors import AuthRejected, ParseError, TransportError
from scraper.src.models import StatsRecord
from scraper.src.session import redirects_to_login

if TYPE_CHECKING:
    from scraper.src.session import Session, SessionManager

logger = logging.getLogger(__name__)

_UNAUTHORIZED_STATUSES = frozenset({401, 403, 419})
"""Data responses that mean the session is no longer accepted."""


class _Unauthorized(Exception):
    """Internal signal: the portal refused the session for a data request."""


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _require_count(payload: Any, field: str, source: str) -> int:
    """Extract a non-negative integer *field* from a KPI payload.

    Integers and integral floats are accepted. Fractional, non-finite and
    negative numbers are rejected, as are strings, booleans and nulls.

    Raises:
        ParseError: If the payload or the field does not have that shape.
    """
    if not isinstance(payload, dict):
        raise ParseError(f"{source} response is not a JSON object")
    if field not in payload:
        raise ParseError(f"{source} response is missing '{field}'")

    value = payload[field]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ParseError(f"{source} field '{field}' is not numeric: {value!r}")
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ParseError(f"{source} field '{field}' is not finite: {value!r}")
        if not value.is_integer():
            raise ParseError(f"{source} field '{field}' is not a whole number: {value!r}")
        value = int(value)
    if value < 0:
        raise ParseError(f"{source} field '{field}' is negative: {value!r}")
    return value


def parse_stats(power: Any, energy: Any, *, last_updated: int) -> StatsRecord:
    """Build a StatsRecord from the decoded power and energy KPI payloads.

    Args:
        power: Decoded JSON of the power KPI endpoint (``pv_now`` in W).
        energy: Decoded JSON of the energy KPI endpoint (``pv_to_date`` in kWh).
        last_updated: Unix timestamp to stamp the record with.

    Returns:
        The parsed record.

    Raises:
        ParseError: If a required field is missing or malformed.
    """
    return StatsRecord(
        current_w=_require_count(power, "pv_now", "power"),
        total_kwh=_require_count(energy, "pv_to_date", "energy"),
        last_updated=last_updated,
    )


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class StatsFetcher:
    """Fetches, parses and caches the site statistics.

    Args:
        session_manager: Owner of the portal session.
        site_id: Autarco site identifier.
        clock: Source of unix time used for ``last_updated``.
        monotonic: Monotonic clock used to age the cached record.
    """

    def __init__(
        self,
        session_manager: SessionManager,
        *,
        site_id: str,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_manager = session_manager
        self._site_id = site_id
        self._clock = clock
        self._monotonic = monotonic
        self._lock = asyncio.Lock()
        self._inflight: asyncio.Task[StatsRecord] | None = None
        self._latest: StatsRecord | None = None
        self._last_success: float | None = None
        self._stats_request_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def latest(self) -> StatsRecord | None:
        """The most recently fetched record, or None before the first success."""
        return self._latest

    @property
    def stats_request_count(self) -> int:
        """Number of statistics requests issued since startup."""
        return self._stats_request_count

    def age_s(self) -> float | None:
        """Seconds since the last successful fetch, or None if there was none."""
        if self._last_success is None:
            return None
        return self._monotonic() - self._last_success

    async def fetch(self) -> StatsRecord:
        """Fetch fresh statistics from the portal.

        Joins the in-flight fetch if there is one instead of starting another.

        Returns:
            The freshly fetched record (also cached as :attr:`latest`).

        Raises:
            AuthError: If logging in failed.
            AuthRejected: If the data request was unauthorized twice.
            ParseError: If the portal response could not be parsed.
            TransportError: On network errors or unexpected HTTP statuses.
        """
        task = self._inflight
        if task is None:
            task = asyncio.create_task(self._run_cycle())
            task.add_done_callback(self._cycle_done)
            self._inflight = task
        else:
            logger.debug("Joining in-flight statistics fetch")
        return await asyncio.shield(task)

    # ------------------------------------------------------------------
    # Fetch cycle
    # ------------------------------------------------------------------

    def _cycle_done(self, task: asyncio.Task[StatsRecord]) -> None:
        if self._inflight is task:
            self._inflight = None
        # Retrieve the exception so it is not reported as unhandled when
        # every waiting caller was cancelled.
        if not task.cancelled():
            task.exception()

    async def _run_cycle(self) -> StatsRecord:
        async with self._lock:
            session = await self._session_manager.ensure_session()
            try:
                power, energy = await self._request_stats(session)
            except _Unauthorized:
                logger.warning("Statistics request unauthorized, logging in again")
                self._session_manager.invalidate()
                session = await self._session_manager.ensure_session()
                try:
                    power, energy = await self._request_stats(session)
                except _Unauthorized as exc:
                    self._session_manager.invalidate()
                    logger.warning("Statistics request unauthorized after re-login")
                    raise AuthRejected(
                        "Portal rejected the statistics request after a fresh login"
                    ) from exc

            try:
                record = parse_stats(power, energy, last_updated=int(self._clock()))
            except ParseError as exc:
                logger.warning("Could not parse portal statistics: %s", exc)
                raise

            record = self._flag_regression(record)
            self._latest = record
            self._last_success = self._monotonic()
            logger.info(
                "Fetched statistics: current_w=%d total_kwh=%d last_updated=%d",
                record.current_w,
                record.total_kwh,
                record.last_updated,
            )
            return record

    def _flag_regression(self, record: StatsRecord) -> StatsRecord:
        """Mark *record* suspect if its timestamp is older than the cached one."""
        previous = self._latest
        if previous is None or record.last_updated >= previous.last_updated:
            return record
        logger.warning(
            "Statistics timestamp went backwards (%d < %d), marking record suspect",
            record.last_updated,
            previous.last_updated,
        )
        return record.model_copy(update={"suspect": True})

    async def _request_stats(self, session: Session) -> tuple[Any, Any]:
        """Issue the power and energy KPI requests with *session*."""
        self._stats_request_count += 1
        async with self._session_manager.open_client(session) as client:
            power = await self._get_json(client, "power")
            energy = await self._get_json(client, "energy")
        return power, energy

    async def _get_json(self, client: httpx.AsyncClient, kpi: str) -> Any:
        path = f"/api/site/{self._site_id}/kpis/{kpi}"
        try:
            response = await client.get(path, headers={"Accept": "application/json"})
        except httpx.TimeoutException as exc:
            logger.warning("Timeout fetching %s: %s", path, exc)
            raise TransportError(f"Timeout fetching {path}", timeout=True) from exc
        except httpx.TransportError as exc:
            logger.warning("Network error fetching %s: %s", path, exc)
            raise TransportError(f"Network error fetching {path}: {exc}") from exc
        except httpx.DecodingError as exc:
            logger.warning("Undecodable body from %s: %s", path, exc)
            raise ParseError(f"{kpi} response body could not be decoded: {exc}") from exc
        except httpx.RequestError as exc:
            logger.warning("Request to %s failed: %s", path, exc)
            raise TransportError(f"Request to {path} failed: {exc}") from exc

        if response.status_code in _UNAUTHORIZED_STATUSES or redirects_to_login(response):
            raise _Unauthorized(path)

        if not response.is_success:
            logger.warning("Portal returned HTTP %d for %s", response.status_code, path)
            raise TransportError(f"HTTP {response.status_code} when fetching {path}")

        try:
            return response.json()
        except ValueError as exc:
            raise ParseError(f"{kpi} response is not valid JSON") from exc
