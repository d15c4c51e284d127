"""
GET / endpoint returning the current photovoltaic statistics.

Returns ``{"current_w", "total_kwh", "last_updated"}`` as JSON. Upstream
failures are raised as ScraperError subclasses and turned into error
responses by the handler registered in :mod:`scraper.src.api.main`.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import logging

from fastapi import APIRouter, Response

from scraper.src.api.deps import StatsServiceDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stats"])

SUSPECT_HEADER = "X-Stats-Suspect"


@router.get("/")
async def current_stats(service: StatsServiceDep, response: Response) -> dict:
    """Return the current (last known) statistics.

    A record whose timestamp went backwards is still returned, with the
    ``X-Stats-Suspect: true`` header set.

    Returns:
        dict: JSON object with current_w, total_kwh and last_updated.
    """
    record = await service.get_current_stats()
    if record.suspect:
        response.headers[SUSPECT_HEADER] = "true"
    return record.model_dump()
