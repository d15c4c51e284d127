"""
Health check endpoint.

Provides GET /health for Docker HEALTHCHECK and monitoring. It reports only
what is already cached and never contacts the Autarco portal.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from fastapi import APIRouter

from scraper.src.api.deps import StatsServiceDep

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(service: StatsServiceDep) -> dict:
    """Return service liveness plus the age of the cached statistics.

    Returns:
        dict: ``status``, ``has_stats`` and ``last_updated`` (or None).
    """
    latest = service.fetcher.latest
    return {
        "status": "ok",
        "has_stats": latest is not None,
        "last_updated": latest.last_updated if latest is not None else None,
    }
