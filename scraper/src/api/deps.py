"""
FastAPI dependency injection providers.

The stats service is built once in the application lifespan and stored on
``app.state``; route handlers receive it through ``Depends()``.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from typing import Annotated

from fastapi import Depends, Request

from scraper.src.service import StatsService


def get_stats_service(request: Request) -> StatsService:
    """Return the process-wide StatsService from ``app.state``."""
    return request.app.state.stats_service


# Usage in route handlers:
#   async def my_route(service: StatsServiceDep):
#       record = await service.get_current_stats()
StatsServiceDep = Annotated[StatsService, Depends(get_stats_service)]
