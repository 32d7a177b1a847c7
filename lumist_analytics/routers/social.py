"""
Social media API endpoints.

Discord routes are registered before the per-platform routes so that
"discord" is never read as a platform name.
"""

import logging
from datetime import date
from typing import Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, status

from lumist_analytics.core.exceptions import DataStoreError
from lumist_analytics.models.social import AccountOverview, Audience, DiscordFunnel, DiscordOverview, Platform
from lumist_analytics.routers.dependencies import date_range, get_social_service
from lumist_analytics.services.social_service import SocialService

logger = logging.getLogger(__name__)

router = APIRouter()


def _upstream_error(e: DataStoreError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Failed to load social data: {e.message}",
    )


@router.get("/discord/overview", response_model=DiscordOverview)
async def discord_overview(
    window: Tuple[date, date] = Depends(date_range),
    service: SocialService = Depends(get_social_service),
) -> DiscordOverview:
    start, end = window
    try:
        return await service.discord_overview(start, end)
    except DataStoreError as e:
        logger.error(f"Discord overview failed: {e.message}")
        raise _upstream_error(e)


@router.get("/discord/funnel", response_model=DiscordFunnel)
async def discord_funnel(service: SocialService = Depends(get_social_service)) -> DiscordFunnel:
    try:
        return await service.discord_funnel()
    except DataStoreError as e:
        logger.error(f"Discord funnel failed: {e.message}")
        raise _upstream_error(e)


@router.get("/{platform}/overview", response_model=AccountOverview)
async def account_overview(
    platform: Platform,
    account_id: str = Query(..., description="Account id in account_metrics_daily"),
    window: Tuple[date, date] = Depends(date_range),
    service: SocialService = Depends(get_social_service),
) -> AccountOverview:
    """Followers, reach, engagement and visits with previous-period deltas."""
    start, end = window
    try:
        return await service.account_overview(platform, account_id, start, end)
    except DataStoreError as e:
        logger.error(f"{platform} overview failed: {e.message}")
        raise _upstream_error(e)


@router.get("/{platform}/audience", response_model=Audience)
async def account_audience(
    platform: Platform,
    account_id: str = Query(...),
    window: Tuple[date, date] = Depends(date_range),
    service: SocialService = Depends(get_social_service),
) -> Audience:
    start, end = window
    try:
        return await service.audience(platform, account_id, start, end)
    except DataStoreError as e:
        logger.error(f"{platform} audience failed: {e.message}")
        raise _upstream_error(e)
