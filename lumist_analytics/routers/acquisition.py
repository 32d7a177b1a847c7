"""
Acquisition API endpoints: signup conversion overview and signup cohorts.
"""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from lumist_analytics.core.exceptions import DataStoreError
from lumist_analytics.models.acquisition import AcquisitionOverview, CohortReport, ConversionView
from lumist_analytics.routers.dependencies import get_acquisition_service
from lumist_analytics.services.acquisition_service import AcquisitionService

logger = logging.getLogger(__name__)

router = APIRouter()


def _upstream_error(e: DataStoreError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Failed to load acquisition data{f' from {e.table}' if e.table else ''}: {e.message}",
    )


@router.get("/overview", response_model=AcquisitionOverview)
async def acquisition_overview(
    view: ConversionView = Query("monthly", description="Granularity of the conversion trend"),
    service: AcquisitionService = Depends(get_acquisition_service),
) -> AcquisitionOverview:
    """
    Signup and conversion KPIs, the signup -> active -> paid funnel,
    conversion trend, referral sources and geography.

    Raises:
        HTTPException 502: If a conversion view cannot be loaded
    """
    try:
        return await service.overview(view)
    except DataStoreError as e:
        logger.error(f"Acquisition overview failed: {e.message}")
        raise _upstream_error(e)


@router.get("/cohorts", response_model=CohortReport)
async def acquisition_cohorts(
    sort_key: str = Query("cohort"),
    sort_direction: Literal["asc", "desc"] = Query("desc"),
    service: AcquisitionService = Depends(get_acquisition_service),
) -> CohortReport:
    try:
        return await service.cohorts(sort_key, sort_direction)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataStoreError as e:
        logger.error(f"Acquisition cohorts failed: {e.message}")
        raise _upstream_error(e)
