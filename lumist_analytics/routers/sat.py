"""
SAT tracker API endpoints.
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from lumist_analytics.core.exceptions import EdgeFunctionError
from lumist_analytics.models.sat import SatDate, SatSeats
from lumist_analytics.routers.dependencies import get_sat_service
from lumist_analytics.services.sat_service import SatService, future_sat_dates

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/dates", response_model=List[SatDate])
async def sat_dates() -> List[SatDate]:
    """Upcoming official SAT dates."""
    return future_sat_dates()


@router.get("/seats", response_model=SatSeats)
async def sat_seats(
    test_date: Optional[date] = Query(None, alias="date", description="SAT date, defaults to the next one"),
    location: str = Query("All", description="City filter (substring, case-insensitive)"),
    service: SatService = Depends(get_sat_service),
) -> SatSeats:
    """
    Test centers with open/full status for one SAT date.

    Raises:
        HTTPException 404: If no date is given and no SAT date is upcoming
        HTTPException 502: If the seats function fails
    """
    if test_date is None:
        upcoming = future_sat_dates()
        if not upcoming:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No upcoming SAT dates available",
            )
        test_date = upcoming[0].value

    try:
        return await service.fetch_seats(test_date, location)
    except EdgeFunctionError as e:
        logger.error(f"SAT seats for {test_date} failed: {e.message}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
