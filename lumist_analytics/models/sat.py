"""
SAT test-center availability models.
"""

from datetime import date
from typing import Literal

from pydantic import BaseModel, Field


class SatDate(BaseModel):
    value: date
    label: str


class TestCenter(BaseModel):
    """Test center with binary seat status."""

    __test__ = False

    id: str
    name: str
    address: str = ""
    city: str = ""
    state: str = ""
    country: str = "VN"
    status: Literal["available", "full"]
    distance: float | None = None
    coordinates: tuple[float, float] = Field(..., description="(longitude, latitude)")


class SatSeats(BaseModel):
    test_date: date
    centers: list[TestCenter]
    cached: bool = False
    open_count: int
    full_count: int
    locations: list[str]
    map_center: tuple[float, float]
