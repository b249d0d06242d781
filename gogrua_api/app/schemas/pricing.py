"""
Pydantic models for price quotes and the pricing catalog.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .base import CamelModel


class PriceCalculationRequest(CamelModel):
    vehicle_type: str = Field(..., examples=["car"])
    origin_lat: float = Field(..., ge=-90, le=90, examples=[-33.4372])
    origin_lng: float = Field(..., ge=-180, le=180, examples=[-70.6506])
    destination_lat: float = Field(..., ge=-90, le=90, examples=[-33.5120])
    destination_lng: float = Field(..., ge=-180, le=180, examples=[-70.7560])
    scheduled_at: Optional[datetime] = Field(None, description="Moment the tow is booked for; defaults to now")
    addons: Optional[List[str]] = Field(None, description="IDs of selected service add-ons")


class AddonLine(CamelModel):
    name: str
    price: int


class PriceBreakdown(CamelModel):
    """Every component of a quote, rounded the way the client displays it."""

    base_price: int
    distance_price: int
    distance_km: float
    time_multiplier: float
    demand_multiplier: float
    zone_multiplier: float
    addons_total: int
    addons_breakdown: List[AddonLine]
    subtotal: int
    platform_fee: int
    total: int
    estimated_duration_minutes: int
    surge: bool
    surge_multiplier: float


class RateRead(CamelModel):
    id: int
    vehicle_type: str
    base_price: Optional[float] = None
    price_per_km: Optional[float] = None
    minimum_price: Optional[float] = None


class AddonRead(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    base_price: float
    price_type: str
    icon: Optional[str] = None
