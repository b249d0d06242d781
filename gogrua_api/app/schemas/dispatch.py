"""
Pydantic models for driver status updates on a dispatch.
"""

from typing import Optional

from pydantic import Field

from .base import CamelModel


class DispatchStatusUpdate(CamelModel):
    dispatch_id: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1, examples=["EN_ROUTE"])
    eta_minutes: Optional[int] = Field(None, ge=0)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)


class DispatchStatusResponse(CamelModel):
    success: bool = True
    dispatch_id: str
    status: str
    request_id: str
