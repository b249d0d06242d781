"""
Pydantic models for towing service requests and their cancellation.
"""

from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import CamelModel


class CancelRequest(CamelModel):
    request_id: str = Field(..., min_length=1, description="ID of the service to cancel")
    reason: Optional[str] = Field(None, examples=["Cliente ya no necesita el servicio"])
    cancelled_by: Optional[str] = Field(None, examples=["customer"], description="Actor type recorded in the event log")


class RefundInfo(CamelModel):
    payment_id: str
    original_amount: float
    refund_amount: int
    refund_percentage: float


class CancelResponse(CamelModel):
    success: bool = True
    request_id: str
    status: str
    previous_status: str
    refund_info: Optional[RefundInfo] = None
    message: str


class ServiceDetails(CamelModel):
    """A service row together with its dispatches and transactions."""

    success: bool = True
    service: Dict[str, Any]
    dispatch: List[Dict[str, Any]] = []
    transactions: List[Dict[str, Any]] = []
