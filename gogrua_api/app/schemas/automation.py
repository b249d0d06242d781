"""
Pydantic models for calls coming from the n8n automation workflows.

The envelope is ``{"action": ..., "data": {...}}``; each action has its
own ``data`` model, validated once the action is known.
"""

from typing import Any, Dict, Optional

from pydantic import Field

from .base import CamelModel


class AutomationRequest(CamelModel):
    action: str = Field(..., min_length=1, examples=["update_quote"])
    data: Dict[str, Any] = Field(default_factory=dict)


class UpdateQuoteData(CamelModel):
    request_id: str
    quote_min: Optional[float] = None
    quote_max: Optional[float] = None
    quote_final: Optional[float] = None


class AssignProviderData(CamelModel):
    request_id: str
    provider_id: str
    driver_id: Optional[str] = None
    eta_minutes: Optional[int] = None


class UpdateDispatchStatusData(CamelModel):
    dispatch_id: str
    status: str
    eta_minutes: Optional[int] = None


class EscalateNoProviderData(CamelModel):
    request_id: str
    attempts: Optional[int] = None
    reason: Optional[str] = None


class LogCommunicationData(CamelModel):
    request_id: str
    channel: Optional[str] = None
    recipient: Optional[str] = None
    message_type: Optional[str] = None
    success: Optional[bool] = None


class AvailableProvidersData(CamelModel):
    zone: Optional[str] = None
    vehicle_type: Optional[str] = None


class ServiceDetailsData(CamelModel):
    request_id: str
