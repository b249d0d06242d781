"""
Pydantic model for event log entries.
"""

from typing import Any, Optional

from .base import CamelModel


class EventLogRead(CamelModel):
    id: int
    request_id: Optional[str] = None
    payment_id: Optional[str] = None
    dispatch_id: Optional[str] = None
    event_type: str
    actor_type: str
    payload: Optional[Any] = None
    created_at: str
