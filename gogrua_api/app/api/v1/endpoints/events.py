"""
Event log endpoints for API v1.

Every handler appends to the event log; these routes let admins and
dispatchers browse it with filters and pagination.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from gogrua_api.app.core.security import require_roles
from gogrua_api.app.schemas.event_log import EventLogRead
from gogrua_api.app.services.event_log_service import EventLogService


router = APIRouter()


@router.get("/", response_model=List[EventLogRead])
async def list_events(
    request_id: Optional[str] = Query(None, alias="requestId"),
    event_type: Optional[str] = Query(None, alias="eventType"),
    actor_type: Optional[str] = Query(None, alias="actorType"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(require_roles("admin", "dispatcher")),
) -> List[EventLogRead]:
    """Listar el registro de eventos.

    Los filtros ``requestId``, ``eventType`` y ``actorType`` se pueden
    combinar.
    """
    events = await EventLogService.list_events(
        request_id=request_id,
        event_type=event_type,
        actor_type=actor_type,
        limit=limit,
        offset=offset,
    )
    return [EventLogRead(**event) for event in events]
