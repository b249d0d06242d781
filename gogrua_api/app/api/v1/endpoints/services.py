"""
Towing request endpoints for API v1.

Customers cancel their own requests here; dispatchers and admins use the
same route on behalf of a customer.  The read routes return a request
with its dispatches, payments and event history.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, status

from gogrua_api.app.core.security import get_current_user, require_roles
from gogrua_api.app.schemas.event_log import EventLogRead
from gogrua_api.app.schemas.service import CancelRequest, CancelResponse, ServiceDetails
from gogrua_api.app.services.cancellation_service import CancellationService
from gogrua_api.app.services.event_log_service import EventLogService
from gogrua_api.app.services.request_service import RequestService


router = APIRouter()


@router.post("/cancel", response_model=CancelResponse)
async def cancel_request(data: CancelRequest, current_user: dict = Depends(get_current_user)) -> CancelResponse:
    """Cancelar una solicitud de servicio.

    Si el servicio estaba pagado, el pago queda en ``REFUND_PENDING`` con
    el porcentaje de reverso que corresponde al estado del servicio.
    """
    try:
        return await CancellationService.cancel_request(data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/{request_id}", response_model=ServiceDetails)
async def get_service(
    request_id: str = Path(..., description="ID de la solicitud"),
    current_user: dict = Depends(get_current_user),
) -> ServiceDetails:
    """Obtener una solicitud con sus despachos y transacciones."""
    details = await RequestService.get_details(request_id)
    if details is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Servicio no encontrado")
    return ServiceDetails(**details)


@router.get("/{request_id}/events", response_model=List[EventLogRead])
async def list_service_events(
    request_id: str = Path(..., description="ID de la solicitud"),
    limit: int = 100,
    offset: int = 0,
    current_user: dict = Depends(require_roles("admin", "dispatcher", "provider")),
) -> List[EventLogRead]:
    """Historial de eventos de una solicitud, del más reciente al más antiguo."""
    if not await RequestService.exists(request_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Servicio no encontrado")
    events = await EventLogService.list_events(request_id=request_id, limit=limit, offset=offset)
    return [EventLogRead(**event) for event in events]
