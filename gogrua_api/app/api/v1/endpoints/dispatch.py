"""
Dispatch endpoints for API v1.

Drivers report their progress (en route, arrived, completed) through
``POST /dispatch/status``.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from gogrua_api.app.core.security import require_roles
from gogrua_api.app.schemas.dispatch import DispatchStatusResponse, DispatchStatusUpdate
from gogrua_api.app.services.dispatch_service import DispatchService


router = APIRouter()


@router.post("/status", response_model=DispatchStatusResponse)
async def update_dispatch_status(
    data: DispatchStatusUpdate,
    current_user: dict = Depends(require_roles("driver", "provider", "dispatcher", "admin")),
) -> DispatchStatusResponse:
    """Actualizar el estado de un despacho y, con ``lat``/``lng``, la posición del conductor."""
    try:
        return await DispatchService.update_status(data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
