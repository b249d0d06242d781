"""
Inbound webhook for the n8n automation workflows.

n8n posts ``{"action": ..., "data": {...}}``.  When ``N8N_SHARED_SECRET``
is configured the raw body must be signed in the ``x-n8n-signature``
header, so the body is read before it is parsed.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Header, HTTPException, Request, status

from gogrua_api.app.core.security import verify_n8n_signature
from gogrua_api.app.schemas.automation import AutomationRequest
from gogrua_api.app.services.automation_service import AutomationService


router = APIRouter()


@router.post("/webhook")
async def automation_webhook(
    request: Request,
    x_n8n_signature: Optional[str] = Header(None),
) -> Dict[str, Any]:
    """Ejecutar una acción solicitada por n8n."""
    body = await request.body()
    if not verify_n8n_signature(body, x_n8n_signature):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Firma inválida")
    try:
        payload = AutomationRequest.model_validate_json(body)
        return await AutomationService.handle(payload)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
