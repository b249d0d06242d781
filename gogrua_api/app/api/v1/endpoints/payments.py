"""
Payment endpoints for API v1.

These routes drive Webpay Plus payments for towing requests:
``/webpay/create`` opens a payment for a quoted request,
``/webpay/callback`` settles it when the customer returns from Webpay
and ``/webpay/refund`` returns money after a cancellation.  The
``/webpay/init`` and ``/webpay/confirm`` pair serves the older checkout
page.  Outside production every call is simulated.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from gogrua_api.app.core.security import get_current_user, require_roles
from gogrua_api.app.schemas.payment import (
    WebpayCallbackRequest,
    WebpayCallbackResponse,
    WebpayConfirmRequest,
    WebpayConfirmResponse,
    WebpayCreateRequest,
    WebpayCreateResponse,
    WebpayInitRequest,
    WebpayInitResponse,
    WebpayRefundRequest,
    WebpayRefundResponse,
)
from gogrua_api.app.services.payment_service import PaymentService


router = APIRouter()


@router.post("/webpay/create", response_model=WebpayCreateResponse)
async def create_webpay_transaction(
    data: WebpayCreateRequest, current_user: dict = Depends(get_current_user)
) -> WebpayCreateResponse:
    """Crear una transacción Webpay para una solicitud cotizada.

    Devuelve la URL a la que se redirige al cliente para pagar.
    """
    try:
        return await PaymentService.create_transaction(data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/webpay/callback", response_model=WebpayCallbackResponse)
async def webpay_callback(data: WebpayCallbackRequest) -> WebpayCallbackResponse:
    """Confirmar el pago cuando el cliente vuelve desde Webpay con ``token_ws``."""
    try:
        return await PaymentService.process_callback(data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/webpay/refund", response_model=WebpayRefundResponse)
async def refund_webpay_transaction(
    data: WebpayRefundRequest,
    current_user: dict = Depends(require_roles("admin", "dispatcher")),
) -> WebpayRefundResponse:
    """Reversar total o parcialmente un pago (solo administradores y despachadores)."""
    try:
        return await PaymentService.refund(data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/webpay/init", response_model=WebpayInitResponse)
async def init_webpay_transaction(data: WebpayInitRequest) -> WebpayInitResponse:
    try:
        return await PaymentService.init_transaction(data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.api_route("/webpay/confirm", methods=["GET", "POST"], response_model=WebpayConfirmResponse)
async def confirm_webpay_transaction(
    request: Request,
    token_ws: Optional[str] = None,
    service_id: Optional[str] = Query(None, alias="serviceId"),
    amount: Optional[float] = None,
) -> WebpayConfirmResponse:
    """Confirmar un token de Webpay del checkout antiguo.

    Los datos llegan por query string (GET) o en el cuerpo JSON (POST);
    en un POST el cuerpo tiene prioridad.
    """
    if request.method == "POST":
        raw = await request.body()
        if raw:
            try:
                body = WebpayConfirmRequest.model_validate_json(raw)
            except ValueError as e:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
            token_ws = body.token_ws or token_ws
            service_id = body.service_id or service_id
            amount = body.amount or amount
    try:
        return await PaymentService.confirm_transaction(token_ws, service_id=service_id, amount=amount)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
