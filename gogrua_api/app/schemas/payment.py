"""
Pydantic models for Webpay Plus payments and refunds.

Amounts are Chilean pesos (CLP), which have no minor unit, so every
amount sent to the gateway is a whole number.
"""

from typing import Any, Dict, Optional

from pydantic import Field

from .base import CamelModel


class WebpayCreateRequest(CamelModel):
    request_id: str = Field(..., min_length=1, description="ID of the service being paid")
    return_url: str = Field(..., min_length=1, examples=["https://gogrua.cl/pago/resultado"])


class WebpayCreateResponse(CamelModel):
    success: bool = True
    token: str
    url: str
    buy_order: str
    session_id: str
    payment_id: str
    simulated: Optional[bool] = None


class WebpayCallbackRequest(CamelModel):
    token: str = Field(..., min_length=1, description="token_ws returned by Webpay")
    request_id: Optional[str] = None


class WebpayCallbackResponse(CamelModel):
    success: bool
    status: str
    request_id: str
    payment_id: Optional[str] = None
    amount: Optional[float] = None
    auth_code: Optional[str] = None
    response_code: Optional[int] = None
    simulated: Optional[bool] = None


class WebpayRefundRequest(CamelModel):
    payment_id: str = Field(..., min_length=1)
    refund_amount: Optional[float] = Field(None, description="Defaults to the pending refund amount, then to the full amount")


class WebpayRefundResponse(CamelModel):
    success: bool = True
    payment_id: str
    refund_amount: float
    status: str
    refund_type: Optional[str] = None
    auth_code: Optional[str] = None
    simulated: Optional[bool] = None


class WebpayInitRequest(CamelModel):
    service_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    return_url: str = Field(..., min_length=1)


class WebpayInitResponse(CamelModel):
    success: bool = True
    token: str
    url: str
    buy_order: str
    session_id: str
    simulated: Optional[bool] = None


class WebpayConfirmResponse(CamelModel):
    success: bool
    status: Optional[str] = None
    response_code: Optional[int] = None
    amount: Optional[float] = None
    buy_order: Optional[str] = None
    authorization_code: Optional[str] = None
    card_detail: Optional[Dict[str, Any]] = None
    transaction_date: Optional[str] = None
    message: str
    simulated: Optional[bool] = None


class WebpayConfirmRequest(CamelModel):
    """Body of a POST confirm; the same fields are also read from the query string."""

    token_ws: Optional[str] = Field(None, alias="token_ws")
    service_id: Optional[str] = None
    amount: Optional[float] = None
