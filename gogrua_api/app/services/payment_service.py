"""
Business logic for payments through Webpay Plus.

The flow for a towing request is:

1. ``create_transaction`` registers a ``PENDING`` transaction for the
   quoted amount, moves the service to ``PAYMENT_PENDING`` and opens a
   Webpay transaction.  The client is redirected to the returned URL.
2. ``process_callback`` runs when the customer comes back with
   ``token_ws``; it commits the transaction with Webpay and marks both
   the transaction and the service as ``PAID``.
3. ``refund`` returns all or part of a paid amount, typically after a
   cancellation left the transaction in ``REFUND_PENDING``.

Outside production (``WEBPAY_ENV`` other than ``production``) the
gateway is simulated: tokens are prefixed ``SIM-`` and every payment is
approved.  ``init_transaction`` and ``confirm_transaction`` serve the
older checkout page that paid without a stored transaction.
"""

import json
import logging
import sqlite3
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from gogrua_api.app.core.config import settings
from gogrua_api.app.core.db import get_connection, new_id, now_timestamp
from gogrua_api.app.core.money import round_half_up
from gogrua_api.app.core.statuses import (
    NEW,
    PAID,
    PAYABLE_STATUSES,
    PAYMENT_PENDING,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_REFUNDED,
    REFUNDABLE_PAYMENT_STATUSES,
    SERVICE_PENDING,
)
from gogrua_api.app.schemas.payment import (
    WebpayCallbackRequest,
    WebpayCallbackResponse,
    WebpayConfirmResponse,
    WebpayCreateRequest,
    WebpayCreateResponse,
    WebpayInitRequest,
    WebpayInitResponse,
    WebpayRefundRequest,
    WebpayRefundResponse,
)
from gogrua_api.app.services.event_log_service import EventLogService
from gogrua_api.app.services.notification_service import NotificationService
from gogrua_api.app.services.webpay_client import WebpayError, get_webpay_client


logger = logging.getLogger(__name__)

# Webpay rejects buy orders longer than 26 characters.
BUY_ORDER_MAX_LENGTH = 26
SIMULATED_PREFIX = "SIM-"
SUCCESSFUL_REFUND_TYPES = {"NULLIFIED", "REVERSED"}


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def build_buy_order(service_id: str) -> str:
    """``GO-<first 8 chars of the service id>-<epoch ms>``, cut to the Webpay limit."""
    return f"GO-{service_id[:8]}-{_epoch_ms()}"[:BUY_ORDER_MAX_LENGTH]


def build_session_id() -> str:
    return f"SES-{_epoch_ms()}"


def simulated_token() -> str:
    return f"{SIMULATED_PREFIX}{_epoch_ms()}-{uuid.uuid4().hex[:6]}"


class PaymentService:
    """Servicio de pagos Webpay."""

    @classmethod
    async def create_transaction(cls, data: WebpayCreateRequest) -> WebpayCreateResponse:
        """Register a payment for a quoted service and open it with Webpay.

        The service must still be payable (``NEW``, ``QUOTED`` or
        ``PAYMENT_PENDING``) and carry a positive ``quote_final`` or
        ``estimated_price``.
        """
        request_id = data.request_id
        logger.info("[webpay-create] Starting for request %s", request_id)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            service = cursor.execute("SELECT * FROM services WHERE id = ?", (request_id,)).fetchone()
            if not service:
                raise ValueError(f"Servicio no encontrado: {request_id}")
            if (service["request_status"] or NEW) not in PAYABLE_STATUSES:
                raise ValueError(f"Estado inválido para pago: {service['request_status']}")

            amount = service["quote_final"] or service["estimated_price"]
            if not amount or amount <= 0:
                raise ValueError("Monto inválido para transacción")
            amount = round_half_up(amount)

            buy_order = build_buy_order(request_id)
            session_id = build_session_id()
            payment_id = new_id()
            cursor.execute(
                """
                INSERT INTO transactions (id, service_id, user_id, amount, currency, payment_status, status,
                                          payment_method, transaction_ref, created_at)
                VALUES (?, ?, ?, ?, 'CLP', ?, 'pending', 'webpay', ?, ?)
                """,
                (payment_id, request_id, service["user_id"], amount, PAYMENT_STATUS_PENDING, buy_order, now_timestamp()),
            )
            cursor.execute(
                "UPDATE services SET request_status = ? WHERE id = ?",
                (PAYMENT_PENDING, request_id),
            )
            EventLogService.record(
                cursor,
                "PAYMENT_INITIATED",
                request_id=request_id,
                payment_id=payment_id,
                payload={"amount": amount, "buyOrder": buy_order, "sessionId": session_id},
            )
            conn.commit()

            if settings.webpay_simulation:
                logger.info("[webpay-create] Simulation mode active")
                token = simulated_token()
                url = f"{data.return_url}?token_ws={token}&request_id={request_id}"
                simulated: Optional[bool] = True
            else:
                client = get_webpay_client()
                try:
                    result = client.create_transaction(buy_order, session_id, amount, data.return_url)
                except WebpayError as e:
                    raise ValueError(f"Error Webpay: {e.status_code}") from e
                finally:
                    client.close()
                token = result["token"]
                url = f"{result['url']}?token_ws={token}"
                simulated = None
                logger.info("[webpay-create] Transaction created with token %s", token)

            cursor.execute("UPDATE transactions SET webpay_token = ? WHERE id = ?", (token, payment_id))
            conn.commit()
        finally:
            conn.close()

        return WebpayCreateResponse(
            token=token,
            url=url,
            buy_order=buy_order,
            session_id=session_id,
            payment_id=payment_id,
            simulated=simulated,
        )

    @classmethod
    async def process_callback(cls, data: WebpayCallbackRequest) -> WebpayCallbackResponse:
        """Settle the transaction identified by the Webpay token.

        In simulation mode a request ID is enough to find the latest
        transaction of the service when the token is unknown.
        """
        token = data.token
        logger.info("[webpay-callback] Processing token %s", token)
        payment = cls._find_payment_by_token(token)
        if payment is None:
            if settings.webpay_simulation and data.request_id:
                payment = cls._find_latest_payment_for_service(data.request_id)
                if payment is not None:
                    return await cls._settle(payment, token, simulated=True)
            raise ValueError(f"Pago no encontrado para token: {token}")

        simulated = token.startswith(SIMULATED_PREFIX) or settings.webpay_simulation
        return await cls._settle(payment, token, simulated=simulated)

    @classmethod
    async def _settle(cls, payment: Dict[str, Any], token: str, simulated: bool) -> WebpayCallbackResponse:
        service_id = payment["service_id"]
        if simulated:
            logger.info("[webpay-callback] Settling simulated payment %s", payment["id"])
            cls._mark_paid(payment, f"SIM-TX-{_epoch_ms()}", {"amount": payment["amount"], "simulated": True, "token": token})
            await cls._notify_payment_completed(payment)
            return WebpayCallbackResponse(
                success=True,
                status=PAID,
                request_id=service_id,
                payment_id=payment["id"],
                amount=payment["amount"],
                simulated=True,
            )

        client = get_webpay_client()
        try:
            result = client.commit_transaction(token)
        except WebpayError as e:
            cls._mark_failed(payment, "PAYMENT_FAILED", {"error": e.body}, reset_service=True)
            raise ValueError(f"Error confirmación Webpay: {e.status_code}") from e
        finally:
            client.close()

        logger.info("[webpay-callback] Webpay result for %s: %s", payment["id"], result)
        if result.get("response_code") == 0:
            auth_code = result.get("authorization_code")
            card_detail = result.get("card_detail") or {}
            cls._mark_paid(
                payment,
                auth_code,
                {"amount": payment["amount"], "authCode": auth_code, "cardNumber": card_detail.get("card_number")},
            )
            await cls._notify_payment_completed(payment)
            return WebpayCallbackResponse(
                success=True,
                status=PAID,
                request_id=service_id,
                payment_id=payment["id"],
                amount=payment["amount"],
                auth_code=auth_code,
            )

        cls._mark_failed(payment, "PAYMENT_REJECTED", {"responseCode": result.get("response_code")}, reset_service=False)
        return WebpayCallbackResponse(
            success=False,
            status=PAYMENT_STATUS_FAILED,
            request_id=service_id,
            response_code=result.get("response_code"),
        )

    @staticmethod
    def _mark_paid(payment: Dict[str, Any], webpay_tx_id: Optional[str], payload: Dict[str, Any]) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE transactions SET payment_status = ?, status = 'completed', webpay_tx_id = ? WHERE id = ?",
                (PAYMENT_STATUS_PAID, webpay_tx_id, payment["id"]),
            )
            cursor.execute(
                "UPDATE services SET request_status = ?, status = ? WHERE id = ?",
                (PAID, SERVICE_PENDING, payment["service_id"]),
            )
            EventLogService.record(
                cursor,
                "PAYMENT_COMPLETED",
                request_id=payment["service_id"],
                payment_id=payment["id"],
                payload=payload,
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _mark_failed(payment: Dict[str, Any], event_type: str, payload: Dict[str, Any], reset_service: bool) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE transactions SET payment_status = ?, status = 'failed' WHERE id = ?",
                (PAYMENT_STATUS_FAILED, payment["id"]),
            )
            if reset_service:
                cursor.execute(
                    "UPDATE services SET request_status = ? WHERE id = ?",
                    (PAYMENT_PENDING, payment["service_id"]),
                )
            EventLogService.record(
                cursor,
                event_type,
                request_id=payment["service_id"],
                payment_id=payment["id"],
                payload=payload,
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    async def _notify_payment_completed(payment: Dict[str, Any]) -> None:
        await NotificationService.trigger_webhook(
            "payment_completed",
            {
                "requestId": payment["service_id"],
                "paymentId": payment["id"],
                "amount": payment["amount"],
                "customerPhone": payment.get("client_phone"),
                "customerName": payment.get("client_name"),
            },
        )

    @classmethod
    async def refund(cls, data: WebpayRefundRequest) -> WebpayRefundResponse:
        """Refund a paid transaction.

        The amount defaults to the pending ``refund_amount`` written by a
        cancellation, then to the full amount.  It must be positive and
        no larger than the original charge.
        """
        payment_id = data.payment_id
        logger.info("[webpay-refund] Processing refund for payment %s", payment_id)
        payment = cls._get_payment(payment_id)
        if payment is None:
            raise ValueError(f"Pago no encontrado: {payment_id}")
        if payment["payment_status"] not in REFUNDABLE_PAYMENT_STATUSES:
            raise ValueError(f"Estado inválido para reverso: {payment['payment_status']}")

        refund_amount = data.refund_amount or payment["refund_amount"] or payment["amount"]
        if refund_amount <= 0:
            raise ValueError("Monto de reverso inválido")
        if refund_amount > payment["amount"]:
            raise ValueError("Monto de reverso excede el monto original")

        if settings.webpay_simulation or (payment["webpay_tx_id"] or "").startswith(SIMULATED_PREFIX):
            logger.info("[webpay-refund] Processing simulated refund")
            cls._mark_refunded(
                payment,
                refund_amount,
                {"originalAmount": payment["amount"], "refundAmount": refund_amount, "simulated": True},
            )
            await cls._notify_refund_completed(payment, refund_amount)
            return WebpayRefundResponse(
                payment_id=payment_id,
                refund_amount=refund_amount,
                status=PAYMENT_STATUS_REFUNDED,
                simulated=True,
            )

        token = payment["webpay_token"]
        if not token:
            raise ValueError("Token de transacción no disponible para reverso")

        client = get_webpay_client()
        try:
            result = client.refund_transaction(token, round_half_up(refund_amount))
        except WebpayError as e:
            await EventLogService.log(
                "REFUND_FAILED",
                request_id=payment["service_id"],
                payment_id=payment_id,
                payload={"error": e.body},
            )
            raise ValueError(f"Error en reverso Webpay: {e.status_code}") from e
        finally:
            client.close()

        logger.info("[webpay-refund] Refund result for %s: %s", payment_id, result)
        refund_type = result.get("type")
        if refund_type not in SUCCESSFUL_REFUND_TYPES:
            await EventLogService.log(
                "REFUND_REJECTED",
                request_id=payment["service_id"],
                payment_id=payment_id,
                payload=result,
            )
            raise ValueError(f"Reverso rechazado: {json.dumps(result)}")

        auth_code = result.get("authorization_code")
        cls._mark_refunded(
            payment,
            refund_amount,
            {
                "originalAmount": payment["amount"],
                "refundAmount": refund_amount,
                "refundType": refund_type,
                "authCode": auth_code,
            },
        )
        await cls._notify_refund_completed(payment, refund_amount)
        return WebpayRefundResponse(
            payment_id=payment_id,
            refund_amount=refund_amount,
            status=PAYMENT_STATUS_REFUNDED,
            refund_type=refund_type,
            auth_code=auth_code,
        )

    @staticmethod
    def _mark_refunded(payment: Dict[str, Any], refund_amount: float, payload: Dict[str, Any]) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE transactions
                SET payment_status = ?, status = 'refunded', refund_amount = ?, refunded_at = ?
                WHERE id = ?
                """,
                (PAYMENT_STATUS_REFUNDED, refund_amount, now_timestamp(), payment["id"]),
            )
            EventLogService.record(
                cursor,
                "REFUND_COMPLETED",
                request_id=payment["service_id"],
                payment_id=payment["id"],
                payload=payload,
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    async def _notify_refund_completed(payment: Dict[str, Any], refund_amount: float) -> None:
        await NotificationService.trigger_webhook(
            "refund_completed",
            {
                "requestId": payment["service_id"],
                "paymentId": payment["id"],
                "originalAmount": payment["amount"],
                "refundAmount": refund_amount,
            },
        )

    @classmethod
    async def init_transaction(cls, data: WebpayInitRequest) -> WebpayInitResponse:
        """Open a Webpay transaction without registering a payment row.

        Used by the legacy checkout; ``confirm_transaction`` records the
        payment afterwards.
        """
        logger.info("Starting Webpay transaction for service %s, amount %s", data.service_id, data.amount)
        buy_order = build_buy_order(data.service_id)
        session_id = build_session_id()

        if settings.webpay_simulation:
            return WebpayInitResponse(
                token=simulated_token(),
                url=data.return_url,
                buy_order=buy_order,
                session_id=session_id,
                simulated=True,
            )

        client = get_webpay_client()
        try:
            result = client.create_transaction(buy_order, session_id, round_half_up(data.amount), data.return_url)
        except WebpayError as e:
            raise ValueError(f"Error al crear transacción: {e.status_code}") from e
        finally:
            client.close()
        return WebpayInitResponse(token=result["token"], url=result["url"], buy_order=buy_order, session_id=session_id)

    @classmethod
    async def confirm_transaction(
        cls, token_ws: Optional[str], service_id: Optional[str] = None, amount: Optional[float] = None
    ) -> WebpayConfirmResponse:
        """Commit a legacy checkout token and record the completed payment."""
        if not token_ws:
            raise ValueError("Token de transacción no proporcionado")
        logger.info("Confirming Webpay transaction, token %s", token_ws)

        if settings.webpay_simulation or token_ws.startswith(SIMULATED_PREFIX):
            if service_id:
                cls._record_completed_transaction(service_id, amount or 0, "webpay_simulated", f"AUTH-{_epoch_ms()}")
                logger.info("Simulated transaction recorded for service %s", service_id)
            return WebpayConfirmResponse(
                success=True,
                status="AUTHORIZED",
                response_code=0,
                amount=amount or 0,
                buy_order=f"GO-SIM-{_epoch_ms()}",
                authorization_code=f"SIM{uuid.uuid4().int % 1000000}",
                card_detail={"card_number": "6623"},
                transaction_date=datetime.now(timezone.utc).isoformat(),
                message="Pago simulado aprobado",
                simulated=True,
            )

        client = get_webpay_client()
        try:
            result = client.commit_transaction(token_ws)
        except WebpayError as e:
            raise ValueError(f"Error al confirmar transacción: {e.status_code}") from e
        finally:
            client.close()

        approved = result.get("response_code") == 0 and result.get("status") == "AUTHORIZED"
        if approved:
            cls._record_for_buy_order(result)
        return WebpayConfirmResponse(
            success=approved,
            status=result.get("status"),
            response_code=result.get("response_code"),
            amount=result.get("amount"),
            buy_order=result.get("buy_order"),
            authorization_code=result.get("authorization_code"),
            card_detail=result.get("card_detail"),
            transaction_date=result.get("transaction_date"),
            message="Pago aprobado" if approved else "Pago rechazado",
        )

    @classmethod
    def _record_for_buy_order(cls, result: Dict[str, Any]) -> None:
        """Find the service behind ``GO-<id prefix>-<ms>`` and record the payment."""
        parts = (result.get("buy_order") or "").split("-")
        if len(parts) < 2 or not parts[1]:
            logger.warning("Buy order %s does not reference a service", result.get("buy_order"))
            return
        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT id FROM services WHERE id LIKE ? LIMIT 1",
                (f"{parts[1]}%",),
            ).fetchone()
        finally:
            conn.close()
        if row:
            cls._record_completed_transaction(row["id"], result.get("amount") or 0, "webpay", result.get("authorization_code"))
            logger.info("Transaction recorded for service %s", row["id"])

    @staticmethod
    def _record_completed_transaction(service_id: str, amount: float, method: str, reference: Optional[str]) -> None:
        conn = get_connection()
        try:
            conn.execute(
                """
                INSERT INTO transactions (id, service_id, amount, currency, payment_status, status,
                                          payment_method, transaction_ref, created_at)
                VALUES (?, ?, ?, 'CLP', ?, 'completed', ?, ?, ?)
                """,
                (new_id(), service_id, amount, PAYMENT_STATUS_PAID, method, reference, now_timestamp()),
            )
            conn.commit()
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Servicio no encontrado: {service_id}") from e
        finally:
            conn.close()

    @staticmethod
    def _get_payment(payment_id: str) -> Optional[Dict[str, Any]]:
        conn = get_connection()
        try:
            row = conn.execute("SELECT * FROM transactions WHERE id = ?", (payment_id,)).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    @staticmethod
    def _find_payment_by_token(token: str) -> Optional[Dict[str, Any]]:
        return PaymentService._fetch_with_service("t.webpay_token = ?", (token,))

    @staticmethod
    def _find_latest_payment_for_service(service_id: str) -> Optional[Dict[str, Any]]:
        return PaymentService._fetch_with_service("t.service_id = ?", (service_id,))

    @staticmethod
    def _fetch_with_service(where: str, params: tuple) -> Optional[Dict[str, Any]]:
        """Latest transaction matching ``where``, with the customer's contact data."""
        conn = get_connection()
        try:
            row = conn.execute(
                f"""
                SELECT t.*, s.client_phone, s.client_name
                FROM transactions t
                LEFT JOIN services s ON s.id = t.service_id
                WHERE {where}
                ORDER BY t.created_at DESC, t.rowid DESC
                LIMIT 1
                """,
                params,
            ).fetchone()
            return dict(row) if row else None
        except sqlite3.Error:
            logger.exception("Could not read transactions")
            raise
        finally:
            conn.close()
