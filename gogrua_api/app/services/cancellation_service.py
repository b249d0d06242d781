"""
Cancellation of towing requests.

How much of a payment is returned depends on how far the service has
progressed (see ``REFUND_RULES``).  A positive share moves the latest
paid transaction to ``REFUND_PENDING``; the refund itself is executed
later through the Webpay refund endpoint.  Any active dispatch is
cancelled together with the service.
"""

import logging
from typing import Optional

from gogrua_api.app.core.db import get_connection, now_timestamp
from gogrua_api.app.core.money import round_half_up
from gogrua_api.app.core.statuses import (
    ACTOR_CUSTOMER,
    CANCELLED,
    COMPLETED,
    NEW,
    NON_CANCELLABLE_STATUSES,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_REFUND_PENDING,
    REFUND_RULES,
    SERVICE_CANCELLED,
)
from gogrua_api.app.schemas.service import CancelRequest, CancelResponse, RefundInfo
from gogrua_api.app.services.event_log_service import EventLogService
from gogrua_api.app.services.notification_service import NotificationService


logger = logging.getLogger(__name__)


def refund_percentage(request_status: Optional[str]) -> float:
    """Share of the payment returned when cancelling in ``request_status``."""
    return REFUND_RULES.get(request_status or NEW, 0.0)


def cancellation_message(pct: float, paid: bool) -> str:
    """Customer-facing summary; a positive share is announced even when nothing was paid yet."""
    if pct > 0:
        return f"Cancelación procesada. Reverso del {pct * 100:g}% en proceso."
    if paid:
        return "Cancelación procesada. Reverso sujeto a revisión de soporte."
    return "Cancelación procesada."


class CancellationService:
    """Servicio de cancelación de solicitudes."""

    @classmethod
    async def cancel_request(cls, data: CancelRequest) -> CancelResponse:
        """Cancel a service, its active dispatch and queue the refund.

        Raises
        ------
        ValueError
            If the service does not exist or is already completed,
            cancelled or expired.
        """
        request_id = data.request_id
        actor = data.cancelled_by or ACTOR_CUSTOMER
        logger.info("[cancel-request] Cancelling %s by %s", request_id, actor)

        conn = get_connection()
        try:
            cursor = conn.cursor()
            service = cursor.execute("SELECT * FROM services WHERE id = ?", (request_id,)).fetchone()
            if not service:
                raise ValueError(f"Servicio no encontrado: {request_id}")

            current_status = service["request_status"] or NEW
            if current_status in NON_CANCELLABLE_STATUSES:
                raise ValueError(f"No se puede cancelar un servicio en estado: {current_status}")

            pct = refund_percentage(current_status)
            payment = cursor.execute(
                """
                SELECT * FROM transactions
                WHERE service_id = ? AND payment_status = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (request_id, PAYMENT_STATUS_PAID),
            ).fetchone()

            refund_info: Optional[RefundInfo] = None
            if payment and pct > 0:
                refund_info = RefundInfo(
                    payment_id=payment["id"],
                    original_amount=payment["amount"],
                    refund_amount=round_half_up(payment["amount"] * pct),
                    refund_percentage=pct * 100,
                )
                cursor.execute(
                    "UPDATE transactions SET payment_status = ?, refund_amount = ? WHERE id = ?",
                    (PAYMENT_STATUS_REFUND_PENDING, refund_info.refund_amount, payment["id"]),
                )
                EventLogService.record(
                    cursor,
                    "REFUND_PENDING",
                    request_id=request_id,
                    payment_id=payment["id"],
                    actor_type=actor,
                    payload=refund_info.model_dump(by_alias=True),
                )
            elif payment:
                EventLogService.record(
                    cursor,
                    "REFUND_NOT_APPLICABLE",
                    request_id=request_id,
                    payment_id=payment["id"],
                    actor_type=actor,
                    payload={
                        "reason": "Estado avanzado del servicio",
                        "currentStatus": current_status,
                        "message": "Reverso sujeto a revisión de soporte",
                    },
                )

            cancelled_at = now_timestamp()
            dispatch = cursor.execute(
                """
                SELECT * FROM dispatch
                WHERE request_id = ? AND status NOT IN (?, ?)
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (request_id, CANCELLED, COMPLETED),
            ).fetchone()
            if dispatch:
                cursor.execute(
                    "UPDATE dispatch SET status = ?, cancelled_at = ?, cancellation_reason = ? WHERE id = ?",
                    (CANCELLED, cancelled_at, data.reason, dispatch["id"]),
                )

            cursor.execute(
                """
                UPDATE services
                SET request_status = ?, status = ?, cancellation_reason = ?, cancelled_at = ?
                WHERE id = ?
                """,
                (CANCELLED, SERVICE_CANCELLED, data.reason, cancelled_at, request_id),
            )
            refund_payload = refund_info.model_dump(by_alias=True) if refund_info else None
            EventLogService.record(
                cursor,
                "SERVICE_CANCELLED",
                request_id=request_id,
                dispatch_id=dispatch["id"] if dispatch else None,
                actor_type=actor,
                payload={
                    "reason": data.reason,
                    "previousStatus": current_status,
                    "refundApplicable": pct > 0,
                    "refundInfo": refund_payload,
                },
            )
            conn.commit()
            contact = {"customerPhone": service["client_phone"], "customerName": service["client_name"]}
        finally:
            conn.close()

        if refund_info is not None:
            await NotificationService.trigger_webhook(
                "refund_pending",
                {"requestId": request_id, **refund_payload, **contact},
            )
        await NotificationService.trigger_webhook(
            "service_cancelled",
            {
                "requestId": request_id,
                "reason": data.reason,
                "cancelledBy": actor,
                "previousStatus": current_status,
                "refundInfo": refund_payload,
                "providerNotify": dispatch is not None,
                "dispatchId": dispatch["id"] if dispatch else None,
                "providerId": dispatch["provider_id"] if dispatch else None,
                **contact,
            },
        )

        logger.info("[cancel-request] %s cancelled (was %s)", request_id, current_status)
        return CancelResponse(
            request_id=request_id,
            status=CANCELLED,
            previous_status=current_status,
            refund_info=refund_info,
            message=cancellation_message(pct, payment is not None),
        )

