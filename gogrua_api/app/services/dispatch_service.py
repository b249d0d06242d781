"""
Driver status updates on a dispatch.

A driver moves a dispatch through ``EN_ROUTE``, ``ARRIVED`` and
``COMPLETED`` (or ``CANCELLED``); each step is mirrored on the parent
service so the customer dashboard follows the tow truck.
"""

import logging
from typing import Any, Dict, List, Tuple

from gogrua_api.app.core.db import get_connection, now_timestamp
from gogrua_api.app.core.statuses import (
    ACTOR_DRIVER,
    ARRIVED,
    CANCELLED,
    COMPLETED,
    DISPATCH_STATUSES,
    EN_ROUTE,
    SERVICE_COMPLETED,
)
from gogrua_api.app.schemas.dispatch import DispatchStatusResponse, DispatchStatusUpdate
from gogrua_api.app.services.event_log_service import EventLogService
from gogrua_api.app.services.notification_service import NotificationService


logger = logging.getLogger(__name__)


def _assignments(columns: Dict[str, Any]) -> Tuple[str, List[Any]]:
    return ", ".join(f"{column} = ?" for column in columns), list(columns.values())


class DispatchService:
    """Servicio de seguimiento de despachos."""

    @classmethod
    async def update_status(cls, data: DispatchStatusUpdate) -> DispatchStatusResponse:
        """Apply a driver status change to the dispatch and its service."""
        if data.status not in DISPATCH_STATUSES:
            raise ValueError(f"Estado inválido: {data.status}")
        logger.info("[dispatch-status] %s -> %s", data.dispatch_id, data.status)

        conn = get_connection()
        try:
            cursor = conn.cursor()
            dispatch = cursor.execute(
                """
                SELECT d.*, s.client_phone, s.client_name
                FROM dispatch d
                LEFT JOIN services s ON s.id = d.request_id
                WHERE d.id = ?
                """,
                (data.dispatch_id,),
            ).fetchone()
            if not dispatch:
                raise ValueError("Dispatch no encontrado")

            request_id = dispatch["request_id"]
            previous_status = dispatch["status"]
            now = now_timestamp()
            dispatch_columns: Dict[str, Any] = {"status": data.status}
            service_columns: Dict[str, Any] = {}

            if data.status == EN_ROUTE:
                service_columns.update(request_status=EN_ROUTE, started_at=now)
                if data.eta_minutes is not None:
                    dispatch_columns["eta_minutes"] = data.eta_minutes
                    service_columns["eta_minutes"] = data.eta_minutes
            elif data.status == ARRIVED:
                dispatch_columns["arrived_at"] = now
                service_columns["request_status"] = ARRIVED
            elif data.status == COMPLETED:
                dispatch_columns["completed_at"] = now
                service_columns.update(request_status=COMPLETED, completed_at=now, status=SERVICE_COMPLETED)
            elif data.status == CANCELLED:
                dispatch_columns["cancelled_at"] = now

            assignments, params = _assignments(dispatch_columns)
            cursor.execute(f"UPDATE dispatch SET {assignments} WHERE id = ?", (*params, data.dispatch_id))
            if service_columns:
                assignments, params = _assignments(service_columns)
                cursor.execute(f"UPDATE services SET {assignments} WHERE id = ?", (*params, request_id))

            if data.lat is not None and data.lng is not None and dispatch["driver_id"]:
                cursor.execute(
                    "UPDATE drivers SET current_lat = ?, current_lng = ? WHERE id = ?",
                    (data.lat, data.lng, dispatch["driver_id"]),
                )

            EventLogService.record(
                cursor,
                f"DISPATCH_{data.status}",
                request_id=request_id,
                dispatch_id=data.dispatch_id,
                actor_type=ACTOR_DRIVER,
                payload={
                    "status": data.status,
                    "etaMinutes": data.eta_minutes,
                    "lat": data.lat,
                    "lng": data.lng,
                    "previousStatus": previous_status,
                },
            )
            conn.commit()
        finally:
            conn.close()

        await NotificationService.trigger_webhook(
            "dispatch_status_updated",
            {
                "requestId": request_id,
                "dispatchId": data.dispatch_id,
                "status": data.status,
                "etaMinutes": data.eta_minutes,
                "customerPhone": dispatch["client_phone"],
                "customerName": dispatch["client_name"],
            },
        )
        return DispatchStatusResponse(dispatch_id=data.dispatch_id, status=data.status, request_id=request_id)
