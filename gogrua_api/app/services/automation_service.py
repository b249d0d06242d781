"""
Actions requested by the n8n automation workflows.

n8n drives the parts of the booking flow that happen outside the web
application: it quotes requests, picks a provider, relays driver
updates and reports the messages it sent to customers.  Each call names
an ``action`` and carries its arguments in ``data``; ``ACTIONS`` maps
every action to the method that handles it.
"""

import logging
import sqlite3
from typing import Any, Awaitable, Callable, Dict, List

from gogrua_api.app.core.db import get_connection, new_id, now_timestamp
from gogrua_api.app.core.statuses import (
    ARRIVED,
    ASSIGNED,
    COMPLETED,
    DISPATCH_STATUSES,
    DISPATCHING,
    EN_ROUTE,
    QUOTED,
)
from gogrua_api.app.schemas.automation import (
    AssignProviderData,
    AutomationRequest,
    AvailableProvidersData,
    EscalateNoProviderData,
    LogCommunicationData,
    ServiceDetailsData,
    UpdateDispatchStatusData,
    UpdateQuoteData,
)
from gogrua_api.app.services.event_log_service import EventLogService
from gogrua_api.app.services.request_service import RequestService


logger = logging.getLogger(__name__)

# Dispatch statuses that are mirrored on the service.
SERVICE_STATUS_FOR_DISPATCH = {EN_ROUTE: EN_ROUTE, ARRIVED: ARRIVED, COMPLETED: COMPLETED}


class AutomationService:
    """Servicio de integración con n8n."""

    @classmethod
    async def handle(cls, request: AutomationRequest) -> Dict[str, Any]:
        """Run ``request.action`` and return its JSON result.

        ``data`` is validated against the model of the action; a
        validation failure surfaces as ``ValueError``.
        """
        logger.info("[n8n-webhook] Received action: %s", request.action)
        handler = ACTIONS.get(request.action)
        if handler is None:
            raise ValueError(f"Acción no reconocida: {request.action}")
        return await handler(request.data)

    @staticmethod
    async def update_quote(data: Dict[str, Any]) -> Dict[str, Any]:
        quote = UpdateQuoteData.model_validate(data)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE services SET quote_min = ?, quote_max = ?, quote_final = ?, request_status = ?
                WHERE id = ?
                """,
                (quote.quote_min, quote.quote_max, quote.quote_final, QUOTED, quote.request_id),
            )
            EventLogService.record(
                cursor,
                "QUOTE_RECEIVED",
                request_id=quote.request_id,
                payload={"quoteMin": quote.quote_min, "quoteMax": quote.quote_max, "quoteFinal": quote.quote_final},
            )
            conn.commit()
        finally:
            conn.close()
        return {"success": True, "action": "quote_updated"}

    @staticmethod
    async def assign_provider(data: Dict[str, Any]) -> Dict[str, Any]:
        assignment = AssignProviderData.model_validate(data)
        dispatch_id = new_id()
        conn = get_connection()
        try:
            cursor = conn.cursor()
            service = cursor.execute("SELECT id FROM services WHERE id = ?", (assignment.request_id,)).fetchone()
            if not service:
                raise ValueError(f"Servicio no encontrado: {assignment.request_id}")
            try:
                cursor.execute(
                    """
                    INSERT INTO dispatch (id, request_id, provider_id, driver_id, status, eta_minutes, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        dispatch_id,
                        assignment.request_id,
                        assignment.provider_id,
                        assignment.driver_id,
                        ASSIGNED,
                        assignment.eta_minutes,
                        now_timestamp(),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise ValueError("Proveedor o conductor no encontrado") from e
            cursor.execute(
                """
                UPDATE services SET request_status = ?, provider_id = ?, driver_id = ?, eta_minutes = ?
                WHERE id = ?
                """,
                (
                    DISPATCHING,
                    assignment.provider_id,
                    assignment.driver_id,
                    assignment.eta_minutes,
                    assignment.request_id,
                ),
            )
            conn.commit()
        finally:
            conn.close()
        logger.info("[n8n-webhook] Provider %s assigned to %s", assignment.provider_id, assignment.request_id)
        return {"success": True, "dispatchId": dispatch_id}

    @staticmethod
    async def update_dispatch_status(data: Dict[str, Any]) -> Dict[str, Any]:
        update = UpdateDispatchStatusData.model_validate(data)
        if update.status not in DISPATCH_STATUSES:
            raise ValueError(f"Estado inválido: {update.status}")

        columns: Dict[str, Any] = {"status": update.status}
        if update.status == ARRIVED:
            columns["arrived_at"] = now_timestamp()
        elif update.status == COMPLETED:
            columns["completed_at"] = now_timestamp()
        if update.eta_minutes is not None:
            columns["eta_minutes"] = update.eta_minutes

        conn = get_connection()
        try:
            cursor = conn.cursor()
            assignments = ", ".join(f"{column} = ?" for column in columns)
            cursor.execute(
                f"UPDATE dispatch SET {assignments} WHERE id = ?",
                (*columns.values(), update.dispatch_id),
            )
            if cursor.rowcount == 0:
                raise ValueError("Dispatch no encontrado")
            dispatch = dict(cursor.execute("SELECT * FROM dispatch WHERE id = ?", (update.dispatch_id,)).fetchone())
            service_status = SERVICE_STATUS_FOR_DISPATCH.get(update.status)
            if service_status:
                cursor.execute(
                    "UPDATE services SET request_status = ?, eta_minutes = ? WHERE id = ?",
                    (service_status, update.eta_minutes, dispatch["request_id"]),
                )
            conn.commit()
        finally:
            conn.close()
        return {"success": True, "dispatch": dispatch}

    @staticmethod
    async def escalate_no_provider(data: Dict[str, Any]) -> Dict[str, Any]:
        escalation = EscalateNoProviderData.model_validate(data)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            EventLogService.record(
                cursor,
                "ESCALATION_NO_PROVIDER",
                request_id=escalation.request_id,
                payload={"attempts": escalation.attempts, "reason": escalation.reason},
            )
            cursor.execute(
                "UPDATE services SET request_status = ? WHERE id = ?",
                (DISPATCHING, escalation.request_id),
            )
            conn.commit()
        finally:
            conn.close()
        logger.warning("[n8n-webhook] No provider for %s, escalated", escalation.request_id)
        return {"success": True, "escalated": True}

    @staticmethod
    async def log_communication(data: Dict[str, Any]) -> Dict[str, Any]:
        message = LogCommunicationData.model_validate(data)
        await EventLogService.log(
            "COMMUNICATION_SENT",
            request_id=message.request_id,
            payload={
                "channel": message.channel,
                "recipient": message.recipient,
                "messageType": message.message_type,
                "success": message.success,
            },
        )
        return {"success": True}

    @staticmethod
    async def get_available_providers(data: Dict[str, Any]) -> Dict[str, Any]:
        """Active, approved providers with their drivers.

        ``zone`` filters providers; ``vehicleType`` filters the drivers
        listed under each provider.
        """
        filters = AvailableProvidersData.model_validate(data)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            query = "SELECT * FROM providers WHERE is_active = 1 AND is_approved = 1"
            params: List[Any] = []
            if filters.zone:
                query += " AND zone = ?"
                params.append(filters.zone)
            providers = [dict(row) for row in cursor.execute(query + " ORDER BY name", tuple(params)).fetchall()]
            for provider in providers:
                driver_query = "SELECT * FROM drivers WHERE provider_id = ?"
                driver_params: List[Any] = [provider["id"]]
                if filters.vehicle_type:
                    driver_query += " AND vehicle_type = ?"
                    driver_params.append(filters.vehicle_type)
                provider["drivers"] = [dict(row) for row in cursor.execute(driver_query, tuple(driver_params)).fetchall()]
        finally:
            conn.close()
        return {"success": True, "providers": providers}

    @staticmethod
    async def get_service_details(data: Dict[str, Any]) -> Dict[str, Any]:
        lookup = ServiceDetailsData.model_validate(data)
        details = await RequestService.get_details(lookup.request_id)
        if details is None:
            raise ValueError(f"Servicio no encontrado: {lookup.request_id}")
        service = details["service"]
        service["dispatch"] = details["dispatch"]
        service["transactions"] = details["transactions"]
        return {"success": True, "service": service}


ACTIONS: Dict[str, Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]] = {
    "update_quote": AutomationService.update_quote,
    "assign_provider": AutomationService.assign_provider,
    "update_dispatch_status": AutomationService.update_dispatch_status,
    "escalate_no_provider": AutomationService.escalate_no_provider,
    "log_communication": AutomationService.log_communication,
    "get_available_providers": AutomationService.get_available_providers,
    "get_service_details": AutomationService.get_service_details,
}
