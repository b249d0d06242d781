"""
Event log service for recording and querying the history of a service.

Every handler appends rows to ``event_log``: payments initiated and
completed, refunds, dispatch status changes, cancellations and messages
sent by the automation workflows.  ``record`` writes inside the
caller's transaction; ``log`` opens its own connection for callers that
have already committed.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Any, Dict, List, Optional

from gogrua_api.app.core.db import get_connection, row_to_dict
from gogrua_api.app.core.statuses import ACTOR_SYSTEM


class EventLogService:
    """Service class for writing and retrieving event log entries."""

    @staticmethod
    def record(
        cursor: sqlite3.Cursor,
        event_type: str,
        request_id: Optional[str] = None,
        payment_id: Optional[str] = None,
        dispatch_id: Optional[str] = None,
        actor_type: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> None:
        """Insert an event using an open cursor.

        Parameters
        ----------
        cursor : sqlite3.Cursor
            Cursor of the caller's connection; the caller commits.
        event_type : str
            Upper‑case event name, e.g. ``PAYMENT_COMPLETED``.
        actor_type : Optional[str]
            Who caused the event (``customer``, ``driver``, ``system``...).
            Defaults to ``system``.
        payload : Optional[dict]
            Additional structured data, stored as JSON.
        """
        cursor.execute(
            """
            INSERT INTO event_log (request_id, payment_id, dispatch_id, event_type, actor_type, payload)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                request_id,
                payment_id,
                dispatch_id,
                event_type,
                actor_type or ACTOR_SYSTEM,
                json.dumps(payload) if payload is not None else None,
            ),
        )

    @classmethod
    async def log(
        cls,
        event_type: str,
        request_id: Optional[str] = None,
        payment_id: Optional[str] = None,
        dispatch_id: Optional[str] = None,
        actor_type: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> None:
        """Insert an event in its own transaction."""
        conn = get_connection()
        try:
            cls.record(
                conn.cursor(),
                event_type,
                request_id=request_id,
                payment_id=payment_id,
                dispatch_id=dispatch_id,
                actor_type=actor_type,
                payload=payload,
            )
            conn.commit()
        finally:
            conn.close()

    @classmethod
    async def list_events(
        cls,
        request_id: Optional[str] = None,
        event_type: Optional[str] = None,
        actor_type: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Retrieve events with optional filters, newest first."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where_clauses: List[str] = []
            params: List[Any] = []
            if request_id:
                where_clauses.append("request_id = ?")
                params.append(request_id)
            if event_type:
                where_clauses.append("event_type = ?")
                params.append(event_type)
            if actor_type:
                where_clauses.append("actor_type = ?")
                params.append(actor_type)
            query = (
                "SELECT id, request_id, payment_id, dispatch_id, event_type, actor_type, payload, created_at "
                "FROM event_log"
            )
            if where_clauses:
                query += " WHERE " + " AND ".join(where_clauses)
            query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
            params.extend([limit, offset])
            rows = cursor.execute(query, tuple(params)).fetchall()
            return [row_to_dict(row, json_columns=("payload",)) for row in rows]
        finally:
            conn.close()
