"""
Read access to towing requests together with their dispatches and payments.
"""

from typing import Any, Dict, Optional

from gogrua_api.app.core.db import get_connection


class RequestService:
    """Service for looking up towing requests."""

    @classmethod
    async def get_details(cls, request_id: str) -> Optional[Dict[str, Any]]:
        """Return ``{"service", "dispatch", "transactions"}`` or ``None``.

        Dispatches and transactions are listed oldest first.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            service = cursor.execute("SELECT * FROM services WHERE id = ?", (request_id,)).fetchone()
            if not service:
                return None
            dispatch = cursor.execute(
                "SELECT * FROM dispatch WHERE request_id = ? ORDER BY created_at, rowid",
                (request_id,),
            ).fetchall()
            transactions = cursor.execute(
                "SELECT * FROM transactions WHERE service_id = ? ORDER BY created_at, rowid",
                (request_id,),
            ).fetchall()
            return {
                "service": dict(service),
                "dispatch": [dict(row) for row in dispatch],
                "transactions": [dict(row) for row in transactions],
            }
        finally:
            conn.close()

    @classmethod
    async def exists(cls, request_id: str) -> bool:
        conn = get_connection()
        try:
            row = conn.execute("SELECT 1 FROM services WHERE id = ?", (request_id,)).fetchone()
            return row is not None
        finally:
            conn.close()

