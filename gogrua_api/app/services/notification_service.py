"""
Outbound notifications to the n8n automation system.

Handlers call ``NotificationService.trigger_webhook`` after they have
committed their changes.  The webhook URL for each event name lives in
``n8n_webhook_config``; inactive or unconfigured names are skipped.  A
failed delivery is logged and never fails the request that caused it.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from gogrua_api.app.core.config import settings
from gogrua_api.app.core.db import get_connection, now_timestamp


logger = logging.getLogger(__name__)


class NotificationService:
    """Fires named webhooks configured for the automation workflows."""

    @classmethod
    async def trigger_webhook(cls, webhook_name: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        """POST ``{"event", "timestamp", **payload}`` to the configured URL.

        Returns ``True`` when the webhook was delivered, ``False`` when it
        is not configured or the delivery failed.
        """
        try:
            url = cls._get_webhook_url(webhook_name)
        except sqlite3.Error as e:
            logger.error("[n8n] Could not read webhook config %s: %s", webhook_name, e)
            return False
        if not url:
            logger.debug("[n8n] Webhook %s not configured, skipping", webhook_name)
            return False

        body: Dict[str, Any] = {
            "event": webhook_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        body.update(payload or {})

        logger.info("[n8n] Triggering webhook: %s", webhook_name)
        try:
            response = requests.post(url, json=body, timeout=settings.n8n_timeout_seconds)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("[n8n] Error triggering webhook %s: %s", webhook_name, e)
            return False

        conn = get_connection()
        try:
            conn.execute(
                "UPDATE n8n_webhook_config SET last_triggered_at = ? WHERE webhook_name = ?",
                (now_timestamp(), webhook_name),
            )
            conn.commit()
        finally:
            conn.close()
        return True

    @staticmethod
    def _get_webhook_url(webhook_name: str) -> Optional[str]:
        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT webhook_url FROM n8n_webhook_config WHERE webhook_name = ? AND is_active = 1",
                (webhook_name,),
            ).fetchone()
            return row["webhook_url"] if row else None
        finally:
            conn.close()
