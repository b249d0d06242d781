"""
Minimal client for the Transbank Webpay Plus REST API (v1.2).

Only the three calls the payment flow needs are implemented: create a
transaction, commit it after the customer returns from the payment
form, and refund (nullify or reverse) a committed transaction.  Every
request is authenticated with the commerce code and API key headers.
Non‑2xx responses raise ``WebpayError`` carrying the status code and
the response text; transport failures (refused connection, timeout)
raise it too, with status 503.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from gogrua_api.app.core.config import settings


logger = logging.getLogger(__name__)

TRANSACTIONS_PATH = "/rswebpaytransaction/api/webpay/v1.2/transactions"
# Status reported when the gateway could not be reached at all.
GATEWAY_UNAVAILABLE = 503


class WebpayError(Exception):
    """Raised when Webpay answers with an error status or cannot be reached."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Webpay error {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class WebpayClient:
    """Thin synchronous wrapper around ``httpx.Client``."""

    def __init__(
        self,
        base_url: str,
        commerce_code: str,
        api_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url,
            headers={
                "Content-Type": "application/json",
                "Tbk-Api-Key-Id": commerce_code,
                "Tbk-Api-Key-Secret": api_key,
            },
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.error("Webpay %s %s unreachable: %s", method, path, e)
            raise WebpayError(GATEWAY_UNAVAILABLE, str(e)) from e
        if response.is_error:
            logger.error("Webpay %s %s failed: %s %s", method, path, response.status_code, response.text)
            raise WebpayError(response.status_code, response.text)
        return response.json()

    def create_transaction(self, buy_order: str, session_id: str, amount: int, return_url: str) -> Dict[str, Any]:
        """Open a transaction; the answer holds ``token`` and the form ``url``."""
        return self._request(
            "POST",
            TRANSACTIONS_PATH,
            json={
                "buy_order": buy_order,
                "session_id": session_id,
                "amount": amount,
                "return_url": return_url,
            },
        )

    def commit_transaction(self, token: str) -> Dict[str, Any]:
        """Confirm a transaction once the customer is back from the form.

        ``response_code`` 0 with status ``AUTHORIZED`` means the charge
        went through.
        """
        return self._request("PUT", f"{TRANSACTIONS_PATH}/{token}")

    def refund_transaction(self, token: str, amount: int) -> Dict[str, Any]:
        """Refund part or all of a committed transaction.

        The answer's ``type`` is ``REVERSED`` or ``NULLIFIED`` on success.
        """
        return self._request("POST", f"{TRANSACTIONS_PATH}/{token}/refunds", json={"amount": amount})


def get_webpay_client() -> WebpayClient:
    """Build a client for the environment selected by ``WEBPAY_ENV``."""
    return WebpayClient(
        base_url=settings.webpay_api_url,
        commerce_code=settings.webpay_commerce_code,
        api_key=settings.webpay_api_key,
        timeout=settings.webpay_timeout_seconds,
    )
