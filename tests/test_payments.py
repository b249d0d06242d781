"""Tests for the Webpay payment routes, simulated and against a mocked gateway."""

from __future__ import annotations

import json
from typing import Callable, List
from unittest.mock import patch

import httpx
import pytest

from gogrua_api.app.core.config import settings
from gogrua_api.app.core.db import get_connection
from gogrua_api.app.services.webpay_client import TRANSACTIONS_PATH, WebpayClient

RETURN_URL = "https://gogrua.cl/pago/resultado"


@pytest.fixture()
def production(monkeypatch):
    monkeypatch.setattr(settings, "webpay_env", "production")


@pytest.fixture()
def gateway() -> Callable[[Callable[[httpx.Request], httpx.Response]], List[httpx.Request]]:
    """Route Webpay calls to ``handler``; returns the list of captured requests."""
    patches = []

    def _install(handler: Callable[[httpx.Request], httpx.Response]) -> List[httpx.Request]:
        seen: List[httpx.Request] = []

        def _recording(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        def _client() -> WebpayClient:
            return WebpayClient(
                base_url="https://webpay.test",
                commerce_code="597055555532",
                api_key="secret-key",
                transport=httpx.MockTransport(_recording),
            )

        patcher = patch("gogrua_api.app.services.payment_service.get_webpay_client", _client)
        patcher.start()
        patches.append(patcher)
        return seen

    yield _install
    for patcher in patches:
        patcher.stop()


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


class TestCreateSimulated:
    def test_creates_pending_payment(self, client, auth_headers, make_service, db, events):
        service = make_service(quote_final=45000)
        response = client.post(
            "/api/v1/payments/webpay/create",
            json={"requestId": service["id"], "returnUrl": RETURN_URL},
            headers=auth_headers("customer"),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["simulated"] is True
        assert body["token"].startswith("SIM-")
        assert body["url"] == f"{RETURN_URL}?token_ws={body['token']}&request_id={service['id']}"
        assert body["buyOrder"].startswith(f"GO-{service['id'][:8]}-")
        assert len(body["buyOrder"]) <= 26
        assert body["sessionId"].startswith("SES-")

        payment = db("transactions", body["paymentId"])
        assert payment["payment_status"] == "PENDING"
        assert payment["status"] == "pending"
        assert payment["amount"] == 45000
        assert payment["webpay_token"] == body["token"]
        assert payment["transaction_ref"] == body["buyOrder"]
        assert db("services", service["id"])["request_status"] == "PAYMENT_PENDING"
        assert events(service["id"]) == ["PAYMENT_INITIATED"]

    def test_falls_back_to_estimated_price(self, client, auth_headers, make_service, db):
        service = make_service(quote_final=None, estimated_price=39999.5)
        body = client.post(
            "/api/v1/payments/webpay/create",
            json={"requestId": service["id"], "returnUrl": RETURN_URL},
            headers=auth_headers("customer"),
        ).json()
        assert db("transactions", body["paymentId"])["amount"] == 40000

    def test_rejects_paid_service(self, client, auth_headers, make_service):
        service = make_service(request_status="PAID")
        response = client.post(
            "/api/v1/payments/webpay/create",
            json={"requestId": service["id"], "returnUrl": RETURN_URL},
            headers=auth_headers("customer"),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Estado inválido para pago: PAID"

    def test_rejects_missing_amount(self, client, auth_headers, make_service):
        service = make_service(quote_final=None, estimated_price=0)
        response = client.post(
            "/api/v1/payments/webpay/create",
            json={"requestId": service["id"], "returnUrl": RETURN_URL},
            headers=auth_headers("customer"),
        )
        assert response.json()["error"] == "Monto inválido para transacción"

    def test_requires_authentication(self, client, make_service):
        service = make_service()
        response = client.post(
            "/api/v1/payments/webpay/create",
            json={"requestId": service["id"], "returnUrl": RETURN_URL},
        )
        assert response.status_code == 401


class TestCallbackSimulated:
    def _create(self, client, auth_headers, service_id):
        return client.post(
            "/api/v1/payments/webpay/create",
            json={"requestId": service_id, "returnUrl": RETURN_URL},
            headers=auth_headers("customer"),
        ).json()

    def test_settles_payment(self, client, auth_headers, make_service, db, events):
        service = make_service()
        created = self._create(client, auth_headers, service["id"])
        response = client.post("/api/v1/payments/webpay/callback", json={"token": created["token"]})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["status"] == "PAID"
        assert body["simulated"] is True
        assert body["paymentId"] == created["paymentId"]

        payment = db("transactions", created["paymentId"])
        assert payment["payment_status"] == "PAID"
        assert payment["status"] == "completed"
        assert payment["webpay_tx_id"].startswith("SIM-TX-")
        row = db("services", service["id"])
        assert (row["request_status"], row["status"]) == ("PAID", "pending")
        assert events(service["id"]) == ["PAYMENT_INITIATED", "PAYMENT_COMPLETED"]

    def test_unknown_token_uses_latest_payment_of_request(self, client, auth_headers, make_service, db):
        service = make_service()
        created = self._create(client, auth_headers, service["id"])
        response = client.post(
            "/api/v1/payments/webpay/callback",
            json={"token": "lost-token", "requestId": service["id"]},
        )
        assert response.json()["paymentId"] == created["paymentId"]
        assert db("transactions", created["paymentId"])["payment_status"] == "PAID"

    def test_unknown_token(self, client):
        response = client.post("/api/v1/payments/webpay/callback", json={"token": "lost-token"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Pago no encontrado para token: lost-token"}


class TestGateway:
    def test_create_calls_webpay(self, client, auth_headers, make_service, production, gateway, db):
        seen = gateway(lambda request: httpx.Response(200, json={"token": "tok-123", "url": "https://webpay.test/form"}))
        service = make_service(quote_final=45000)
        body = client.post(
            "/api/v1/payments/webpay/create",
            json={"requestId": service["id"], "returnUrl": RETURN_URL},
            headers=auth_headers("customer"),
        ).json()
        assert body["token"] == "tok-123"
        assert body["url"] == "https://webpay.test/form?token_ws=tok-123"
        assert body["simulated"] is None
        assert db("transactions", body["paymentId"])["webpay_token"] == "tok-123"

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == TRANSACTIONS_PATH
        assert request.headers["Tbk-Api-Key-Id"] == "597055555532"
        assert request.headers["Tbk-Api-Key-Secret"] == "secret-key"
        sent = json.loads(request.content)
        assert sent["amount"] == 45000
        assert sent["return_url"] == RETURN_URL
        assert sent["buy_order"] == body["buyOrder"]

    def test_callback_approved(self, client, make_service, make_transaction, production, gateway, db, events):
        seen = gateway(
            lambda request: httpx.Response(
                200,
                json={
                    "response_code": 0,
                    "status": "AUTHORIZED",
                    "authorization_code": "1213",
                    "card_detail": {"card_number": "6623"},
                },
            )
        )
        service = make_service(request_status="PAYMENT_PENDING")
        payment = make_transaction(service["id"], payment_status="PENDING", status="pending", webpay_token="tok-1")

        body = client.post("/api/v1/payments/webpay/callback", json={"token": "tok-1"}).json()
        assert body["success"] is True
        assert body["authCode"] == "1213"
        assert seen[0].method == "PUT"
        assert seen[0].url.path == f"{TRANSACTIONS_PATH}/tok-1"
        assert db("transactions", payment["id"])["webpay_tx_id"] == "1213"
        assert db("services", service["id"])["request_status"] == "PAID"
        assert events(service["id"]) == ["PAYMENT_COMPLETED"]

    def test_callback_rejected(self, client, make_service, make_transaction, production, gateway, db, events):
        gateway(lambda request: httpx.Response(200, json={"response_code": -1, "status": "FAILED"}))
        service = make_service(request_status="PAYMENT_PENDING")
        payment = make_transaction(service["id"], payment_status="PENDING", status="pending", webpay_token="tok-1")

        response = client.post("/api/v1/payments/webpay/callback", json={"token": "tok-1"})
        assert response.status_code == 200
        assert response.json() == {
            "success": False,
            "status": "FAILED",
            "requestId": service["id"],
            "paymentId": None,
            "amount": None,
            "authCode": None,
            "responseCode": -1,
            "simulated": None,
        }
        row = db("transactions", payment["id"])
        assert (row["payment_status"], row["status"]) == ("FAILED", "failed")
        assert events(service["id"]) == ["PAYMENT_REJECTED"]

    def test_callback_gateway_error(self, client, make_service, make_transaction, production, gateway, db, events):
        gateway(lambda request: httpx.Response(500, text="boom"))
        service = make_service(request_status="PAYMENT_PENDING")
        payment = make_transaction(service["id"], payment_status="PENDING", status="pending", webpay_token="tok-1")

        response = client.post("/api/v1/payments/webpay/callback", json={"token": "tok-1"})
        assert response.status_code == 400
        assert response.json()["error"] == "Error confirmación Webpay: 500"
        assert db("transactions", payment["id"])["payment_status"] == "FAILED"
        assert db("services", service["id"])["request_status"] == "PAYMENT_PENDING"
        assert events(service["id"]) == ["PAYMENT_FAILED"]

    def test_create_gateway_unreachable(self, client, auth_headers, make_service, production, gateway):
        gateway(_unreachable)
        service = make_service(quote_final=45000)
        response = client.post(
            "/api/v1/payments/webpay/create",
            json={"requestId": service["id"], "returnUrl": RETURN_URL},
            headers=auth_headers("customer"),
        )
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Error Webpay: 503"}

    def test_callback_gateway_unreachable(self, client, make_service, make_transaction, production, gateway, db, events):
        gateway(_unreachable)
        service = make_service(request_status="PAYMENT_PENDING")
        payment = make_transaction(service["id"], payment_status="PENDING", status="pending", webpay_token="tok-1")

        response = client.post("/api/v1/payments/webpay/callback", json={"token": "tok-1"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Error confirmación Webpay: 503"}
        assert db("transactions", payment["id"])["payment_status"] == "FAILED"
        assert events(service["id"]) == ["PAYMENT_FAILED"]

    def test_refund_gateway_unreachable(self, client, auth_headers, make_service, make_transaction, production, gateway, db, events):
        gateway(_unreachable)
        service = make_service(request_status="CANCELLED")
        payment = make_transaction(service["id"], webpay_token="tok-1", webpay_tx_id="1213")

        response = client.post(
            "/api/v1/payments/webpay/refund",
            json={"paymentId": payment["id"]},
            headers=auth_headers("admin"),
        )
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Error en reverso Webpay: 503"}
        assert db("transactions", payment["id"])["payment_status"] == "PAID"
        assert events(service["id"]) == ["REFUND_FAILED"]

    def test_refund_reversed(self, client, auth_headers, make_service, make_transaction, production, gateway, db):
        seen = gateway(lambda request: httpx.Response(200, json={"type": "REVERSED", "authorization_code": "999"}))
        service = make_service(request_status="CANCELLED")
        payment = make_transaction(
            service["id"],
            amount=45000,
            payment_status="REFUND_PENDING",
            refund_amount=22500,
            webpay_token="tok-1",
            webpay_tx_id="1213",
        )

        body = client.post(
            "/api/v1/payments/webpay/refund",
            json={"paymentId": payment["id"]},
            headers=auth_headers("admin"),
        ).json()
        assert body["refundType"] == "REVERSED"
        assert body["authCode"] == "999"
        assert body["refundAmount"] == 22500
        assert seen[0].url.path == f"{TRANSACTIONS_PATH}/tok-1/refunds"
        assert json.loads(seen[0].content) == {"amount": 22500}
        row = db("transactions", payment["id"])
        assert (row["payment_status"], row["status"]) == ("REFUNDED", "refunded")
        assert row["refunded_at"] is not None

    def test_refund_rejected(self, client, auth_headers, make_service, make_transaction, production, gateway, db, events):
        gateway(lambda request: httpx.Response(200, json={"type": "UNKNOWN"}))
        service = make_service(request_status="CANCELLED")
        payment = make_transaction(service["id"], webpay_token="tok-1", webpay_tx_id="1213")

        response = client.post(
            "/api/v1/payments/webpay/refund",
            json={"paymentId": payment["id"]},
            headers=auth_headers("dispatcher"),
        )
        assert response.status_code == 400
        assert response.json()["error"].startswith("Reverso rechazado")
        assert db("transactions", payment["id"])["payment_status"] == "PAID"
        assert events(service["id"]) == ["REFUND_REJECTED"]

    def test_refund_without_token(self, client, auth_headers, make_service, make_transaction, production, gateway):
        gateway(lambda request: httpx.Response(200, json={"type": "REVERSED"}))
        service = make_service()
        payment = make_transaction(service["id"], webpay_tx_id="1213")
        response = client.post(
            "/api/v1/payments/webpay/refund",
            json={"paymentId": payment["id"]},
            headers=auth_headers("admin"),
        )
        assert response.json()["error"] == "Token de transacción no disponible para reverso"

    def test_confirm_records_payment_for_buy_order(self, client, make_service, production, gateway):
        service = make_service()
        gateway(
            lambda request: httpx.Response(
                200,
                json={
                    "response_code": 0,
                    "status": "AUTHORIZED",
                    "amount": 45000,
                    "buy_order": f"GO-{service['id'][:8]}-1700000000000",
                    "authorization_code": "A1",
                },
            )
        )
        body = client.post("/api/v1/payments/webpay/confirm", json={"token_ws": "tok-9"}).json()
        assert body["success"] is True
        assert body["message"] == "Pago aprobado"

        conn = get_connection()
        try:
            row = conn.execute("SELECT * FROM transactions WHERE service_id = ?", (service["id"],)).fetchone()
        finally:
            conn.close()
        assert row["transaction_ref"] == "A1"
        assert row["status"] == "completed"

    def test_confirm_rejected(self, client, production, gateway):
        gateway(lambda request: httpx.Response(200, json={"response_code": -1, "status": "FAILED"}))
        body = client.get("/api/v1/payments/webpay/confirm", params={"token_ws": "tok-9"}).json()
        assert body["success"] is False
        assert body["message"] == "Pago rechazado"

    def test_init_calls_webpay(self, client, production, gateway):
        seen = gateway(lambda request: httpx.Response(200, json={"token": "tok-5", "url": "https://webpay.test/form"}))
        body = client.post(
            "/api/v1/payments/webpay/init",
            json={"serviceId": "svc-1", "amount": 1500.4, "returnUrl": RETURN_URL},
        ).json()
        assert (body["token"], body["url"]) == ("tok-5", "https://webpay.test/form")
        assert json.loads(seen[0].content)["amount"] == 1500


class TestRefundSimulated:
    def test_refunds_pending_amount(self, client, auth_headers, make_service, make_transaction, db, events):
        service = make_service(request_status="CANCELLED")
        payment = make_transaction(service["id"], amount=45000, payment_status="REFUND_PENDING", refund_amount=22501)
        response = client.post(
            "/api/v1/payments/webpay/refund",
            json={"paymentId": payment["id"]},
            headers=auth_headers("admin"),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "REFUNDED"
        assert body["refundAmount"] == 22501
        assert body["simulated"] is True
        assert db("transactions", payment["id"])["refund_amount"] == 22501
        assert events(service["id"]) == ["REFUND_COMPLETED"]

    def test_defaults_to_full_amount(self, client, auth_headers, make_service, make_transaction):
        service = make_service()
        payment = make_transaction(service["id"], amount=30000)
        body = client.post(
            "/api/v1/payments/webpay/refund",
            json={"paymentId": payment["id"]},
            headers=auth_headers("admin"),
        ).json()
        assert body["refundAmount"] == 30000

    def test_amount_cannot_exceed_original(self, client, auth_headers, make_service, make_transaction):
        service = make_service()
        payment = make_transaction(service["id"], amount=30000)
        response = client.post(
            "/api/v1/payments/webpay/refund",
            json={"paymentId": payment["id"], "refundAmount": 30001},
            headers=auth_headers("admin"),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Monto de reverso excede el monto original"

    def test_pending_payment_cannot_be_refunded(self, client, auth_headers, make_service, make_transaction):
        service = make_service()
        payment = make_transaction(service["id"], payment_status="PENDING")
        response = client.post(
            "/api/v1/payments/webpay/refund",
            json={"paymentId": payment["id"]},
            headers=auth_headers("admin"),
        )
        assert response.json()["error"] == "Estado inválido para reverso: PENDING"

    def test_staff_only(self, client, auth_headers, make_service, make_transaction):
        service = make_service()
        payment = make_transaction(service["id"])
        response = client.post(
            "/api/v1/payments/webpay/refund",
            json={"paymentId": payment["id"]},
            headers=auth_headers("customer"),
        )
        assert response.status_code == 403
        assert response.json() == {"success": False, "error": "Insufficient permissions"}

    def test_sim_transaction_in_production_is_simulated(
        self, client, auth_headers, make_service, make_transaction, production
    ):
        service = make_service()
        payment = make_transaction(service["id"], webpay_tx_id="SIM-TX-1")
        body = client.post(
            "/api/v1/payments/webpay/refund",
            json={"paymentId": payment["id"]},
            headers=auth_headers("admin"),
        ).json()
        assert body["simulated"] is True


class TestLegacyCheckoutSimulated:
    def test_init(self, client):
        body = client.post(
            "/api/v1/payments/webpay/init",
            json={"serviceId": "svc-1", "amount": 45000, "returnUrl": RETURN_URL},
        ).json()
        assert body["simulated"] is True
        assert body["url"] == RETURN_URL
        assert body["token"].startswith("SIM-")

    def test_confirm_get_records_transaction(self, client, make_service):
        service = make_service()
        response = client.get(
            "/api/v1/payments/webpay/confirm",
            params={"token_ws": "SIM-1", "serviceId": service["id"], "amount": 45000},
        )
        body = response.json()
        assert body["success"] is True
        assert body["status"] == "AUTHORIZED"
        assert body["responseCode"] == 0
        assert body["cardDetail"] == {"card_number": "6623"}
        assert body["message"] == "Pago simulado aprobado"

        conn = get_connection()
        try:
            row = conn.execute("SELECT * FROM transactions WHERE service_id = ?", (service["id"],)).fetchone()
        finally:
            conn.close()
        assert row["payment_method"] == "webpay_simulated"
        assert row["transaction_ref"].startswith("AUTH-")
        assert row["amount"] == 45000

    def test_confirm_post_body(self, client):
        body = client.post("/api/v1/payments/webpay/confirm", json={"token_ws": "SIM-2", "amount": 1000}).json()
        assert body["amount"] == 1000

    def test_confirm_without_token(self, client):
        response = client.post("/api/v1/payments/webpay/confirm")
        assert response.status_code == 400
        assert response.json()["error"] == "Token de transacción no proporcionado"
