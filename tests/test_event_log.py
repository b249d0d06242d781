"""Tests for the event log service and ``GET /events``."""

from __future__ import annotations

import asyncio

from gogrua_api.app.services.event_log_service import EventLogService


def _log(event_type, **kwargs):
    asyncio.run(EventLogService.log(event_type, **kwargs))


class TestEventLog:
    def test_defaults_to_system_actor(self):
        _log("QUOTE_RECEIVED", request_id="r-1", payload={"quoteFinal": 45000})
        [event] = asyncio.run(EventLogService.list_events(request_id="r-1"))
        assert event["actor_type"] == "system"
        assert event["payload"] == {"quoteFinal": 45000}

    def test_newest_first(self):
        for event_type in ("A", "B", "C"):
            _log(event_type, request_id="r-1")
        events = asyncio.run(EventLogService.list_events(request_id="r-1"))
        assert [event["event_type"] for event in events] == ["C", "B", "A"]

    def test_endpoint_filters_and_paginates(self, client, auth_headers):
        _log("PAYMENT_COMPLETED", request_id="r-1")
        _log("DISPATCH_ARRIVED", request_id="r-1", actor_type="driver")
        _log("DISPATCH_COMPLETED", request_id="r-2", actor_type="driver")

        response = client.get("/api/v1/events/", params={"actorType": "driver"}, headers=auth_headers("admin"))
        assert [event["eventType"] for event in response.json()] == ["DISPATCH_COMPLETED", "DISPATCH_ARRIVED"]

        response = client.get(
            "/api/v1/events/",
            params={"requestId": "r-1", "limit": 1, "offset": 1},
            headers=auth_headers("dispatcher"),
        )
        assert [event["eventType"] for event in response.json()] == ["PAYMENT_COMPLETED"]

    def test_endpoint_is_staff_only(self, client, auth_headers):
        response = client.get("/api/v1/events/", headers=auth_headers("driver"))
        assert response.status_code == 403
