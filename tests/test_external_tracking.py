"""Tests for the AfterShip tracking adapter."""
import httpx
import pytest
from fastapi.testclient import TestClient

from services.shipping_service.app import create_app
from services.shipping_service.external_tracking import AfterShipClient, map_checkpoint
from shared.errors import ExternalServiceError

TRACKING_RESPONSE = {
    "meta": {"code": 200},
    "data": {
        "trackings": [
            {
                "slug": "ups",
                "tag": "InTransit",
                "checkpoints": [
                    {
                        "checkpoint_time": "2026-10-17T09:00:00+02:00",
                        "message": "Departed facility",
                        "city": "Cologne",
                        "state": None,
                        "country_name": "Germany",
                        "tag": "InTransit",
                    },
                    {
                        "created_at": "2026-10-16T18:00:00+00:00",
                        "tag": "InfoReceived",
                    },
                ],
            }
        ]
    },
}


def make_client(handler, api_key="key-123", max_attempts=1) -> AfterShipClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AfterShipClient(api_key, max_attempts=max_attempts, client=http_client)


class TestMapCheckpoint:
    def test_location_skips_blank_parts(self):
        checkpoint = map_checkpoint({"city": "Lyon", "state": "", "country_name": "France"})
        assert checkpoint.location == "Lyon, France"

    def test_falls_back_to_created_at_and_tag(self):
        checkpoint = map_checkpoint({"created_at": "2026-10-16", "tag": "Delivered"})

        assert checkpoint.date == "2026-10-16"
        assert checkpoint.status == "Delivered"
        assert checkpoint.location == ""


class TestAfterShipClient:
    async def test_without_key_returns_explanation(self):
        def handler(request):
            raise AssertionError("no request expected")

        result = await make_client(handler, api_key="").track("1Z999")

        assert result.events == []
        assert result.error == "No tracking API key configured"

    async def test_maps_checkpoints(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=TRACKING_RESPONSE)

        result = await make_client(handler).track("1Z 999")

        request = seen[0]
        assert request.url.path == "/v4/trackings"
        assert request.url.params["tracking_numbers"] == "1Z 999"
        assert request.headers["aftership-api-key"] == "key-123"

        assert result.current_status == "InTransit"
        assert result.slug == "ups"
        assert [e.status for e in result.events] == ["Departed facility", "InfoReceived"]
        assert result.events[0].location == "Cologne, Germany"
        assert result.events[1].date == "2026-10-16T18:00:00+00:00"

    async def test_provider_error_is_reported(self):
        def handler(request):
            return httpx.Response(401, json={"meta": {"code": 401, "message": "Invalid API key"}})

        result = await make_client(handler).track("1Z999")

        assert result.events == []
        assert result.error == "Invalid API key"

    async def test_no_trackings(self):
        def handler(request):
            return httpx.Response(200, json={"meta": {"code": 200}, "data": {"trackings": []}})

        result = await make_client(handler).track("1Z999")

        assert result.events == []
        assert result.error is None

    async def test_unreachable_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ExternalServiceError):
            await make_client(handler).track("1Z999")

    async def test_invalid_json_raises(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway error</html>")

        with pytest.raises(ExternalServiceError):
            await make_client(handler).track("1Z999")


class TestExternalTrackRoute:
    def test_success_payload(self, settings, store):
        tracker = make_client(lambda request: httpx.Response(200, json=TRACKING_RESPONSE))
        app = create_app(settings, store=store, tracker=tracker)

        with TestClient(app) as client:
            body = client.get("/api/external-track/1Z999").json()

        assert body["current_status"] == "InTransit"
        assert body["slug"] == "ups"
        assert body["events"][0] == {
            "date": "2026-10-17T09:00:00+02:00",
            "status": "Departed facility",
            "location": "Cologne, Germany",
            "tag": "InTransit",
        }
        assert "error" not in body

    def test_provider_unreachable_is_500(self, settings, store):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        app = create_app(settings, store=store, tracker=make_client(handler))

        with TestClient(app) as client:
            response = client.get("/api/external-track/1Z999")

        assert response.status_code == 500
        assert response.json()["events"] == []
        assert "unreachable" in response.json()["error"]
