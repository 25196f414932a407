"""Tests for the HTTP layer of the Shipping Service."""
from fastapi.testclient import TestClient

from services.shipping_service.app import create_app
from services.shipping_service.external_tracking import AfterShipClient
from shared.errors import StoreError
from shared.store import DocumentStore

from factories import shipment_fields


class UnavailableStore(DocumentStore):
    async def load(self):
        raise StoreError("Backend unavailable")

    async def save(self, state):
        raise StoreError("Backend unavailable")


def create(client, **overrides):
    return client.post("/api/shipments", json=shipment_fields(**overrides))


class TestShipmentEndpoints:
    def test_create_then_deliver(self, client):
        response = create(client)
        assert response.status_code == 201
        shipment = response.json()
        assert shipment["status"] == "In Transit"
        assert shipment["category"] == "General"
        assert shipment["weight"] is None

        response = client.patch(
            f"/api/shipments/{shipment['id']}/status",
            json={"status": "Delivered", "location": "Warehouse 3", "notes": "left at door"},
        )
        assert response.status_code == 200
        assert response.json() == {"success": True}

        detail = client.get(f"/api/shipments/{shipment['id']}").json()
        assert detail["status"] == "Delivered"
        assert len(detail["events"]) == 2
        assert detail["events"][0]["location"] == "Warehouse 3"
        assert detail["events"][1]["notes"] == "Shipment created"

    def test_create_missing_field_is_400(self, client):
        response = create(client, receiver_name="")

        assert response.status_code == 400
        assert "receiver_name" in response.json()["error"]
        assert client.get("/api/shipments").json() == []

    def test_create_duplicate_is_409(self, client):
        assert create(client).status_code == 201

        response = create(client)
        assert response.status_code == 409
        assert response.json() == {"error": "Tracking number already exists"}
        assert len(client.get("/api/shipments").json()) == 1

    def test_malformed_body_is_400(self, client):
        response = client.post(
            "/api/shipments", json=shipment_fields(weight="heavy")
        )

        assert response.status_code == 400
        assert "weight" in response.json()["error"]

    def test_missing_body_is_400(self, client):
        response = client.post("/api/shipments")

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request (body: Field required)"}
        assert client.get("/api/shipments").json() == []

    def test_weight_as_string_is_parsed(self, client):
        response = create(client, weight="2.5")

        assert response.status_code == 201
        assert response.json()["weight"] == 2.5

    def test_list_filters(self, client):
        first = create(client, tracking_number="T-100", sender_name="Alice").json()
        create(client, tracking_number="T-200", sender_name="Bob")
        client.patch(f"/api/shipments/{first['id']}/status", json={"status": "Delivered"})

        by_search = client.get("/api/shipments", params={"search": "alice"}).json()
        assert [s["tracking_number"] for s in by_search] == ["T-100"]

        delivered = client.get("/api/shipments", params={"status": "Delivered"}).json()
        assert [s["tracking_number"] for s in delivered] == ["T-100"]

        everything = client.get("/api/shipments", params={"status": "All"}).json()
        assert len(everything) == 2

    def test_get_unknown_is_404(self, client):
        response = client.get("/api/shipments/999")

        assert response.status_code == 404
        assert response.json() == {"error": "Shipment not found"}

    def test_non_numeric_id_is_404(self, client):
        assert client.get("/api/shipments/not-a-number").status_code == 404

    def test_invalid_status_is_400(self, client):
        shipment = create(client).json()

        response = client.patch(f"/api/shipments/{shipment['id']}/status", json={"status": "Lost"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid status"}

        detail = client.get(f"/api/shipments/{shipment['id']}").json()
        assert detail["status"] == "In Transit"
        assert len(detail["events"]) == 1

    def test_status_update_unknown_is_404(self, client):
        response = client.patch("/api/shipments/5/status", json={"status": "Delivered"})
        assert response.status_code == 404

    def test_delete(self, client):
        shipment = create(client).json()

        response = client.delete(f"/api/shipments/{shipment['id']}")
        assert response.status_code == 200
        assert response.json() == {"success": True}

        assert client.get(f"/api/shipments/{shipment['id']}").status_code == 404
        assert client.delete(f"/api/shipments/{shipment['id']}").status_code == 404


class TestStatsEndpoint:
    def test_stats_shape(self, client):
        create(client, tracking_number="S1", category="Books")
        create(client, tracking_number="S2")

        stats = client.get("/api/stats").json()

        assert set(stats) == {"statusCounts", "categoryCounts", "dailyShipments", "totals"}
        assert stats["statusCounts"] == [{"status": "In Transit", "count": 2}]
        assert stats["categoryCounts"] == [
            {"category": "Books", "count": 1},
            {"category": "General", "count": 1},
        ]
        assert sum(day["count"] for day in stats["dailyShipments"]) == 2
        assert stats["totals"] == {"total": 2, "delivered": 0, "in_transit": 2, "pending": 0}


class TestMiscEndpoints:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy", "service": "shipping-service"}

    def test_external_track_without_key(self, client):
        response = client.get("/api/external-track/1Z999")

        assert response.status_code == 200
        assert response.json() == {"events": [], "error": "No tracking API key configured"}

    def test_store_failure_is_500(self, settings):
        app = create_app(settings, store=UnavailableStore(), tracker=AfterShipClient(""))

        with TestClient(app) as client:
            response = client.get("/api/shipments")

        assert response.status_code == 500
        assert response.json() == {"error": "Backend unavailable"}

    def test_static_frontend_is_served(self, settings, store, tmp_path):
        static_dir = tmp_path / "public"
        static_dir.mkdir()
        (static_dir / "index.html").write_text("<h1>Tracker</h1>")
        settings.static_dir = str(static_dir)
        app = create_app(settings, store=store, tracker=AfterShipClient(""))

        with TestClient(app) as client:
            assert "Tracker" in client.get("/").text
            assert client.get("/api/shipments").json() == []
