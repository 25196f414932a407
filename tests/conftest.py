import pytest
from fastapi.testclient import TestClient

from services.shipping_service.app import create_app
from services.shipping_service.external_tracking import AfterShipClient
from services.shipping_service.service import ShipmentService
from shared.config import Settings
from shared.store import JsonFileStore


@pytest.fixture
def data_file(tmp_path):
    return tmp_path / "db.json"


@pytest.fixture
def store(data_file):
    return JsonFileStore(str(data_file))


@pytest.fixture
def service(store):
    return ShipmentService(store)


@pytest.fixture
def settings(data_file):
    return Settings(data_file=str(data_file), aftership_key="", static_dir="")


@pytest.fixture
def client(settings, store):
    app = create_app(settings, store=store, tracker=AfterShipClient(""))
    with TestClient(app) as test_client:
        yield test_client
