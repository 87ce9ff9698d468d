import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from rider_dispatch.models.rider import Rider

REQUEST_PAYLOAD = {
    "pickup": {"lat": 6.5244, "lng": 3.3792, "address": "12 Marina Road"},
    "dropoff": {"lat": 6.6018, "lng": 3.3515, "address": "4 Allen Avenue"},
    "item_description": "Documents in a brown envelope",
    "customer_phone": "+2348000000001",
}


@pytest.fixture
def request_payload():
    return dict(REQUEST_PAYLOAD)


@pytest.fixture
def online_riders(client, auth_headers):
    riders = {
        "rider_1": {"name": "Ada", "phone": "+2348000000101", "vehicle_type": "Bike"},
        "rider_2": {"name": "Bayo", "phone": "+2348000000102", "vehicle_type": "Car"},
    }
    for key, profile in riders.items():
        registered = client.put("/api/v1/riders/me", json=profile, headers=auth_headers[key])
        assert registered.status_code == 200
        online = client.put(
            "/api/v1/riders/me/presence", json={"online": True}, headers=auth_headers[key]
        )
        assert online.status_code == 200
    return riders


@pytest.fixture
def placed_request(client, auth_headers, online_riders, request_payload):
    response = client.post(
        "/api/v1/delivery-requests", json=request_payload, headers=auth_headers["customer"]
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def riders_table_down(monkeypatch):
    """Rider rows become unreadable while delivery requests stay writable."""
    original_get = Session.get

    def get(self, entity, ident, **kwargs):
        if entity is Rider:
            raise OperationalError("SELECT riders", {}, Exception("database is locked"))
        return original_get(self, entity, ident, **kwargs)

    monkeypatch.setattr(Session, "get", get)
