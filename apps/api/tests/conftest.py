import os

os.environ.setdefault("RIDER_DISPATCH_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("RIDER_DISPATCH_TESTING", "true")

import threading  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

import rider_dispatch.models  # noqa: F401,E402
from rider_dispatch.auth.jwt import issue_jwt  # noqa: E402
from rider_dispatch.config import settings  # noqa: E402
from rider_dispatch.db.base import Base  # noqa: E402
from rider_dispatch.db.session import engine as app_engine  # noqa: E402
from rider_dispatch.db.session import get_db  # noqa: E402
from rider_dispatch.main import app  # noqa: E402
from rider_dispatch.models.domain import Location, NewDeliveryRequest  # noqa: E402
from rider_dispatch.observability import metrics_store  # noqa: E402
from rider_dispatch.services.notification_bus import notification_bus  # noqa: E402
from rider_dispatch.services.pricing import DistancePricingPolicy  # noqa: E402

PICKUP = Location(lat=6.5244, lng=3.3792, address="12 Marina Road")
DROPOFF = Location(lat=6.6018, lng=3.3515, address="4 Allen Avenue")


class FakeClock:
    """Settable UTC wall clock that also exposes elapsed seconds as a monotonic clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
        self.elapsed = 0.0

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self.elapsed

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)
        self.elapsed += seconds


def make_new_request(
    *,
    customer_id: str | None = "customer-1",
    timeout_s: float = 60.0,
    item_description: str = "Documents",
) -> NewDeliveryRequest:
    quote = DistancePricingPolicy(
        base_fee=80, per_km_rate=30, min_payment=100, rider_base_earning=50
    ).quote(PICKUP, DROPOFF)
    return NewDeliveryRequest(
        customer_id=customer_id,
        customer_phone="+2348000000001",
        pickup=PICKUP,
        dropoff=DROPOFF,
        item_description=item_description,
        quote=quote,
        timeout_s=timeout_s,
    )


@pytest.fixture(scope="session", autouse=True)
def setup_test_schema():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield
    Base.metadata.drop_all(bind=app_engine)


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield


@pytest.fixture(autouse=True)
def reset_notification_bus():
    notification_bus.reset()
    yield
    notification_bus.reset()


@pytest.fixture(autouse=True)
def reset_metrics_store():
    metrics_store.reset()
    yield


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_session():
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=app_engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(db_session):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=app_engine)
    db_session_lock = threading.Lock()

    def override_get_db():
        if db_session_lock.acquire(blocking=False):
            try:
                yield db_session
            finally:
                db_session_lock.release()
            return

        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(scope="session", autouse=True)
def enable_testing_mode():
    original = settings.testing
    settings.testing = True
    yield
    settings.testing = original


@pytest.fixture
def new_request():
    return make_new_request


@pytest.fixture
def auth_headers():
    def _headers(role: str, sub: str) -> dict[str, str]:
        token = issue_jwt({"sub": sub, "role": role}, settings.jwt_secret)
        return {"Authorization": f"Bearer {token}"}

    return {
        "customer": _headers("CUSTOMER", "customer-1"),
        "customer_b": _headers("CUSTOMER", "customer-2"),
        "rider_1": _headers("RIDER", "rider-1"),
        "rider_2": _headers("RIDER", "rider-2"),
        "ops": _headers("OPS", "ops-1"),
    }
