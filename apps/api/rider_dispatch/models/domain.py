from datetime import datetime, timedelta, timezone
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from rider_dispatch.models.delivery_request import DeliveryRequestStatus


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    address: str = ""


class Quote(BaseModel):
    model_config = ConfigDict(frozen=True)

    distance_km: float
    total: float
    rider_earning: float
    commission: float


class NewDeliveryRequest(BaseModel):
    customer_id: str | None = None
    customer_phone: str | None = None
    pickup: Location
    dropoff: Location
    item_description: str = Field(min_length=1)
    quote: Quote
    timeout_s: float = Field(gt=0)


class DeliveryRequestRecord(BaseModel):
    """Store-agnostic snapshot of one delivery request."""

    model_config = ConfigDict(frozen=True)

    id: str
    customer_id: str | None
    customer_phone: str | None = None
    rider_id: str | None
    pickup: Location
    dropoff: Location
    item_description: str
    total: float
    rider_earning: float
    commission: float
    distance_km: float
    status: DeliveryRequestStatus
    created_at: datetime
    updated_at: datetime
    expires_at: datetime

    @property
    def is_open(self) -> bool:
        return self.rider_id is None and self.status == DeliveryRequestStatus.PLACED

    @property
    def is_assigned(self) -> bool:
        return self.rider_id is not None


class RiderPublicProfile(BaseModel):
    """What a customer may see about a rider. Contact details are never included."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    vehicle_type: str = "Bike"
    image: str | None = None


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def next_timestamp(previous: datetime, now: datetime) -> datetime:
    """``now``, bumped past ``previous`` so updated_at strictly increases."""
    now = as_utc(now)
    floor = as_utc(previous) + timedelta(microseconds=1)
    return now if now >= floor else floor


def new_id(prefix: str = "") -> str:
    return f"{prefix}{uuid4()}"
