from datetime import datetime

from pydantic import BaseModel, Field

from rider_dispatch.models.delivery_request import DeliveryRequestStatus
from rider_dispatch.models.domain import DeliveryRequestRecord, Location
from rider_dispatch.schemas.rider import RiderProfileResponse


class LocationPayload(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    address: str = ""

    def to_location(self) -> Location:
        return Location(lat=self.lat, lng=self.lng, address=self.address)


class QuoteRequest(BaseModel):
    pickup: LocationPayload
    dropoff: LocationPayload


class QuoteResponse(BaseModel):
    distance_km: float
    total: float
    rider_earning: float
    commission: float


class DeliveryRequestCreate(QuoteRequest):
    item_description: str = Field(min_length=1, max_length=500)
    customer_phone: str | None = Field(default=None, max_length=32)


class DeliveryRequestResponse(BaseModel):
    id: str
    customer_id: str | None
    rider_id: str | None
    pickup: LocationPayload
    dropoff: LocationPayload
    item_description: str
    total: float
    rider_earning: float
    commission: float
    distance_km: float
    status: DeliveryRequestStatus
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    rider: RiderProfileResponse | None = None

    @classmethod
    def from_record(
        cls,
        record: DeliveryRequestRecord,
        rider: RiderProfileResponse | None = None,
    ) -> "DeliveryRequestResponse":
        return cls(
            id=record.id,
            customer_id=record.customer_id,
            rider_id=record.rider_id,
            pickup=LocationPayload(**record.pickup.model_dump()),
            dropoff=LocationPayload(**record.dropoff.model_dump()),
            item_description=record.item_description,
            total=record.total,
            rider_earning=record.rider_earning,
            commission=record.commission,
            distance_km=record.distance_km,
            status=record.status,
            created_at=record.created_at,
            updated_at=record.updated_at,
            expires_at=record.expires_at,
            rider=rider,
        )


class DeliveryRequestListResponse(BaseModel):
    items: list[DeliveryRequestResponse]


class ExpireStaleResponse(BaseModel):
    expired: int
    items: list[DeliveryRequestResponse]
