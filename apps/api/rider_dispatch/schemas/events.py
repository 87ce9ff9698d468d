import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from rider_dispatch.models.delivery_event import DeliveryEventType


class DeliveryEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    request_id: uuid.UUID
    type: DeliveryEventType
    message: str
    payload: dict
    created_at: datetime


class DeliveryEventListResponse(BaseModel):
    items: list[DeliveryEventResponse]
