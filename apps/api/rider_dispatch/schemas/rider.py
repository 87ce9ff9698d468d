from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RiderProfileResponse(BaseModel):
    """Public rider card. Never carries a phone number."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    vehicle_type: str
    image: str | None = None


class PresenceUpdateRequest(BaseModel):
    online: bool


class PresenceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    is_online: bool
    last_seen_at: datetime | None


class OnlineRidersResponse(BaseModel):
    online: int


class RiderRegistrationRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    vehicle_type: str = Field(default="Bike", min_length=1, max_length=50)
    image: str | None = Field(default=None, max_length=1024)
