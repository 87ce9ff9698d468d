from rider_dispatch.schemas.delivery_request import (
    DeliveryRequestCreate,
    DeliveryRequestListResponse,
    DeliveryRequestResponse,
    ExpireStaleResponse,
    QuoteRequest,
    QuoteResponse,
)
from rider_dispatch.schemas.events import DeliveryEventListResponse, DeliveryEventResponse
from rider_dispatch.schemas.rider import (
    OnlineRidersResponse,
    PresenceResponse,
    PresenceUpdateRequest,
    RiderProfileResponse,
    RiderRegistrationRequest,
)

__all__ = [
    "QuoteRequest",
    "QuoteResponse",
    "DeliveryRequestCreate",
    "DeliveryRequestResponse",
    "DeliveryRequestListResponse",
    "ExpireStaleResponse",
    "DeliveryEventResponse",
    "DeliveryEventListResponse",
    "RiderProfileResponse",
    "PresenceUpdateRequest",
    "PresenceResponse",
    "OnlineRidersResponse",
    "RiderRegistrationRequest",
]
