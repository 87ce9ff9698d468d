# Import SQLAlchemy models so they register on Base.metadata
from rider_dispatch.models.delivery_event import (  # noqa: F401
    DeliveryEventType,
    DeliveryRequestEvent,
)
from rider_dispatch.models.delivery_request import (  # noqa: F401
    DeliveryRequest,
    DeliveryRequestStatus,
)
from rider_dispatch.models.rider import Rider  # noqa: F401
