from rider_dispatch.integrations.errors import (
    IntegrationError,
    NotificationDeliveryFailure,
    StoreUnavailable,
)

__all__ = [
    "IntegrationError",
    "StoreUnavailable",
    "NotificationDeliveryFailure",
]
