from dataclasses import dataclass


@dataclass
class IntegrationError(Exception):
    service: str
    code: str
    message: str
    retryable: bool = False

    def __str__(self) -> str:
        return f"{self.service}:{self.code}:{self.message}"


class StoreUnavailable(IntegrationError):
    def __init__(self, message: str = "Request store unavailable") -> None:
        super().__init__(
            service="request_store", code="UNAVAILABLE", message=message, retryable=True
        )


class NotificationDeliveryFailure(IntegrationError):
    def __init__(self, message: str = "Change notification delivery failed", record=None) -> None:
        super().__init__(
            service="notification_bus", code="DELIVERY_FAILED", message=message, retryable=True
        )
        # The committed record whose notification could not be delivered, when known.
        self.record = record
