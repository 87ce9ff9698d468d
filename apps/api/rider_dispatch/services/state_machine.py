from rider_dispatch.models.delivery_event import DeliveryEventType
from rider_dispatch.models.delivery_request import DeliveryRequestStatus
from rider_dispatch.services.errors import InvalidTransition

REQUEST_STATE_TRANSITIONS: dict[DeliveryRequestStatus, set[DeliveryRequestStatus]] = {
    DeliveryRequestStatus.PLACED: {DeliveryRequestStatus.ACCEPTED, DeliveryRequestStatus.CANCELLED},
    DeliveryRequestStatus.ACCEPTED: set(),
    DeliveryRequestStatus.CANCELLED: set(),
}

_EVENT_TYPES: dict[DeliveryRequestStatus, DeliveryEventType] = {
    DeliveryRequestStatus.PLACED: DeliveryEventType.CREATED,
    DeliveryRequestStatus.ACCEPTED: DeliveryEventType.ACCEPTED,
    DeliveryRequestStatus.CANCELLED: DeliveryEventType.CANCELLED,
}


def ensure_valid_transition(
    current: DeliveryRequestStatus, next_status: DeliveryRequestStatus
) -> None:
    allowed = REQUEST_STATE_TRANSITIONS.get(current, set())
    if next_status not in allowed:
        raise InvalidTransition(current.value, next_status.value)


def event_type_for_status(status_value: DeliveryRequestStatus) -> DeliveryEventType:
    return _EVENT_TYPES[status_value]
