import pytest

from rider_dispatch.models.delivery_event import DeliveryEventType
from rider_dispatch.models.delivery_request import DeliveryRequestStatus
from rider_dispatch.services.errors import InvalidTransition
from rider_dispatch.services.state_machine import ensure_valid_transition, event_type_for_status


@pytest.mark.parametrize(
    "next_status", [DeliveryRequestStatus.ACCEPTED, DeliveryRequestStatus.CANCELLED]
)
def test_placed_can_be_accepted_or_cancelled(next_status):
    ensure_valid_transition(DeliveryRequestStatus.PLACED, next_status)


@pytest.mark.parametrize(
    "current", [DeliveryRequestStatus.ACCEPTED, DeliveryRequestStatus.CANCELLED]
)
@pytest.mark.parametrize("next_status", list(DeliveryRequestStatus))
def test_terminal_states_are_final(current, next_status):
    with pytest.raises(InvalidTransition):
        ensure_valid_transition(current, next_status)


def test_event_types_follow_status():
    assert event_type_for_status(DeliveryRequestStatus.PLACED) == DeliveryEventType.CREATED
    assert event_type_for_status(DeliveryRequestStatus.ACCEPTED) == DeliveryEventType.ACCEPTED
    assert event_type_for_status(DeliveryRequestStatus.CANCELLED) == DeliveryEventType.CANCELLED
