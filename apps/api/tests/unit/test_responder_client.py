import pytest

from rider_dispatch.clients.responder import ALREADY_TAKEN_NOTICE, AcceptResult, ResponderClient
from rider_dispatch.integrations.errors import StoreUnavailable
from rider_dispatch.models.delivery_request import DeliveryRequestStatus
from rider_dispatch.services.coordinator import DispatchCoordinator
from rider_dispatch.services.notification_bus import InMemoryNotificationBus
from rider_dispatch.services.store import InMemoryRequestStore


class UnavailableStore(InMemoryRequestStore):
    def claim_if_unassigned(self, request_id, rider_id):
        raise StoreUnavailable("database offline")


@pytest.fixture
def bus():
    return InMemoryNotificationBus()


@pytest.fixture
def coordinator(clock, bus):
    return DispatchCoordinator(InMemoryRequestStore(clock=clock), bus, clock=clock)


def test_refresh_lists_open_requests_newest_first(coordinator, new_request, clock):
    older = coordinator.create_request(new_request())
    clock.advance(5)
    newer = coordinator.create_request(new_request())

    responder = ResponderClient(coordinator, "rider-1")

    assert [record.id for record in responder.refresh()] == [newer.id, older.id]


def test_accept_marks_request_owned(coordinator, new_request):
    record = coordinator.create_request(new_request())
    responder = ResponderClient(coordinator, "rider-1")
    responder.refresh()

    outcome = responder.accept(record.id)

    assert outcome.result == AcceptResult.OWNED
    assert outcome.owned is True
    assert outcome.record.rider_id == "rider-1"
    assert record.id in responder.owned
    assert responder.visible_requests == []


def test_losing_rider_sees_notice_and_request_disappears(coordinator, new_request):
    record = coordinator.create_request(new_request())
    winner = ResponderClient(coordinator, "rider-1")
    loser = ResponderClient(coordinator, "rider-2")
    winner.refresh()
    loser.refresh()

    assert winner.accept(record.id).owned is True
    outcome = loser.accept(record.id)

    assert outcome.result == AcceptResult.ALREADY_TAKEN
    assert outcome.notice == ALREADY_TAKEN_NOTICE
    assert loser.notice == ALREADY_TAKEN_NOTICE
    assert loser.visible_requests == []
    assert loser.owned == {}
    assert coordinator.get(record.id).rider_id == "rider-1"

    loser.dismiss_notice()
    assert loser.notice is None


def test_accept_on_expired_request_is_already_taken(coordinator, new_request, clock):
    record = coordinator.create_request(new_request())
    clock.advance(60)
    coordinator.expire(record.id)

    outcome = ResponderClient(coordinator, "rider-1").accept(record.id)

    assert outcome.result == AcceptResult.ALREADY_TAKEN


def test_accept_unknown_request(coordinator):
    outcome = ResponderClient(coordinator, "rider-1").accept("missing")

    assert outcome.result == AcceptResult.NOT_FOUND


def test_accept_is_owned_even_when_notification_fails(coordinator, bus, new_request):
    record = coordinator.create_request(new_request())

    def broken(_record):
        raise RuntimeError("watcher gone")

    bus.subscribe(record.id, broken)
    responder = ResponderClient(coordinator, "rider-1")

    outcome = responder.accept(record.id)

    assert outcome.owned is True
    assert outcome.record.status == DeliveryRequestStatus.ACCEPTED
    assert record.id in responder.owned


def test_accept_reports_store_outage(clock, new_request):
    coordinator = DispatchCoordinator(
        UnavailableStore(clock=clock), InMemoryNotificationBus(), clock=clock
    )
    record = coordinator.create_request(new_request())
    responder = ResponderClient(coordinator, "rider-1")
    responder.refresh()

    outcome = responder.accept(record.id)

    assert outcome.result == AcceptResult.UNAVAILABLE
    assert "database offline" in outcome.notice
    assert [item.id for item in responder.visible_requests] == [record.id]
