import random
import threading

import pytest

from rider_dispatch.integrations.errors import NotificationDeliveryFailure
from rider_dispatch.models.delivery_request import DeliveryRequestStatus
from rider_dispatch.observability import metrics_store
from rider_dispatch.services.coordinator import DispatchCoordinator
from rider_dispatch.services.errors import AlreadyClaimed, RequestNotFound
from rider_dispatch.services.notification_bus import InMemoryNotificationBus
from rider_dispatch.services.store import InMemoryRequestStore


@pytest.fixture
def bus():
    return InMemoryNotificationBus()


@pytest.fixture
def coordinator(clock, bus):
    return DispatchCoordinator(InMemoryRequestStore(clock=clock), bus, clock=clock)


def test_first_claim_wins_and_second_is_rejected(coordinator, new_request, clock):
    record = coordinator.create_request(new_request())
    clock.advance(5)

    claimed = coordinator.claim(record.id, "rider-1")
    assert claimed.rider_id == "rider-1"
    assert claimed.status == DeliveryRequestStatus.ACCEPTED

    with pytest.raises(AlreadyClaimed, match="Request no longer available"):
        coordinator.claim(record.id, "rider-2")

    assert coordinator.get(record.id).rider_id == "rider-1"
    counters = metrics_store.snapshot().counters
    assert counters["delivery_request_claims_total"] == 1
    assert counters["delivery_request_claims_lost_total"] == 1


def test_concurrent_claims_produce_exactly_one_winner(coordinator, new_request):
    for _ in range(25):
        record = coordinator.create_request(new_request())
        riders = [f"rider-{index}" for index in range(12)]
        random.shuffle(riders)
        barrier = threading.Barrier(len(riders))
        winners: list[str] = []
        losers: list[str] = []
        lock = threading.Lock()

        def attempt(rider_id: str, request_id: str = record.id) -> None:
            barrier.wait()
            try:
                coordinator.claim(request_id, rider_id)
            except AlreadyClaimed:
                with lock:
                    losers.append(rider_id)
            else:
                with lock:
                    winners.append(rider_id)

        threads = [threading.Thread(target=attempt, args=(rider,)) for rider in riders]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(winners) == 1
        assert len(losers) == len(riders) - 1
        assert coordinator.get(record.id).rider_id == winners[0]


def test_claim_unknown_request_raises_not_found(coordinator):
    with pytest.raises(RequestNotFound):
        coordinator.claim("missing", "rider-1")


def test_expire_before_deadline_is_a_noop(coordinator, new_request, clock):
    record = coordinator.create_request(new_request())
    clock.advance(59.9)

    result = coordinator.expire(record.id)

    assert result.status == DeliveryRequestStatus.PLACED
    assert result.rider_id is None


def test_expire_at_deadline_cancels_and_blocks_later_claims(coordinator, new_request, clock):
    record = coordinator.create_request(new_request())
    clock.advance(60)

    expired = coordinator.expire(record.id)
    assert expired.status == DeliveryRequestStatus.CANCELLED
    assert expired.rider_id is None

    with pytest.raises(AlreadyClaimed):
        coordinator.claim(record.id, "rider-1")
    assert metrics_store.snapshot().counters["delivery_requests_expired_total"] == 1


def test_expire_after_claim_returns_accepted_record(coordinator, new_request, clock):
    record = coordinator.create_request(new_request())
    clock.advance(30)
    coordinator.claim(record.id, "rider-1")
    clock.advance(60)

    result = coordinator.expire(record.id)

    assert result.status == DeliveryRequestStatus.ACCEPTED
    assert result.rider_id == "rider-1"


def test_claim_and_expire_racing_never_both_succeed(new_request, clock):
    for _ in range(25):
        coordinator = DispatchCoordinator(
            InMemoryRequestStore(clock=clock), InMemoryNotificationBus(), clock=clock
        )
        record = coordinator.create_request(new_request())
        clock.advance(60)
        barrier = threading.Barrier(2)
        outcomes: dict[str, object] = {}

        def claim(request_id: str = record.id) -> None:
            barrier.wait()
            try:
                outcomes["claim"] = coordinator.claim(request_id, "rider-1")
            except AlreadyClaimed as err:
                outcomes["claim"] = err

        def expire(request_id: str = record.id) -> None:
            barrier.wait()
            outcomes["expire"] = coordinator.expire(request_id)

        threads = [threading.Thread(target=claim), threading.Thread(target=expire)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        final = coordinator.get(record.id)
        if isinstance(outcomes["claim"], AlreadyClaimed):
            assert final.status == DeliveryRequestStatus.CANCELLED
            assert final.rider_id is None
        else:
            assert final.status == DeliveryRequestStatus.ACCEPTED
            assert outcomes["expire"].status == DeliveryRequestStatus.ACCEPTED


def test_committed_changes_are_published(coordinator, bus, new_request, clock):
    record = coordinator.create_request(new_request())
    received = []
    bus.subscribe(record.id, received.append)

    coordinator.claim(record.id, "rider-1")

    assert [item.rider_id for item in received] == ["rider-1"]


def test_publish_failure_keeps_the_committed_claim(coordinator, bus, new_request):
    record = coordinator.create_request(new_request())

    def broken(_record):
        raise RuntimeError("subscriber down")

    bus.subscribe(record.id, broken)

    with pytest.raises(NotificationDeliveryFailure) as exc_info:
        coordinator.claim(record.id, "rider-1")

    assert exc_info.value.record.rider_id == "rider-1"
    assert coordinator.get(record.id).status == DeliveryRequestStatus.ACCEPTED
    assert metrics_store.snapshot().counters["notification_publish_failures_total"] == 1


def test_updated_at_strictly_increases_without_clock_movement(coordinator, new_request):
    record = coordinator.create_request(new_request())

    claimed = coordinator.claim(record.id, "rider-1")

    assert claimed.created_at == record.created_at
    assert claimed.updated_at > record.updated_at


def test_expire_stale_cancels_only_overdue_unclaimed(coordinator, new_request, clock):
    overdue = coordinator.create_request(new_request())
    claimed = coordinator.create_request(new_request())
    coordinator.claim(claimed.id, "rider-1")
    clock.advance(30)
    fresh = coordinator.create_request(new_request())
    clock.advance(40)

    expired = coordinator.expire_stale()

    assert [record.id for record in expired] == [overdue.id]
    assert coordinator.get(overdue.id).status == DeliveryRequestStatus.CANCELLED
    assert coordinator.get(claimed.id).status == DeliveryRequestStatus.ACCEPTED
    assert coordinator.get(fresh.id).status == DeliveryRequestStatus.PLACED


def test_expire_stale_returns_cancellations_even_when_publish_fails(
    coordinator, bus, new_request, clock
):
    record = coordinator.create_request(new_request())

    def broken(_record):
        raise RuntimeError("subscriber down")

    bus.subscribe(record.id, broken)
    clock.advance(61)

    expired = coordinator.expire_stale()

    assert [item.id for item in expired] == [record.id]
    assert coordinator.get(record.id).status == DeliveryRequestStatus.CANCELLED


def test_list_open_is_newest_first_and_excludes_claimed(coordinator, new_request, clock):
    first = coordinator.create_request(new_request())
    clock.advance(1)
    second = coordinator.create_request(new_request())
    clock.advance(1)
    third = coordinator.create_request(new_request())
    coordinator.claim(second.id, "rider-1")

    assert [record.id for record in coordinator.list_open()] == [third.id, first.id]
