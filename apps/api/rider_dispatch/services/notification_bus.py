import logging
from collections import defaultdict
from collections.abc import Callable
from threading import Lock
from typing import Protocol

from rider_dispatch.integrations.errors import NotificationDeliveryFailure
from rider_dispatch.models.domain import DeliveryRequestRecord
from rider_dispatch.observability import metrics_store

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[DeliveryRequestRecord], None]


class Subscription:
    """Cancellation token returned by ``subscribe``."""

    def __init__(self, bus: "InMemoryNotificationBus", request_id: str, callback: ChangeCallback):
        self._bus = bus
        self.request_id = request_id
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._bus._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()


class ChangeNotificationBus(Protocol):
    def subscribe(self, request_id: str, callback: ChangeCallback) -> Subscription: ...

    def publish(self, record: DeliveryRequestRecord) -> None: ...


class InMemoryNotificationBus:
    """Fan-out of committed record changes to per-record subscribers.

    Delivery is synchronous on the publishing thread. Callbacks that need to
    hop onto an event loop must do so themselves.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._subscribers: dict[str, list[Subscription]] = defaultdict(list)

    def subscribe(self, request_id: str, callback: ChangeCallback) -> Subscription:
        subscription = Subscription(self, request_id, callback)
        with self._lock:
            self._subscribers[request_id].append(subscription)
        return subscription

    def publish(self, record: DeliveryRequestRecord) -> None:
        with self._lock:
            targets = list(self._subscribers.get(record.id, []))

        failures = 0
        for subscription in targets:
            if not subscription.active:
                continue
            try:
                subscription.callback(record)
            except Exception:
                failures += 1
                logger.exception("Change subscriber failed for delivery request %s", record.id)

        metrics_store.increment("notifications_published_total")
        if failures:
            metrics_store.increment("notification_publish_failures_total", failures)
            raise NotificationDeliveryFailure(
                f"{failures} subscriber(s) failed for delivery request {record.id}"
            )

    def subscriber_count(self, request_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(request_id, []))

    def reset(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            remaining = [
                item for item in self._subscribers.get(subscription.request_id, [])
                if item is not subscription
            ]
            if remaining:
                self._subscribers[subscription.request_id] = remaining
            else:
                self._subscribers.pop(subscription.request_id, None)


notification_bus = InMemoryNotificationBus()


def get_notification_bus() -> ChangeNotificationBus:
    return notification_bus
