"""First-accept-wins dispatch race over a request store and a change bus."""

import logging
from collections.abc import Callable
from datetime import datetime

from rider_dispatch.integrations.errors import NotificationDeliveryFailure
from rider_dispatch.models.domain import DeliveryRequestRecord, NewDeliveryRequest, now_utc
from rider_dispatch.observability import log_event, metrics_store, observe_timing
from rider_dispatch.services.errors import AlreadyClaimed, RequestNotFound
from rider_dispatch.services.notification_bus import ChangeNotificationBus
from rider_dispatch.services.store import RequestStore


class DispatchCoordinator:
    """Owns the single-winner and timeout rules for delivery requests.

    Both rules are delegated to the store's conditional writes; this class
    never reads a record to decide whether to write it. Every committed
    mutation is published on the bus. Publish failures are raised after the
    write has committed, with the committed record attached.
    """

    def __init__(
        self,
        store: RequestStore,
        bus: ChangeNotificationBus,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.store = store
        self.bus = bus
        self._clock = clock

    def create_request(self, new_request: NewDeliveryRequest) -> DeliveryRequestRecord:
        record = self.store.create(new_request)
        metrics_store.increment("delivery_requests_created_total")
        log_event("delivery_request_created", delivery_request_id=record.id)
        return record

    def get(self, request_id: str) -> DeliveryRequestRecord:
        record = self.store.get(request_id)
        if record is None:
            raise RequestNotFound(request_id)
        return record

    def list_open(self) -> list[DeliveryRequestRecord]:
        return self.store.list_open()

    def claim(self, request_id: str, rider_id: str) -> DeliveryRequestRecord:
        with observe_timing("delivery_request_claim_seconds"):
            record = self.store.claim_if_unassigned(request_id, rider_id)

        if record is None:
            metrics_store.increment("delivery_request_claims_lost_total")
            log_event(
                "delivery_request_claim_lost",
                delivery_request_id=request_id,
                rider_id=rider_id,
            )
            raise AlreadyClaimed(request_id)

        metrics_store.increment("delivery_request_claims_total")
        log_event("delivery_request_accepted", delivery_request_id=record.id, rider_id=rider_id)
        self._publish(record)
        return record

    def expire(self, request_id: str) -> DeliveryRequestRecord:
        """Cancel an overdue unclaimed request; otherwise return it unchanged."""
        record = self.store.cancel_if_unassigned(request_id, self._clock())
        if record is None:
            return self.get(request_id)

        metrics_store.increment("delivery_requests_expired_total")
        log_event("delivery_request_expired", delivery_request_id=record.id)
        self._publish(record)
        return record

    def expire_stale(self) -> list[DeliveryRequestRecord]:
        """Cancel every overdue unclaimed request.

        Publish failures are logged and counted but do not undo or hide the
        cancellations; the returned list is what was committed.
        """
        expired = self.store.cancel_overdue(self._clock())
        for record in expired:
            metrics_store.increment("delivery_requests_expired_total")
            log_event("delivery_request_expired_by_sweep", delivery_request_id=record.id)
            try:
                self._publish(record)
            except NotificationDeliveryFailure:
                continue

        metrics_store.increment("delivery_request_sweeps_total")
        return expired

    def _publish(self, record: DeliveryRequestRecord) -> None:
        try:
            self.bus.publish(record)
        except NotificationDeliveryFailure as err:
            log_event(
                "delivery_request_notification_failed",
                delivery_request_id=record.id,
                rider_id=record.rider_id,
                level=logging.WARNING,
            )
            err.record = record
            raise
