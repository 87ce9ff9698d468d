from collections.abc import Callable
from datetime import datetime, timedelta
from threading import Lock
from typing import Protocol

from rider_dispatch.models.delivery_request import DeliveryRequestStatus
from rider_dispatch.models.domain import (
    DeliveryRequestRecord,
    NewDeliveryRequest,
    as_utc,
    new_id,
    next_timestamp,
    now_utc,
)
from rider_dispatch.services.errors import RequestNotFound
from rider_dispatch.services.state_machine import ensure_valid_transition


class RequestStore(Protocol):
    """Durable delivery-request storage with atomic conditional updates.

    ``claim_if_unassigned`` and ``cancel_if_unassigned`` must decide and write in
    one step. They return ``None`` when the precondition did not hold.
    """

    def create(self, new_request: NewDeliveryRequest) -> DeliveryRequestRecord: ...

    def get(self, request_id: str) -> DeliveryRequestRecord | None: ...

    def list_open(self) -> list[DeliveryRequestRecord]: ...

    def claim_if_unassigned(
        self, request_id: str, rider_id: str
    ) -> DeliveryRequestRecord | None: ...

    def cancel_if_unassigned(
        self, request_id: str, now: datetime
    ) -> DeliveryRequestRecord | None: ...

    def cancel_overdue(self, now: datetime) -> list[DeliveryRequestRecord]: ...


class InMemoryRequestStore:
    def __init__(self, clock: Callable[[], datetime] = now_utc) -> None:
        self._clock = clock
        self._lock = Lock()
        self.requests: dict[str, DeliveryRequestRecord] = {}

    def create(self, new_request: NewDeliveryRequest) -> DeliveryRequestRecord:
        created = self._clock()
        record = DeliveryRequestRecord(
            id=new_id(),
            customer_id=new_request.customer_id,
            customer_phone=new_request.customer_phone,
            rider_id=None,
            pickup=new_request.pickup,
            dropoff=new_request.dropoff,
            item_description=new_request.item_description,
            total=new_request.quote.total,
            rider_earning=new_request.quote.rider_earning,
            commission=new_request.quote.commission,
            distance_km=new_request.quote.distance_km,
            status=DeliveryRequestStatus.PLACED,
            created_at=created,
            updated_at=created,
            expires_at=created + timedelta(seconds=new_request.timeout_s),
        )
        with self._lock:
            self.requests[record.id] = record
        return record

    def get(self, request_id: str) -> DeliveryRequestRecord | None:
        with self._lock:
            return self.requests.get(request_id)

    def list_open(self) -> list[DeliveryRequestRecord]:
        with self._lock:
            items = [record for record in self.requests.values() if record.is_open]
        return sorted(items, key=lambda record: record.created_at, reverse=True)

    def claim_if_unassigned(self, request_id: str, rider_id: str) -> DeliveryRequestRecord | None:
        with self._lock:
            record = self.requests.get(request_id)
            if record is None:
                raise RequestNotFound(request_id)
            if not record.is_open:
                return None
            return self._transition(record, DeliveryRequestStatus.ACCEPTED, rider_id=rider_id)

    def cancel_if_unassigned(
        self, request_id: str, now: datetime
    ) -> DeliveryRequestRecord | None:
        with self._lock:
            record = self.requests.get(request_id)
            if record is None:
                raise RequestNotFound(request_id)
            if not record.is_open or as_utc(record.expires_at) > as_utc(now):
                return None
            return self._transition(record, DeliveryRequestStatus.CANCELLED)

    def cancel_overdue(self, now: datetime) -> list[DeliveryRequestRecord]:
        cancelled: list[DeliveryRequestRecord] = []
        with self._lock:
            for record in list(self.requests.values()):
                if record.is_open and as_utc(record.expires_at) <= as_utc(now):
                    cancelled.append(self._transition(record, DeliveryRequestStatus.CANCELLED))
        return cancelled

    def reset(self) -> None:
        with self._lock:
            self.requests.clear()

    def _transition(
        self,
        record: DeliveryRequestRecord,
        next_status: DeliveryRequestStatus,
        rider_id: str | None = None,
    ) -> DeliveryRequestRecord:
        ensure_valid_transition(record.status, next_status)
        changes: dict = {
            "status": next_status,
            "updated_at": next_timestamp(record.updated_at, self._clock()),
        }
        if rider_id is not None:
            changes["rider_id"] = rider_id
        updated = record.model_copy(update=changes)
        self.requests[record.id] = updated
        return updated
