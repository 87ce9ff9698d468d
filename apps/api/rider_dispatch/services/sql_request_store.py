import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rider_dispatch.integrations.errors import StoreUnavailable
from rider_dispatch.models.delivery_event import DeliveryRequestEvent
from rider_dispatch.models.delivery_request import DeliveryRequest, DeliveryRequestStatus
from rider_dispatch.models.domain import (
    DeliveryRequestRecord,
    Location,
    NewDeliveryRequest,
    as_utc,
    next_timestamp,
    now_utc,
)
from rider_dispatch.services.errors import RequestNotFound
from rider_dispatch.services.state_machine import event_type_for_status


def _parse_id(request_id: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(request_id))
    except (ValueError, TypeError):
        return None


def to_record(row: DeliveryRequest) -> DeliveryRequestRecord:
    return DeliveryRequestRecord(
        id=str(row.id),
        customer_id=row.customer_id,
        customer_phone=row.customer_phone,
        rider_id=row.rider_id,
        pickup=Location(lat=row.pickup_lat, lng=row.pickup_lng, address=row.pickup_address),
        dropoff=Location(lat=row.dropoff_lat, lng=row.dropoff_lng, address=row.dropoff_address),
        item_description=row.item_description,
        total=row.total,
        rider_earning=row.rider_earning,
        commission=row.commission,
        distance_km=row.distance_km,
        status=row.status,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        expires_at=as_utc(row.expires_at),
    )


class SqlRequestStore:
    """Request store over a SQLAlchemy session.

    Claims and cancellations are single ``UPDATE`` statements guarded by
    ``rider_id IS NULL AND status = 'placed'``; the affected row count is the
    outcome. Concurrent claims on one row are serialised by the database.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = now_utc) -> None:
        self.db = db
        self._clock = clock

    def create(self, new_request: NewDeliveryRequest) -> DeliveryRequestRecord:
        created = self._clock()
        row = DeliveryRequest(
            customer_id=new_request.customer_id,
            customer_phone=new_request.customer_phone,
            rider_id=None,
            pickup_lat=new_request.pickup.lat,
            pickup_lng=new_request.pickup.lng,
            pickup_address=new_request.pickup.address,
            dropoff_lat=new_request.dropoff.lat,
            dropoff_lng=new_request.dropoff.lng,
            dropoff_address=new_request.dropoff.address,
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
        try:
            self.db.add(row)
            self.db.flush()
            self._append_event(row.id, DeliveryRequestStatus.PLACED, "Delivery request broadcast")
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as err:
            self.db.rollback()
            raise StoreUnavailable(str(err)) from err
        return to_record(row)

    def get(self, request_id: str) -> DeliveryRequestRecord | None:
        request_uuid = _parse_id(request_id)
        if request_uuid is None:
            return None
        try:
            row = self.db.get(DeliveryRequest, request_uuid, populate_existing=True)
        except SQLAlchemyError as err:
            raise StoreUnavailable(str(err)) from err
        return to_record(row) if row else None

    def list_open(self) -> list[DeliveryRequestRecord]:
        query = (
            select(DeliveryRequest)
            .where(
                DeliveryRequest.status == DeliveryRequestStatus.PLACED,
                DeliveryRequest.rider_id.is_(None),
            )
            .order_by(DeliveryRequest.created_at.desc())
        )
        try:
            rows = list(self.db.scalars(query))
        except SQLAlchemyError as err:
            raise StoreUnavailable(str(err)) from err
        return [to_record(row) for row in rows]

    def claim_if_unassigned(self, request_id: str, rider_id: str) -> DeliveryRequestRecord | None:
        request_uuid = self._require_id(request_id)
        return self._conditional_transition(
            request_uuid,
            DeliveryRequestStatus.ACCEPTED,
            message="Rider accepted request",
            values={"rider_id": rider_id},
            payload={"rider_id": rider_id},
        )

    def cancel_if_unassigned(
        self, request_id: str, now: datetime
    ) -> DeliveryRequestRecord | None:
        request_uuid = self._require_id(request_id)
        return self._conditional_transition(
            request_uuid,
            DeliveryRequestStatus.CANCELLED,
            message="No rider accepted in time",
            due_by=now,
        )

    def cancel_overdue(self, now: datetime) -> list[DeliveryRequestRecord]:
        query = select(DeliveryRequest.id).where(
            DeliveryRequest.status == DeliveryRequestStatus.PLACED,
            DeliveryRequest.rider_id.is_(None),
            DeliveryRequest.expires_at <= now,
        )
        try:
            candidate_ids = list(self.db.scalars(query))
        except SQLAlchemyError as err:
            raise StoreUnavailable(str(err)) from err

        cancelled: list[DeliveryRequestRecord] = []
        for request_uuid in candidate_ids:
            record = self._conditional_transition(
                request_uuid,
                DeliveryRequestStatus.CANCELLED,
                message="Expired by sweep",
                due_by=now,
            )
            if record is not None:
                cancelled.append(record)
        return cancelled

    def list_events(self, request_id: str) -> list[DeliveryRequestEvent]:
        request_uuid = self._require_id(request_id)
        try:
            if self.db.get(DeliveryRequest, request_uuid) is None:
                raise RequestNotFound(request_id)
            events = self.db.scalars(
                select(DeliveryRequestEvent)
                .where(DeliveryRequestEvent.request_id == request_uuid)
                .order_by(DeliveryRequestEvent.created_at.asc())
            )
            return list(events)
        except SQLAlchemyError as err:
            raise StoreUnavailable(str(err)) from err

    def _require_id(self, request_id: str) -> uuid.UUID:
        request_uuid = _parse_id(request_id)
        if request_uuid is None:
            raise RequestNotFound(request_id)
        return request_uuid

    def _conditional_transition(
        self,
        request_uuid: uuid.UUID,
        next_status: DeliveryRequestStatus,
        *,
        message: str,
        values: dict | None = None,
        payload: dict | None = None,
        due_by: datetime | None = None,
    ) -> DeliveryRequestRecord | None:
        conditions = [
            DeliveryRequest.id == request_uuid,
            DeliveryRequest.rider_id.is_(None),
            DeliveryRequest.status == DeliveryRequestStatus.PLACED,
        ]
        if due_by is not None:
            conditions.append(DeliveryRequest.expires_at <= due_by)

        try:
            last_update = self.db.scalar(
                select(DeliveryRequest.updated_at).where(DeliveryRequest.id == request_uuid)
            )
            if last_update is None:
                raise RequestNotFound(str(request_uuid))
            stamp = next_timestamp(last_update, self._clock())

            statement = (
                update(DeliveryRequest)
                .where(*conditions)
                .values(status=next_status, updated_at=stamp, **(values or {}))
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(statement)
            if result.rowcount != 1:
                self.db.rollback()
                if self.db.get(DeliveryRequest, request_uuid) is None:
                    raise RequestNotFound(str(request_uuid))
                return None

            self._append_event(
                request_uuid,
                next_status,
                message,
                {
                    "from_status": DeliveryRequestStatus.PLACED.value,
                    "to_status": next_status.value,
                    **(payload or {}),
                },
                at=stamp,
            )
            self.db.commit()
            row = self.db.get(DeliveryRequest, request_uuid, populate_existing=True)
        except SQLAlchemyError as err:
            self.db.rollback()
            raise StoreUnavailable(str(err)) from err
        return to_record(row)

    def _append_event(
        self,
        request_uuid: uuid.UUID,
        state: DeliveryRequestStatus,
        message: str,
        payload: dict | None = None,
        at: datetime | None = None,
    ) -> None:
        self.db.add(
            DeliveryRequestEvent(
                request_id=request_uuid,
                type=event_type_for_status(state),
                message=message,
                payload=payload or {},
                created_at=at or self._clock(),
            )
        )
