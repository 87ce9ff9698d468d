from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rider_dispatch.integrations.errors import StoreUnavailable
from rider_dispatch.models.domain import RiderPublicProfile, now_utc
from rider_dispatch.models.rider import Rider
from rider_dispatch.observability import log_event
from rider_dispatch.services.errors import RiderNotFound


class PresenceDirectory(Protocol):
    def list_online_pool(self) -> set[str]: ...

    def get_public_profile(self, rider_id: str) -> RiderPublicProfile | None: ...


def public_profile(rider: Rider) -> RiderPublicProfile:
    return RiderPublicProfile(
        id=rider.id,
        name=rider.name,
        vehicle_type=rider.vehicle_type or "Bike",
        image=rider.image,
    )


class SqlPresenceDirectory:
    """Rider presence backed by the ``riders`` table.

    A rider counts as online while ``is_online`` and ``is_active`` hold and the
    last heartbeat is no older than ``stale_after_s``.
    """

    def __init__(
        self,
        db: Session,
        stale_after_s: int,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.db = db
        self.stale_after_s = stale_after_s
        self._clock = clock

    def _online_filter(self):
        cutoff = self._clock() - timedelta(seconds=self.stale_after_s)
        return (
            Rider.is_online.is_(True),
            Rider.is_active.is_(True),
            Rider.last_seen_at.is_not(None),
            Rider.last_seen_at >= cutoff,
        )

    def list_online_pool(self) -> set[str]:
        try:
            return set(self.db.scalars(select(Rider.id).where(*self._online_filter())))
        except SQLAlchemyError as err:
            raise StoreUnavailable(str(err)) from err

    def count_online(self) -> int:
        try:
            return int(
                self.db.scalar(select(func.count(Rider.id)).where(*self._online_filter())) or 0
            )
        except SQLAlchemyError as err:
            raise StoreUnavailable(str(err)) from err

    def _get_rider(self, rider_id: str) -> Rider | None:
        try:
            return self.db.get(Rider, rider_id)
        except SQLAlchemyError as err:
            raise StoreUnavailable(str(err)) from err

    def get_public_profile(self, rider_id: str) -> RiderPublicProfile | None:
        rider = self._get_rider(rider_id)
        return public_profile(rider) if rider else None

    def set_presence(self, rider_id: str, online: bool) -> Rider:
        rider = self._get_rider(rider_id)
        if rider is None:
            raise RiderNotFound(rider_id)

        rider.is_online = online
        rider.last_seen_at = self._clock()
        try:
            self.db.commit()
            self.db.refresh(rider)
        except SQLAlchemyError as err:
            self.db.rollback()
            raise StoreUnavailable(str(err)) from err
        log_event(
            "rider_presence_online" if online else "rider_presence_offline", rider_id=rider_id
        )
        return rider

    def register_rider(
        self,
        rider_id: str,
        name: str,
        *,
        phone: str | None = None,
        vehicle_type: str = "Bike",
        image: str | None = None,
    ) -> Rider:
        rider = self._get_rider(rider_id)
        if rider is None:
            rider = Rider(id=rider_id, name=name, is_online=False, is_active=True)
            self.db.add(rider)
        rider.name = name
        rider.phone = phone
        rider.vehicle_type = vehicle_type
        rider.image = image
        try:
            self.db.commit()
            self.db.refresh(rider)
        except SQLAlchemyError as err:
            self.db.rollback()
            raise StoreUnavailable(str(err)) from err
        return rider
