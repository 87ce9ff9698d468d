from fastapi import Depends
from sqlalchemy.orm import Session

from rider_dispatch.config import settings
from rider_dispatch.db.session import get_db
from rider_dispatch.services.coordinator import DispatchCoordinator
from rider_dispatch.services.notification_bus import ChangeNotificationBus, get_notification_bus
from rider_dispatch.services.presence_service import SqlPresenceDirectory
from rider_dispatch.services.pricing import PricingPolicy, get_pricing_policy
from rider_dispatch.services.sql_request_store import SqlRequestStore


def get_request_store(db: Session = Depends(get_db)) -> SqlRequestStore:
    return SqlRequestStore(db)


def get_coordinator(
    store: SqlRequestStore = Depends(get_request_store),
    bus: ChangeNotificationBus = Depends(get_notification_bus),
) -> DispatchCoordinator:
    return DispatchCoordinator(store, bus)


def get_presence_directory(db: Session = Depends(get_db)) -> SqlPresenceDirectory:
    return SqlPresenceDirectory(db, stale_after_s=settings.presence_stale_after_s)


def get_pricing() -> PricingPolicy:
    return get_pricing_policy()
