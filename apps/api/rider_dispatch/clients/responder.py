"""Rider-side view of open delivery requests and the accept action."""

import enum
import logging
from dataclasses import dataclass

from rider_dispatch.integrations.errors import NotificationDeliveryFailure, StoreUnavailable
from rider_dispatch.models.domain import DeliveryRequestRecord
from rider_dispatch.observability import log_event
from rider_dispatch.services.coordinator import DispatchCoordinator
from rider_dispatch.services.errors import AlreadyClaimed, RequestNotFound

ALREADY_TAKEN_NOTICE = "This request has already been accepted by another rider"


class AcceptResult(str, enum.Enum):
    OWNED = "owned"
    ALREADY_TAKEN = "already_taken"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class AcceptOutcome:
    result: AcceptResult
    request_id: str
    record: DeliveryRequestRecord | None = None
    notice: str | None = None

    @property
    def owned(self) -> bool:
        return self.result == AcceptResult.OWNED


class ResponderClient:
    """One rider's open-request list.

    ``accept`` is a single attempt. Losing the race is a final answer for that
    request: it is removed from the list and never retried.
    """

    def __init__(self, coordinator: DispatchCoordinator, rider_id: str) -> None:
        self.coordinator = coordinator
        self.rider_id = rider_id
        self._visible: dict[str, DeliveryRequestRecord] = {}
        self.owned: dict[str, DeliveryRequestRecord] = {}
        self.notice: str | None = None

    @property
    def visible_requests(self) -> list[DeliveryRequestRecord]:
        return sorted(self._visible.values(), key=lambda record: record.created_at, reverse=True)

    def refresh(self) -> list[DeliveryRequestRecord]:
        self._visible = {record.id: record for record in self.coordinator.list_open()}
        return self.visible_requests

    def accept(self, request_id: str) -> AcceptOutcome:
        try:
            record = self.coordinator.claim(request_id, self.rider_id)
        except AlreadyClaimed:
            self._visible.pop(request_id, None)
            self.notice = ALREADY_TAKEN_NOTICE
            return AcceptOutcome(
                AcceptResult.ALREADY_TAKEN, request_id, notice=ALREADY_TAKEN_NOTICE
            )
        except RequestNotFound:
            self._visible.pop(request_id, None)
            return AcceptOutcome(AcceptResult.NOT_FOUND, request_id)
        except NotificationDeliveryFailure as err:
            # The claim committed; only the fan-out to watchers failed.
            record = err.record
            log_event(
                "responder_claim_committed_without_notification",
                delivery_request_id=request_id,
                rider_id=self.rider_id,
                level=logging.WARNING,
            )
            if record is None:
                record = self.coordinator.get(request_id)
        except StoreUnavailable as err:
            self.notice = str(err)
            return AcceptOutcome(AcceptResult.UNAVAILABLE, request_id, notice=str(err))

        self._visible.pop(request_id, None)
        self.owned[request_id] = record
        self.notice = None
        return AcceptOutcome(AcceptResult.OWNED, request_id, record=record)

    def dismiss_notice(self) -> None:
        self.notice = None
