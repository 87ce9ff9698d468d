"""Customer-side state machine for broadcasting a delivery request.

Steps: pickup -> dropoff -> details -> waiting -> assigned | expired.

Only two things move the machine out of ``waiting``: the local countdown,
which can only lead to ``expired``, and the store (a change notification or
the answer to ``expire``), which is the only way into ``assigned``.
``assigned`` always wins, including over an ``expired`` the countdown already
declared.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from rider_dispatch.config import settings
from rider_dispatch.integrations.errors import NotificationDeliveryFailure, StoreUnavailable
from rider_dispatch.models.delivery_request import DeliveryRequestStatus
from rider_dispatch.models.domain import (
    DeliveryRequestRecord,
    Location,
    NewDeliveryRequest,
    Quote,
    RiderPublicProfile,
)
from rider_dispatch.observability import log_event
from rider_dispatch.services.coordinator import DispatchCoordinator
from rider_dispatch.services.errors import BroadcastBlocked, InvalidTransition
from rider_dispatch.services.notification_bus import Subscription
from rider_dispatch.services.presence_service import PresenceDirectory
from rider_dispatch.services.pricing import PricingPolicy

NO_RESPONSE_IN_TIME = "no_response_in_time"
EXPIRE_UNCONFIRMED = "expire_unconfirmed"
STORE_UNAVAILABLE = "store_unavailable"


class RequesterStep(str, enum.Enum):
    PICKUP = "pickup"
    DROPOFF = "dropoff"
    DETAILS = "details"
    WAITING = "waiting"
    ASSIGNED = "assigned"
    EXPIRED = "expired"


@dataclass(frozen=True)
class RequesterView:
    step: RequesterStep
    request_id: str | None
    seconds_remaining: float | None
    pickup: Location | None
    dropoff: Location | None
    quote: Quote | None
    assigned_rider: RiderPublicProfile | None
    online_riders: int
    can_broadcast: bool
    failure: str | None
    expire_pending: bool


class RequesterClient:
    def __init__(
        self,
        coordinator: DispatchCoordinator,
        presence: PresenceDirectory,
        pricing: PricingPolicy,
        *,
        customer_id: str | None = None,
        customer_phone: str | None = None,
        timeout_s: float | None = None,
        expire_max_retries: int | None = None,
        expire_backoff_s: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.coordinator = coordinator
        self.presence = presence
        self.pricing = pricing
        self.customer_id = customer_id
        self.customer_phone = customer_phone
        self.timeout_s = settings.request_timeout_s if timeout_s is None else timeout_s
        self.expire_max_retries = (
            settings.expire_max_retries if expire_max_retries is None else expire_max_retries
        )
        self.expire_backoff_s = (
            settings.expire_backoff_s if expire_backoff_s is None else expire_backoff_s
        )
        self._sleep = sleep
        self._clock = clock

        self.step = RequesterStep.PICKUP
        self.pickup: Location | None = None
        self.dropoff: Location | None = None
        self.quote: Quote | None = None
        self.item_description = ""

        self.record: DeliveryRequestRecord | None = None
        self.assigned_rider: RiderPublicProfile | None = None
        self.failure: str | None = None
        self.expire_pending = False

        self._deadline: float | None = None
        self._subscription: Subscription | None = None
        self._countdown: asyncio.Task | None = None
        self._settled: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def request_id(self) -> str | None:
        return self.record.id if self.record else None

    # Route selection

    def select_pickup(self, location: Location) -> None:
        self._require_step(RequesterStep.PICKUP, "select_pickup")
        self.pickup = location

    def select_dropoff(self, location: Location) -> None:
        self._require_step(RequesterStep.DROPOFF, "select_dropoff")
        self.dropoff = location

    def set_item_description(self, description: str) -> None:
        if self.step not in (RequesterStep.DETAILS, RequesterStep.EXPIRED):
            raise InvalidTransition(self.step.value, "set_item_description")
        self.item_description = description

    def next(self) -> RequesterStep:
        if self.step == RequesterStep.PICKUP:
            if self.pickup is None:
                raise BroadcastBlocked("Select a pickup location first")
            self.step = RequesterStep.DROPOFF
        elif self.step == RequesterStep.DROPOFF:
            if self.dropoff is None:
                raise BroadcastBlocked("Select a dropoff location first")
            self.quote = self.pricing.quote(self.pickup, self.dropoff)
            self.step = RequesterStep.DETAILS
        else:
            raise InvalidTransition(self.step.value, "next")
        return self.step

    async def back(self) -> RequesterStep:
        if self.step == RequesterStep.DROPOFF:
            self.step = RequesterStep.PICKUP
        elif self.step == RequesterStep.DETAILS:
            self.step = RequesterStep.DROPOFF
        elif self.step == RequesterStep.EXPIRED:
            await self.abandon()
        else:
            raise InvalidTransition(self.step.value, "back")
        return self.step

    # Broadcast and waiting

    def online_riders(self) -> int:
        return len(self.presence.list_online_pool())

    def can_broadcast(self) -> bool:
        return self._broadcast_blocker() is None

    async def broadcast(self) -> RequesterView:
        self._require_step(RequesterStep.DETAILS, "broadcast")
        await self._start_request()
        return self.view()

    async def retry(self) -> RequesterView:
        """Broadcast again with a fresh request and a fresh deadline."""
        self._require_step(RequesterStep.EXPIRED, "retry")
        await self._confirm_previous_expired()
        if self.step == RequesterStep.ASSIGNED:
            return self.view()
        self._release_request()
        await self._start_request()
        return self.view()

    async def abandon(self) -> RequesterView:
        self._require_step(RequesterStep.EXPIRED, "abandon")
        await self._confirm_previous_expired()
        if self.step == RequesterStep.ASSIGNED:
            return self.view()
        self._release_request()
        self.step = RequesterStep.DETAILS
        self.failure = None
        return self.view()

    async def wait(self) -> RequesterView:
        """Suspend until the current request is assigned or expired."""
        if self._settled is not None:
            await self._settled.wait()
        return self.view()

    def apply_notification(self, record: DeliveryRequestRecord) -> None:
        """Apply a committed record state. Safe to call repeatedly with the same state."""
        if self.record is None or record.id != self.record.id:
            return
        if self.step == RequesterStep.ASSIGNED:
            return

        if record.is_assigned:
            self._become_assigned(record)
        elif (
            record.status == DeliveryRequestStatus.CANCELLED
            and self.step == RequesterStep.WAITING
        ):
            self.record = record
            self.expire_pending = False
            self._become_expired(NO_RESPONSE_IN_TIME)

    def close(self) -> None:
        self._release_request()

    def view(self) -> RequesterView:
        remaining = None
        if self.step == RequesterStep.WAITING and self._deadline is not None:
            remaining = max(0.0, self._deadline - self._clock())
        return RequesterView(
            step=self.step,
            request_id=self.request_id,
            seconds_remaining=remaining,
            pickup=self.pickup,
            dropoff=self.dropoff,
            quote=self.quote,
            assigned_rider=self.assigned_rider,
            online_riders=self.online_riders(),
            can_broadcast=self.can_broadcast(),
            failure=self.failure,
            expire_pending=self.expire_pending,
        )

    # Internals

    def _require_step(self, step: RequesterStep, action: str) -> None:
        if self.step != step:
            raise InvalidTransition(self.step.value, action)

    def _broadcast_blocker(self) -> str | None:
        if self.step not in (RequesterStep.DETAILS, RequesterStep.EXPIRED):
            return "Request already in progress"
        if self.pickup is None or self.dropoff is None or self.quote is None:
            return "Select pickup and dropoff first"
        if not self.item_description.strip():
            return "Describe the item to deliver"
        if self.online_riders() < 1:
            return "No riders available"
        return None

    async def _start_request(self) -> None:
        blocker = self._broadcast_blocker()
        if blocker is not None:
            raise BroadcastBlocked(blocker)

        self._loop = asyncio.get_running_loop()
        try:
            record = self.coordinator.create_request(
                NewDeliveryRequest(
                    customer_id=self.customer_id,
                    customer_phone=self.customer_phone,
                    pickup=self.pickup,
                    dropoff=self.dropoff,
                    item_description=self.item_description.strip(),
                    quote=self.quote,
                    timeout_s=self.timeout_s,
                )
            )
        except StoreUnavailable:
            self.failure = STORE_UNAVAILABLE
            raise

        self.record = record
        self.assigned_rider = None
        self.failure = None
        self.expire_pending = False
        self._settled = asyncio.Event()
        self._deadline = self._clock() + self.timeout_s
        self.step = RequesterStep.WAITING
        self._subscription = self.coordinator.bus.subscribe(record.id, self._on_change)
        self._countdown = asyncio.create_task(
            self._run_countdown(record.id), name=f"countdown-{record.id}"
        )
        log_event("requester_waiting", delivery_request_id=record.id)

        # A claim may have committed before the subscription existed.
        current = self.coordinator.store.get(record.id)
        if current is not None:
            self.apply_notification(current)

    def _on_change(self, record: DeliveryRequestRecord) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if self._loop is not None and running is not self._loop and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self.apply_notification, record)
        else:
            self.apply_notification(record)

    async def _run_countdown(self, request_id: str) -> None:
        await self._sleep(self.timeout_s)
        if self.step != RequesterStep.WAITING or self.request_id != request_id:
            return
        await self._expire_current()

    async def _expire_current(self) -> None:
        record = await self._expire_with_retries()
        if record is None:
            if self.step == RequesterStep.WAITING:
                self.expire_pending = True
                self._become_expired(EXPIRE_UNCONFIRMED)
            return
        self._apply_expire_result(record)

    async def _expire_with_retries(self) -> DeliveryRequestRecord | None:
        request_id = self.request_id
        for attempt in range(self.expire_max_retries + 1):
            try:
                return self.coordinator.expire(request_id)
            except NotificationDeliveryFailure as err:
                # The cancellation committed; only fan-out to other watchers failed.
                log_event(
                    f"requester_expire_notify_failed: {err}",
                    delivery_request_id=request_id,
                    level=logging.WARNING,
                )
                return err.record or self._reread(request_id)
            except StoreUnavailable as err:
                log_event(
                    f"requester_expire_failed: {err}",
                    delivery_request_id=request_id,
                    level=logging.WARNING,
                )
                if attempt >= self.expire_max_retries:
                    return None
                await self._sleep(self.expire_backoff_s * (2**attempt))
        return None

    def _reread(self, request_id: str) -> DeliveryRequestRecord | None:
        try:
            return self.coordinator.get(request_id)
        except StoreUnavailable:
            return None

    def _apply_expire_result(self, record: DeliveryRequestRecord) -> None:
        if record.is_assigned:
            self._become_assigned(record)
            return

        self.record = record
        if record.status == DeliveryRequestStatus.CANCELLED:
            self.expire_pending = False
            if self.step == RequesterStep.WAITING or (
                self.step == RequesterStep.EXPIRED and self.failure != NO_RESPONSE_IN_TIME
            ):
                self._become_expired(NO_RESPONSE_IN_TIME)
        else:
            # Store clock has not reached expires_at yet; the request is still claimable.
            self.expire_pending = True
            if self.step == RequesterStep.WAITING:
                self._become_expired(NO_RESPONSE_IN_TIME)

    async def _confirm_previous_expired(self) -> None:
        if not self.expire_pending:
            return
        record = await self._expire_with_retries()
        if record is None:
            raise StoreUnavailable("Previous request could not be cancelled")
        self._apply_expire_result(record)
        if self.step != RequesterStep.ASSIGNED and self.expire_pending:
            raise StoreUnavailable("Previous request is still open")

    def _become_assigned(self, record: DeliveryRequestRecord) -> None:
        self.record = record
        self.assigned_rider = self._rider_profile(record)
        was_expired = self.step == RequesterStep.EXPIRED
        self.step = RequesterStep.ASSIGNED
        self.failure = None
        self.expire_pending = False
        self._stop_countdown()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._settled is not None:
            self._settled.set()
        log_event(
            "requester_corrected_to_assigned" if was_expired else "requester_assigned",
            delivery_request_id=record.id,
            rider_id=record.rider_id,
        )

    def _rider_profile(self, record: DeliveryRequestRecord) -> RiderPublicProfile:
        try:
            profile = self.presence.get_public_profile(record.rider_id)
        except StoreUnavailable as err:
            log_event(
                f"requester_rider_profile_unavailable: {err}",
                delivery_request_id=record.id,
                rider_id=record.rider_id,
                level=logging.WARNING,
            )
            profile = None
        return profile or RiderPublicProfile(id=record.rider_id, name="Rider")

    def _become_expired(self, failure: str) -> None:
        self.step = RequesterStep.EXPIRED
        self.failure = failure
        if self._settled is not None:
            self._settled.set()
        log_event(f"requester_expired: {failure}", delivery_request_id=self.request_id)

    def _stop_countdown(self) -> None:
        task = self._countdown
        self._countdown = None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    def _release_request(self) -> None:
        self._stop_countdown()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._deadline = None
