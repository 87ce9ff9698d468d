import logging

from fastapi import APIRouter, Depends, HTTPException, status

from rider_dispatch.auth.dependencies import (
    CUSTOMER,
    AuthContext,
    get_auth_context,
    require_backoffice,
    require_customer,
    require_rider,
)
from rider_dispatch.config import settings
from rider_dispatch.dependencies import (
    get_coordinator,
    get_presence_directory,
    get_pricing,
    get_request_store,
)
from rider_dispatch.integrations.errors import (
    IntegrationError,
    NotificationDeliveryFailure,
    StoreUnavailable,
)
from rider_dispatch.models.domain import DeliveryRequestRecord, NewDeliveryRequest
from rider_dispatch.observability import log_event, observe_timing
from rider_dispatch.routers.errors import translate_dispatch_error, translate_integration_error
from rider_dispatch.schemas.delivery_request import (
    DeliveryRequestCreate,
    DeliveryRequestListResponse,
    DeliveryRequestResponse,
    ExpireStaleResponse,
    QuoteRequest,
    QuoteResponse,
)
from rider_dispatch.schemas.events import DeliveryEventListResponse, DeliveryEventResponse
from rider_dispatch.schemas.rider import RiderProfileResponse
from rider_dispatch.services.coordinator import DispatchCoordinator
from rider_dispatch.services.errors import DispatchError
from rider_dispatch.services.presence_service import PresenceDirectory, SqlPresenceDirectory
from rider_dispatch.services.pricing import PricingPolicy
from rider_dispatch.services.sql_request_store import SqlRequestStore

router = APIRouter(prefix="/api/v1/delivery-requests", tags=["delivery-requests"])


def _ensure_can_view(auth: AuthContext, record: DeliveryRequestRecord) -> None:
    if auth.role == CUSTOMER and record.customer_id != auth.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your request")


def _ensure_requester_or_backoffice(auth: AuthContext, record: DeliveryRequestRecord) -> None:
    if auth.role != CUSTOMER and not auth.is_backoffice:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
    _ensure_can_view(auth, record)


def rider_card(
    record: DeliveryRequestRecord,
    presence: PresenceDirectory,
) -> RiderProfileResponse | None:
    """Public card of the assigned rider.

    The record is already committed when this runs, so a failed profile read
    drops the card instead of failing the response.
    """
    if not record.is_assigned:
        return None
    try:
        profile = presence.get_public_profile(record.rider_id)
    except StoreUnavailable as err:
        log_event(
            f"rider_profile_unavailable: {err}",
            delivery_request_id=record.id,
            rider_id=record.rider_id,
            level=logging.WARNING,
        )
        return None
    if profile is None:
        return None
    return RiderProfileResponse(**profile.model_dump())


def _to_response(
    record: DeliveryRequestRecord,
    presence: PresenceDirectory,
) -> DeliveryRequestResponse:
    return DeliveryRequestResponse.from_record(record, rider=rider_card(record, presence))


def _load(coordinator: DispatchCoordinator, request_id: str) -> DeliveryRequestRecord:
    try:
        return coordinator.get(request_id)
    except DispatchError as err:
        raise translate_dispatch_error(err) from err
    except IntegrationError as err:
        raise translate_integration_error(err) from err


@router.post("/quote", response_model=QuoteResponse, summary="Quote distance and charges")
def quote_endpoint(
    payload: QuoteRequest,
    pricing: PricingPolicy = Depends(get_pricing),
    _auth: AuthContext = Depends(require_customer),
) -> QuoteResponse:
    quote = pricing.quote(payload.pickup.to_location(), payload.dropoff.to_location())
    return QuoteResponse(**quote.model_dump())


@router.post(
    "",
    response_model=DeliveryRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Broadcast a delivery request to online riders",
)
def create_delivery_request_endpoint(
    payload: DeliveryRequestCreate,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
    presence: SqlPresenceDirectory = Depends(get_presence_directory),
    pricing: PricingPolicy = Depends(get_pricing),
    auth: AuthContext = Depends(require_customer),
) -> DeliveryRequestResponse:
    item_description = payload.item_description.strip()
    if not item_description:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="item_description must not be blank",
        )

    try:
        if presence.count_online() < 1:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No riders available")

        pickup = payload.pickup.to_location()
        dropoff = payload.dropoff.to_location()
        record = coordinator.create_request(
            NewDeliveryRequest(
                customer_id=auth.user_id,
                customer_phone=payload.customer_phone,
                pickup=pickup,
                dropoff=dropoff,
                item_description=item_description,
                quote=pricing.quote(pickup, dropoff),
                timeout_s=settings.request_timeout_s,
            )
        )
    except IntegrationError as err:
        raise translate_integration_error(err) from err

    return _to_response(record, presence)


@router.get(
    "/open",
    response_model=DeliveryRequestListResponse,
    summary="List open requests, newest first",
)
def list_open_endpoint(
    coordinator: DispatchCoordinator = Depends(get_coordinator),
    _auth: AuthContext = Depends(require_rider),
) -> DeliveryRequestListResponse:
    try:
        records = coordinator.list_open()
    except IntegrationError as err:
        raise translate_integration_error(err) from err
    return DeliveryRequestListResponse(
        items=[DeliveryRequestResponse.from_record(record) for record in records]
    )


@router.post(
    "/expire-stale",
    response_model=ExpireStaleResponse,
    summary="Cancel every overdue unclaimed request",
)
def expire_stale_endpoint(
    coordinator: DispatchCoordinator = Depends(get_coordinator),
    _auth: AuthContext = Depends(require_backoffice),
) -> ExpireStaleResponse:
    try:
        with observe_timing("delivery_request_sweep_seconds"):
            expired = coordinator.expire_stale()
    except IntegrationError as err:
        raise translate_integration_error(err) from err
    return ExpireStaleResponse(
        expired=len(expired),
        items=[DeliveryRequestResponse.from_record(record) for record in expired],
    )


@router.get("/{request_id}", response_model=DeliveryRequestResponse, summary="Get request")
def get_delivery_request_endpoint(
    request_id: str,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
    presence: SqlPresenceDirectory = Depends(get_presence_directory),
    auth: AuthContext = Depends(get_auth_context),
) -> DeliveryRequestResponse:
    record = _load(coordinator, request_id)
    _ensure_can_view(auth, record)
    return _to_response(record, presence)


@router.get(
    "/{request_id}/events",
    response_model=DeliveryEventListResponse,
    summary="Request timeline",
)
def list_events_endpoint(
    request_id: str,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
    store: SqlRequestStore = Depends(get_request_store),
    auth: AuthContext = Depends(get_auth_context),
) -> DeliveryEventListResponse:
    record = _load(coordinator, request_id)
    _ensure_requester_or_backoffice(auth, record)
    try:
        events = store.list_events(request_id)
    except DispatchError as err:
        raise translate_dispatch_error(err) from err
    except IntegrationError as err:
        raise translate_integration_error(err) from err
    return DeliveryEventListResponse(
        items=[DeliveryEventResponse.model_validate(event) for event in events]
    )


@router.post(
    "/{request_id}/claim",
    response_model=DeliveryRequestResponse,
    summary="Claim a request; first rider wins",
    responses={status.HTTP_409_CONFLICT: {"description": "Request no longer available"}},
)
def claim_endpoint(
    request_id: str,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
    presence: SqlPresenceDirectory = Depends(get_presence_directory),
    auth: AuthContext = Depends(require_rider),
) -> DeliveryRequestResponse:
    try:
        record = coordinator.claim(request_id, auth.user_id)
    except NotificationDeliveryFailure as err:
        # Committed claim; watchers will converge through expire or a re-read.
        record = err.record or _load(coordinator, request_id)
    except DispatchError as err:
        raise translate_dispatch_error(err) from err
    except IntegrationError as err:
        raise translate_integration_error(err) from err
    return _to_response(record, presence)


@router.post(
    "/{request_id}/expire",
    response_model=DeliveryRequestResponse,
    summary="Cancel the request if its deadline passed unclaimed",
)
def expire_endpoint(
    request_id: str,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
    presence: SqlPresenceDirectory = Depends(get_presence_directory),
    auth: AuthContext = Depends(get_auth_context),
) -> DeliveryRequestResponse:
    _ensure_requester_or_backoffice(auth, _load(coordinator, request_id))
    try:
        record = coordinator.expire(request_id)
    except NotificationDeliveryFailure as err:
        record = err.record or _load(coordinator, request_id)
    except DispatchError as err:
        raise translate_dispatch_error(err) from err
    except IntegrationError as err:
        raise translate_integration_error(err) from err
    return _to_response(record, presence)
