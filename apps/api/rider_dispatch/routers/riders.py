from fastapi import APIRouter, Depends

from rider_dispatch.auth.dependencies import AuthContext, get_auth_context, require_rider
from rider_dispatch.dependencies import get_presence_directory
from rider_dispatch.integrations.errors import IntegrationError
from rider_dispatch.routers.errors import translate_dispatch_error, translate_integration_error
from rider_dispatch.schemas.rider import (
    OnlineRidersResponse,
    PresenceResponse,
    PresenceUpdateRequest,
    RiderProfileResponse,
    RiderRegistrationRequest,
)
from rider_dispatch.services.errors import DispatchError, RiderNotFound
from rider_dispatch.services.presence_service import SqlPresenceDirectory, public_profile

router = APIRouter(prefix="/api/v1/riders", tags=["riders"])


@router.put("/me", response_model=RiderProfileResponse, summary="Register or update own profile")
def register_rider_endpoint(
    payload: RiderRegistrationRequest,
    presence: SqlPresenceDirectory = Depends(get_presence_directory),
    auth: AuthContext = Depends(require_rider),
) -> RiderProfileResponse:
    try:
        rider = presence.register_rider(
            auth.user_id,
            payload.name,
            phone=payload.phone,
            vehicle_type=payload.vehicle_type,
            image=payload.image,
        )
    except IntegrationError as err:
        raise translate_integration_error(err) from err
    return RiderProfileResponse(**public_profile(rider).model_dump())


@router.put("/me/presence", response_model=PresenceResponse, summary="Go online or offline")
def update_presence_endpoint(
    payload: PresenceUpdateRequest,
    presence: SqlPresenceDirectory = Depends(get_presence_directory),
    auth: AuthContext = Depends(require_rider),
) -> PresenceResponse:
    try:
        rider = presence.set_presence(auth.user_id, payload.online)
    except DispatchError as err:
        raise translate_dispatch_error(err) from err
    except IntegrationError as err:
        raise translate_integration_error(err) from err
    return PresenceResponse.model_validate(rider)


@router.get("/online", response_model=OnlineRidersResponse, summary="Online rider count")
def online_riders_endpoint(
    presence: SqlPresenceDirectory = Depends(get_presence_directory),
    _auth: AuthContext = Depends(get_auth_context),
) -> OnlineRidersResponse:
    try:
        return OnlineRidersResponse(online=presence.count_online())
    except IntegrationError as err:
        raise translate_integration_error(err) from err


@router.get(
    "/{rider_id}/profile",
    response_model=RiderProfileResponse,
    summary="Public rider profile",
)
def rider_profile_endpoint(
    rider_id: str,
    presence: SqlPresenceDirectory = Depends(get_presence_directory),
    _auth: AuthContext = Depends(get_auth_context),
) -> RiderProfileResponse:
    try:
        profile = presence.get_public_profile(rider_id)
    except IntegrationError as err:
        raise translate_integration_error(err) from err
    if profile is None:
        raise translate_dispatch_error(RiderNotFound(rider_id))
    return RiderProfileResponse(**profile.model_dump())
