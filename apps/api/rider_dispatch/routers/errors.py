from fastapi import HTTPException, status

from rider_dispatch.integrations.errors import IntegrationError
from rider_dispatch.services.errors import (
    AlreadyClaimed,
    BroadcastBlocked,
    DispatchError,
    InvalidTransition,
    RequestNotFound,
    RiderNotFound,
)


def translate_integration_error(err: IntegrationError) -> HTTPException:
    detail = {"service": err.service, "code": err.code, "message": err.message}
    if err.retryable:
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)


def translate_dispatch_error(err: DispatchError) -> HTTPException:
    if isinstance(err, (RequestNotFound, RiderNotFound)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(err))
    if isinstance(err, (AlreadyClaimed, InvalidTransition, BroadcastBlocked)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(err))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(err))
