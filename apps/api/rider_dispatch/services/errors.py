class DispatchError(Exception):
    """Base class for expected dispatch-race outcomes raised to callers."""


class RequestNotFound(DispatchError):
    def __init__(self, request_id: str) -> None:
        super().__init__(f"Delivery request {request_id} not found")
        self.request_id = request_id


class AlreadyClaimed(DispatchError):
    """The request is no longer available: another rider won or it was cancelled."""

    def __init__(self, request_id: str) -> None:
        super().__init__("Request no longer available")
        self.request_id = request_id


class InvalidTransition(DispatchError):
    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Invalid state transition: {current} -> {requested}")
        self.current = current
        self.requested = requested


class RiderNotFound(DispatchError):
    def __init__(self, rider_id: str) -> None:
        super().__init__(f"Rider {rider_id} not found")
        self.rider_id = rider_id


class BroadcastBlocked(DispatchError):
    """The details -> waiting transition is not currently allowed."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
