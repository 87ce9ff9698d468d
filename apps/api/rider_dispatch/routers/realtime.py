import asyncio

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status

from rider_dispatch.auth.dependencies import CUSTOMER, auth_context_from_token
from rider_dispatch.config import settings
from rider_dispatch.db.session import SessionLocal
from rider_dispatch.models.domain import DeliveryRequestRecord
from rider_dispatch.observability import log_event, metrics_store
from rider_dispatch.routers.delivery_requests import rider_card
from rider_dispatch.schemas.delivery_request import DeliveryRequestResponse
from rider_dispatch.services.notification_bus import get_notification_bus
from rider_dispatch.services.presence_service import SqlPresenceDirectory
from rider_dispatch.services.sql_request_store import SqlRequestStore

router = APIRouter(tags=["realtime"])


def _message(record: DeliveryRequestRecord) -> dict:
    rider = None
    if record.is_assigned:
        with SessionLocal() as db:
            directory = SqlPresenceDirectory(db, stale_after_s=settings.presence_stale_after_s)
            rider = rider_card(record, directory)
    return DeliveryRequestResponse.from_record(record, rider=rider).model_dump(mode="json")


@router.websocket("/api/v1/delivery-requests/{request_id}/changes")
async def delivery_request_changes(
    websocket: WebSocket,
    request_id: str,
    token: str | None = None,
) -> None:
    """Stream committed states of one request until it leaves ``placed``.

    The current state is sent first, so a change that committed before the
    connection was opened is never missed.
    """
    try:
        auth = auth_context_from_token(token or "")
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[DeliveryRequestRecord] = asyncio.Queue()
    subscription = get_notification_bus().subscribe(
        request_id, lambda record: loop.call_soon_threadsafe(queue.put_nowait, record)
    )
    try:
        with SessionLocal() as db:
            current = SqlRequestStore(db).get(request_id)
        if current is None or (auth.role == CUSTOMER and current.customer_id != auth.user_id):
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await websocket.accept()
        metrics_store.increment("realtime_connections_total")
        log_event("realtime_subscribed", delivery_request_id=request_id)

        record = current
        await websocket.send_json(_message(record))
        while record.is_open:
            record = await queue.get()
            await websocket.send_json(_message(record))
        await websocket.close()
    except WebSocketDisconnect:
        log_event("realtime_disconnected", delivery_request_id=request_id)
    finally:
        subscription.unsubscribe()
