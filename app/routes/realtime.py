"""
WebSocket endpoint for live collection snapshots.

Browsers cannot set an Authorization header on a WebSocket, so the access
token travels as the `token` query parameter.
"""

import asyncio

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from app.auth.verify import check_portal_access, resolve_user, restricted_account_error, verify_jwt
from app.infrastructure.observability.logging import get_logger
from app.services.realtime_service import LiveSession

logger = get_logger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def live_updates(websocket: WebSocket, token: str | None = None):
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        user = await resolve_user(await run_in_threadpool(verify_jwt, token))
        check_portal_access(user)
        if user.is_restricted:
            raise restricted_account_error()
    except HTTPException as e:
        logger.warning("Rejected live connection", status_code=e.status_code)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    session = LiveSession(user)
    session.open()

    async def drain_client() -> None:
        # Clients only send keep-alives; reading detects the disconnect
        while True:
            await websocket.receive_text()

    reader = asyncio.create_task(drain_client())
    get_event: asyncio.Task | None = None
    try:
        while True:
            get_event = asyncio.create_task(session.queue.get())
            done, _ = await asyncio.wait({get_event, reader}, return_when=asyncio.FIRST_COMPLETED)
            if reader in done:
                reader.result()
            await websocket.send_json(get_event.result())
    except WebSocketDisconnect:
        logger.info("Live client disconnected", user_id=user.id)
    finally:
        if get_event is not None:
            get_event.cancel()
        reader.cancel()
        session.close()
