import asyncio
import contextlib
import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tableside.api.deps import SESSION_COOKIE, LocalStoreDep, StoreDep
from tableside.core.config import settings
from tableside.core.security import decode_session_token
from tableside.realtime.manager import manager
from tableside.schemas.auth import SessionUser
from tableside.services.notifications import Toast
from tableside.services.session import DinerSession

router = APIRouter(tags=["ws"])
logger = logging.getLogger("tableside.ws")

WS_PING_TIMEOUT = 30  # seconds to wait for a ping to go out before closing


def _token_from(websocket: WebSocket) -> str | None:
    auth_header = websocket.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.removeprefix("Bearer ").strip()
    if websocket.query_params.get("token"):
        return websocket.query_params["token"]
    return websocket.cookies.get(SESSION_COOKIE)


async def _pump(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        frame = await outbox.get()
        await websocket.send_json(frame)


@router.websocket("/ws/session")
async def session_ws(websocket: WebSocket, store: StoreDep, local: LocalStoreDep) -> None:
    await websocket.accept()

    # ── Auth ──────────────────────────────────────────────────────────────
    token = _token_from(websocket)
    payload = decode_session_token(token) if token else None
    if not payload:
        logger.warning("WS auth required")
        await websocket.close(code=1008)
        return
    profile = await store.get_user(payload["sub"])
    if profile is None:
        logger.warning("WS user missing phone=%s", payload["sub"])
        await websocket.close(code=1008)
        return

    # ── Session wiring ────────────────────────────────────────────────────
    outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    session = DinerSession(store, local, profile.phone_number)
    session.add_state_observer(lambda view: outbox.put_nowait({"type": "state", "data": view}))
    session.add_toast_observer(
        lambda toast: outbox.put_nowait({"type": "toast", "data": toast.model_dump(mode="json")})
    )
    await session.load()
    stored_table = session.user.table_number if session.user else None
    user = SessionUser(
        phone_number=profile.phone_number,
        name=profile.name,
        photo_url=profile.photo_url,
        table_number=websocket.query_params.get("table") or stored_table,
    )
    await session.login(user)
    room = session.room
    await manager.connect(room, websocket, profile.phone_number)
    sender = asyncio.create_task(_pump(websocket, outbox))
    logger.info("WS session open phone=%s room=%s", profile.phone_number, room)

    # ── Message loop with idle ping ───────────────────────────────────────
    try:
        while True:
            try:
                raw = await asyncio.wait_for(websocket.receive_text(), timeout=settings.ws_ping_interval_s)
            except asyncio.TimeoutError:
                try:
                    await asyncio.wait_for(websocket.send_text('{"type":"ping"}'), timeout=WS_PING_TIMEOUT)
                except (asyncio.TimeoutError, RuntimeError):
                    logger.info("WS idle timeout, closing phone=%s", profile.phone_number)
                    break
                continue

            try:
                frame = json.loads(raw)
            except ValueError:
                outbox.put_nowait({"type": "error", "detail": "Frames must be JSON objects"})
                continue
            if not isinstance(frame, dict):
                outbox.put_nowait({"type": "error", "detail": "Frames must be JSON objects"})
                continue
            action = frame.get("action")
            if action in (None, "pong"):
                continue
            result = await session.dispatch(action, frame)
            outbox.put_nowait({"type": "result", "action": action, "id": frame.get("id"), "data": result})
            if action == "logout":
                break
    except WebSocketDisconnect:
        logger.info("WS disconnected phone=%s", profile.phone_number)
    finally:
        manager.disconnect(room, websocket)
        await session.close()
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
            await sender
