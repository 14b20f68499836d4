"""WebSocket endpoint serving the row change feed."""
from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from ..schemas import SubscribeFrame, UnsubscribeFrame
from ..services import Subscription, change_feed_manager, decode_access_token, parse_filter
from ..services.auth_service import LoginRequiredError

router = APIRouter(tags=["realtime"])
logger = logging.getLogger(__name__)


async def _send(websocket: WebSocket, payload: dict) -> None:
    await websocket.send_text(json.dumps(payload, default=str))


@router.websocket("/realtime")
async def realtime_socket(
    websocket: WebSocket,
    token: str = Query(..., alias="token"),
) -> None:
    try:
        identity = decode_access_token(token)
    except LoginRequiredError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await change_feed_manager.connect(str(identity.user_id), websocket)
    logger.info("Realtime socket connected for %s", identity.user_id)
    await _send(websocket, {"type": "ready"})
    try:
        while True:
            try:
                raw = await websocket.receive_text()
            except WebSocketDisconnect:
                break

            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                payload = {"type": raw}
            if not isinstance(payload, dict):
                await _send(websocket, {"type": "error", "error": "Frames must be JSON objects"})
                continue

            message_type = str(payload.get("type") or "").lower()
            if message_type == "ping":
                await _send(websocket, {"type": "pong"})
            elif message_type == "subscribe":
                try:
                    frame = SubscribeFrame.model_validate(payload)
                    subscription = Subscription(
                        topic=frame.topic,
                        table=frame.table,
                        event=frame.event,
                        filter=parse_filter(frame.filter),
                    )
                except (ValidationError, ValueError) as exc:
                    await _send(websocket, {"type": "error", "topic": payload.get("topic"), "error": str(exc)})
                    continue
                await change_feed_manager.subscribe(websocket, subscription)
                await _send(websocket, {"type": "subscribed", "topic": frame.topic})
            elif message_type == "unsubscribe":
                try:
                    frame = UnsubscribeFrame.model_validate(payload)
                except ValidationError as exc:
                    await _send(websocket, {"type": "error", "error": str(exc)})
                    continue
                await change_feed_manager.unsubscribe(websocket, frame.topic)
                await _send(websocket, {"type": "unsubscribed", "topic": frame.topic})
            else:
                await _send(websocket, {"type": "error", "error": f"Unknown frame type {message_type!r}"})
    finally:
        await change_feed_manager.disconnect(websocket)
        logger.info("Realtime socket disconnected for %s", identity.user_id)


__all__ = ["router"]
