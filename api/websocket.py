"""
WebSocket：辯論房即時推播

連線：/ws/debate-rooms?user_id=...&role=...

客戶端訊息（JSON）：
    {"type": "join_room", "room_id": "..."}   加入房間（會先做權限檢查）
    {"type": "leave_room"}
    {"type": "typing", "is_typing": true}     轉發給房間內其他人
    {"type": "ping"}

WebSocket 只負責「收到通知」，訊息本身一律透過 REST 寫入；
斷線重連後用 GET /messages?after_sequence=... 補齊歷史。
"""
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from core.authorization import Caller
from core.delivery import RoomChannel
from core.exceptions import DebateRoomException
from core.room_orchestrator import RoomOrchestrator, room_event
from models import UserRole

router = APIRouter(tags=["websocket"])
logger = logging.getLogger(__name__)


@router.websocket("/ws/debate-rooms")
async def debate_room_socket(
    ws: WebSocket,
    user_id: str = Query(...),
    role: Optional[str] = Query(default=None),
):
    try:
        caller = Caller(user_id=user_id, role=UserRole(role) if role else UserRole.USER)
    except ValueError:
        await ws.close(code=4400, reason="Unknown role")
        return

    channel: RoomChannel = ws.app.state.channel
    orchestrator: RoomOrchestrator = ws.app.state.orchestrator

    await ws.accept()
    channel.register(ws, caller.user_id)
    await channel.send_to(ws, {"type": "connected", "user_id": caller.user_id})

    try:
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await channel.send_to(ws, {"type": "error", "code": "invalid_json", "message": "Invalid JSON"})
                continue
            if not isinstance(data, dict):
                await channel.send_to(ws, {"type": "error", "code": "invalid_request", "message": "Expected an object"})
                continue

            try:
                await _handle_message(ws, caller, data, channel, orchestrator)
            except WebSocketDisconnect:
                raise
            except Exception as e:
                logger.error(f"Unhandled error for {caller.user_id} (type={data.get('type')}): {e}", exc_info=True)
                await channel.send_to(ws, {"type": "error", "code": "internal_error", "message": "Internal error"})

    except WebSocketDisconnect:
        pass
    finally:
        room_id = channel.room_of(ws)
        channel.disconnect(ws)
        logger.debug(f"{caller.user_id} disconnected (room={room_id})")


async def _handle_message(
    ws: WebSocket,
    caller: Caller,
    data: Dict[str, Any],
    channel: RoomChannel,
    orchestrator: RoomOrchestrator,
) -> None:
    msg_type = data.get("type", "")

    if msg_type == "ping":
        await channel.send_to(ws, {"type": "pong"})

    elif msg_type == "join_room":
        room_id = data.get("room_id")
        if not room_id:
            await channel.send_to(ws, {"type": "error", "code": "invalid_request", "message": "room_id is required"})
            return
        try:
            await orchestrator.authorize_subscription(room_id, caller)
        except DebateRoomException as e:
            await channel.send_to(ws, {"type": "error", "code": e.code, "message": e.message})
            return
        channel.join(ws, room_id, caller.user_id)
        await channel.send_to(ws, {"type": "joined", "room_id": room_id})

    elif msg_type == "leave_room":
        room_id = channel.leave(ws)
        await channel.send_to(ws, {"type": "left", "room_id": room_id})

    elif msg_type == "typing":
        room_id = channel.room_of(ws)
        if room_id is None:
            await channel.send_to(ws, {"type": "error", "code": "not_joined", "message": "Join a room first"})
            return
        await channel.broadcast(
            room_id,
            room_event("typing", room_id, user_id=caller.user_id, is_typing=bool(data.get("is_typing", True))),
            exclude=ws,
        )

    else:
        await channel.send_to(ws, {
            "type": "error",
            "code": "unknown_type",
            "message": f"Unknown message type: '{msg_type}'",
        })
