"""
User-facing debate room lists and stats
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_caller, get_orchestrator, internal_error, to_http_exception
from core.authorization import Caller
from core.exceptions import DebateRoomException
from core.room_orchestrator import RoomOrchestrator
from models import RoomStatus
from schemas import DebateStatsResponse, GroupedRoomsResponse, RoomResponse, RoomSummaryResponse

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/{user_id}/debate-rooms", response_model=List[RoomSummaryResponse])
async def get_user_debate_rooms(
    user_id: str,
    status: Optional[RoomStatus] = Query(default=None),
    caller: Caller = Depends(get_caller),
    orchestrator: RoomOrchestrator = Depends(get_orchestrator),
):
    """
    使用者的辯論房列表（最近有活動的在前）

    每一筆包含：對手、主題、未讀數、最後一則訊息
    """
    try:
        return await orchestrator.get_rooms_for_user(user_id, caller, status=status)
    except DebateRoomException as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("get user debate rooms", e)


@router.get("/{user_id}/debate-rooms/grouped", response_model=GroupedRoomsResponse)
async def get_grouped_debate_rooms(
    user_id: str,
    caller: Caller = Depends(get_caller),
    orchestrator: RoomOrchestrator = Depends(get_orchestrator),
):
    try:
        grouped = await orchestrator.get_grouped_rooms(user_id, caller)
        return GroupedRoomsResponse(**grouped)
    except DebateRoomException as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("get grouped debate rooms", e)


@router.get("/{user_id}/public-debate-rooms", response_model=List[RoomResponse])
async def get_public_debate_rooms(
    user_id: str,
    orchestrator: RoomOrchestrator = Depends(get_orchestrator),
):
    """其他人可以看到的房間（雙方都是 public）"""
    try:
        return await orchestrator.get_public_rooms(user_id)
    except Exception as e:
        raise internal_error("get public debate rooms", e)


@router.get("/{user_id}/debate-stats", response_model=DebateStatsResponse)
async def get_debate_stats(
    user_id: str,
    orchestrator: RoomOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.get_user_stats(user_id)
    except Exception as e:
        raise internal_error("get debate stats", e)
