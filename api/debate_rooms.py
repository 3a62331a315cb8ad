"""
Debate Room API Endpoints

重點：
1. 所有業務邏輯集中在 RoomOrchestrator / RoomManager
2. 業務異常統一轉成 {"code", "message"}，前端依 code 顯示對應訊息
3. 寫入成功後由 Orchestrator 推播給房間內的 WebSocket 連線
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from api.dependencies import get_caller, get_orchestrator, internal_error, to_http_exception
from core.authorization import Caller
from core.exceptions import DebateRoomException
from core.room_orchestrator import RoomOrchestrator
from services.fallacy_service import list_fallacies
from schemas import (
    ContinueVoteRequest,
    CreateRoomRequest,
    FallacyResponse,
    FlagRequest,
    FlagResponse,
    MessageResponse,
    PrivacyRequest,
    RatingResponse,
    RoomResponse,
    SendMessageRequest,
    SendMessageResponse,
    VoteResponse,
)

router = APIRouter(prefix="/api", tags=["debate-rooms"])


@router.post("/opinions/{opinion_id}/debate-rooms", response_model=RoomResponse, status_code=201)
async def create_debate_room(
    opinion_id: str,
    body: Optional[CreateRoomRequest] = None,
    caller: Caller = Depends(get_caller),
    orchestrator: RoomOrchestrator = Depends(get_orchestrator),
):
    """
    挑戰一則意見，建立辯論房

    - 意見作者是 participant1，先發言
    - 呼叫者必須已經對同一主題發表過意見
    - opening_message（可選）會成為房間的第一則訊息
    """
    try:
        return await orchestrator.create_room(
            opinion_id,
            caller,
            opening_message=body.opening_message if body else None,
        )
    except DebateRoomException as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("create debate room", e)


@router.get("/debate-rooms/{room_id}", response_model=RoomResponse)
async def get_debate_room(
    room_id: str,
    caller: Caller = Depends(get_caller),
    orchestrator: RoomOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.get_room(room_id, caller)
    except DebateRoomException as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("get debate room", e)


@router.get("/debate-rooms/{room_id}/messages", response_model=List[MessageResponse])
async def get_messages(
    room_id: str,
    after_sequence: Optional[int] = Query(default=None, ge=0),
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    caller: Caller = Depends(get_caller),
    orchestrator: RoomOrchestrator = Depends(get_orchestrator),
):
    """
    訊息歷史（依時間排序，含謬誤檢舉統計）

    斷線重連後帶上 after_sequence 補齊漏掉的訊息
    """
    try:
        return await orchestrator.get_messages(room_id, caller, after_sequence=after_sequence, limit=limit)
    except DebateRoomException as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("get messages", e)


@router.post("/debate-rooms/{room_id}/messages", response_model=SendMessageResponse, status_code=201)
async def send_message(
    room_id: str,
    body: SendMessageRequest,
    response: Response,
    caller: Caller = Depends(get_caller),
    orchestrator: RoomOrchestrator = Depends(get_orchestrator),
):
    """
    發送訊息

    structured 階段必須輪到呼叫者（否則 409 not_your_turn）。
    帶同一個 client_message_id 重送是冪等的：回傳既有訊息（200）。
    """
    try:
        result = await orchestrator.send_message(
            room_id,
            caller,
            body.content,
            client_message_id=body.client_message_id,
        )
        if not result.created:
            response.status_code = 200
        return result
    except DebateRoomException as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("send message", e)


@router.post("/debate-rooms/{room_id}/voting", response_model=RoomResponse)
async def open_voting(
    room_id: str,
    caller: Caller = Depends(get_caller),
    orchestrator: RoomOrchestrator = Depends(get_orchestrator),
):
    """提前進入投票階段（moderator / admin）"""
    try:
        return await orchestrator.open_voting(room_id, caller)
    except DebateRoomException as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("open voting", e)


@router.post("/debate-rooms/{room_id}/votes", response_model=VoteResponse)
async def cast_continue_vote(
    room_id: str,
    body: ContinueVoteRequest,
    caller: Caller = Depends(get_caller),
    orchestrator: RoomOrchestrator = Depends(get_orchestrator),
):
    """
    投票繼續 / 結束

    雙方都投票後：
    - 都要繼續 → free-form
    - 其他組合 → ended
    """
    try:
        return await orchestrator.cast_continue_vote(
            room_id,
            caller,
            body.vote_to_continue,
            ratings=body.ratings.model_dump() if body.ratings else None,
        )
    except DebateRoomException as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("cast vote", e)


@router.get("/debate-rooms/{room_id}/ratings", response_model=List[RatingResponse])
async def get_ratings(
    room_id: str,
    caller: Caller = Depends(get_caller),
    orchestrator: RoomOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.get_ratings(room_id, caller)
    except DebateRoomException as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("get ratings", e)


@router.patch("/debate-rooms/{room_id}/privacy", response_model=RoomResponse)
async def set_privacy(
    room_id: str,
    body: PrivacyRequest,
    caller: Caller = Depends(get_caller),
    orchestrator: RoomOrchestrator = Depends(get_orchestrator),
):
    """只改呼叫者自己的隱私設定；任何一方 private，整個房間就是 private"""
    try:
        return await orchestrator.set_privacy(room_id, caller, body.is_private)
    except DebateRoomException as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("set privacy", e)


@router.post("/debate-rooms/{room_id}/end", response_model=RoomResponse)
async def end_debate_room(
    room_id: str,
    caller: Caller = Depends(get_caller),
    orchestrator: RoomOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.end_room(room_id, caller)
    except DebateRoomException as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("end debate room", e)


@router.patch("/debate-rooms/{room_id}/mark-read", response_model=RoomResponse)
async def mark_read(
    room_id: str,
    caller: Caller = Depends(get_caller),
    orchestrator: RoomOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orchestrator.mark_read(room_id, caller)
    except DebateRoomException as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("mark room as read", e)


@router.post("/debate-messages/{message_id}/flag", response_model=FlagResponse, status_code=201)
async def flag_message(
    message_id: str,
    body: FlagRequest,
    caller: Caller = Depends(get_caller),
    orchestrator: RoomOrchestrator = Depends(get_orchestrator),
):
    """
    檢舉訊息的邏輯謬誤

    每人每則訊息只能檢舉一次（重複 → 409 duplicate_flag）
    """
    try:
        return await orchestrator.flag_message(message_id, caller, body.fallacy_type)
    except DebateRoomException as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("flag message", e)


@router.get("/fallacies", response_model=List[FallacyResponse])
def get_fallacies():
    """可以檢舉的邏輯謬誤類型（含說明和範例，前端的檢舉選單直接使用）"""
    return list_fallacies()
