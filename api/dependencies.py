"""
API 共用的 dependency 與錯誤轉換

呼叫者身分由前面的認證層帶入 header：
    X-User-Id:   使用者 id（必填）
    X-User-Role: user / moderator / admin（預設 user）
"""
from typing import Optional
import logging

from fastapi import Header, HTTPException, Request

from core.authorization import Caller
from core.exceptions import DebateRoomException
from core.room_orchestrator import RoomOrchestrator
from models import UserRole

logger = logging.getLogger(__name__)


def get_caller(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
) -> Caller:
    if not x_user_id:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthenticated", "message": "Missing X-User-Id header"},
        )
    try:
        role = UserRole(x_user_role) if x_user_role else UserRole.USER
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_request", "message": f"Unknown role: {x_user_role}"},
        )
    return Caller(user_id=x_user_id, role=role)


def get_orchestrator(request: Request) -> RoomOrchestrator:
    return request.app.state.orchestrator


def to_http_exception(e: DebateRoomException) -> HTTPException:
    return HTTPException(
        status_code=e.status_code,
        detail={"code": e.code, "message": e.message},
    )


def internal_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"Failed to {action}: {e}", exc_info=True)
    return HTTPException(
        status_code=500,
        detail={"code": "internal_error", "message": "Internal error"},
    )
