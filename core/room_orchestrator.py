"""
Room Orchestrator：對外的公開介面

每個操作的順序固定：
1. 在 threadpool 內開一個 Session，透過 RoomManager 完成 transaction
   （同一個 Session 內把結果轉成 response schema）
2. commit 成功之後才推播給房間內的所有連線（不會先推播再寫入）
3. 最後送出站外通知（fire-and-forget）

推播和通知失敗只記 log，不會讓已經寫入的操作失敗。
資料庫 I/O 在 threadpool 執行，不會阻塞其他房間的請求。
"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import logging

from starlette.concurrency import run_in_threadpool

from core.authorization import Caller
from core.consensus import ConsensusOutcome
from core.delivery import RoomChannel
from core.locks import optimistic_guard
from core.room_manager import RoomManager, RoomSummary
from database import SessionLocal
from models import RoomStatus
from schemas import (
    DebateStatsResponse,
    FlagResponse,
    LastMessagePreview,
    MessageResponse,
    RatingResponse,
    RoomResponse,
    RoomSummaryResponse,
    SendMessageResponse,
    TopicSummaryResponse,
    UserSummaryResponse,
    VoteResponse,
)
from services import notification_service
from services.directory import Directory
from services.notification_service import Notifier, notify_safely
from services.stats_service import get_user_debate_stats

logger = logging.getLogger(__name__)


# ============ 推播事件 ============

NEW_MESSAGE = "new_message"
ROOM_UPDATE = "room_update"
MESSAGE_FLAGGED = "message_flagged"


def room_event(event_type: str, room_id: str, **payload) -> Dict[str, Any]:
    event = {
        "type": event_type,
        "room_id": room_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    event.update(payload)
    return event


def room_out(room) -> RoomResponse:
    return RoomResponse.model_validate(room)


def message_out(message, fallacy_counts: Optional[Dict[str, int]] = None) -> MessageResponse:
    out = MessageResponse.model_validate(message)
    out.fallacy_counts = dict(fallacy_counts or {})
    return out


def summary_out(summary: RoomSummary) -> RoomSummaryResponse:
    last = summary.last_message
    return RoomSummaryResponse(
        room=room_out(summary.room),
        topic=TopicSummaryResponse.model_validate(summary.topic) if summary.topic else None,
        opponent=UserSummaryResponse.model_validate(summary.opponent),
        unread_count=summary.unread_count,
        last_message=LastMessagePreview(
            content=last.content,
            sender_id=last.user_id,
            created_at=last.created_at,
        ) if last else None,
    )


class RoomOrchestrator:

    def __init__(
        self,
        directory: Directory,
        channel: RoomChannel,
        notifier: Notifier,
        session_factory: Callable = SessionLocal,
    ):
        self.directory = directory
        self.channel = channel
        self.notifier = notifier
        self.session_factory = session_factory

    async def _run(self, work: Callable, room_id: Optional[str] = None):
        def in_session():
            db = self.session_factory()
            try:
                with optimistic_guard(room_id):
                    return work(db)
            finally:
                db.close()

        return await run_in_threadpool(in_session)

    async def _publish(self, room_id: str, event: Dict[str, Any]) -> None:
        try:
            await self.channel.broadcast(room_id, event)
        except Exception as e:
            logger.warning(f"[{room_id}] publish {event.get('type')} failed: {e}")

    def _notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        notify_safely(self.notifier, user_id, event, payload)

    # ============ 寫入 ============

    async def create_room(
        self,
        opinion_id: str,
        caller: Caller,
        opening_message: Optional[str] = None,
    ) -> RoomResponse:
        def work(db):
            room = RoomManager.create_room(
                db, self.directory, opinion_id, caller, opening_message=opening_message
            )
            return room_out(room)

        room = await self._run(work)
        self._notify(room.participant1_id, notification_service.DEBATE_CREATED, {
            "room_id": room.id,
            "opponent_id": caller.user_id,
        })
        return room

    async def send_message(
        self,
        room_id: str,
        caller: Caller,
        content: str,
        client_message_id: Optional[str] = None,
    ) -> SendMessageResponse:
        def work(db):
            result = RoomManager.send_message(
                db, room_id, caller, content, client_message_id=client_message_id
            )
            response = SendMessageResponse(
                message=message_out(result.message),
                room=room_out(result.room),
                created=result.created,
            )
            return response, result.phase_changed

        response, phase_changed = await self._run(work, room_id)

        if not response.created:
            return response

        room_json = response.room.model_dump(mode="json")
        await self._publish(room_id, room_event(
            NEW_MESSAGE,
            room_id,
            message=response.message.model_dump(mode="json"),
            room=room_json,
        ))
        if phase_changed:
            await self._publish(room_id, room_event(ROOM_UPDATE, room_id, reason="voting_started", room=room_json))

        counterpart = response.room.participant2_id \
            if caller.user_id == response.room.participant1_id else response.room.participant1_id
        self._notify(counterpart, notification_service.NEW_MESSAGE, {
            "room_id": room_id,
            "message_id": response.message.id,
            "sender_id": caller.user_id,
        })
        return response

    async def open_voting(self, room_id: str, caller: Caller) -> RoomResponse:
        room = await self._run(lambda db: room_out(RoomManager.open_voting(db, room_id, caller)), room_id)
        await self._room_changed(room, "voting_started", notification_service.PHASE_CHANGED)
        return room

    async def cast_continue_vote(
        self,
        room_id: str,
        caller: Caller,
        wants_to_continue: bool,
        ratings: Optional[Dict[str, int]] = None,
    ) -> VoteResponse:
        def work(db):
            result = RoomManager.cast_continue_vote(
                db, room_id, caller, wants_to_continue, ratings=ratings
            )
            return room_out(result.room), result.decision

        room, decision = await self._run(work, room_id)

        if decision.outcome == ConsensusOutcome.CONTINUE:
            await self._room_changed(room, "free_form_started", notification_service.PHASE_CHANGED)
        elif decision.outcome == ConsensusOutcome.END:
            await self._room_changed(room, "room_ended", notification_service.DEBATE_ENDED)
        else:
            await self._publish(room_id, room_event(
                ROOM_UPDATE, room_id, reason="vote_cast", room=room.model_dump(mode="json")
            ))

        return VoteResponse(room=room, outcome=decision.outcome.value)

    async def set_privacy(self, room_id: str, caller: Caller, is_private: bool) -> RoomResponse:
        room = await self._run(
            lambda db: room_out(RoomManager.set_privacy(db, room_id, caller, is_private)), room_id
        )
        await self._publish(room_id, room_event(
            ROOM_UPDATE, room_id, reason="privacy_changed", room=room.model_dump(mode="json")
        ))
        return room

    async def end_room(self, room_id: str, caller: Caller) -> RoomResponse:
        room = await self._run(lambda db: room_out(RoomManager.end_room(db, room_id, caller)), room_id)
        await self._room_changed(room, "room_ended", notification_service.DEBATE_ENDED, skip=caller.user_id)
        return room

    async def mark_read(self, room_id: str, caller: Caller) -> RoomResponse:
        return await self._run(lambda db: room_out(RoomManager.mark_read(db, room_id, caller)), room_id)

    async def flag_message(self, message_id: str, caller: Caller, fallacy_type: str) -> FlagResponse:
        def work(db):
            flag, counts = RoomManager.flag_message(db, message_id, caller, fallacy_type)
            return flag.message.room_id, FlagResponse(
                message_id=message_id,
                fallacy_type=flag.fallacy_type,
                fallacy_counts=counts,
            )

        room_id, response = await self._run(work)
        await self._publish(room_id, room_event(
            MESSAGE_FLAGGED,
            room_id,
            message_id=message_id,
            fallacy_counts=response.fallacy_counts,
        ))
        return response

    async def _room_changed(self, room: RoomResponse, reason: str, notification: str, skip: Optional[str] = None) -> None:
        await self._publish(room.id, room_event(ROOM_UPDATE, room.id, reason=reason, room=room.model_dump(mode="json")))
        for user_id in (room.participant1_id, room.participant2_id):
            if user_id != skip:
                self._notify(user_id, notification, {"room_id": room.id, "reason": reason})

    # ============ 查詢 ============

    async def get_room(self, room_id: str, caller: Caller) -> RoomResponse:
        return await self._run(lambda db: room_out(RoomManager.get_room(db, room_id, caller)))

    async def get_messages(
        self,
        room_id: str,
        caller: Caller,
        after_sequence: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[MessageResponse]:
        def work(db):
            rows = RoomManager.get_messages(db, room_id, caller, after_sequence=after_sequence, limit=limit)
            return [message_out(message, counts) for message, counts in rows]

        return await self._run(work)

    async def get_rooms_for_user(
        self,
        user_id: str,
        caller: Caller,
        status: Optional[RoomStatus] = None,
    ) -> List[RoomSummaryResponse]:
        def work(db):
            summaries = RoomManager.get_rooms_for_user(db, self.directory, user_id, caller, status=status)
            return [summary_out(s) for s in summaries]

        return await self._run(work)

    async def get_grouped_rooms(self, user_id: str, caller: Caller) -> Dict[str, List[RoomSummaryResponse]]:
        def work(db):
            grouped = RoomManager.get_grouped_rooms(db, self.directory, user_id, caller)
            return {key: [summary_out(s) for s in items] for key, items in grouped.items()}

        return await self._run(work)

    async def get_public_rooms(self, user_id: str) -> List[RoomResponse]:
        return await self._run(lambda db: [room_out(r) for r in RoomManager.get_public_rooms(db, user_id)])

    async def get_ratings(self, room_id: str, caller: Caller) -> List[RatingResponse]:
        return await self._run(
            lambda db: [RatingResponse.model_validate(r) for r in RoomManager.get_ratings(db, room_id, caller)]
        )

    async def get_user_stats(self, user_id: str) -> DebateStatsResponse:
        return await self._run(lambda db: DebateStatsResponse(**get_user_debate_stats(user_id, db)))

    async def authorize_subscription(self, room_id: str, caller: Caller) -> RoomResponse:
        """WebSocket 加入房間前的權限檢查（和讀取房間相同）"""
        return await self.get_room(room_id, caller)
