"""
Room Manager：管理辯論房的完整生命週期

職責：
1. 建立 Room（從一則意見和挑戰者）
2. 發送訊息（回合檢查 + 推進回合）
3. 投票（共識判斷）
4. 隱私、結束、已讀、檢舉
5. 查詢 Room / Message / 使用者房間列表

原則：
- 所有寫入都在單一房間的行級鎖內完成（with_room_lock）
- 所有狀態變更經過 StateMachine / ConsensusResolver
- 先檢查權限和前置條件，再寫入；失敗時不留下任何部分狀態
- 不負責推播（由 RoomOrchestrator 在 commit 之後處理）
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import (
    DebateRating,
    EndReason,
    Message,
    MessageFlag,
    Privacy,
    Room,
    RoomPhase,
    RoomStatus,
    utcnow,
)
from core.authorization import (
    Caller,
    require_participant,
    require_reader,
    require_self_or_staff,
    require_staff,
)
from core.consensus import ConsensusDecision, ConsensusResolver
from core.exceptions import (
    DuplicateFlagError,
    MissingPrerequisiteError,
    NotFoundError,
    NotParticipantError,
    SelfDebateError,
    ValidationError,
)
from core.locks import with_room_lock, with_message_room_lock
from core.room_store import RoomStore
from core.state_machine import RoomState, RoomStateMachine
from database import transactional, get_settings
from services.directory import Directory, UserSummary
from services.fallacy_service import fallacy_name, is_known_fallacy
from services.matching_service import political_distance

logger = logging.getLogger(__name__)

RATING_FIELDS = ("logical_reasoning", "politeness", "openness_to_change")


@dataclass
class MessageResult:
    message: Message
    room: Room
    created: bool
    phase_changed: bool = False


@dataclass
class VoteResult:
    room: Room
    decision: ConsensusDecision
    phase_changed: bool
    status_changed: bool


@dataclass
class RoomSummary:
    room: Room
    topic: Any
    opponent: UserSummary
    unread_count: int
    last_message: Optional[Message]


def _clean_content(content: str) -> str:
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message content is required")
    max_length = get_settings().message_max_length
    if len(text) > max_length:
        raise ValidationError(f"Message content exceeds {max_length} characters")
    return text


def _validate_ratings(ratings: Optional[Dict[str, int]]) -> Optional[Dict[str, int]]:
    if ratings is None:
        return None
    cleaned = {}
    for field in RATING_FIELDS:
        value = ratings.get(field)
        if not isinstance(value, int) or not 1 <= value <= 5:
            raise ValidationError("All ratings must be provided and between 1-5")
        cleaned[field] = value
    return cleaned


def _load_locked_room(db: Session, room_id: str, caller: Caller) -> Room:
    room = with_room_lock(room_id, db).first()
    return require_participant(room, caller, room_id)


class RoomManager:
    """辯論房生命週期管理器"""

    # ============ 建立 ============

    @staticmethod
    @transactional
    def create_room(
        db: Session,
        directory: Directory,
        opinion_id: str,
        caller: Caller,
        opening_message: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Room:
        """
        從一則意見建立辯論房

        流程：
        1. 找到意見和作者（作者 = participant1，先發言）
        2. 不能和自己的意見辯論
        3. 挑戰者必須已經對同一主題發表過意見（stance 從這裡來）
        4. 計算政治距離（只做分析用，不阻擋建立）
        5. 建立 Room，若有開場訊息則一併寫入

        異常：
            NotFoundError: 意見不存在
            SelfDebateError: 挑戰自己的意見
            MissingPrerequisiteError: 挑戰者沒有對該主題發表意見
        """
        now = now or utcnow()

        opinion = directory.get_opinion(opinion_id)
        if opinion is None:
            raise NotFoundError("Opinion", opinion_id)

        author_id = opinion.author_id
        if author_id == caller.user_id:
            raise SelfDebateError()

        own_opinion = directory.find_user_opinion(opinion.topic_id, caller.user_id)
        if own_opinion is None:
            raise MissingPrerequisiteError()

        opening = _clean_content(opening_message) if opening_message is not None else None

        try:
            distance = political_distance(
                directory.get_political_scores(caller.user_id),
                directory.get_political_scores(author_id),
            )
        except Exception as e:
            logger.warning(f"Political scores unavailable for {caller.user_id}/{author_id}: {e}")
            distance = 0.0

        room = Room(
            topic_id=opinion.topic_id,
            participant1_id=author_id,
            participant2_id=caller.user_id,
            participant1_stance=opinion.stance,
            participant2_stance=own_opinion.stance,
            participant1_privacy=Privacy.PUBLIC,
            participant2_privacy=Privacy.PUBLIC,
            status=RoomStatus.ACTIVE,
            phase=RoomPhase.STRUCTURED,
            current_turn=author_id,
            turn_count1=0,
            turn_count2=0,
            political_distance=distance,
            message_count=0,
            started_at=now,
            last_message_at=now,
        )
        db.add(room)
        db.flush()

        logger.info(
            f"Created debate room {room.id}: author={author_id}, challenger={caller.user_id}, "
            f"topic={opinion.topic_id}, distance={distance:.2f}"
        )

        # 開場訊息算挑戰者的一個回合，回合仍然在作者手上
        if opening:
            RoomStore.append_message(db, room, caller.user_id, opening, now)
            room.turn_count2 = 1
            logger.info(f"Stored opening message for room {room.id}")

        return room

    # ============ 訊息 ============

    @staticmethod
    @transactional
    def send_message(
        db: Session,
        room_id: str,
        caller: Caller,
        content: str,
        client_message_id: Optional[str] = None,
        turn_limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> MessageResult:
        """
        發送訊息（核心）

        前置條件：
        - 呼叫者是參與者
        - 房間是 active
        - structured 階段：必須輪到呼叫者

        效果：
        - 寫入訊息、更新 last_message_at
        - structured 階段：發言者計數 +1，回合交給對方
        - 雙方都用完 turn_limit 個回合後，自動進入 voting

        冪等：
        - 帶同一個 client_message_id 重送，回傳既有訊息，不會再推進回合
        """
        now = now or utcnow()
        turn_limit = turn_limit or get_settings().structured_turn_limit

        room = _load_locked_room(db, room_id, caller)

        if client_message_id:
            existing = RoomStore.find_by_client_id(db, room.id, caller.user_id, client_message_id)
            if existing is not None:
                logger.info(f"Duplicate submission {client_message_id} in room {room.id}, reusing message {existing.id}")
                return MessageResult(message=existing, room=room, created=False)

        text = _clean_content(content)

        # 先算出新狀態（會拋出 RoomInactiveError / TurnViolationError），再寫入
        state = RoomStateMachine.on_message(RoomState.from_room(room), caller.user_id)

        phase_changed = False
        if RoomStateMachine.turn_limit_reached(state, turn_limit):
            state = RoomStateMachine.open_voting(state)
            phase_changed = True
            logger.info(f"Room {room.id} reached {turn_limit} turns each, entering voting phase")

        message = RoomStore.append_message(
            db, room, caller.user_id, text, now, client_message_id=client_message_id
        )
        state.apply_to(room)

        return MessageResult(message=message, room=room, created=True, phase_changed=phase_changed)

    # ============ 階段 / 投票 ============

    @staticmethod
    @transactional
    def open_voting(db: Session, room_id: str, caller: Caller) -> Room:
        """
        直接把 structured 切到 voting（moderator / admin 操作）
        """
        require_staff(caller)
        room = with_room_lock(room_id, db).first()
        if room is None:
            raise NotFoundError("Room", room_id)

        state = RoomStateMachine.open_voting(RoomState.from_room(room))
        state.apply_to(room)

        logger.info(f"Room {room.id} moved to voting by {caller.role.value} {caller.user_id}")
        return room

    @staticmethod
    @transactional
    def cast_continue_vote(
        db: Session,
        room_id: str,
        caller: Caller,
        wants_to_continue: bool,
        ratings: Optional[Dict[str, int]] = None,
        now: Optional[datetime] = None,
    ) -> VoteResult:
        """
        投票決定繼續（free-form）或結束

        - 只能在 voting 階段
        - 重複投票會覆蓋自己先前的票
        - 雙方都投票後立刻判定；判定和投票寫入在同一個 transaction
        - 可以附帶對對手的評分（1-5）
        """
        now = now or utcnow()
        ratings = _validate_ratings(ratings)

        room = _load_locked_room(db, room_id, caller)
        before = RoomState.from_room(room)

        after, decision = ConsensusResolver.cast(before, caller.user_id, wants_to_continue)

        if ratings:
            RoomStore.upsert_rating(db, room, caller.user_id, **ratings)

        after.apply_to(room)
        status_changed = after.status != before.status
        if status_changed:
            room.ended_at = now

        logger.info(
            f"Vote in room {room.id} by {caller.user_id}: continue={wants_to_continue}, "
            f"outcome={decision.outcome.value}"
        )
        return VoteResult(
            room=room,
            decision=decision,
            phase_changed=after.phase != before.phase,
            status_changed=status_changed,
        )

    # ============ 參與者自己的欄位 ============

    @staticmethod
    @transactional
    def set_privacy(db: Session, room_id: str, caller: Caller, is_private: bool) -> Room:
        """只改呼叫者自己的隱私設定，永遠不動對方的"""
        room = _load_locked_room(db, room_id, caller)
        privacy = Privacy.PRIVATE if is_private else Privacy.PUBLIC

        if caller.user_id == room.participant1_id:
            room.participant1_privacy = privacy
        else:
            room.participant2_privacy = privacy

        logger.info(f"User {caller.user_id} set privacy={privacy.value} in room {room.id}")
        return room

    @staticmethod
    @transactional
    def mark_read(db: Session, room_id: str, caller: Caller, now: Optional[datetime] = None) -> Room:
        """更新呼叫者的已讀時間（只影響未讀數）"""
        now = now or utcnow()
        room = _load_locked_room(db, room_id, caller)

        if caller.user_id == room.participant1_id:
            room.participant1_last_read_at = now
        else:
            room.participant2_last_read_at = now
        return room

    @staticmethod
    @transactional
    def end_room(db: Session, room_id: str, caller: Caller, now: Optional[datetime] = None) -> Room:
        """
        單方結束辯論（任何階段都可以）

        效果：status=ended, ended_at=now, current_turn=None
        """
        now = now or utcnow()
        room = _load_locked_room(db, room_id, caller)

        state = RoomStateMachine.end(RoomState.from_room(room), EndReason.PARTICIPANT_ENDED)
        state.apply_to(room)
        room.ended_at = now

        logger.info(f"Room {room.id} ended by {caller.user_id}")
        return room

    # ============ 檢舉 ============

    @staticmethod
    @transactional
    def flag_message(
        db: Session,
        message_id: str,
        caller: Caller,
        fallacy_type: str,
        now: Optional[datetime] = None,
    ) -> Tuple[MessageFlag, Dict[str, int]]:
        """
        檢舉訊息的邏輯謬誤

        規則：
        - 只有房間參與者可以檢舉
        - 不能檢舉自己的訊息
        - 每人每則訊息只能檢舉一次

        返回：
            (MessageFlag, 該訊息目前的謬誤統計)
        """
        now = now or utcnow()

        message, room = with_message_room_lock(message_id, db)
        if message is None:
            if caller.is_staff:
                raise NotFoundError("Message", message_id)
            raise NotParticipantError()
        require_participant(room, caller, room.id)

        if message.user_id == caller.user_id:
            raise ValidationError("You cannot flag your own message")
        if not is_known_fallacy(fallacy_type):
            raise ValidationError(f"Unknown fallacy type: {fallacy_type}")
        if RoomStore.has_flag(db, message_id, caller.user_id):
            raise DuplicateFlagError()

        try:
            flag = RoomStore.add_flag(db, message_id, caller.user_id, fallacy_type, now)
        except IntegrityError as e:
            raise DuplicateFlagError() from e

        logger.info(f"Message {message_id} flagged as {fallacy_name(fallacy_type)} by {caller.user_id}")
        counts = RoomStore.flag_counts(db, [message_id]).get(message_id, {})
        return flag, counts

    # ============ 查詢 ============

    @staticmethod
    def get_room(db: Session, room_id: str, caller: Caller) -> Room:
        room = RoomStore.get_room(db, room_id)
        return require_reader(room, caller, room_id)

    @staticmethod
    def get_messages(
        db: Session,
        room_id: str,
        caller: Caller,
        after_sequence: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Tuple[Message, Dict[str, int]]]:
        """
        訊息歷史（含每則訊息的謬誤統計）

        這是客戶端重建完整歷史的權威來源；推播只是加速
        """
        room = RoomStore.get_room(db, room_id)
        require_reader(room, caller, room_id)

        limit = limit or get_settings().messages_page_size
        messages = RoomStore.list_messages(db, room_id, after_sequence=after_sequence, limit=limit)
        counts = RoomStore.flag_counts(db, [m.id for m in messages])
        return [(m, counts.get(m.id, {})) for m in messages]

    @staticmethod
    def get_rooms_for_user(
        db: Session,
        directory: Directory,
        user_id: str,
        caller: Caller,
        status: Optional[RoomStatus] = None,
    ) -> List[RoomSummary]:
        """
        使用者的房間列表（含對手、主題、未讀數、最後一則訊息）

        只能看自己的列表，moderator / admin 例外
        """
        require_self_or_staff(user_id, caller)

        summaries = []
        for room in RoomStore.rooms_for_user(db, user_id, status=status):
            opponent_id = room.counterpart_of(user_id)
            opponent = directory.get_user(opponent_id) or UserSummary(id=opponent_id, display_name=opponent_id)
            summaries.append(RoomSummary(
                room=room,
                topic=directory.get_topic(room.topic_id),
                opponent=opponent,
                unread_count=RoomStore.unread_count(db, room, user_id),
                last_message=RoomStore.last_message(db, room.id),
            ))
        return summaries

    @staticmethod
    def get_grouped_rooms(
        db: Session,
        directory: Directory,
        user_id: str,
        caller: Caller,
    ) -> Dict[str, List[RoomSummary]]:
        grouped = {status.value: [] for status in RoomStatus}
        for summary in RoomManager.get_rooms_for_user(db, directory, user_id, caller):
            grouped[summary.room.status.value].append(summary)
        return grouped

    @staticmethod
    def get_public_rooms(db: Session, user_id: str) -> List[Room]:
        """
        其他人可以看到的房間（例如個人頁面）

        任何一方設為 private，整個房間對外就是 private
        """
        return [room for room in RoomStore.rooms_for_user(db, user_id) if not room.is_private]

    @staticmethod
    def get_ratings(db: Session, room_id: str, caller: Caller) -> List[DebateRating]:
        room = RoomStore.get_room(db, room_id)
        require_reader(room, caller, room_id)
        return RoomStore.ratings_for_room(db, room_id)
