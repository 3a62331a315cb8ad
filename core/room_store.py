"""
Room Store：辯論房的持久化查詢

職責：
1. 讀取 Room / Message（冪等讀取遇到暫時性錯誤會重試一次）
2. 寫入 Message（分配房內序號、更新 last_message_at）
3. 檢舉（Flag）與評分（Rating）
4. 列表查詢：使用者的房間、未讀數、最後一則訊息
5. 封存候選：status = ended AND last_message_at < cutoff

不做權限檢查、不做狀態轉換（交給 RoomManager 和 StateMachine）。
寫入方法只 flush，不 commit（交由外層 transaction 處理）。
"""
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from database import retry_read
from models import (
    DebateRating,
    Message,
    MessageFlag,
    MessageStatus,
    Room,
    RoomStatus,
)


class RoomStore:

    # ============ Room ============

    @staticmethod
    @retry_read
    def get_room(db: Session, room_id: str) -> Optional[Room]:
        return db.query(Room).filter(Room.id == room_id).first()

    @staticmethod
    @retry_read
    def rooms_for_user(db: Session, user_id: str, status: Optional[RoomStatus] = None) -> List[Room]:
        """
        使用者參與的所有房間，最近有活動的排前面
        """
        query = db.query(Room).filter(
            or_(Room.participant1_id == user_id, Room.participant2_id == user_id)
        )
        if status is not None:
            query = query.filter(Room.status == status)
        return query.order_by(Room.last_message_at.desc(), Room.started_at.desc()).all()

    @staticmethod
    @retry_read
    def archival_candidates(db: Session, cutoff: datetime) -> List[str]:
        """
        已結束且最後活動早於 cutoff 的房間 id

        只回傳 id：每個房間之後各自在自己的 transaction 內鎖定、重新檢查、封存
        """
        rows = db.query(Room.id).filter(
            Room.status == RoomStatus.ENDED,
            Room.last_message_at < cutoff,
        ).order_by(Room.last_message_at).all()
        return [row[0] for row in rows]

    # ============ Message ============

    @staticmethod
    def find_by_client_id(db: Session, room_id: str, user_id: str, client_message_id: str) -> Optional[Message]:
        return db.query(Message).filter(
            Message.room_id == room_id,
            Message.user_id == user_id,
            Message.client_message_id == client_message_id,
        ).first()

    @staticmethod
    def append_message(
        db: Session,
        room: Room,
        user_id: str,
        content: str,
        now: datetime,
        status: MessageStatus = MessageStatus.APPROVED,
        client_message_id: Optional[str] = None,
    ) -> Message:
        """
        新增訊息到房間（呼叫者必須已經鎖定 room）

        序號由 room.message_count 分配，在同一個房間內嚴格遞增
        """
        room.message_count = (room.message_count or 0) + 1
        message = Message(
            room_id=room.id,
            user_id=user_id,
            content=content,
            status=status,
            sequence=room.message_count,
            client_message_id=client_message_id,
            created_at=now,
        )
        db.add(message)
        room.last_message_at = now
        db.flush()
        return message

    @staticmethod
    @retry_read
    def list_messages(
        db: Session,
        room_id: str,
        after_sequence: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Message]:
        """
        房間內的訊息，依建立時間（再依序號）排序

        after_sequence 用於斷線重連後補齊歷史
        """
        query = db.query(Message).filter(Message.room_id == room_id)
        if after_sequence is not None:
            query = query.filter(Message.sequence > after_sequence)
        query = query.order_by(Message.created_at, Message.sequence)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    @staticmethod
    def last_message(db: Session, room_id: str) -> Optional[Message]:
        return db.query(Message).filter(
            Message.room_id == room_id,
            Message.status == MessageStatus.APPROVED,
        ).order_by(Message.created_at.desc(), Message.sequence.desc()).first()

    @staticmethod
    def unread_count(db: Session, room: Room, user_id: str) -> int:
        """
        對手在使用者上次閱讀之後發的訊息數（只算 approved）

        未讀數只用於顯示，不影響訊息可見性
        """
        query = db.query(func.count(Message.id)).filter(
            Message.room_id == room.id,
            Message.status == MessageStatus.APPROVED,
            Message.user_id != user_id,
        )
        last_read_at = room.last_read_at_for(user_id)
        if last_read_at is not None:
            query = query.filter(Message.created_at > last_read_at)
        return query.scalar() or 0

    # ============ Flag ============

    @staticmethod
    def has_flag(db: Session, message_id: str, user_id: str) -> bool:
        return db.query(MessageFlag.id).filter(
            MessageFlag.message_id == message_id,
            MessageFlag.user_id == user_id,
        ).first() is not None

    @staticmethod
    def add_flag(db: Session, message_id: str, user_id: str, fallacy_type: str, now: datetime) -> MessageFlag:
        flag = MessageFlag(
            message_id=message_id,
            user_id=user_id,
            fallacy_type=fallacy_type,
            created_at=now,
        )
        db.add(flag)
        db.flush()
        return flag

    @staticmethod
    @retry_read
    def flag_counts(db: Session, message_ids: Iterable[str]) -> Dict[str, Dict[str, int]]:
        """
        每則訊息、每種謬誤的檢舉數

        範例：
            {"msg-1": {"straw_man": 2, "ad_hominem": 1}}
        """
        message_ids = list(message_ids)
        if not message_ids:
            return {}

        rows = db.query(
            MessageFlag.message_id,
            MessageFlag.fallacy_type,
            func.count(MessageFlag.id),
        ).filter(
            MessageFlag.message_id.in_(message_ids)
        ).group_by(
            MessageFlag.message_id,
            MessageFlag.fallacy_type,
        ).all()

        counts: Dict[str, Dict[str, int]] = defaultdict(dict)
        for message_id, fallacy_type, count in rows:
            counts[message_id][fallacy_type] = count
        return dict(counts)

    # ============ Rating ============

    @staticmethod
    def upsert_rating(
        db: Session,
        room: Room,
        voter_id: str,
        logical_reasoning: int,
        politeness: int,
        openness_to_change: int,
    ) -> DebateRating:
        rating = db.query(DebateRating).filter(
            DebateRating.room_id == room.id,
            DebateRating.voter_id == voter_id,
        ).first()
        if rating is None:
            rating = DebateRating(
                room_id=room.id,
                voter_id=voter_id,
                voted_for_user_id=room.counterpart_of(voter_id),
            )
            db.add(rating)

        rating.logical_reasoning = logical_reasoning
        rating.politeness = politeness
        rating.openness_to_change = openness_to_change
        db.flush()
        return rating

    @staticmethod
    @retry_read
    def ratings_for_room(db: Session, room_id: str) -> List[DebateRating]:
        return db.query(DebateRating).filter(
            DebateRating.room_id == room_id
        ).order_by(DebateRating.created_at).all()
