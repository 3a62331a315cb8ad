"""
辯論房的 ORM models

房間、訊息、謬誤檢舉、辯論後的評分。
意見、主題、使用者資料屬於其他服務，這裡只存 id。
"""
import enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, always hands back aware UTC datetimes (SQLite drops tzinfo)."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def _enum_column(enum_cls, **kwargs):
    # 存 value（例如 "free-form"）而不是 name
    return Column(
        Enum(
            enum_cls,
            values_callable=lambda e: [member.value for member in e],
            native_enum=False,
            length=20,
        ),
        **kwargs
    )


class RoomStatus(str, enum.Enum):
    ACTIVE = "active"
    ENDED = "ended"
    ARCHIVED = "archived"


class RoomPhase(str, enum.Enum):
    STRUCTURED = "structured"
    VOTING = "voting"
    FREE_FORM = "free-form"


class Privacy(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class MessageStatus(str, enum.Enum):
    APPROVED = "approved"
    FLAGGED = "flagged"
    HIDDEN = "hidden"


class EndReason(str, enum.Enum):
    PARTICIPANT_ENDED = "participant_ended"
    MUTUAL_END = "mutual_end"
    VOTE_DISAGREEMENT = "vote_disagreement"


class UserRole(str, enum.Enum):
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class Room(Base):
    __tablename__ = "debate_rooms"

    id = Column(String(36), primary_key=True, default=new_id)
    topic_id = Column(String(64), nullable=False, index=True)

    # participant1 = opinion author, opens the debate
    participant1_id = Column(String(64), nullable=False, index=True)
    participant2_id = Column(String(64), nullable=False, index=True)
    participant1_stance = Column(String(20), nullable=False)
    participant2_stance = Column(String(20), nullable=False)
    participant1_privacy = _enum_column(Privacy, nullable=False, default=Privacy.PUBLIC)
    participant2_privacy = _enum_column(Privacy, nullable=False, default=Privacy.PUBLIC)

    status = _enum_column(RoomStatus, nullable=False, default=RoomStatus.ACTIVE, index=True)
    phase = _enum_column(RoomPhase, nullable=False, default=RoomPhase.STRUCTURED)
    end_reason = _enum_column(EndReason, nullable=True)

    current_turn = Column(String(64), nullable=True)
    turn_count1 = Column(Integer, nullable=False, default=0)
    turn_count2 = Column(Integer, nullable=False, default=0)

    votes_to_continue1 = Column(Boolean, nullable=True)
    votes_to_continue2 = Column(Boolean, nullable=True)

    participant1_last_read_at = Column(UTCDateTime(), nullable=True)
    participant2_last_read_at = Column(UTCDateTime(), nullable=True)

    political_distance = Column(Float, nullable=False, default=0.0)
    message_count = Column(Integer, nullable=False, default=0)

    started_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    last_message_at = Column(UTCDateTime(), nullable=False, default=utcnow, index=True)
    ended_at = Column(UTCDateTime(), nullable=True)

    version = Column(Integer, nullable=False)

    messages = relationship(
        "Message",
        back_populates="room",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.sequence",
    )
    ratings = relationship(
        "DebateRating",
        back_populates="room",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def participant_ids(self):
        return (self.participant1_id, self.participant2_id)

    @property
    def is_private(self) -> bool:
        return Privacy.PRIVATE in (self.participant1_privacy, self.participant2_privacy)

    def is_participant(self, user_id: str) -> bool:
        return user_id in self.participant_ids

    def counterpart_of(self, user_id: str) -> str:
        if user_id == self.participant1_id:
            return self.participant2_id
        if user_id == self.participant2_id:
            return self.participant1_id
        raise ValueError(f"User {user_id} is not a participant in room {self.id}")

    def last_read_at_for(self, user_id: str):
        if user_id == self.participant1_id:
            return self.participant1_last_read_at
        return self.participant2_last_read_at


class Message(Base):
    __tablename__ = "debate_messages"
    __table_args__ = (
        UniqueConstraint("room_id", "sequence", name="uq_message_room_sequence"),
        UniqueConstraint("room_id", "user_id", "client_message_id", name="uq_message_client_id"),
        Index("ix_message_room_created", "room_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    room_id = Column(
        String(36),
        ForeignKey("debate_rooms.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = Column(String(64), nullable=False)
    content = Column(Text, nullable=False)
    status = _enum_column(MessageStatus, nullable=False, default=MessageStatus.APPROVED)
    sequence = Column(Integer, nullable=False)
    client_message_id = Column(String(64), nullable=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    room = relationship("Room", back_populates="messages")
    flags = relationship(
        "MessageFlag",
        back_populates="message",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class MessageFlag(Base):
    __tablename__ = "debate_message_flags"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_message_flag"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    message_id = Column(
        String(36),
        ForeignKey("debate_messages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(64), nullable=False)
    fallacy_type = Column(String(50), nullable=False)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    message = relationship("Message", back_populates="flags")


class DebateRating(Base):
    __tablename__ = "debate_ratings"
    __table_args__ = (
        UniqueConstraint("room_id", "voter_id", name="uq_rating_room_voter"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    room_id = Column(
        String(36),
        ForeignKey("debate_rooms.id", ondelete="CASCADE"),
        nullable=False,
    )
    voter_id = Column(String(64), nullable=False)
    voted_for_user_id = Column(String(64), nullable=False, index=True)
    logical_reasoning = Column(Integer, nullable=False)
    politeness = Column(Integer, nullable=False)
    openness_to_change = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow)

    room = relationship("Room", back_populates="ratings")
