"""
API schemas (Pydantic)

所有時間欄位都是絕對時間（ISO-8601, UTC），不是相對時間
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import EndReason, MessageStatus, Privacy, RoomPhase, RoomStatus


# ============ Requests ============

class CreateRoomRequest(BaseModel):
    opening_message: Optional[str] = Field(default=None, max_length=5000)


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1)
    client_message_id: Optional[str] = Field(default=None, max_length=64)


class RatingInput(BaseModel):
    logical_reasoning: int = Field(..., ge=1, le=5)
    politeness: int = Field(..., ge=1, le=5)
    openness_to_change: int = Field(..., ge=1, le=5)


class ContinueVoteRequest(BaseModel):
    vote_to_continue: bool
    ratings: Optional[RatingInput] = None


class PrivacyRequest(BaseModel):
    is_private: bool


class FlagRequest(BaseModel):
    fallacy_type: str = Field(..., min_length=1, max_length=50)


# ============ Responses ============

class RoomResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    topic_id: str
    participant1_id: str
    participant2_id: str
    participant1_stance: str
    participant2_stance: str
    participant1_privacy: Privacy
    participant2_privacy: Privacy
    is_private: bool
    status: RoomStatus
    phase: RoomPhase
    end_reason: Optional[EndReason] = None
    current_turn: Optional[str] = None
    turn_count1: int
    turn_count2: int
    votes_to_continue1: Optional[bool] = None
    votes_to_continue2: Optional[bool] = None
    political_distance: float
    message_count: int
    started_at: datetime
    last_message_at: datetime
    ended_at: Optional[datetime] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    room_id: str
    user_id: str
    content: str
    status: MessageStatus
    sequence: int
    client_message_id: Optional[str] = None
    created_at: datetime
    fallacy_counts: Dict[str, int] = Field(default_factory=dict)


class SendMessageResponse(BaseModel):
    message: MessageResponse
    room: RoomResponse
    created: bool


class VoteResponse(BaseModel):
    room: RoomResponse
    outcome: str


class TopicSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: Optional[str] = None


class UserSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    display_name: str
    profile_image_url: Optional[str] = None


class LastMessagePreview(BaseModel):
    content: str
    sender_id: str
    created_at: datetime


class RoomSummaryResponse(BaseModel):
    room: RoomResponse
    topic: Optional[TopicSummaryResponse] = None
    opponent: UserSummaryResponse
    unread_count: int
    last_message: Optional[LastMessagePreview] = None


class GroupedRoomsResponse(BaseModel):
    active: List[RoomSummaryResponse]
    ended: List[RoomSummaryResponse]
    archived: List[RoomSummaryResponse]


class RatingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    room_id: str
    voter_id: str
    voted_for_user_id: str
    logical_reasoning: int
    politeness: int
    openness_to_change: int
    created_at: datetime


class DebateStatsResponse(BaseModel):
    user_id: str
    total_debates: int
    avg_logical_reasoning: float
    avg_politeness: float
    avg_openness_to_change: float
    total_votes_received: int


class FlagResponse(BaseModel):
    message_id: str
    fallacy_type: str
    fallacy_counts: Dict[str, int]


class FallacyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str
    name: str
    description: str
    example: str
