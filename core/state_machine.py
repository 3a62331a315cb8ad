"""
狀態機：集中管理辯論房的所有狀態轉換

狀態 = {structured, voting, free-form} × {active, ended, archived}

Phase：
    structured → voting → free-form
    （離開 structured 之後永遠回不去）

Status：
    active → ended → archived
    （archived 是終點，只能由 Lifecycle Sweeper 觸發）

這裡只有純邏輯：輸入目前的 RoomState 和一個事件，輸出新的 RoomState。
不碰資料庫、不碰時間，方便測試。
"""
from dataclasses import dataclass, replace
from typing import Optional

from models import Room, RoomStatus, RoomPhase, EndReason
from core.exceptions import (
    InvalidStateTransition,
    NotParticipantError,
    RoomInactiveError,
    TurnViolationError,
)


@dataclass(frozen=True)
class RoomState:
    """Immutable snapshot of the protocol-relevant fields of a room."""
    participant1_id: str
    participant2_id: str
    status: RoomStatus = RoomStatus.ACTIVE
    phase: RoomPhase = RoomPhase.STRUCTURED
    current_turn: Optional[str] = None
    turn_count1: int = 0
    turn_count2: int = 0
    vote1: Optional[bool] = None
    vote2: Optional[bool] = None
    end_reason: Optional[EndReason] = None

    def __post_init__(self):
        if self.participant1_id == self.participant2_id:
            raise ValueError("A debate room needs two distinct participants")
        if self.current_turn is not None and self.current_turn not in self.participant_ids:
            raise ValueError(f"current_turn {self.current_turn} is not a participant")

    @property
    def participant_ids(self):
        return (self.participant1_id, self.participant2_id)

    def slot_of(self, user_id: str) -> int:
        if user_id == self.participant1_id:
            return 1
        if user_id == self.participant2_id:
            return 2
        raise NotParticipantError()

    def other(self, user_id: str) -> str:
        return self.participant2_id if self.slot_of(user_id) == 1 else self.participant1_id

    @classmethod
    def from_room(cls, room: Room) -> "RoomState":
        return cls(
            participant1_id=room.participant1_id,
            participant2_id=room.participant2_id,
            status=room.status,
            phase=room.phase,
            current_turn=room.current_turn,
            turn_count1=room.turn_count1 or 0,
            turn_count2=room.turn_count2 or 0,
            vote1=room.votes_to_continue1,
            vote2=room.votes_to_continue2,
            end_reason=room.end_reason,
        )

    def apply_to(self, room: Room) -> None:
        """Copy the snapshot back onto the ORM row (participants never change)."""
        room.status = self.status
        room.phase = self.phase
        room.current_turn = self.current_turn
        room.turn_count1 = self.turn_count1
        room.turn_count2 = self.turn_count2
        room.votes_to_continue1 = self.vote1
        room.votes_to_continue2 = self.vote2
        room.end_reason = self.end_reason


class RoomStateMachine:
    """辯論房狀態機"""

    PHASE_TRANSITIONS = {
        RoomPhase.STRUCTURED: {RoomPhase.VOTING},
        RoomPhase.VOTING: {RoomPhase.FREE_FORM},
        RoomPhase.FREE_FORM: set(),
    }

    STATUS_TRANSITIONS = {
        RoomStatus.ACTIVE: {RoomStatus.ENDED},
        RoomStatus.ENDED: {RoomStatus.ARCHIVED},
        RoomStatus.ARCHIVED: set(),
    }

    @classmethod
    def can_change_phase(cls, current: RoomPhase, target: RoomPhase) -> bool:
        return target in cls.PHASE_TRANSITIONS.get(current, set())

    @classmethod
    def can_change_status(cls, current: RoomStatus, target: RoomStatus) -> bool:
        return target in cls.STATUS_TRANSITIONS.get(current, set())

    @staticmethod
    def require_active(state: RoomState) -> None:
        if state.status != RoomStatus.ACTIVE:
            raise RoomInactiveError(
                f"Debate room is {state.status.value}, no further actions allowed"
            )

    @classmethod
    def _change_phase(cls, state: RoomState, target: RoomPhase) -> RoomState:
        cls.require_active(state)
        if not cls.can_change_phase(state.phase, target):
            raise InvalidStateTransition(
                f"Cannot move from {state.phase.value} to {target.value}"
            )
        # 換階段時清掉回合和投票，下一輪投票重新開始
        return replace(state, phase=target, current_turn=None, vote1=None, vote2=None)

    # ============ 事件 ============

    @classmethod
    def on_message(cls, state: RoomState, user_id: str) -> RoomState:
        """
        處理一則新訊息

        structured：必須輪到發言者，發言後計數 +1 並把回合交給對方
        voting / free-form：不檢查回合
        """
        slot = state.slot_of(user_id)
        cls.require_active(state)

        if state.phase != RoomPhase.STRUCTURED:
            return state

        if state.current_turn != user_id:
            raise TurnViolationError()

        if slot == 1:
            return replace(
                state,
                turn_count1=state.turn_count1 + 1,
                current_turn=state.participant2_id,
            )
        return replace(
            state,
            turn_count2=state.turn_count2 + 1,
            current_turn=state.participant1_id,
        )

    @staticmethod
    def turn_limit_reached(state: RoomState, limit: int) -> bool:
        return (
            state.phase == RoomPhase.STRUCTURED
            and state.turn_count1 >= limit
            and state.turn_count2 >= limit
        )

    @classmethod
    def open_voting(cls, state: RoomState) -> RoomState:
        """structured → voting"""
        return cls._change_phase(state, RoomPhase.VOTING)

    @classmethod
    def enter_free_form(cls, state: RoomState) -> RoomState:
        """voting → free-form"""
        return cls._change_phase(state, RoomPhase.FREE_FORM)

    @classmethod
    def record_vote(cls, state: RoomState, user_id: str, wants_to_continue: bool) -> RoomState:
        """
        記錄一位參與者的投票（覆蓋自己先前的票，不影響對方）

        單獨一票不會造成任何轉換，轉換由 ConsensusResolver 決定
        """
        slot = state.slot_of(user_id)
        cls.require_active(state)
        if state.phase != RoomPhase.VOTING:
            raise InvalidStateTransition("Voting is only allowed in the voting phase")

        if slot == 1:
            return replace(state, vote1=wants_to_continue)
        return replace(state, vote2=wants_to_continue)

    @classmethod
    def end(cls, state: RoomState, reason: EndReason) -> RoomState:
        """任何階段 → ended"""
        cls.require_active(state)
        return replace(
            state,
            status=RoomStatus.ENDED,
            current_turn=None,
            end_reason=reason,
        )

    @classmethod
    def archive(cls, state: RoomState) -> RoomState:
        """ended → archived（只給 Lifecycle Sweeper 用）"""
        if not cls.can_change_status(state.status, RoomStatus.ARCHIVED):
            raise InvalidStateTransition(
                f"Cannot archive a room in status {state.status.value}"
            )
        return replace(state, status=RoomStatus.ARCHIVED)
