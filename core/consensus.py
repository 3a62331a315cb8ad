"""
投票階段的共識判定

雙方都投票之後才判定：
- 兩票都是「繼續」→ 進入自由辯論
- 其他組合 → 房間結束

Only one vote recorded means the room stays in voting.
"""
import enum
from dataclasses import dataclass
from typing import Optional, Tuple

from models import EndReason
from core.state_machine import RoomState, RoomStateMachine


class ConsensusOutcome(str, enum.Enum):
    PENDING = "pending"
    CONTINUE = "continue"
    END = "end"


@dataclass(frozen=True)
class ConsensusDecision:
    outcome: ConsensusOutcome
    end_reason: Optional[EndReason] = None


def resolve_consensus(vote1: Optional[bool], vote2: Optional[bool]) -> ConsensusDecision:
    if vote1 is None or vote2 is None:
        return ConsensusDecision(ConsensusOutcome.PENDING)
    if vote1 and vote2:
        return ConsensusDecision(ConsensusOutcome.CONTINUE)
    if not vote1 and not vote2:
        return ConsensusDecision(ConsensusOutcome.END, EndReason.MUTUAL_END)
    return ConsensusDecision(ConsensusOutcome.END, EndReason.VOTE_DISAGREEMENT)


class ConsensusResolver:

    @staticmethod
    def cast(state: RoomState, user_id: str, wants_to_continue: bool) -> Tuple[RoomState, ConsensusDecision]:
        """
        Record a vote and apply whichever of the three outcomes it produces.

        Returns the new state and the decision so the caller can persist both
        in the same transaction as the vote write.
        """
        voted = RoomStateMachine.record_vote(state, user_id, wants_to_continue)
        decision = resolve_consensus(voted.vote1, voted.vote2)

        if decision.outcome == ConsensusOutcome.CONTINUE:
            return RoomStateMachine.enter_free_form(voted), decision
        if decision.outcome == ConsensusOutcome.END:
            return RoomStateMachine.end(voted, decision.end_reason), decision
        return voted, decision
