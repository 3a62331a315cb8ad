import pytest

from core.consensus import ConsensusOutcome, ConsensusResolver, resolve_consensus
from core.state_machine import RoomState, RoomStateMachine
from models import EndReason, RoomPhase, RoomStatus


@pytest.fixture
def voting_state():
    state = RoomState(participant1_id="alice", participant2_id="bob", current_turn="alice")
    return RoomStateMachine.open_voting(state)


@pytest.mark.parametrize("vote1, vote2, outcome, reason", [
    (True, True, ConsensusOutcome.CONTINUE, None),
    (True, False, ConsensusOutcome.END, EndReason.VOTE_DISAGREEMENT),
    (False, True, ConsensusOutcome.END, EndReason.VOTE_DISAGREEMENT),
    (False, False, ConsensusOutcome.END, EndReason.MUTUAL_END),
])
def test_vote_pairs(voting_state, vote1, vote2, outcome, reason):
    state, first = ConsensusResolver.cast(voting_state, "alice", vote1)
    assert first.outcome == ConsensusOutcome.PENDING
    assert state.phase == RoomPhase.VOTING
    assert state.status == RoomStatus.ACTIVE

    state, decision = ConsensusResolver.cast(state, "bob", vote2)

    assert decision.outcome == outcome
    assert decision.end_reason == reason
    if outcome == ConsensusOutcome.CONTINUE:
        assert state.phase == RoomPhase.FREE_FORM
        assert state.status == RoomStatus.ACTIVE
        assert (state.vote1, state.vote2) == (None, None)
    else:
        assert state.status == RoomStatus.ENDED
        assert state.current_turn is None


@pytest.mark.parametrize("vote1, vote2", [(None, None), (True, None), (None, False)])
def test_single_vote_is_pending(vote1, vote2):
    assert resolve_consensus(vote1, vote2).outcome == ConsensusOutcome.PENDING


def test_changing_own_vote_before_counterpart(voting_state):
    state, _ = ConsensusResolver.cast(voting_state, "alice", False)
    state, _ = ConsensusResolver.cast(state, "alice", True)
    state, decision = ConsensusResolver.cast(state, "bob", True)

    assert decision.outcome == ConsensusOutcome.CONTINUE
    assert state.phase == RoomPhase.FREE_FORM
