"""
RoomManager 的整合測試（SQLite in-memory）
"""
from datetime import timedelta

import pytest

from core.consensus import ConsensusOutcome
from core.exceptions import (
    DuplicateFlagError,
    InvalidStateTransition,
    MissingPrerequisiteError,
    NotFoundError,
    NotParticipantError,
    RoomInactiveError,
    SelfDebateError,
    TurnViolationError,
    ValidationError,
)
from core.room_manager import RoomManager
from models import (
    EndReason,
    Message,
    MessageFlag,
    Privacy,
    RoomPhase,
    RoomStatus,
)
from services.stats_service import get_user_debate_stats
from tests.conftest import exchange

RATINGS = {"logical_reasoning": 4, "politeness": 5, "openness_to_change": 3}


def to_voting(db, room, alice, bob):
    exchange(db, room.id, alice, bob, 3)
    return RoomManager.get_room(db, room.id, alice)


class TestCreateRoom:

    def test_author_opens_the_debate(self, room):
        assert room.status == RoomStatus.ACTIVE
        assert room.phase == RoomPhase.STRUCTURED
        assert room.participant1_id == "alice"
        assert room.participant2_id == "bob"
        assert room.current_turn == "alice"
        assert room.participant1_stance == "support"
        assert room.participant2_stance == "oppose"
        assert room.political_distance == pytest.approx(50.0)
        assert room.last_message_at == room.started_at

    def test_cannot_debate_own_opinion(self, db, directory, alice):
        with pytest.raises(SelfDebateError):
            RoomManager.create_room(db, directory, "op-alice", alice)

    def test_challenger_needs_an_opinion(self, db, directory, carol):
        with pytest.raises(MissingPrerequisiteError):
            RoomManager.create_room(db, directory, "op-alice", carol)

    def test_unknown_opinion(self, db, directory, bob):
        with pytest.raises(NotFoundError):
            RoomManager.create_room(db, directory, "op-missing", bob)

    def test_missing_scores_do_not_block(self, db, directory, alice):
        directory.set_political_scores("alice", None, None)

        room = RoomManager.create_room(db, directory, "op-bob", alice)

        assert room.political_distance == 0.0
        assert room.current_turn == "bob"

    def test_opening_message_counts_as_challenger_turn(self, db, directory, bob):
        room = RoomManager.create_room(db, directory, "op-alice", bob, opening_message="  Let me start.  ")

        assert room.message_count == 1
        assert room.turn_count2 == 1
        assert room.current_turn == "alice"
        messages = db.query(Message).filter(Message.room_id == room.id).all()
        assert [m.content for m in messages] == ["Let me start."]
        assert messages[0].sequence == 1


class TestSendMessage:

    def test_turn_flips_to_counterpart(self, db, room, alice):
        result = RoomManager.send_message(db, room.id, alice, "Opening argument")

        assert result.created
        assert result.room.current_turn == "bob"
        assert result.room.turn_count1 == 1
        assert result.message.sequence == 1
        assert result.room.last_message_at == result.message.created_at

    def test_out_of_turn_leaves_state_unchanged(self, db, room, bob):
        with pytest.raises(TurnViolationError):
            RoomManager.send_message(db, room.id, bob, "Jumping in")

        reloaded = RoomManager.get_room(db, room.id, bob)
        assert reloaded.current_turn == "alice"
        assert reloaded.turn_count2 == 0
        assert reloaded.message_count == 0
        assert db.query(Message).count() == 0

    def test_outsider_cannot_send(self, db, room, carol):
        with pytest.raises(NotParticipantError):
            RoomManager.send_message(db, room.id, carol, "Hello")

    def test_blank_and_oversized_content(self, db, room, alice):
        with pytest.raises(ValidationError):
            RoomManager.send_message(db, room.id, alice, "   ")
        with pytest.raises(ValidationError):
            RoomManager.send_message(db, room.id, alice, "x" * 5001)

    def test_turn_limit_opens_voting(self, db, room, alice, bob):
        exchange(db, room.id, alice, bob, 2)
        RoomManager.send_message(db, room.id, alice, "third point")

        result = RoomManager.send_message(db, room.id, bob, "third reply")

        assert result.phase_changed
        assert result.room.phase == RoomPhase.VOTING
        assert result.room.current_turn is None
        assert (result.room.turn_count1, result.room.turn_count2) == (3, 3)

    def test_duplicate_submission_is_idempotent(self, db, room, alice):
        first = RoomManager.send_message(db, room.id, alice, "Point", client_message_id="c-1")
        again = RoomManager.send_message(db, room.id, alice, "Point", client_message_id="c-1")

        assert first.created
        assert not again.created
        assert again.message.id == first.message.id
        assert again.room.message_count == 1
        assert again.room.current_turn == "bob"

    def test_messages_allowed_in_voting_phase(self, db, room, alice, bob):
        to_voting(db, room, alice, bob)

        result = RoomManager.send_message(db, room.id, bob, "One more thing")

        assert result.room.phase == RoomPhase.VOTING
        assert result.room.current_turn is None

    def test_ended_room_rejects_messages(self, db, room, alice, bob):
        RoomManager.end_room(db, room.id, bob)

        with pytest.raises(RoomInactiveError):
            RoomManager.send_message(db, room.id, alice, "Wait")


class TestVoting:

    def test_vote_outside_voting_phase(self, db, room, alice):
        with pytest.raises(InvalidStateTransition):
            RoomManager.cast_continue_vote(db, room.id, alice, True)

    def test_disagreement_ends_room(self, db, room, alice, bob):
        to_voting(db, room, alice, bob)

        first = RoomManager.cast_continue_vote(db, room.id, bob, True)
        assert first.decision.outcome == ConsensusOutcome.PENDING
        assert first.room.status == RoomStatus.ACTIVE

        result = RoomManager.cast_continue_vote(db, room.id, alice, False)

        assert result.status_changed
        assert result.room.status == RoomStatus.ENDED
        assert result.room.end_reason == EndReason.VOTE_DISAGREEMENT
        assert result.room.current_turn is None
        assert result.room.ended_at is not None

    def test_both_end_is_mutual(self, db, room, alice, bob):
        to_voting(db, room, alice, bob)
        RoomManager.cast_continue_vote(db, room.id, alice, False)

        result = RoomManager.cast_continue_vote(db, room.id, bob, False)

        assert result.room.end_reason == EndReason.MUTUAL_END

    def test_both_continue_enters_free_form(self, db, room, alice, bob):
        to_voting(db, room, alice, bob)
        RoomManager.cast_continue_vote(db, room.id, alice, True)

        result = RoomManager.cast_continue_vote(db, room.id, bob, True)

        assert result.phase_changed
        assert result.room.phase == RoomPhase.FREE_FORM
        assert result.room.votes_to_continue1 is None
        assert result.room.votes_to_continue2 is None

        # 不再檢查回合
        RoomManager.send_message(db, room.id, bob, "free 1")
        RoomManager.send_message(db, room.id, bob, "free 2")

    def test_ratings_are_stored_for_counterpart(self, db, room, alice, bob):
        to_voting(db, room, alice, bob)

        RoomManager.cast_continue_vote(db, room.id, bob, False, ratings=RATINGS)
        RoomManager.cast_continue_vote(db, room.id, alice, False, ratings=RATINGS)

        ratings = RoomManager.get_ratings(db, room.id, alice)
        assert {(r.voter_id, r.voted_for_user_id) for r in ratings} == {("bob", "alice"), ("alice", "bob")}

        stats = get_user_debate_stats("alice", db)
        assert stats["total_debates"] == 1
        assert stats["avg_politeness"] == 5.0
        assert stats["total_votes_received"] == 1

    def test_invalid_ratings(self, db, room, alice, bob):
        to_voting(db, room, alice, bob)

        with pytest.raises(ValidationError):
            RoomManager.cast_continue_vote(db, room.id, bob, True, ratings={"politeness": 9})

    def test_open_voting_is_staff_only(self, db, room, alice, moderator):
        with pytest.raises(NotParticipantError):
            RoomManager.open_voting(db, room.id, alice)

        opened = RoomManager.open_voting(db, room.id, moderator)
        assert opened.phase == RoomPhase.VOTING


class TestParticipantFields:

    def test_privacy_isolation(self, db, room, alice, bob):
        updated = RoomManager.set_privacy(db, room.id, alice, True)

        assert updated.participant1_privacy == Privacy.PRIVATE
        assert updated.participant2_privacy == Privacy.PUBLIC
        assert updated.is_private
        assert RoomManager.get_public_rooms(db, "bob") == []

        updated = RoomManager.set_privacy(db, room.id, alice, False)
        assert not updated.is_private
        assert [r.id for r in RoomManager.get_public_rooms(db, "bob")] == [room.id]

    def test_privacy_on_ended_room(self, db, room, bob):
        RoomManager.end_room(db, room.id, bob)

        updated = RoomManager.set_privacy(db, room.id, bob, True)

        assert updated.participant2_privacy == Privacy.PRIVATE

    def test_end_room(self, db, room, bob):
        ended = RoomManager.end_room(db, room.id, bob)

        assert ended.status == RoomStatus.ENDED
        assert ended.end_reason == EndReason.PARTICIPANT_ENDED
        assert ended.current_turn is None

        with pytest.raises(RoomInactiveError):
            RoomManager.end_room(db, room.id, bob)

    def test_unread_counts_and_mark_read(self, db, directory, room, alice, bob):
        RoomManager.send_message(db, room.id, alice, "First point")

        [summary] = RoomManager.get_rooms_for_user(db, directory, "bob", bob)
        assert summary.unread_count == 1
        assert summary.opponent.display_name == "Alice"
        assert summary.topic.title == "Universal basic income"
        assert summary.last_message.content == "First point"

        [own] = RoomManager.get_rooms_for_user(db, directory, "alice", alice)
        assert own.unread_count == 0

        RoomManager.mark_read(db, room.id, bob)

        [summary] = RoomManager.get_rooms_for_user(db, directory, "bob", bob)
        assert summary.unread_count == 0

    def test_own_replies_are_not_unread(self, db, directory, room, alice, bob, t0):
        RoomManager.send_message(db, room.id, alice, "First point", now=t0)
        RoomManager.mark_read(db, room.id, alice, now=t0 + timedelta(seconds=30))
        RoomManager.send_message(db, room.id, bob, "Rebuttal", now=t0 + timedelta(minutes=1))
        RoomManager.send_message(db, room.id, alice, "Second point", now=t0 + timedelta(minutes=2))

        [mine] = RoomManager.get_rooms_for_user(db, directory, "alice", alice)
        [theirs] = RoomManager.get_rooms_for_user(db, directory, "bob", bob)
        assert mine.unread_count == 1
        assert theirs.unread_count == 2


class TestFlags:

    @pytest.fixture
    def message(self, db, room, alice):
        return RoomManager.send_message(db, room.id, alice, "Everyone knows this is true").message

    def test_flag_counts(self, db, room, message, bob):
        flag, counts = RoomManager.flag_message(db, message.id, bob, "appeal_to_emotion")

        assert flag.fallacy_type == "appeal_to_emotion"
        assert counts == {"appeal_to_emotion": 1}

    def test_second_flag_is_rejected(self, db, room, message, alice, bob):
        RoomManager.flag_message(db, message.id, bob, "straw_man")

        with pytest.raises(DuplicateFlagError):
            RoomManager.flag_message(db, message.id, bob, "red_herring")

        assert db.query(MessageFlag).count() == 1
        [(_, counts)] = RoomManager.get_messages(db, room.id, alice)
        assert counts == {"straw_man": 1}

    def test_cannot_flag_own_message(self, db, message, alice):
        with pytest.raises(ValidationError):
            RoomManager.flag_message(db, message.id, alice, "straw_man")

    def test_unknown_fallacy(self, db, message, bob):
        with pytest.raises(ValidationError):
            RoomManager.flag_message(db, message.id, bob, "bad_vibes")

    def test_outsider_and_unknown_message(self, db, message, carol, moderator):
        with pytest.raises(NotParticipantError):
            RoomManager.flag_message(db, message.id, carol, "straw_man")
        with pytest.raises(NotParticipantError):
            RoomManager.flag_message(db, "missing", carol, "straw_man")
        with pytest.raises(NotFoundError):
            RoomManager.flag_message(db, "missing", moderator, "straw_man")


class TestReads:

    def test_not_permitted_is_uniform(self, db, room, carol):
        with pytest.raises(NotParticipantError) as existing:
            RoomManager.get_room(db, room.id, carol)
        with pytest.raises(NotParticipantError) as missing:
            RoomManager.get_room(db, "no-such-room", carol)

        assert str(existing.value) == str(missing.value)

    def test_staff_can_read(self, db, room, moderator):
        assert RoomManager.get_room(db, room.id, moderator).id == room.id
        with pytest.raises(NotFoundError):
            RoomManager.get_room(db, "no-such-room", moderator)

    def test_message_history_and_paging(self, db, room, alice, bob):
        exchange(db, room.id, alice, bob, 2)

        rows = RoomManager.get_messages(db, room.id, bob)
        assert [m.sequence for m, _ in rows] == [1, 2, 3, 4]

        rows = RoomManager.get_messages(db, room.id, bob, after_sequence=2, limit=1)
        assert [m.sequence for m, _ in rows] == [3]

    def test_room_list_is_private_to_owner(self, db, directory, room, carol, moderator):
        with pytest.raises(NotParticipantError):
            RoomManager.get_rooms_for_user(db, directory, "alice", carol)

        assert len(RoomManager.get_rooms_for_user(db, directory, "alice", moderator)) == 1

    def test_grouped_and_filtered(self, db, directory, room, alice, bob):
        RoomManager.create_room(db, directory, "op-bob", alice)
        RoomManager.end_room(db, room.id, bob)

        grouped = RoomManager.get_grouped_rooms(db, directory, "alice", alice)
        assert len(grouped["active"]) == 1
        assert [s.room.id for s in grouped["ended"]] == [room.id]
        assert grouped["archived"] == []

        ended = RoomManager.get_rooms_for_user(db, directory, "alice", alice, status=RoomStatus.ENDED)
        assert [s.room.id for s in ended] == [room.id]
