"""Unit tests for match creation and closure."""

from unittest.mock import Mock
from uuid import UUID, uuid4

import pytest

from neighborshare.config import REWARD_SOURCE_MATCH_GIVER
from neighborshare.domain.listings import ActorRole, MatchStrategy
from neighborshare.infrastructure.channels import SqlConversationChannels
from neighborshare.matching.errors import (
    InvalidClosureTypeError,
    MatchAlreadyClosedError,
    MatchNotFoundError,
    NotParticipantError,
    StaleListingError,
)
from neighborshare.matching.scorer import ScoreResult
from neighborshare.models import (
    ConversationChannel,
    Match,
    Need,
    Offer,
    PairHistory,
    RewardLedgerEntry,
    RewardRule,
)


class FailingCommitChannels(SqlConversationChannels):
    """Channel adapter whose close() commit hits a uniqueness violation."""

    def close(self, channel_id):
        channel = self.db.get(ConversationChannel, UUID(str(channel_id)))
        self.db.add(ConversationChannel(
            match_id=channel.match_id,
            participant_a_id=uuid4(),
            participant_b_id=uuid4(),
        ))
        self.db.commit()


@pytest.fixture
def lifecycle(matching_engine):
    return matching_engine.lifecycle


@pytest.fixture
def score():
    return ScoreResult(score=0.9, reasons=["category matches"])


@pytest.fixture
def active_match(db_session, lifecycle, make_offer, make_need, community_id, meal_survey, score, notifications):
    """A committed, active match between a fresh offer and need."""
    offer = make_offer(community_id, survey=meal_survey)
    need = make_need(community_id, survey=meal_survey)
    creation = lifecycle.create_match(offer, need, score, MatchStrategy.CANDIDATE)
    notifications.reset_mock()
    return creation.match


class TestCreateMatch:
    """Match creation unit of work"""

    def test_creates_match_and_claims_listings(self, db_session, lifecycle, make_offer, make_need,
                                               community_id, meal_survey, score, notifications):
        offer = make_offer(community_id, survey=meal_survey)
        need = make_need(community_id, survey=meal_survey)

        creation = lifecycle.create_match(offer, need, score, MatchStrategy.CANDIDATE)

        assert creation.created is True
        match = creation.match
        assert match.status == "active"
        assert match.strategy == "candidate"
        assert match.reasons == ["category matches"]
        assert match.offer_owner_id == offer.owner_id
        assert match.need_owner_id == need.owner_id
        assert match.other_participant(offer.owner_id) == need.owner_id
        assert match.other_participant(need.owner_id) == offer.owner_id
        assert db_session.get(Offer, offer.id).status == "matched"
        assert db_session.get(Need, need.id).status == "matched"

        channel = db_session.query(ConversationChannel).filter_by(match_id=match.id).one()
        assert match.channel_id == str(channel.id)

        notified = {call.args[0] for call in notifications.send.call_args_list}
        assert notified == {offer.owner_id, need.owner_id}
        assert all(call.args[1] == "match_created" for call in notifications.send.call_args_list)

    def test_existing_pair_is_returned(self, db_session, lifecycle, active_match, score):
        offer = db_session.get(Offer, active_match.offer_id)
        need = db_session.get(Need, active_match.need_id)

        creation = lifecycle.create_match(offer, need, score, MatchStrategy.SWEEP)

        assert creation.created is False
        assert creation.match.id == active_match.id
        assert db_session.query(Match).count() == 1

    def test_claimed_need_rolls_back_offer_claim(self, db_session, lifecycle, make_offer, make_need,
                                                 community_id, meal_survey, score):
        """Test a lost claim leaves no partial state behind"""
        offer = make_offer(community_id, survey=meal_survey)
        need = make_need(community_id, survey=meal_survey, status="matched")

        with pytest.raises(StaleListingError) as exc:
            lifecycle.create_match(offer, need, score, MatchStrategy.CANDIDATE)

        assert exc.value.kind == "need"
        db_session.rollback()
        assert db_session.get(Offer, offer.id).status == "active"
        assert db_session.query(Match).count() == 0
        assert db_session.query(ConversationChannel).count() == 0

    def test_notification_failure_keeps_match(self, db_session, lifecycle, make_offer, make_need,
                                              community_id, meal_survey, score, notifications):
        notifications.send.side_effect = RuntimeError("broker down")
        offer = make_offer(community_id, survey=meal_survey)
        need = make_need(community_id, survey=meal_survey)

        creation = lifecycle.create_match(offer, need, score, MatchStrategy.CANDIDATE)

        assert creation.created is True
        assert db_session.query(Match).count() == 1


class TestSuccessfulClosure:
    """successful -> closed, rewards and pair history"""

    def test_rewards_both_participants(self, db_session, matching_engine, active_match, notifications):
        result = matching_engine.request_closure(active_match.id, active_match.offer_owner_id, "successful")

        assert result.status == "closed"
        assert result.reward_issued is True
        assert result.reward_amount == 250
        assert result.pair_flagged is False
        assert matching_engine.balance(active_match.offer_owner_id) == 200
        assert matching_engine.balance(active_match.need_owner_id) == 50

        history = db_session.query(PairHistory).filter_by(match_id=active_match.id).one()
        assert history.was_successful is True

        match = db_session.get(Match, active_match.id)
        assert match.closed_by == active_match.offer_owner_id
        assert match.closure_type == "successful"
        assert match.reward_amount == 250

    def test_closes_channel_and_notifies_other_party(self, db_session, matching_engine, active_match, notifications):
        matching_engine.request_closure(active_match.id, active_match.need_owner_id, "successful")

        channel = db_session.query(ConversationChannel).filter_by(match_id=active_match.id).one()
        assert channel.status == "closed"
        notifications.send.assert_called_once()
        assert notifications.send.call_args.args[0] == active_match.offer_owner_id
        assert notifications.send.call_args.args[1] == "match_closed"

    def test_second_closure_rejected_and_paid_once(self, db_session, matching_engine, active_match):
        matching_engine.request_closure(active_match.id, active_match.offer_owner_id, "successful")

        with pytest.raises(MatchAlreadyClosedError):
            matching_engine.request_closure(active_match.id, active_match.need_owner_id, "successful")

        assert db_session.query(RewardLedgerEntry).count() == 2
        assert matching_engine.balance(active_match.offer_owner_id) == 200

    def test_uses_reward_rule_table(self, db_session, matching_engine, active_match):
        db_session.add(RewardRule(source_type=REWARD_SOURCE_MATCH_GIVER, amount=300))
        db_session.commit()

        result = matching_engine.request_closure(active_match.id, active_match.offer_owner_id, "successful")

        assert result.reward_amount == 350
        assert matching_engine.balance(active_match.offer_owner_id) == 300

    def test_repetition_flag_is_advisory(self, db_session, matching_engine, active_match):
        for _ in range(4):
            matching_engine.pair_guard.record(uuid4(), active_match.offer_owner_id, active_match.need_owner_id, True)
        db_session.commit()

        result = matching_engine.request_closure(active_match.id, active_match.offer_owner_id, "successful")

        assert result.pair_flagged is True
        assert result.status == "closed"
        assert result.reward_issued is True


class TestCancelledClosure:
    """cancelled -> listings reopened, nothing paid"""

    def test_reopens_both_listings(self, db_session, matching_engine, active_match):
        result = matching_engine.request_closure(
            active_match.id, active_match.offer_owner_id, "cancelled", reason="Plans changed"
        )

        assert result.status == "cancelled"
        assert result.reward_issued is False
        assert result.reward_amount == 0
        assert db_session.get(Offer, active_match.offer_id).status == "active"
        assert db_session.get(Need, active_match.need_id).status == "active"
        assert db_session.query(RewardLedgerEntry).count() == 0
        assert db_session.query(PairHistory).count() == 0
        assert db_session.get(Match, active_match.id).closure_reason == "Plans changed"


class TestDisputedClosure:
    """disputed -> pair history, nothing paid"""

    def test_records_unsuccessful_pair(self, db_session, matching_engine, active_match):
        result = matching_engine.request_closure(active_match.id, active_match.need_owner_id, "disputed")

        assert result.status == "disputed"
        assert db_session.query(RewardLedgerEntry).count() == 0
        history = db_session.query(PairHistory).filter_by(match_id=active_match.id).one()
        assert history.was_successful is False


class TestClosureRequests:
    """Authorization and bad requests"""

    def test_non_participant_rejected_without_side_effects(self, db_session, matching_engine, active_match,
                                                          notifications):
        with pytest.raises(NotParticipantError):
            matching_engine.request_closure(active_match.id, uuid4(), "successful")

        assert db_session.get(Match, active_match.id).status == "active"
        assert db_session.query(RewardLedgerEntry).count() == 0
        notifications.send.assert_not_called()

    def test_moderator_may_close_and_both_are_notified(self, db_session, matching_engine, active_match,
                                                       notifications):
        moderator_id = uuid4()

        result = matching_engine.request_closure(
            active_match.id, moderator_id, "disputed", actor_role=ActorRole.MODERATOR
        )

        assert result.status == "disputed"
        notified = {call.args[0] for call in notifications.send.call_args_list}
        assert notified == {active_match.offer_owner_id, active_match.need_owner_id}

    def test_unknown_match(self, matching_engine):
        with pytest.raises(MatchNotFoundError):
            matching_engine.request_closure(uuid4(), uuid4(), "successful")

    def test_invalid_closure_type(self, matching_engine, active_match):
        with pytest.raises(InvalidClosureTypeError):
            matching_engine.request_closure(active_match.id, active_match.offer_owner_id, "abandoned")

    def test_side_effect_failures_do_not_undo_closure(self, db_session, matching_engine, active_match,
                                                      notifications):
        notifications.send.side_effect = RuntimeError("broker down")
        matching_engine.lifecycle.channels = Mock()
        matching_engine.lifecycle.channels.close.side_effect = RuntimeError("chat service down")

        result = matching_engine.request_closure(active_match.id, active_match.offer_owner_id, "successful")

        assert result.status == "closed"
        assert db_session.get(Match, active_match.id).status == "closed"
        assert matching_engine.balance(active_match.need_owner_id) == 50

    def test_failed_channel_commit_leaves_session_usable(self, db_session, matching_engine, active_match):
        """Test a channel adapter whose commit fails does not poison the shared session"""
        matching_engine.lifecycle.channels = FailingCommitChannels(db_session)

        result = matching_engine.request_closure(active_match.id, active_match.offer_owner_id, "successful")

        assert result.status == "closed"
        assert db_session.get(Match, active_match.id).status == "closed"
        assert matching_engine.balance(active_match.offer_owner_id) == 200
        assert db_session.query(ConversationChannel).count() == 1

    def test_lost_closure_race(self, db_session, matching_engine, active_match):
        """Test the conditional update rejects a closure that lost to a concurrent one"""
        lifecycle = matching_engine.lifecycle
        stale_view = Match(
            id=active_match.id,
            community_id=active_match.community_id,
            offer_id=active_match.offer_id,
            need_id=active_match.need_id,
            offer_owner_id=active_match.offer_owner_id,
            need_owner_id=active_match.need_owner_id,
            channel_id=active_match.channel_id,
            status="active",
        )
        lifecycle.get_match = Mock(return_value=stale_view)
        db_session.query(Match).filter_by(id=active_match.id).update({"status": "cancelled"})
        db_session.commit()

        with pytest.raises(MatchAlreadyClosedError):
            lifecycle.request_closure(active_match.id, active_match.offer_owner_id, "successful")

        assert db_session.query(RewardLedgerEntry).count() == 0
