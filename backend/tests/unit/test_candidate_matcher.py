"""Unit tests for immediate (candidate) matching."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import update

from neighborshare.config import EngineConfig
from neighborshare.engine import MatchingEngine
from neighborshare.infrastructure.repositories import SqlListingDirectory
from neighborshare.models import Match, Need, Offer

# Scores 0.1175 against each other: different category, disjoint tags,
# a quarter of the quantity and mismatched time windows
POOR_OFFER_SURVEY = {"category": "meal", "tags": ["halal"], "quantity": 1, "time_window": "morning"}
POOR_NEED_SURVEY = {"category": "bread", "tags": ["vegan"], "quantity": 4, "time_window": "evening"}


class ClaimRacingDirectory(SqlListingDirectory):
    """Listing directory where another worker claims the need just before us."""

    def claim_need(self, need_id):
        self.db.execute(
            update(Need)
            .where(Need.id == need_id)
            .values(status="matched")
            .execution_options(synchronize_session=False)
        )
        return super().claim_need(need_id)


class TestMatchOffer:
    """New offer against active needs"""

    def test_matches_best_need(self, matching_engine, make_offer, make_need, community_id, meal_survey):
        make_need(community_id, survey={"category": "bread"})
        best = make_need(community_id, survey=meal_survey)
        offer = make_offer(community_id, survey=meal_survey)

        outcome = matching_engine.on_entity_created(offer, community_id)

        assert outcome.status == "matched"
        assert outcome.score == 1.0
        match = matching_engine.lifecycle.get_match(outcome.match_id)
        assert match.need_id == best.id
        assert match.strategy == "candidate"

    def test_ties_go_to_earliest_need(self, matching_engine, make_offer, make_need, community_id, meal_survey):
        first = make_need(community_id, survey=meal_survey)
        make_need(community_id, survey=meal_survey)
        offer = make_offer(community_id, survey=meal_survey)

        outcome = matching_engine.on_entity_created(offer, community_id)

        assert matching_engine.lifecycle.get_match(outcome.match_id).need_id == first.id

    def test_own_need_is_excluded(self, matching_engine, make_offer, make_need, community_id, meal_survey):
        owner_id = uuid4()
        make_need(community_id, survey=meal_survey, owner_id=owner_id)
        offer = make_offer(community_id, survey=meal_survey, owner_id=owner_id)

        outcome = matching_engine.on_entity_created(offer, community_id)

        assert outcome.status == "no_candidate"

    def test_below_threshold(self, db_session, matching_engine, make_offer, make_need, community_id):
        make_need(community_id, survey=POOR_NEED_SURVEY)
        offer = make_offer(community_id, survey=POOR_OFFER_SURVEY)

        outcome = matching_engine.on_entity_created(offer, community_id)

        assert outcome.status == "no_candidate"
        assert db_session.query(Match).count() == 0

    def test_needs_in_other_communities_ignored(self, matching_engine, make_offer, make_need,
                                                community_id, other_community_id, meal_survey):
        make_need(other_community_id, survey=meal_survey)
        offer = make_offer(community_id, survey=meal_survey)

        assert matching_engine.on_entity_created(offer, community_id).status == "no_candidate"

    def test_malformed_survey_still_scored(self, matching_engine, make_offer, make_need, community_id):
        make_need(community_id, survey="{broken")
        offer = make_offer(community_id, survey="[]")

        outcome = matching_engine.on_entity_created(offer, community_id)

        # Both degrade to defaults: everything but category contributes
        assert outcome.status == "matched"
        assert outcome.score == pytest.approx(0.5)


class TestMatchNeed:
    """New need against active offers"""

    def test_matches_best_offer(self, matching_engine, make_offer, make_need, community_id, meal_survey):
        make_offer(community_id, survey={"category": "produce"})
        best = make_offer(community_id, survey=meal_survey)
        need = make_need(community_id, survey=meal_survey)

        outcome = matching_engine.on_entity_created(need, community_id)

        assert outcome.status == "matched"
        assert matching_engine.lifecycle.get_match(outcome.match_id).offer_id == best.id

    def test_expired_offers_ignored(self, matching_engine, make_offer, make_need, community_id, meal_survey):
        make_offer(community_id, survey=meal_survey, expiry_at=datetime.now(timezone.utc) - timedelta(hours=1))
        need = make_need(community_id, survey=meal_survey)

        assert matching_engine.on_entity_created(need, community_id).status == "no_candidate"

    def test_candidate_limit_caps_fetch(self, db_session, notifications, make_offer, make_need,
                                        community_id, meal_survey):
        first = make_offer(community_id, survey={"category": "other"})
        make_offer(community_id, survey=meal_survey)
        need = make_need(community_id, survey=meal_survey)
        engine = MatchingEngine(db_session, EngineConfig(candidate_limit=1), notifications=notifications)

        outcome = engine.on_entity_created(need, community_id)

        assert outcome.status == "matched"
        assert engine.lifecycle.get_match(outcome.match_id).offer_id == first.id


class TestStaleWorkItems:
    """Listings that are no longer matchable"""

    def test_redelivery_is_stale(self, db_session, matching_engine, make_offer, make_need, community_id, meal_survey):
        make_need(community_id, survey=meal_survey)
        offer = make_offer(community_id, survey=meal_survey)

        first = matching_engine.on_entity_created(offer, community_id)
        second = matching_engine.on_entity_created(offer, community_id)

        assert first.status == "matched"
        assert second.status == "stale"
        assert db_session.query(Match).count() == 1

    @pytest.mark.parametrize("status", ["draft", "cancelled", "closed"])
    def test_inactive_offer(self, matching_engine, make_offer, make_need, community_id, meal_survey, status):
        make_need(community_id, survey=meal_survey)
        offer = make_offer(community_id, survey=meal_survey, status=status)

        assert matching_engine.on_entity_created(offer, community_id).status == "stale"

    def test_expired_offer(self, matching_engine, make_offer, make_need, community_id, meal_survey):
        make_need(community_id, survey=meal_survey)
        offer = make_offer(community_id, survey=meal_survey, expiry_at=datetime.now(timezone.utc) - timedelta(minutes=1))

        assert matching_engine.on_entity_created(offer, community_id).status == "stale"

    def test_wrong_community(self, matching_engine, make_offer, make_need, community_id,
                             other_community_id, meal_survey):
        make_need(other_community_id, survey=meal_survey)
        offer = make_offer(community_id, survey=meal_survey)

        assert matching_engine.on_entity_created(offer, other_community_id).status == "stale"

    def test_unknown_listing(self, matching_engine, community_id):
        assert matching_engine.match_listing("need", uuid4(), community_id).status == "stale"

    def test_lost_claim_race(self, db_session, notifications, engine_config, make_offer, make_need,
                             community_id, meal_survey):
        make_need(community_id, survey=meal_survey)
        offer = make_offer(community_id, survey=meal_survey)
        engine = MatchingEngine(
            db_session,
            engine_config,
            notifications=notifications,
            listings=ClaimRacingDirectory(db_session),
        )

        outcome = engine.on_entity_created(offer, community_id)

        assert outcome.status == "stale"
        assert outcome.match_id is None
        db_session.rollback()
        assert db_session.get(Offer, offer.id).status == "active"
        assert db_session.query(Match).count() == 0
        notifications.send.assert_not_called()


class TestOnEntityCreated:
    def test_rejects_other_entities(self, matching_engine, community_id):
        with pytest.raises(TypeError):
            matching_engine.on_entity_created(object(), community_id)
