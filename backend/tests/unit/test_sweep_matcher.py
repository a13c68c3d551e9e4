"""Unit tests for the community-wide greedy sweep."""

from unittest.mock import Mock
from uuid import uuid4

from neighborshare.config import EngineConfig
from neighborshare.engine import MatchingEngine
from neighborshare.infrastructure.repositories import SqlListingDirectory
from neighborshare.lifecycle import MatchCreation
from neighborshare.matching import CompatibilityScorer, GreedySweepMatcher
from neighborshare.matching.errors import StaleListingError
from neighborshare.models import Match, Need, Offer

CATEGORIES = ("meal", "bread", "produce")


def seed_community(make_offer, make_need, community_id):
    offers = [make_offer(community_id, survey={"category": category}) for category in CATEGORIES]
    needs = [make_need(community_id, survey={"category": category}) for category in CATEGORIES]
    return offers, needs


class TestSweep:
    """Greedy best-first assignment"""

    def test_two_communities_swept_independently(self, db_session, matching_engine, make_offer, make_need,
                                                 community_id, other_community_id):
        seeded = {
            community_id: seed_community(make_offer, make_need, community_id),
            other_community_id: seed_community(make_offer, make_need, other_community_id),
        }

        for community, (offers, needs) in seeded.items():
            report = matching_engine.run_sweep(community)

            assert report.offers_considered == 3
            assert report.needs_considered == 3
            # Cross-category pairs still reach 0.5 on the remaining factors
            assert report.eligible_pairs == 9
            assert report.matches_created == 3
            assert report.duplicates == 0

            matches = db_session.query(Match).filter_by(community_id=community).all()
            pairs = {(match.offer_id, match.need_id) for match in matches}
            assert pairs == {(offer.id, need.id) for offer, need in zip(offers, needs)}

        matches = db_session.query(Match).all()
        assert len(matches) == 6
        assert all(match.strategy == "sweep" for match in matches)
        offer_communities = {offer.id: community for community, (offers, _) in seeded.items() for offer in offers}
        need_communities = {need.id: community for community, (_, needs) in seeded.items() for need in needs}
        for match in matches:
            assert offer_communities[match.offer_id] == match.community_id
            assert need_communities[match.need_id] == match.community_id

    def test_nested_survey_does_not_block_sweep(self, db_session, matching_engine, make_offer, make_need,
                                                community_id, meal_survey):
        """Test one listing with an unparseable survey cannot stall its community"""
        offer = make_offer(community_id, survey=meal_survey)
        need = make_need(community_id, survey=meal_survey)
        make_need(community_id, survey="[" * 100000 + "]" * 100000)

        report = matching_engine.run_sweep(community_id)

        assert report.needs_considered == 2
        assert report.matches_created == 1
        match = db_session.query(Match).one()
        assert (match.offer_id, match.need_id) == (offer.id, need.id)

    def test_other_community_untouched(self, db_session, matching_engine, make_offer, make_need,
                                       community_id, other_community_id):
        seed_community(make_offer, make_need, community_id)
        other_offer = make_offer(other_community_id, survey={"category": "meal"})

        report = matching_engine.run_sweep(other_community_id)

        assert report.matches_created == 0
        assert report.needs_considered == 0
        assert db_session.get(Offer, other_offer.id).status == "active"

    def test_listing_used_once(self, db_session, matching_engine, make_offer, make_need, community_id, meal_survey):
        offer = make_offer(community_id, survey=meal_survey)
        first = make_need(community_id, survey=meal_survey)
        second = make_need(community_id, survey=meal_survey)

        report = matching_engine.run_sweep(community_id)

        assert report.matches_created == 1
        assert db_session.get(Need, first.id).status == "matched"
        assert db_session.get(Need, second.id).status == "active"
        assert db_session.query(Match).one().offer_id == offer.id

    def test_second_sweep_finds_nothing(self, matching_engine, make_offer, make_need, community_id):
        seed_community(make_offer, make_need, community_id)

        matching_engine.run_sweep(community_id)
        report = matching_engine.run_sweep(community_id)

        assert report.offers_considered == 0
        assert report.matches_created == 0

    def test_cancelled_pair_reported_as_duplicate(self, db_session, matching_engine, make_offer, make_need,
                                                  community_id, meal_survey):
        """Test reopened listings do not rematch with each other"""
        make_need(community_id, survey=meal_survey)
        offer = make_offer(community_id, survey=meal_survey)
        outcome = matching_engine.on_entity_created(offer, community_id)
        match = matching_engine.lifecycle.get_match(outcome.match_id)
        matching_engine.request_closure(match.id, match.offer_owner_id, "cancelled")

        report = matching_engine.run_sweep(community_id)

        assert report.eligible_pairs == 1
        assert report.duplicates == 1
        assert report.matches_created == 0
        assert db_session.query(Match).count() == 1

    def test_candidate_limit(self, db_session, notifications, make_offer, make_need, community_id):
        seed_community(make_offer, make_need, community_id)
        engine = MatchingEngine(db_session, EngineConfig(candidate_limit=2), notifications=notifications)

        report = engine.run_sweep(community_id)

        assert report.offers_considered == 2
        assert report.needs_considered == 2
        assert report.matches_created == 2

    def test_report_to_dict(self, matching_engine, make_offer, make_need, community_id):
        seed_community(make_offer, make_need, community_id)

        data = matching_engine.run_sweep(community_id).to_dict()

        assert data["community_id"] == str(community_id)
        assert data["matches_created"] == 3
        assert len(data["match_ids"]) == 3
        assert all(isinstance(match_id, str) for match_id in data["match_ids"])


class TestSweepConflicts:
    """Stale and duplicate outcomes from the lifecycle manager"""

    def _sweeper(self, db_session, lifecycle):
        return GreedySweepMatcher(SqlListingDirectory(db_session), CompatibilityScorer(), lifecycle)

    def test_stale_offer_skips_its_remaining_pairs(self, db_session, make_offer, make_need, community_id, meal_survey):
        offer = make_offer(community_id, survey=meal_survey)
        make_need(community_id, survey=meal_survey)
        make_need(community_id, survey=meal_survey)
        lifecycle = Mock()
        lifecycle.create_match.side_effect = StaleListingError("offer", offer.id)

        report = self._sweeper(db_session, lifecycle).run(community_id)

        assert lifecycle.create_match.call_count == 1
        assert report.stale == 1
        assert report.matches_created == 0

    def test_stale_need_frees_offer_for_next_need(self, db_session, make_offer, make_need, community_id, meal_survey):
        make_offer(community_id, survey=meal_survey)
        first = make_need(community_id, survey=meal_survey)
        second = make_need(community_id, survey=meal_survey)
        lifecycle = Mock()
        lifecycle.create_match.side_effect = [
            StaleListingError("need", first.id),
            MatchCreation(match=Mock(id=uuid4()), created=True),
        ]

        report = self._sweeper(db_session, lifecycle).run(community_id)

        assert report.stale == 1
        assert report.matches_created == 1
        assert lifecycle.create_match.call_args.args[1].id == second.id

    def test_duplicate_does_not_consume_listings(self, db_session, make_offer, make_need, community_id, meal_survey):
        make_offer(community_id, survey=meal_survey)
        make_need(community_id, survey=meal_survey)
        second = make_need(community_id, survey=meal_survey)
        lifecycle = Mock()
        lifecycle.create_match.side_effect = [
            MatchCreation(match=Mock(id=uuid4()), created=False),
            MatchCreation(match=Mock(id=uuid4()), created=True),
        ]

        report = self._sweeper(db_session, lifecycle).run(community_id)

        assert report.duplicates == 1
        assert report.matches_created == 1
        assert lifecycle.create_match.call_args.args[1].id == second.id


class TestCommunitiesToSweep:
    def test_requires_offer_and_need(self, matching_engine, make_offer, make_need, community_id, other_community_id):
        make_offer(community_id)
        make_need(community_id)
        make_offer(other_community_id)

        assert matching_engine.communities_to_sweep() == [community_id]
