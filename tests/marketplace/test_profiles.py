"""
Tests for the Profile Aggregator.

============================================================
PURPOSE
============================================================
Checks that cached owner and consumer profiles always match
a from-scratch rebuild, and covers the quality rating and
category availability summaries.

============================================================
"""

import pytest

from core.exceptions import MarketplaceException
from data_marketplace import DataCategory, rebuild_profiles


class TestOwnerProfile:
    """Tests for owner summaries."""

    def test_registration_counts(self, market, make_record):
        """Test records and activity are tracked on registration."""
        make_record(scores=None)
        make_record(scores=None)

        profile = market.get_owner_profile("alice")
        assert profile.total_records == 2
        assert profile.assessed_records == 0
        assert profile.quality_rating == 0
        assert profile.categories_available == set()

    def test_quality_rating_is_running_mean(self, market, make_record):
        """Test the rating averages current final scores."""
        first = make_record(scores=(80, 80, 80, 80))
        make_record(scores=(61, 61, 61, 61))

        assert market.get_owner_profile("alice").quality_rating == 70

        market.assess("platform", first, 100, 100, 100, 100)
        profile = market.get_owner_profile("alice")
        assert profile.assessed_records == 2
        assert profile.quality_rating == 80

    def test_categories_available(self, market, make_record):
        """Test a category is listed while any record in it is available."""
        ehr = make_record(category="EHR")
        make_record(category="IMAGING", scores=(10, 10, 10, 10))

        assert market.get_owner_profile("alice").categories_available == {DataCategory.EHR}

        market.assess("platform", ehr, 0, 0, 0, 0)
        assert market.get_owner_profile("alice").categories_available == set()

    def test_missing_profile(self, market):
        """Test unknown identities have no profile."""
        assert market.get_owner_profile("nobody") is None
        assert market.get_consumer_profile("nobody") is None


class TestRebuildConsistency:
    """Tests that cached profiles equal a rebuild after any sequence."""

    def test_empty_market(self, market):
        assert market.verify_profiles() == []

    def test_mixed_sequence(self, market, clock, make_record, make_request):
        """Test consistency after a mix of successes and failures."""
        a = make_record(owner="alice", category="EHR")
        b = make_record(owner="bob", category="GENOMICS", price=40_000_000, scores=(90, 95, 85, 70))
        c = make_record(owner="alice", category="IMAGING", scores=(30, 30, 30, 30))

        first = make_request(categories=["EHR", "GENOMICS"], max_price=50_000_000, max_records=2)
        second = make_request(consumer="clinic", max_records=1)
        third = make_request(max_records=4)

        clock.advance(7)
        market.purchase("lab", a, first)
        market.purchase("lab", b, first)
        market.purchase("clinic", a, second)

        for args in ((a, first), (c, third), (a, 99)):
            with pytest.raises(MarketplaceException):
                market.purchase("lab", *args)

        market.assess("platform", a, 55, 55, 55, 55)
        market.cancel_request("lab", third)
        market.withdraw_unspent("lab", third)
        market.revoke_consent("bob", "GENOMICS")
        market.set_verification("platform", "alice", True)

        assert market.verify_profiles() == []

    def test_rebuild_values(self, market, make_record, make_request):
        """Test rebuilt aggregates against known values."""
        record_id = make_record()
        request_id = make_request(max_records=1)
        market.purchase("lab", record_id, request_id)

        owners, consumers = rebuild_profiles(market.snapshot())

        assert owners["alice"].total_earnings == 8_000_000
        assert owners["alice"].quality_rating == 75
        assert consumers["lab"].total_purchases == 1
        assert consumers["lab"].completed_studies == 1
        assert consumers["lab"].reputation_score == 11
        assert consumers["lab"].active_requests == 0

    def test_detects_drift(self, market, make_record):
        """Test a tampered cache is reported."""
        make_record()
        state = market.snapshot()
        state.owner_profiles["alice"].total_records = 99

        from data_marketplace import verify_consistency
        problems = verify_consistency(state)

        assert len(problems) == 1
        assert problems[0].startswith("owner alice")
