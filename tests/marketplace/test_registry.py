"""
Tests for the Registry.

============================================================
PURPOSE
============================================================
Covers record registration and quality assessment:
1. Registration gating (consent, price, category, bounds)
2. Id allocation
3. Final score and availability
4. Authorization of assessors

============================================================
"""

import pytest

from core.exceptions import (
    ConsentRequiredError,
    DataExpiredError,
    InvalidAmountError,
    InvalidCategoryError,
    InvalidDataError,
    NotFoundError,
    SystemPausedError,
    UnauthorizedError,
)
from data_marketplace import Capability, DataCategory, DataRecord, MarketplaceState


DIGEST = bytes(range(32))


# ============================================================
# REGISTRATION TESTS
# ============================================================

class TestRegistration:
    """Tests for record registration."""

    def test_register_with_live_consent(self, market, clock):
        """Test a consented listing is stored with defaults."""
        expires_at = market.grant_consent("alice", "EHR")

        record_id = market.register("alice", "EHR", DIGEST, 10_000_000, "visit notes")

        record = market.get_record(record_id)
        assert record_id == 1
        assert record.owner == "alice"
        assert record.category == DataCategory.EHR
        assert record.fingerprint == DIGEST
        assert record.created_at == clock.height()
        assert record.consent_expires_at == expires_at
        assert record.quality_score == 0
        assert record.available is False
        assert record.usage_count == 0

    def test_ids_are_sequential(self, market):
        """Test record ids start at 1 and increase by one."""
        market.grant_consent("alice", "EHR")
        ids = [market.register("alice", "EHR", DIGEST, 10_000_000) for _ in range(3)]
        assert ids == [1, 2, 3]

    def test_without_consent_rejected(self, market):
        """Test registration without any grant fails and stores nothing."""
        with pytest.raises(ConsentRequiredError):
            market.register("alice", "EHR", DIGEST, 10_000_000)

        assert market.get_record(1) is None
        assert market.get_platform_stats().total_records == 0

    def test_consent_for_other_category_rejected(self, market):
        """Test consent is scoped to one category."""
        market.grant_consent("alice", "GENOMICS")
        with pytest.raises(ConsentRequiredError):
            market.register("alice", "EHR", DIGEST, 10_000_000)

    def test_revoked_consent_rejected(self, market):
        """Test a revoked grant no longer allows registration."""
        market.grant_consent("alice", "EHR")
        market.revoke_consent("alice", "EHR")
        with pytest.raises(ConsentRequiredError) as exc_info:
            market.register("alice", "EHR", DIGEST, 10_000_000)
        assert not isinstance(exc_info.value, DataExpiredError)

    def test_lapsed_consent_reports_expiry(self, market, clock):
        """Test a lapsed grant raises DataExpired."""
        expires_at = market.grant_consent("alice", "EHR")
        clock.set_height(expires_at)
        with pytest.raises(DataExpiredError):
            market.register("alice", "EHR", DIGEST, 10_000_000)

    def test_price_below_minimum_rejected(self, market):
        """Test the price floor."""
        market.grant_consent("alice", "EHR")
        with pytest.raises(InvalidAmountError):
            market.register("alice", "EHR", DIGEST, 999_999)
        assert market.register("alice", "EHR", DIGEST, 1_000_000) == 1

    def test_price_above_cap_rejected(self, market):
        """Test the price cap."""
        market.grant_consent("alice", "EHR")
        with pytest.raises(InvalidAmountError):
            market.register("alice", "EHR", DIGEST, 10**15 + 1)

    def test_price_checked_before_consent(self, market):
        """Test InvalidAmount wins over missing consent."""
        with pytest.raises(InvalidAmountError):
            market.register("alice", "EHR", DIGEST, 1)

    def test_unknown_category_rejected(self, market):
        """Test category outside the fixed set."""
        with pytest.raises(InvalidCategoryError):
            market.register("alice", "DENTAL", DIGEST, 10_000_000)

    @pytest.mark.parametrize("fingerprint", [b"", bytes(31), bytes(33), "0" * 32])
    def test_fingerprint_must_be_32_bytes(self, market, fingerprint):
        """Test fingerprint length and type."""
        market.grant_consent("alice", "EHR")
        with pytest.raises(InvalidDataError) as exc_info:
            market.register("alice", "EHR", fingerprint, 10_000_000)
        assert exc_info.value.context["field"] == "fingerprint"

    def test_metadata_bound(self, market):
        """Test metadata length limit."""
        market.grant_consent("alice", "EHR")
        with pytest.raises(InvalidDataError):
            market.register("alice", "EHR", DIGEST, 10_000_000, "x" * 501)
        assert market.register("alice", "EHR", DIGEST, 10_000_000, "x" * 500) == 1

    def test_paused_rejects_registration(self, market):
        """Test pause is checked first."""
        market.grant_consent("alice", "EHR")
        market.pause("platform")
        with pytest.raises(SystemPausedError):
            market.register("alice", "EHR", DIGEST, 1)

    def test_failed_registration_keeps_counter(self, market):
        """Test a rejected registration does not consume an id."""
        market.grant_consent("alice", "EHR")
        with pytest.raises(InvalidAmountError):
            market.register("alice", "EHR", DIGEST, 1)
        assert market.register("alice", "EHR", DIGEST, 10_000_000) == 1

    def test_records_by_owner(self, market):
        """Test owner listing query."""
        market.grant_consent("alice", "EHR")
        market.grant_consent("bob", "EHR")
        market.register("alice", "EHR", DIGEST, 10_000_000)
        market.register("bob", "EHR", DIGEST, 10_000_000)
        market.register("alice", "EHR", DIGEST, 10_000_000)

        assert [r.record_id for r in market.records_by_owner("alice")] == [1, 3]
        assert market.records_by_owner("nobody") == []

    def test_query_returns_copy(self, market):
        """Test mutating a query result does not affect state."""
        market.grant_consent("alice", "EHR")
        record_id = market.register("alice", "EHR", DIGEST, 10_000_000)

        record = market.get_record(record_id)
        record.available = True
        record.price = 1

        assert market.get_record(record_id).available is False
        assert market.get_record(record_id).price == 10_000_000


# ============================================================
# ASSESSMENT TESTS
# ============================================================

class TestAssessment:
    """Tests for quality assessment."""

    def test_score_is_truncated_mean(self, market, make_record):
        """Test final score and availability at 75."""
        record_id = make_record(scores=None)

        score = market.assess("platform", record_id, 80, 70, 90, 60)

        record = market.get_record(record_id)
        assert score == 75
        assert record.quality_score == 75
        assert record.available is True

    def test_mean_truncates(self, market, make_record):
        """Test 59.75 truncates to 59 and stays unavailable."""
        record_id = make_record(scores=None)
        assert market.assess("platform", record_id, 60, 60, 60, 59) == 59
        assert market.get_record(record_id).available is False

    def test_threshold_boundary(self, market, make_record):
        """Test a score of exactly 60 is available."""
        record_id = make_record(scores=None)
        assert market.assess("platform", record_id, 60, 60, 60, 60) == 60
        assert market.get_record(record_id).available is True

    def test_low_average_unavailable(self, market, make_record):
        """Test average 50 leaves the record unavailable."""
        record_id = make_record(scores=None)
        assert market.assess("platform", record_id, 50, 50, 50, 50) == 50
        assert market.get_record(record_id).available is False

    def test_reassessment_replaces(self, market, make_record):
        """Test a new assessment replaces the prior one."""
        record_id = make_record()
        assert market.get_record(record_id).available is True

        market.assess("platform", record_id, 10, 10, 10, 10, "degraded")

        assessment = market.get_assessment(record_id)
        assert assessment.final_score == 10
        assert assessment.notes == "degraded"
        assert market.get_record(record_id).available is False

    def test_reassessment_idempotent(self, market, make_record):
        """Test assessing twice with the same scores changes nothing."""
        record_id = make_record()
        before = market.get_record(record_id)
        profile_before = market.get_owner_profile("alice")

        market.assess("platform", record_id, 80, 70, 90, 60)

        assert market.get_record(record_id) == before
        assert market.get_owner_profile("alice") == profile_before

    def test_unauthorized_assessor(self, market, make_record):
        """Test only capability holders may assess."""
        record_id = make_record(scores=None)
        with pytest.raises(UnauthorizedError):
            market.assess("mallory", record_id, 90, 90, 90, 90)
        assert market.get_assessment(record_id) is None

    def test_delegated_assessor(self, market, make_record):
        """Test an assessor granted the capability may assess."""
        record_id = make_record(scores=None)
        market.grant_capability("platform", "qa-team", Capability.ASSESS_QUALITY)

        assert market.assess("qa-team", record_id, 90, 90, 90, 90) == 90
        assert market.get_assessment(record_id).assessor == "qa-team"

    def test_unknown_record(self, market):
        """Test assessing a missing record."""
        with pytest.raises(NotFoundError):
            market.assess("platform", 42, 90, 90, 90, 90)

    @pytest.mark.parametrize("scores", [(101, 50, 50, 50), (50, -1, 50, 50), (50, 50, 50.5, 50)])
    def test_scores_out_of_range(self, market, make_record, scores):
        """Test sub-scores must be integers in 0..100."""
        record_id = make_record(scores=None)
        with pytest.raises(InvalidDataError):
            market.assess("platform", record_id, *scores)
        assert market.get_record(record_id).quality_score == 0

    def test_notes_bound(self, market, make_record):
        """Test notes length limit."""
        record_id = make_record(scores=None)
        with pytest.raises(InvalidDataError):
            market.assess("platform", record_id, 90, 90, 90, 90, "n" * 501)


# ============================================================
# OWNER INDEX TESTS
# ============================================================

def _listing(record_id, owner, category=DataCategory.EHR):
    return DataRecord(
        record_id=record_id,
        owner=owner,
        category=category,
        fingerprint=DIGEST,
        price=10_000_000,
        created_at=1,
        consent_expires_at=100,
    )


class TestOwnerIndex:
    """Tests for the per-owner record index."""

    def test_add_record_indexes_owner(self):
        state = MarketplaceState()
        state.add_record(_listing(2, "alice"))
        state.add_record(_listing(1, "alice", DataCategory.GENOMICS))
        state.add_record(_listing(3, "bob"))

        assert [r.record_id for r in state.records_of("alice")] == [1, 2]
        assert [r.record_id for r in state.records_of("alice", DataCategory.EHR)] == [2]
        assert state.records_of("carol") == []

    def test_readding_does_not_duplicate(self):
        state = MarketplaceState()
        record = _listing(1, "alice")
        state.add_record(record)
        state.add_record(record)

        assert state.record_ids_by_owner == {"alice": [1]}

    def test_index_built_from_records(self):
        """Test a state constructed with records indexes them."""
        state = MarketplaceState(records={5: _listing(5, "bob"), 4: _listing(4, "bob")})

        assert [r.record_id for r in state.records_of("bob")] == [4, 5]

    def test_index_ignored_by_equality(self):
        built = MarketplaceState(records={1: _listing(1, "alice")})
        added = MarketplaceState()
        added.add_record(_listing(1, "alice"))

        assert built == added
