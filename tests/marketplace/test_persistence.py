"""
Tests for marketplace persistence.

============================================================
PURPOSE
============================================================
Round trips state through SQLAlchemy on in-memory SQLite and
checks that a restored engine behaves identically.

============================================================
"""

import pytest
from sqlalchemy import inspect

from core.clock import MockBlockClock
from core.constants import MAX_BUDGET
from core.exceptions import AlreadyExistsError, DatabaseError, SystemPausedError
from data_marketplace import Capability, DataMarketplace, MarketplaceRepository, MarketplaceState
from database.engine import create_database_engine, init_database, session_scope


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables."""
    engine = create_database_engine("sqlite://")
    init_database(engine)
    yield engine
    engine.dispose()


def _save(market, engine):
    with session_scope(engine) as session:
        market.save(MarketplaceRepository(session))


def _restore(engine, ledger, clock):
    with session_scope(engine) as session:
        return DataMarketplace.from_repository(MarketplaceRepository(session), "platform", ledger, clock)


@pytest.fixture
def busy_market(market, clock, make_record, make_request):
    """Marketplace with records, requests, settlements and grants."""
    a = make_record(can_reidentify=True)
    b = make_record(owner="bob", category="IMAGING", price=20_000_000, scores=(90, 90, 90, 90))
    make_record(category="EHR", scores=(20, 20, 20, 20))

    first = make_request(categories=["EHR", "IMAGING"], max_price=20_000_000, max_records=3)
    second = make_request(max_records=1)

    clock.advance(3)
    market.purchase("lab", a, first)
    market.purchase("lab", b, first)
    market.purchase("lab", a, second)

    market.grant_capability("platform", "qa", Capability.ASSESS_QUALITY)
    market.set_verification("platform", "bob", True)
    return market


# ============================================================
# ROUND TRIP TESTS
# ============================================================

class TestPersistenceRoundTrip:
    """Tests for save_state / load_state."""

    def test_tables_created(self, engine):
        tables = set(inspect(engine).get_table_names())
        assert {
            "marketplace_records",
            "marketplace_consents",
            "marketplace_requests",
            "marketplace_usage_log",
            "marketplace_assessments",
            "marketplace_owner_profiles",
            "marketplace_consumer_profiles",
            "marketplace_capability_grants",
            "marketplace_platform_state",
        } <= tables

    def test_empty_database_loads_fresh_state(self, engine):
        with session_scope(engine) as session:
            state = MarketplaceRepository(session).load_state()
        assert state.records == {}
        assert state.next_record_id == 1
        assert state.paused is False

    def test_state_round_trip(self, busy_market, engine, ledger, clock):
        """Test the restored state equals the saved one."""
        _save(busy_market, engine)

        restored = _restore(engine, ledger, clock)

        assert restored.snapshot() == busy_market.snapshot()
        assert restored.verify_profiles() == []
        assert restored.get_platform_stats() == busy_market.get_platform_stats()

    def test_grants_round_trip(self, busy_market, engine, ledger, clock):
        _save(busy_market, engine)

        restored = _restore(engine, ledger, clock)

        assert restored.policy.has("qa", Capability.ASSESS_QUALITY)
        assert restored.get_owner_profile("bob").verified is True

    def test_resave_is_idempotent(self, busy_market, engine, ledger, clock):
        """Test saving twice merges rows instead of duplicating them."""
        _save(busy_market, engine)
        _save(busy_market, engine)

        restored = _restore(engine, ledger, clock)
        assert restored.snapshot() == busy_market.snapshot()

    def test_restored_engine_behaves_identically(self, busy_market, engine, ledger, clock):
        """Test counters and policies continue after a restore."""
        _save(busy_market, engine)
        restored = _restore(engine, ledger, clock)

        restored.grant_consent("carol", "EHR")
        assert restored.register("carol", "EHR", bytes(32), 10_000_000) == 4
        assert restored.open_request("lab", "Next", ["EHR"], 10_000_000, 60, 1, 10_000_000) == 3

        with pytest.raises(AlreadyExistsError):
            restored.purchase("lab", 1, 1)

    def test_paused_flag_persists(self, market, engine, ledger, clock):
        market.pause("platform")
        _save(market, engine)

        restored = _restore(engine, ledger, clock)

        assert restored.is_paused is True
        with pytest.raises(SystemPausedError):
            restored.grant_consent("alice", "EHR")

    def test_budget_at_cap_round_trip(self, market, engine, ledger, clock):
        """Test the largest accepted budget fits its column."""
        ledger.deposit("whale", MAX_BUDGET)
        request_id = market.open_request("whale", "Registry", ["EHR"], 10_000_000, 60, 1, MAX_BUDGET)
        _save(market, engine)

        restored = _restore(engine, ledger, clock)

        assert restored.get_request(request_id).budget_allocated == MAX_BUDGET
        assert restored.get_request(request_id).remaining_budget == MAX_BUDGET

    def test_owner_index_restored(self, busy_market, engine, ledger, clock):
        _save(busy_market, engine)

        restored = _restore(engine, ledger, clock)

        assert [r.record_id for r in restored.records_by_owner("alice")] == [1, 3]
        assert [r.record_id for r in restored.records_by_owner("bob")] == [2]

    def test_fresh_engine_from_repository(self, engine):
        """Test restoring from an empty database."""
        restored = _restore(engine, None, MockBlockClock())
        assert restored.get_platform_stats().total_records == 0


class TestSessionScope:
    """Tests for transaction boundaries."""

    def test_database_error_wrapped(self):
        """Test SQLAlchemy failures surface as DatabaseError."""
        engine = create_database_engine("sqlite://")

        with pytest.raises(DatabaseError):
            with session_scope(engine) as session:
                MarketplaceRepository(session).load_state()
        engine.dispose()

    def test_oversized_amount_wrapped(self, engine):
        """Test an amount too large for its column surfaces as DatabaseError."""
        state = MarketplaceState(platform_revenue=MAX_BUDGET + 1)

        with pytest.raises(DatabaseError) as exc_info:
            with session_scope(engine) as session:
                MarketplaceRepository(session).save_state(state)

        assert exc_info.value.context["operation"] == "save_state"
