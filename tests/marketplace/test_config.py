"""
Tests for marketplace configuration and the earnings estimate.
"""

import logging

import pytest

from core.clock import MockBlockClock
from core.constants import SYSTEM_NAME, SYSTEM_VERSION
from core.exceptions import ConfigurationError, InvalidCategoryError, InvalidDataError
from data_marketplace import (
    DataCategory,
    DataMarketplace,
    FeeConfig,
    InMemoryLedger,
    MarketplaceConfig,
    get_default_config,
)


# ============================================================
# CONFIGURATION TESTS
# ============================================================

class TestMarketplaceConfig:
    """Tests for configuration defaults, validation and loading."""

    def test_defaults(self):
        config = get_default_config()

        assert config.fees.platform_fee_bps == 2000
        assert config.fees.min_payment == 1_000_000
        assert config.quality.quality_threshold == 60
        assert config.settlement.max_usage_per_record == 10
        assert config.settlement.allow_repeat_purchase is False
        assert config.settlement.auto_complete_requests is True
        assert config.validate() == []

    def test_validate_reports_problems(self):
        config = MarketplaceConfig(fees=FeeConfig(platform_fee_bps=12_000, min_payment=0))

        errors = config.validate()

        assert len(errors) == 2
        assert any("platform_fee_bps" in e for e in errors)

    def test_max_budget_bounds(self):
        """Test the budget cap sits between max_payment and the 64-bit limit."""
        assert get_default_config().fees.max_budget == 2**63 - 1

        for max_budget in (10**14, 2**63):
            config = MarketplaceConfig(fees=FeeConfig(max_budget=max_budget))
            assert any("max_budget" in e for e in config.validate())

    def test_engine_rejects_invalid_config(self):
        config = MarketplaceConfig(fees=FeeConfig(platform_fee_bps=-1))
        with pytest.raises(ConfigurationError):
            DataMarketplace("platform", InMemoryLedger(), MockBlockClock(), config=config)

    def test_engine_logs_identity(self, caplog):
        """Test startup logs the system name and version."""
        with caplog.at_level(logging.INFO, logger="data_marketplace.engine"):
            DataMarketplace("platform", InMemoryLedger(), MockBlockClock())

        assert f"{SYSTEM_NAME} {SYSTEM_VERSION} initialized" in caplog.text
        assert "owner=platform" in caplog.text

    def test_missing_base_price(self):
        config = get_default_config()
        del config.base_prices[DataCategory.WEARABLE]
        assert any("WEARABLE" in e for e in config.validate())

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("MARKETPLACE_FEE_BPS", "1500")
        monkeypatch.setenv("MARKETPLACE_MAX_USAGE_PER_RECORD", "3")
        monkeypatch.setenv("MARKETPLACE_ALLOW_REPEAT_PURCHASE", "true")
        monkeypatch.setenv("MARKETPLACE_AUTO_COMPLETE_REQUESTS", "0")
        monkeypatch.setenv("MARKETPLACE_ESCROW_ACCOUNT", "vault")

        config = MarketplaceConfig.from_env()

        assert config.fees.platform_fee_bps == 1500
        assert config.settlement.max_usage_per_record == 3
        assert config.settlement.allow_repeat_purchase is True
        assert config.settlement.auto_complete_requests is False
        assert config.escrow_account == "vault"
        assert config.fees.min_payment == 1_000_000

    def test_from_env_bad_integer(self, monkeypatch):
        monkeypatch.setenv("MARKETPLACE_FEE_BPS", "twenty percent")
        with pytest.raises(ConfigurationError) as exc_info:
            MarketplaceConfig.from_env()
        assert exc_info.value.context["config_key"] == "MARKETPLACE_FEE_BPS"

    def test_to_dict(self):
        data = get_default_config().to_dict()
        assert data["fees"]["platform_fee_bps"] == 2000
        assert data["fees"]["max_budget"] == 2**63 - 1
        assert data["base_prices"]["GENOMICS"] == 50_000_000

    def test_custom_fee_applies(self):
        """Test settlement uses the configured fee."""
        ledger = InMemoryLedger({"lab": 10**10})
        config = MarketplaceConfig(fees=FeeConfig(platform_fee_bps=500))
        market = DataMarketplace("platform", ledger, MockBlockClock(), config=config)
        market.grant_consent("alice", "LAB_RESULTS")
        record_id = market.register("alice", "LAB_RESULTS", bytes(32), 2_000_000)
        market.assess("platform", record_id, 70, 70, 70, 70)
        request_id = market.open_request("lab", "Panel", ["LAB_RESULTS"], 2_000_000, 60, 1, 2_000_000)

        market.purchase("lab", record_id, request_id)

        assert ledger.balance_of("alice") == 1_900_000
        assert market.get_platform_stats().platform_revenue == 100_000


# ============================================================
# EARNINGS ESTIMATE TESTS
# ============================================================

class TestEstimateEarnings:
    """Tests for estimate_earnings."""

    def test_formula(self, market):
        """Test base * quality * usage * owner share."""
        # 10,000,000 * 75 * 4 * 8000 // 1,000,000
        assert market.estimate_earnings("EHR", 75, 4) == 24_000_000

    def test_usage_capped_at_ceiling(self, market):
        assert market.estimate_earnings("GENOMICS", 100, 50) == market.estimate_earnings("GENOMICS", 100, 10)
        assert market.estimate_earnings("GENOMICS", 100, 10) == 400_000_000

    def test_zero_inputs(self, market):
        assert market.estimate_earnings("WEARABLE", 0, 5) == 0
        assert market.estimate_earnings("WEARABLE", 90, 0) == 0

    def test_unknown_category(self, market):
        with pytest.raises(InvalidCategoryError):
            market.estimate_earnings("DENTAL", 50, 1)

    @pytest.mark.parametrize("quality,usage", [(101, 1), (-1, 1), (50, -1), (50.0, 1)])
    def test_invalid_inputs(self, market, quality, usage):
        with pytest.raises(InvalidDataError):
            market.estimate_earnings("EHR", quality, usage)
