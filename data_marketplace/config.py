"""
Data Marketplace - Configuration.

============================================================
PURPOSE
============================================================
Configuration for the marketplace engine, grouped by concern
and loadable from the environment.

============================================================
DEFAULT CONFIGURATION
============================================================
- Platform fee: 2000 bps (20%)
- Minimum payment: 1,000,000 units
- Budget cap: 2**63 - 1 units (64-bit amount columns)
- Quality threshold: 60 (availability and request floor)
- Per-record usage ceiling: 10 purchases
- Consent window: 365 days of blocks
- Request lifetime: 180 days of blocks
- Repeat purchase of a (record, request) pair: rejected
- Request auto-completes when max records is reached

============================================================
ENVIRONMENT
============================================================
from_env() reads MARKETPLACE_* variables after loading a
.env file if present. Unset variables keep their defaults.

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List

from dotenv import load_dotenv

from core import constants
from core.exceptions import ConfigurationError
from .types import DataCategory


# ============================================================
# INDIVIDUAL CONFIGURATIONS
# ============================================================

@dataclass
class FeeConfig:
    """Payment split and price bounds."""

    platform_fee_bps: int = constants.PLATFORM_FEE_BPS
    """
    Platform share of each settled price, in basis points.
    The fee floors; the owner receives the remainder.
    """

    min_payment: int = constants.MIN_PAYMENT
    """Minimum listing price and minimum max-price-per-record."""

    max_payment: int = constants.MAX_PAYMENT
    """Upper cap for any single price."""

    max_budget: int = constants.MAX_BUDGET
    """
    Upper cap for a request budget and for max_records times
    max price per record. Must fit the 64-bit amount columns.
    """


@dataclass
class QualityConfig:
    """Quality gating."""

    quality_threshold: int = constants.QUALITY_THRESHOLD
    """Final score at or above which a record becomes available."""

    min_request_quality: int = constants.MIN_REQUEST_QUALITY
    """Lowest min-quality a research request may declare."""


@dataclass
class ConsentConfig:
    """Consent windows."""

    duration_blocks: int = constants.CONSENT_DURATION_BLOCKS
    """Validity window of each grant, counted from the grant height."""


@dataclass
class RequestConfig:
    """Research request defaults."""

    duration_blocks: int = constants.REQUEST_DURATION_BLOCKS
    """Lifetime of a request when the consumer does not pass one."""


@dataclass
class SettlementPolicyConfig:
    """Settlement policy switches."""

    max_usage_per_record: int = constants.MAX_USAGE_PER_RECORD
    """Per-record purchase ceiling."""

    allow_repeat_purchase: bool = False
    """
    Whether one request may buy the same record more than once.
    When False a repeat raises AlreadyExists.
    """

    auto_complete_requests: bool = True
    """
    Whether settlement marks a request COMPLETED when its
    records_purchased reaches max_records.
    """


# ============================================================
# MASTER CONFIGURATION
# ============================================================

def _default_base_prices() -> Dict[DataCategory, int]:
    return {
        DataCategory.EHR: 10_000_000,
        DataCategory.GENOMICS: 50_000_000,
        DataCategory.IMAGING: 25_000_000,
        DataCategory.LAB_RESULTS: 5_000_000,
        DataCategory.WEARABLE: 2_000_000,
        DataCategory.PRESCRIPTIONS: 3_000_000,
    }


@dataclass
class MarketplaceConfig:
    """
    Master configuration for the marketplace engine.

    Aggregates all configuration sections.
    """

    fees: FeeConfig = field(default_factory=FeeConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    consent: ConsentConfig = field(default_factory=ConsentConfig)
    requests: RequestConfig = field(default_factory=RequestConfig)
    settlement: SettlementPolicyConfig = field(default_factory=SettlementPolicyConfig)

    escrow_account: str = constants.ESCROW_ACCOUNT
    """Ledger account holding escrowed budgets and platform revenue."""

    base_prices: Dict[DataCategory, int] = field(default_factory=_default_base_prices)
    """Reference price per category used by earnings estimates."""

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not 0 <= self.fees.platform_fee_bps <= constants.BPS_DENOMINATOR:
            errors.append("platform_fee_bps must be between 0 and 10000")

        if self.fees.min_payment <= 0:
            errors.append("min_payment must be positive")

        if self.fees.max_payment < self.fees.min_payment:
            errors.append("max_payment must be at least min_payment")

        if not self.fees.max_payment <= self.fees.max_budget <= constants.MAX_BUDGET:
            errors.append("max_budget must be between max_payment and 2**63 - 1")

        for name, value in (
            ("quality_threshold", self.quality.quality_threshold),
            ("min_request_quality", self.quality.min_request_quality),
        ):
            if not constants.MIN_QUALITY_SCORE <= value <= constants.MAX_QUALITY_SCORE:
                errors.append(f"{name} must be between 0 and 100")

        if self.consent.duration_blocks < 1:
            errors.append("consent duration_blocks must be at least 1")

        if self.requests.duration_blocks < 1:
            errors.append("request duration_blocks must be at least 1")

        if self.settlement.max_usage_per_record < 1:
            errors.append("max_usage_per_record must be at least 1")

        if not self.escrow_account:
            errors.append("escrow_account is required")

        missing = [c.value for c in DataCategory if c not in self.base_prices]
        if missing:
            errors.append(f"base_prices missing categories: {', '.join(missing)}")

        return errors

    def ensure_valid(self) -> "MarketplaceConfig":
        """
        Raise on the first validation problem.

        Raises:
            ConfigurationError: If validate() reports errors
        """
        errors = self.validate()
        if errors:
            raise ConfigurationError(
                f"Invalid marketplace configuration: {'; '.join(errors)}",
                context={"errors": errors},
            )
        return self

    @classmethod
    def from_env(cls) -> "MarketplaceConfig":
        """Load configuration from environment variables."""
        load_dotenv()

        def _int(name: str, default: int) -> int:
            raw = os.getenv(name)
            if raw is None or raw == "":
                return default
            try:
                return int(raw)
            except ValueError as e:
                raise ConfigurationError(
                    f"{name} must be an integer",
                    config_key=name,
                    actual_value=raw,
                    cause=e,
                ) from e

        def _bool(name: str, default: bool) -> bool:
            raw = os.getenv(name)
            if raw is None or raw == "":
                return default
            return raw.lower() in ("1", "true", "yes")

        return cls(
            fees=FeeConfig(
                platform_fee_bps=_int("MARKETPLACE_FEE_BPS", constants.PLATFORM_FEE_BPS),
                min_payment=_int("MARKETPLACE_MIN_PAYMENT", constants.MIN_PAYMENT),
                max_payment=_int("MARKETPLACE_MAX_PAYMENT", constants.MAX_PAYMENT),
                max_budget=_int("MARKETPLACE_MAX_BUDGET", constants.MAX_BUDGET),
            ),
            quality=QualityConfig(
                quality_threshold=_int("MARKETPLACE_QUALITY_THRESHOLD", constants.QUALITY_THRESHOLD),
                min_request_quality=_int("MARKETPLACE_MIN_REQUEST_QUALITY", constants.MIN_REQUEST_QUALITY),
            ),
            consent=ConsentConfig(
                duration_blocks=_int("MARKETPLACE_CONSENT_DURATION_BLOCKS", constants.CONSENT_DURATION_BLOCKS),
            ),
            requests=RequestConfig(
                duration_blocks=_int("MARKETPLACE_REQUEST_DURATION_BLOCKS", constants.REQUEST_DURATION_BLOCKS),
            ),
            settlement=SettlementPolicyConfig(
                max_usage_per_record=_int("MARKETPLACE_MAX_USAGE_PER_RECORD", constants.MAX_USAGE_PER_RECORD),
                allow_repeat_purchase=_bool("MARKETPLACE_ALLOW_REPEAT_PURCHASE", False),
                auto_complete_requests=_bool("MARKETPLACE_AUTO_COMPLETE_REQUESTS", True),
            ),
            escrow_account=os.getenv("MARKETPLACE_ESCROW_ACCOUNT", constants.ESCROW_ACCOUNT),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "fees": {
                "platform_fee_bps": self.fees.platform_fee_bps,
                "min_payment": self.fees.min_payment,
                "max_payment": self.fees.max_payment,
                "max_budget": self.fees.max_budget,
            },
            "quality": {
                "quality_threshold": self.quality.quality_threshold,
                "min_request_quality": self.quality.min_request_quality,
            },
            "consent": {"duration_blocks": self.consent.duration_blocks},
            "requests": {"duration_blocks": self.requests.duration_blocks},
            "settlement": {
                "max_usage_per_record": self.settlement.max_usage_per_record,
                "allow_repeat_purchase": self.settlement.allow_repeat_purchase,
                "auto_complete_requests": self.settlement.auto_complete_requests,
            },
            "escrow_account": self.escrow_account,
            "base_prices": {c.value: p for c, p in self.base_prices.items()},
        }


def get_default_config() -> MarketplaceConfig:
    """Get the default marketplace configuration."""
    return MarketplaceConfig()
