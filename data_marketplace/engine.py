"""
Data Marketplace - Engine Facade.

============================================================
PURPOSE
============================================================
Single entry point wiring every marketplace component over
one shared state store:

    DataRegistry       register, assess
    ConsentLedger      grant_consent, revoke_consent
    RequestEscrow      open_request, cancel / complete, refunds
    SettlementEngine   purchase
    Governance         pause, roles, verification

Every mutating call is one indivisible transition. Queries
return copies and never mutate.

============================================================
EXTERNAL ADAPTERS
============================================================
- Ledger: transfer(amount, sender, recipient) -> bool
- Clock: height() -> monotonic block height
- Policy: capabilities per identity

============================================================
"""

import copy
import logging
from typing import Dict, Iterable, List, Optional

from core.clock import BlockClockProtocol
from core import constants
from core.exceptions import InvalidDataError
from .config import MarketplaceConfig, get_default_config
from .consent import ConsentLedger
from .escrow import RequestEscrow
from .governance import Governance
from .ledger import LedgerAdapter
from .policy import AuthorizationPolicy, RoleCapabilityPolicy
from .profiles import ProfileAggregator, verify_consistency
from .registry import DataRegistry
from .settlement import SettlementEngine, get_usage_entry
from .state import MarketplaceState, StateStore
from .types import (
    Capability,
    ConsentGrant,
    ConsumerProfile,
    DataCategory,
    DataRecord,
    OwnerProfile,
    PlatformStats,
    QualityAssessment,
    ResearchRequest,
    UsageLogEntry,
    UsageType,
)


logger = logging.getLogger(__name__)


class DataMarketplace:
    """
    Health data marketplace settlement engine.

    ============================================================
    USAGE
    ============================================================
    market = DataMarketplace("platform", ledger, clock)
    market.grant_consent("alice", "EHR")
    record_id = market.register("alice", "EHR", digest, 10_000_000)
    market.assess("platform", record_id, 80, 70, 90, 60)
    request_id = market.open_request("lab", "Study", ["EHR"], ...)
    market.purchase("lab", record_id, request_id)
    ============================================================
    """

    def __init__(
        self,
        platform_owner: str,
        ledger: LedgerAdapter,
        clock: BlockClockProtocol,
        config: Optional[MarketplaceConfig] = None,
        policy: Optional[AuthorizationPolicy] = None,
        state: Optional[MarketplaceState] = None,
    ):
        self._config = (config or get_default_config()).ensure_valid()
        self._clock = clock
        self._ledger = ledger
        self._policy = policy or RoleCapabilityPolicy(platform_owner)
        self._platform_owner = platform_owner

        self._store = StateStore(state)
        self._profiles = ProfileAggregator()

        self._consent = ConsentLedger(self._store, self._config, clock)
        self._registry = DataRegistry(self._store, self._config, clock, self._policy, self._profiles)
        self._escrow = RequestEscrow(self._store, self._config, clock, ledger, self._profiles)
        self._settlement = SettlementEngine(self._store, self._config, clock, ledger, self._profiles)
        self._governance = Governance(self._store, self._policy)

        logger.info(
            f"{constants.SYSTEM_NAME} {constants.SYSTEM_VERSION} initialized (owner={platform_owner}, "
            f"fee_bps={self._config.fees.platform_fee_bps})"
        )

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def config(self) -> MarketplaceConfig:
        return self._config

    @property
    def policy(self) -> AuthorizationPolicy:
        return self._policy

    @property
    def platform_owner(self) -> str:
        return self._platform_owner

    @property
    def is_paused(self) -> bool:
        return self._governance.is_paused

    # --------------------------------------------------------
    # REGISTRY
    # --------------------------------------------------------

    def register(self, owner: str, category, fingerprint: bytes, price: int, metadata: str = "") -> int:
        """List a record. Returns the new record id."""
        return self._registry.register(owner, category, fingerprint, price, metadata)

    def assess(
        self,
        assessor: str,
        record_id: int,
        completeness: int,
        accuracy: int,
        timeliness: int,
        consistency: int,
        notes: str = "",
    ) -> int:
        """Assess a record. Returns the final score."""
        return self._registry.assess(
            assessor, record_id, completeness, accuracy, timeliness, consistency, notes
        )

    # --------------------------------------------------------
    # CONSENT
    # --------------------------------------------------------

    def grant_consent(
        self,
        owner: str,
        category,
        purposes: Iterable[str] = (),
        geo_restrictions: Iterable[str] = (),
        can_reidentify: bool = False,
    ) -> int:
        """Grant consent. Returns the expiry height."""
        return self._consent.grant(owner, category, purposes, geo_restrictions, can_reidentify)

    def revoke_consent(self, owner: str, category) -> bool:
        return self._consent.revoke(owner, category)

    # --------------------------------------------------------
    # REQUESTS
    # --------------------------------------------------------

    def open_request(
        self,
        consumer: str,
        title: str,
        categories: Iterable,
        max_price_per_record: int,
        min_quality: int,
        max_records: int,
        budget: int,
        description: str = "",
        purpose: str = "",
        institution: str = "",
        approval_reference: str = "",
        duration_blocks: Optional[int] = None,
    ) -> int:
        """Fund a research request. Returns the new request id."""
        return self._escrow.open(
            consumer,
            title,
            categories,
            max_price_per_record,
            min_quality,
            max_records,
            budget,
            description=description,
            purpose=purpose,
            institution=institution,
            approval_reference=approval_reference,
            duration_blocks=duration_blocks,
        )

    def cancel_request(self, consumer: str, request_id: int) -> ResearchRequest:
        return self._escrow.cancel(consumer, request_id)

    def complete_request(self, consumer: str, request_id: int) -> ResearchRequest:
        return self._escrow.complete(consumer, request_id)

    def withdraw_unspent(self, consumer: str, request_id: int) -> int:
        return self._escrow.withdraw_unspent(consumer, request_id)

    # --------------------------------------------------------
    # SETTLEMENT
    # --------------------------------------------------------

    def purchase(
        self,
        consumer: str,
        record_id: int,
        request_id: int,
        usage_type: UsageType = UsageType.RESEARCH,
    ) -> int:
        """Purchase a record against a request. Returns the price paid."""
        return self._settlement.purchase(consumer, record_id, request_id, usage_type)

    # --------------------------------------------------------
    # GOVERNANCE
    # --------------------------------------------------------

    def pause(self, caller: str) -> bool:
        return self._governance.pause(caller)

    def unpause(self, caller: str) -> bool:
        return self._governance.unpause(caller)

    def grant_capability(self, caller: str, identity: str, capability: Capability) -> bool:
        return self._governance.grant_capability(caller, identity, capability)

    def revoke_capability(self, caller: str, identity: str, capability: Capability) -> bool:
        return self._governance.revoke_capability(caller, identity, capability)

    def set_verification(self, caller: str, identity: str, verified: bool) -> bool:
        return self._governance.set_verification(caller, identity, verified)

    # --------------------------------------------------------
    # QUERIES
    # --------------------------------------------------------

    def get_record(self, record_id: int) -> Optional[DataRecord]:
        return self._registry.get_record(record_id)

    def get_assessment(self, record_id: int) -> Optional[QualityAssessment]:
        return self._registry.get_assessment(record_id)

    def records_by_owner(self, owner: str) -> List[DataRecord]:
        return self._registry.records_by_owner(owner)

    def get_request(self, request_id: int) -> Optional[ResearchRequest]:
        return self._escrow.get_request(request_id)

    def get_consent(self, owner: str, category) -> Optional[ConsentGrant]:
        return self._consent.get_grant(owner, category)

    def is_consent_live(self, owner: str, category, at_height: Optional[int] = None) -> bool:
        return self._consent.is_live(owner, category, at_height)

    def get_owner_profile(self, owner: str) -> Optional[OwnerProfile]:
        with self._store.read() as state:
            return copy.deepcopy(state.owner_profiles.get(owner))

    def get_consumer_profile(self, consumer: str) -> Optional[ConsumerProfile]:
        with self._store.read() as state:
            return copy.deepcopy(state.consumer_profiles.get(consumer))

    def get_usage_entry(self, record_id: int, request_id: int) -> Optional[UsageLogEntry]:
        """Latest usage entry of a (record, request) pair."""
        with self._store.read() as state:
            return copy.deepcopy(get_usage_entry(state, record_id, request_id))

    def get_usage_history(self, record_id: int, request_id: int) -> List[UsageLogEntry]:
        """Every usage entry of a pair, oldest first."""
        with self._store.read() as state:
            return copy.deepcopy(state.usage_log.get((record_id, request_id), []))

    def get_platform_stats(self) -> PlatformStats:
        with self._store.read() as state:
            return PlatformStats(
                total_records=len(state.records),
                total_requests=len(state.requests),
                total_payments_distributed=state.total_payments_distributed,
                platform_revenue=state.platform_revenue,
                paused=state.paused,
            )

    def estimate_earnings(self, category, quality_score: int, usage_count: int) -> int:
        """
        Projected owner earnings for a listing profile.

        base_price * quality * min(usage, ceiling) * (10000 - fee_bps)
        // (100 * 10000)

        Raises:
            InvalidCategoryError: Unknown category
            InvalidDataError: Quality outside 0-100 or negative usage
        """
        parsed = DataCategory.parse(category)

        if (
            isinstance(quality_score, bool)
            or not isinstance(quality_score, int)
            or not constants.MIN_QUALITY_SCORE <= quality_score <= constants.MAX_QUALITY_SCORE
        ):
            raise InvalidDataError(
                f"Quality score must be between 0 and 100, got {quality_score!r}",
                field="quality_score",
            )
        if isinstance(usage_count, bool) or not isinstance(usage_count, int) or usage_count < 0:
            raise InvalidDataError(
                f"Usage count must be a non-negative integer, got {usage_count!r}",
                field="usage_count",
            )

        usage = min(usage_count, self._config.settlement.max_usage_per_record)
        owner_share = constants.BPS_DENOMINATOR - self._config.fees.platform_fee_bps
        return (
            self._config.base_prices[parsed] * quality_score * usage * owner_share
            // (constants.MAX_QUALITY_SCORE * constants.BPS_DENOMINATOR)
        )

    def verify_profiles(self) -> List[str]:
        """Diff cached profiles against a rebuild. Empty when consistent."""
        with self._store.read() as state:
            return verify_consistency(state)

    # --------------------------------------------------------
    # PERSISTENCE
    # --------------------------------------------------------

    def snapshot(self) -> MarketplaceState:
        """Deep copy of the full committed state."""
        with self._store.read() as state:
            return copy.deepcopy(state)

    def save(self, repository) -> None:
        """Persist state (and explicit capability grants) through a MarketplaceRepository."""
        with self._store.read() as state:
            repository.save_state(state)
            if isinstance(self._policy, RoleCapabilityPolicy):
                repository.save_grants(self._policy.grants())
        logger.info("Marketplace state saved")

    @classmethod
    def from_repository(
        cls,
        repository,
        platform_owner: str,
        ledger: LedgerAdapter,
        clock: BlockClockProtocol,
        config: Optional[MarketplaceConfig] = None,
    ) -> "DataMarketplace":
        """Rebuild an engine from persisted state."""
        state = repository.load_state()
        policy = RoleCapabilityPolicy(platform_owner)
        grants: Dict[str, set] = repository.load_grants()
        for identity, capabilities in grants.items():
            for capability in capabilities:
                policy.grant(identity, capability)

        market = cls(platform_owner, ledger, clock, config=config, policy=policy, state=state)
        logger.info(
            f"Marketplace restored: {len(state.records)} records, "
            f"{len(state.requests)} requests"
        )
        return market
