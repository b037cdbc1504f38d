"""
Data Marketplace Module.

============================================================
HEALTH DATA MARKETPLACE
Consent-gated settlement engine
============================================================

PURPOSE
-------
Let data owners list health records they control, let
research consumers fund requests for such data, and settle
purchases atomically with consent, quality, pricing and
budget rules enforced.

COMPONENTS
----------
1. Registry: records and quality assessments
2. Consent Ledger: time-bounded grants per (owner, category)
3. Request Escrow: funded research requests and refunds
4. Settlement Engine: atomic purchase transition
5. Profile Aggregator: owner and consumer summaries
6. Governance: pause, capabilities, verification

DEFAULT CONFIGURATION
---------------------
- Platform fee: 20% (2000 bps), floored
- Minimum price: 1,000,000 units
- Availability threshold: quality score 60
- Per-record usage ceiling: 10

FAILURE HANDLING
----------------
Every rejection raises a MarketplaceException subclass and
leaves state untouched. The ledger transfer is attempted only
after every check passes.

============================================================
USAGE EXAMPLE
============================================================

```python
from core.clock import MockBlockClock
from data_marketplace import DataMarketplace, InMemoryLedger

ledger = InMemoryLedger({"lab": 100_000_000})
market = DataMarketplace("platform", ledger, MockBlockClock())

market.grant_consent("alice", "EHR")
record_id = market.register("alice", "EHR", bytes(32), 10_000_000)
market.assess("platform", record_id, 80, 70, 90, 60)

request_id = market.open_request(
    "lab", "Cardiology cohort", ["EHR"],
    max_price_per_record=10_000_000,
    min_quality=60,
    max_records=5,
    budget=50_000_000,
)
market.purchase("lab", record_id, request_id)
```

============================================================
"""

from .types import (
    DataCategory,
    RequestStatus,
    Capability,
    UsageType,
    AnonymizationLevel,
    DataRecord,
    ConsentGrant,
    ResearchRequest,
    QualityAssessment,
    UsageLogEntry,
    OwnerProfile,
    ConsumerProfile,
    PlatformStats,
    PaymentSplit,
)
from .config import (
    FeeConfig,
    QualityConfig,
    ConsentConfig,
    RequestConfig,
    SettlementPolicyConfig,
    MarketplaceConfig,
    get_default_config,
)
from .ledger import LedgerAdapter, InMemoryLedger, TransferRecord
from .policy import AuthorizationPolicy, RoleCapabilityPolicy
from .state import MarketplaceState, StateStore
from .profiles import ProfileAggregator, rebuild_profiles, verify_consistency
from .consent import ConsentLedger
from .registry import DataRegistry
from .escrow import RequestEscrow
from .settlement import SettlementEngine
from .governance import Governance
from .engine import DataMarketplace
from .repository import MarketplaceRepository


__all__ = [
    # Types
    "DataCategory",
    "RequestStatus",
    "Capability",
    "UsageType",
    "AnonymizationLevel",
    "DataRecord",
    "ConsentGrant",
    "ResearchRequest",
    "QualityAssessment",
    "UsageLogEntry",
    "OwnerProfile",
    "ConsumerProfile",
    "PlatformStats",
    "PaymentSplit",
    # Config
    "FeeConfig",
    "QualityConfig",
    "ConsentConfig",
    "RequestConfig",
    "SettlementPolicyConfig",
    "MarketplaceConfig",
    "get_default_config",
    # Adapters
    "LedgerAdapter",
    "InMemoryLedger",
    "TransferRecord",
    "AuthorizationPolicy",
    "RoleCapabilityPolicy",
    # State
    "MarketplaceState",
    "StateStore",
    "ProfileAggregator",
    "rebuild_profiles",
    "verify_consistency",
    # Components
    "ConsentLedger",
    "DataRegistry",
    "RequestEscrow",
    "SettlementEngine",
    "Governance",
    "DataMarketplace",
    # Persistence
    "MarketplaceRepository",
]
