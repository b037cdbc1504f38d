"""
Data Marketplace - Type Definitions.

============================================================
PURPOSE
============================================================
Entity and enum definitions shared by every marketplace
component: registry, consent ledger, request escrow,
settlement engine and profile aggregator.

============================================================
ENTITIES
============================================================
- DataRecord: a priced, consent-gated listing
- ConsentGrant: time-bounded authorization per (owner, category)
- ResearchRequest: a consumer's funded purchase order
- QualityAssessment: scored evaluation gating availability
- UsageLogEntry: audit entry written by each settlement
- OwnerProfile / ConsumerProfile: denormalized summaries
- PlatformStats: aggregate read model

All amounts are integers in the smallest currency unit.
All heights are block heights from the clock adapter.

============================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from core.exceptions import InvalidCategoryError, InvalidDataError


# ============================================================
# ENUMS
# ============================================================

class DataCategory(str, Enum):
    """Fixed set of listable data categories."""

    EHR = "EHR"
    """Electronic health records."""

    GENOMICS = "GENOMICS"
    """Sequencing and genotyping data."""

    IMAGING = "IMAGING"
    """Radiology and other medical imaging."""

    LAB_RESULTS = "LAB_RESULTS"
    """Laboratory test results."""

    WEARABLE = "WEARABLE"
    """Wearable and sensor streams."""

    PRESCRIPTIONS = "PRESCRIPTIONS"
    """Medication and prescription history."""

    @classmethod
    def parse(cls, value: Any) -> "DataCategory":
        """
        Coerce a caller-supplied value into a category.

        Raises:
            InvalidCategoryError: If value is not a member
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.upper())
            except ValueError:
                pass
        raise InvalidCategoryError(value)


class RequestStatus(str, Enum):
    """Research request status. Transitions only leave ACTIVE."""

    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    def is_terminal(self) -> bool:
        """Check if status is terminal."""
        return self in (RequestStatus.COMPLETED, RequestStatus.CANCELLED)


class Capability(str, Enum):
    """Privileged actions granted by the authorization policy."""

    ASSESS_QUALITY = "ASSESS_QUALITY"
    CONTROL_PAUSE = "CONTROL_PAUSE"
    VERIFY_PARTICIPANTS = "VERIFY_PARTICIPANTS"
    MANAGE_ROLES = "MANAGE_ROLES"

    @classmethod
    def parse(cls, value: Any) -> "Capability":
        """
        Coerce a caller-supplied value into a capability.

        Raises:
            InvalidDataError: If value is not a member
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.upper())
            except ValueError:
                pass
        raise InvalidDataError(f"Unknown capability: {value!r}", field="capability")


class UsageType(str, Enum):
    """Declared use of purchased data."""

    RESEARCH = "RESEARCH"
    CLINICAL_TRIAL = "CLINICAL_TRIAL"
    PUBLIC_HEALTH = "PUBLIC_HEALTH"
    MODEL_TRAINING = "MODEL_TRAINING"


class AnonymizationLevel(str, Enum):
    """Anonymization applied to delivered data."""

    ANONYMIZED = "ANONYMIZED"
    """Re-identification not permitted by the owner."""

    PSEUDONYMIZED = "PSEUDONYMIZED"
    """Owner permitted re-identification."""


# ============================================================
# PRIMARY ENTITIES
# ============================================================

@dataclass
class DataRecord:
    """
    One listed asset.

    Only the content fingerprint is held; raw data never
    enters the engine.
    """

    record_id: int
    owner: str
    category: DataCategory
    fingerprint: bytes
    price: int
    created_at: int
    consent_expires_at: int
    """Denormalized copy of the owner's grant expiry for this category."""

    metadata: str = ""
    quality_score: int = 0
    available: bool = False
    usage_count: int = 0
    total_earned: int = 0
    """Cumulative owner payouts for this record."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "record_id": self.record_id,
            "owner": self.owner,
            "category": self.category.value,
            "fingerprint": self.fingerprint.hex(),
            "price": self.price,
            "created_at": self.created_at,
            "consent_expires_at": self.consent_expires_at,
            "metadata": self.metadata,
            "quality_score": self.quality_score,
            "available": self.available,
            "usage_count": self.usage_count,
            "total_earned": self.total_earned,
        }


@dataclass
class ConsentGrant:
    """Consent for one (owner, category) pair. Never removed."""

    owner: str
    category: DataCategory
    granted: bool
    granted_at: int
    expires_at: int
    purposes: List[str] = field(default_factory=list)
    geo_restrictions: List[str] = field(default_factory=list)
    can_reidentify: bool = False

    def is_live(self, at_height: int) -> bool:
        """True iff granted and at_height is inside the window."""
        return self.granted and at_height < self.expires_at

    def is_lapsed(self, at_height: int) -> bool:
        """True iff still granted but the window has closed."""
        return self.granted and at_height >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "owner": self.owner,
            "category": self.category.value,
            "granted": self.granted,
            "granted_at": self.granted_at,
            "expires_at": self.expires_at,
            "purposes": list(self.purposes),
            "geo_restrictions": list(self.geo_restrictions),
            "can_reidentify": self.can_reidentify,
        }


@dataclass
class ResearchRequest:
    """
    A consumer's funded project.

    ============================================================
    ACCOUNTING
    ============================================================
    budget_allocated: moved into escrow at open
    budget_spent: sum of prices settled against this request
    refunded: unspent funds returned after a terminal status

    budget_spent + refunded <= budget_allocated, always.
    ============================================================
    """

    request_id: int
    consumer: str
    title: str
    description: str
    purpose: str
    institution: str
    approval_reference: str
    categories: List[DataCategory]
    max_price_per_record: int
    min_quality: int
    max_records: int
    created_at: int
    expires_at: int
    budget_allocated: int
    status: RequestStatus = RequestStatus.ACTIVE
    records_purchased: int = 0
    budget_spent: int = 0
    refunded: int = 0

    @property
    def remaining_budget(self) -> int:
        """Escrowed funds not yet spent or refunded."""
        return self.budget_allocated - self.budget_spent - self.refunded

    @property
    def remaining_capacity(self) -> int:
        """Records that may still be purchased."""
        return self.max_records - self.records_purchased

    def is_expired(self, at_height: int) -> bool:
        """Check if request lifetime has lapsed."""
        return at_height >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "request_id": self.request_id,
            "consumer": self.consumer,
            "title": self.title,
            "description": self.description,
            "purpose": self.purpose,
            "institution": self.institution,
            "approval_reference": self.approval_reference,
            "categories": [c.value for c in self.categories],
            "max_price_per_record": self.max_price_per_record,
            "min_quality": self.min_quality,
            "max_records": self.max_records,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "budget_allocated": self.budget_allocated,
            "status": self.status.value,
            "records_purchased": self.records_purchased,
            "budget_spent": self.budget_spent,
            "refunded": self.refunded,
        }


@dataclass
class QualityAssessment:
    """Current assessment of a record. A new one replaces it."""

    record_id: int
    assessor: str
    completeness: int
    accuracy: int
    timeliness: int
    consistency: int
    final_score: int
    assessed_at: int
    notes: str = ""

    @staticmethod
    def compute_final_score(
        completeness: int,
        accuracy: int,
        timeliness: int,
        consistency: int,
    ) -> int:
        """Truncated arithmetic mean of the four sub-scores."""
        return (completeness + accuracy + timeliness + consistency) // 4


@dataclass
class UsageLogEntry:
    """Audit entry for one successful settlement of (record, request)."""

    record_id: int
    request_id: int
    consumer: str
    owner: str
    purchased_at: int
    price_paid: int
    usage_type: UsageType = UsageType.RESEARCH
    anonymization: AnonymizationLevel = AnonymizationLevel.ANONYMIZED
    purchase_index: int = 0
    """Position of this entry among purchases of the same pair."""


# ============================================================
# PROFILES (DERIVED)
# ============================================================

@dataclass
class OwnerProfile:
    """Denormalized owner summary. Rebuildable from primary entities."""

    owner: str
    total_records: int = 0
    total_earnings: int = 0
    quality_score_total: int = 0
    assessed_records: int = 0
    categories_available: Set[DataCategory] = field(default_factory=set)
    verified: bool = False
    last_activity: int = 0

    @property
    def quality_rating(self) -> int:
        """Running mean of current final scores across assessed records."""
        if self.assessed_records == 0:
            return 0
        return self.quality_score_total // self.assessed_records


@dataclass
class ConsumerProfile:
    """Denormalized consumer summary. Rebuildable from primary entities."""

    consumer: str
    total_purchases: int = 0
    total_spent: int = 0
    reputation_score: int = 0
    verified: bool = False
    active_requests: int = 0
    completed_studies: int = 0


@dataclass
class PlatformStats:
    """Aggregate platform statistics."""

    total_records: int
    total_requests: int
    total_payments_distributed: int
    platform_revenue: int
    paused: bool

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "total_records": self.total_records,
            "total_requests": self.total_requests,
            "total_payments_distributed": self.total_payments_distributed,
            "platform_revenue": self.platform_revenue,
            "paused": self.paused,
        }


@dataclass
class PaymentSplit:
    """Division of a settled price between owner and platform."""

    price: int
    platform_fee: int
    owner_payment: int

    @classmethod
    def compute(cls, price: int, fee_bps: int, denominator: int = 10_000) -> "PaymentSplit":
        """Split price; the fee floors, the owner receives the remainder."""
        platform_fee = price * fee_bps // denominator
        return cls(price=price, platform_fee=platform_fee, owner_payment=price - platform_fee)


__all__ = [
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
]
