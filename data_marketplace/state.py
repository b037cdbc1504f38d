"""
Data Marketplace - State Store.

============================================================
PURPOSE
============================================================
Owns every piece of mutable marketplace state and the single
transition boundary through which it is written.

STATE:
- records, consents, requests, usage log, assessments
- owner and consumer profiles
- record/request id counters, total distributed,
  platform revenue, pause flag

============================================================
CRITICAL INVARIANTS
============================================================
1. Only one transition runs at a time (re-entrant lock)
2. Paused state rejects every transition except unpause,
   before any other validation
3. Id counters start at 1 and are never reused
4. Components validate fully before their first write, so a
   rejected transition leaves state untouched

============================================================
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Generator, List, Optional, Tuple

from core.exceptions import MarketplaceException, SystemPausedError
from .types import (
    ConsentGrant,
    ConsumerProfile,
    DataCategory,
    DataRecord,
    OwnerProfile,
    QualityAssessment,
    ResearchRequest,
    UsageLogEntry,
)


logger = logging.getLogger(__name__)


ConsentKey = Tuple[str, DataCategory]
UsageKey = Tuple[int, int]


@dataclass
class MarketplaceState:
    """
    Internal state of the marketplace.

    This is the source of truth for every component.
    """

    records: Dict[int, DataRecord] = field(default_factory=dict)
    consents: Dict[ConsentKey, ConsentGrant] = field(default_factory=dict)
    requests: Dict[int, ResearchRequest] = field(default_factory=dict)
    usage_log: Dict[UsageKey, List[UsageLogEntry]] = field(default_factory=dict)
    """Append-only entries per (record_id, request_id)."""

    assessments: Dict[int, QualityAssessment] = field(default_factory=dict)

    owner_profiles: Dict[str, OwnerProfile] = field(default_factory=dict)
    consumer_profiles: Dict[str, ConsumerProfile] = field(default_factory=dict)

    next_record_id: int = 1
    next_request_id: int = 1
    total_payments_distributed: int = 0
    platform_revenue: int = 0
    paused: bool = False

    record_ids_by_owner: Dict[str, List[int]] = field(default_factory=dict, repr=False, compare=False)
    """Owner index over records, ascending ids. Maintained by add_record."""

    def __post_init__(self):
        if self.records and not self.record_ids_by_owner:
            for record_id in sorted(self.records):
                self.record_ids_by_owner.setdefault(self.records[record_id].owner, []).append(record_id)

    def add_record(self, record: DataRecord) -> None:
        """Store a record and index it under its owner."""
        self.records[record.record_id] = record
        ids = self.record_ids_by_owner.setdefault(record.owner, [])
        if record.record_id not in ids:
            ids.append(record.record_id)
            if len(ids) > 1 and ids[-2] > record.record_id:
                ids.sort()

    def allocate_record_id(self) -> int:
        """Take the next record id."""
        record_id = self.next_record_id
        self.next_record_id += 1
        return record_id

    def allocate_request_id(self) -> int:
        """Take the next request id."""
        request_id = self.next_request_id
        self.next_request_id += 1
        return request_id

    def records_of(self, owner: str, category: Optional[DataCategory] = None) -> List[DataRecord]:
        """Records listed by owner, optionally in one category, by id."""
        records = (self.records[i] for i in self.record_ids_by_owner.get(owner, ()))
        return [r for r in records if category is None or r.category == category]

    def owner_profile(self, owner: str) -> OwnerProfile:
        """Get or create an owner profile."""
        profile = self.owner_profiles.get(owner)
        if profile is None:
            profile = OwnerProfile(owner=owner)
            self.owner_profiles[owner] = profile
        return profile

    def consumer_profile(self, consumer: str) -> ConsumerProfile:
        """Get or create a consumer profile."""
        profile = self.consumer_profiles.get(consumer)
        if profile is None:
            profile = ConsumerProfile(consumer=consumer)
            self.consumer_profiles[consumer] = profile
        return profile


class StateStore:
    """
    Serializes transitions over a MarketplaceState.

    ============================================================
    USAGE
    ============================================================
    with store.transition("purchase") as state:
        ...validate...
        ...external transfer...
        ...bookkeeping...

    Rejections raised inside the block are logged once here
    and propagate unchanged.
    ============================================================
    """

    def __init__(self, state: Optional[MarketplaceState] = None):
        self._state = state or MarketplaceState()
        self._lock = threading.RLock()

    @property
    def state(self) -> MarketplaceState:
        """Committed state. Read under read() for consistency."""
        return self._state

    @contextmanager
    def transition(
        self,
        operation: str,
        allow_when_paused: bool = False,
    ) -> Generator[MarketplaceState, None, None]:
        """
        Run one serializable transition.

        Args:
            operation: Name used for logging and pause errors
            allow_when_paused: Only True for unpause

        Raises:
            SystemPausedError: If paused and not allowed
        """
        with self._lock:
            try:
                if self._state.paused and not allow_when_paused:
                    raise SystemPausedError(operation)
                yield self._state
            except MarketplaceException as e:
                logger.warning(f"{operation} rejected: {e.to_log_format()}")
                raise

    @contextmanager
    def read(self) -> Generator[MarketplaceState, None, None]:
        """Consistent read view; waits for any running transition."""
        with self._lock:
            yield self._state
