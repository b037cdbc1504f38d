"""
Data Marketplace - Registry.

============================================================
PURPOSE
============================================================
Owns data records and their quality assessments, and is the
only writer of record availability.

REGISTER (order of checks):
1. Paused                      -> SystemPaused
2. Price below floor / above cap -> InvalidAmount
3. Category outside enum       -> InvalidCategory
4. Fingerprint / metadata bounds -> InvalidData
5. No live consent             -> ConsentRequired (DataExpired)

ASSESS:
final_score = floor(sum of four sub-scores / 4)
available   = final_score >= quality_threshold

Records are never deleted.

============================================================
"""

import copy
import logging
from typing import List, Optional

from core.clock import BlockClockProtocol
from core.exceptions import NotFoundError
from .config import MarketplaceConfig
from .consent import ConsentLedger
from .policy import AuthorizationPolicy
from .profiles import ProfileAggregator
from .schemas import QualityScores, RecordListing, require_amount, validate_input
from .state import StateStore
from .types import Capability, DataCategory, DataRecord, QualityAssessment


logger = logging.getLogger(__name__)


class DataRegistry:
    """Data records and quality assessments."""

    def __init__(
        self,
        store: StateStore,
        config: MarketplaceConfig,
        clock: BlockClockProtocol,
        policy: AuthorizationPolicy,
        profiles: ProfileAggregator,
    ):
        self._store = store
        self._config = config
        self._clock = clock
        self._policy = policy
        self._profiles = profiles

    # --------------------------------------------------------
    # REGISTRATION
    # --------------------------------------------------------

    def register(
        self,
        owner: str,
        category,
        fingerprint: bytes,
        price: int,
        metadata: str = "",
    ) -> int:
        """
        List a new record.

        Args:
            owner: Caller identity
            category: DataCategory member or its name
            fingerprint: 32-byte content digest
            price: Price in smallest currency unit
            metadata: Free text, bounded

        Returns:
            New record id
        """
        with self._store.transition("register") as state:
            now = self._clock.height()
            fees = self._config.fees

            require_amount(price, fees.min_payment, fees.max_payment, "Price")

            parsed = DataCategory.parse(category)
            listing = validate_input(RecordListing, fingerprint=fingerprint, metadata=metadata)
            grant = ConsentLedger.require_live(state, owner, parsed, now)

            record = DataRecord(
                record_id=state.allocate_record_id(),
                owner=owner,
                category=parsed,
                fingerprint=listing.fingerprint,
                price=price,
                created_at=now,
                consent_expires_at=grant.expires_at,
                metadata=listing.metadata,
            )
            state.add_record(record)
            self._profiles.on_record_registered(state, record)

        logger.info(
            f"Registered record {record.record_id} by {owner} "
            f"({parsed.value}, price={price})"
        )
        return record.record_id

    # --------------------------------------------------------
    # QUALITY ASSESSMENT
    # --------------------------------------------------------

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
        """
        Score a record and recompute its availability.

        Replaces any prior assessment of the record.

        Returns:
            Final score
        """
        with self._store.transition("assess") as state:
            now = self._clock.height()
            self._policy.require(assessor, Capability.ASSESS_QUALITY, "assess quality")

            record = state.records.get(record_id)
            if record is None:
                raise NotFoundError("DataRecord", record_id)

            scores = validate_input(
                QualityScores,
                completeness=completeness,
                accuracy=accuracy,
                timeliness=timeliness,
                consistency=consistency,
                notes=notes,
            )
            final_score = QualityAssessment.compute_final_score(
                scores.completeness,
                scores.accuracy,
                scores.timeliness,
                scores.consistency,
            )

            assessment = QualityAssessment(
                record_id=record_id,
                assessor=assessor,
                completeness=scores.completeness,
                accuracy=scores.accuracy,
                timeliness=scores.timeliness,
                consistency=scores.consistency,
                final_score=final_score,
                assessed_at=now,
                notes=scores.notes,
            )
            previous = state.assessments.get(record_id)
            state.assessments[record_id] = assessment

            record.quality_score = final_score
            record.available = final_score >= self._config.quality.quality_threshold
            self._profiles.on_assessment(state, record, previous, assessment)

        logger.info(
            f"Assessed record {record_id}: score={final_score} available={record.available}"
        )
        return final_score

    # --------------------------------------------------------
    # QUERIES
    # --------------------------------------------------------

    def get_record(self, record_id: int) -> Optional[DataRecord]:
        """Get a record by id, None when absent."""
        with self._store.read() as state:
            return copy.deepcopy(state.records.get(record_id))

    def get_assessment(self, record_id: int) -> Optional[QualityAssessment]:
        """Get the current assessment of a record, None when absent."""
        with self._store.read() as state:
            return copy.deepcopy(state.assessments.get(record_id))

    def records_by_owner(self, owner: str) -> List[DataRecord]:
        """Records listed by owner, ordered by id."""
        with self._store.read() as state:
            return copy.deepcopy(state.records_of(owner))
