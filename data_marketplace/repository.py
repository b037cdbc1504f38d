"""
Data Marketplace - Repository.

============================================================
PURPOSE
============================================================
Repository pattern implementation for marketplace state.

- save_state: upsert every entity, profile and counter
- load_state: rebuild a MarketplaceState from rows
- save_grants / load_grants: explicit capability grants

Entities are never deleted by the engine, so saving is a
merge of every row. Capability grants are replaced as a set.

The caller owns the transaction (see database.session_scope).

============================================================
"""

import logging
from typing import Dict, Set

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import DatabaseError
from .models import (
    CapabilityGrantModel,
    ConsentGrantModel,
    ConsumerProfileModel,
    DataRecordModel,
    OwnerProfileModel,
    PlatformStateModel,
    QualityAssessmentModel,
    ResearchRequestModel,
    UsageLogModel,
)
from .state import MarketplaceState
from .types import (
    AnonymizationLevel,
    Capability,
    ConsentGrant,
    ConsumerProfile,
    DataCategory,
    DataRecord,
    OwnerProfile,
    QualityAssessment,
    RequestStatus,
    ResearchRequest,
    UsageLogEntry,
    UsageType,
)


logger = logging.getLogger(__name__)

PLATFORM_STATE_ID = 1


class MarketplaceRepository:
    """
    Repository for marketplace persistence operations.

    ============================================================
    METHODS
    ============================================================
    - save_state: Persist the full state
    - load_state: Restore the full state
    - save_grants: Persist explicit capability grants
    - load_grants: Restore explicit capability grants
    ============================================================
    """

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self._session = session

    # --------------------------------------------------------
    # SAVE
    # --------------------------------------------------------

    def save_state(self, state: MarketplaceState) -> None:
        """
        Upsert every row of state.

        Raises:
            DatabaseError: On SQLAlchemy failure
        """
        try:
            for record in state.records.values():
                self._session.merge(_record_to_row(record))
            for grant in state.consents.values():
                self._session.merge(_consent_to_row(grant))
            for request in state.requests.values():
                self._session.merge(_request_to_row(request))
            for entries in state.usage_log.values():
                for entry in entries:
                    self._session.merge(_usage_to_row(entry))
            for assessment in state.assessments.values():
                self._session.merge(_assessment_to_row(assessment))
            for profile in state.owner_profiles.values():
                self._session.merge(_owner_profile_to_row(profile))
            for profile in state.consumer_profiles.values():
                self._session.merge(_consumer_profile_to_row(profile))

            self._session.merge(PlatformStateModel(
                id=PLATFORM_STATE_ID,
                next_record_id=state.next_record_id,
                next_request_id=state.next_request_id,
                total_payments_distributed=state.total_payments_distributed,
                platform_revenue=state.platform_revenue,
                paused=state.paused,
            ))
            self._session.flush()
        except (SQLAlchemyError, OverflowError) as e:
            raise DatabaseError(f"Failed to save marketplace state: {e}", operation="save_state", cause=e) from e

        logger.info(
            f"Saved marketplace state: {len(state.records)} records, "
            f"{len(state.requests)} requests, {len(state.consents)} consents"
        )

    def save_grants(self, grants: Dict[str, Set[Capability]]) -> None:
        """
        Replace persisted capability grants.

        Raises:
            DatabaseError: On SQLAlchemy failure
        """
        try:
            self._session.execute(delete(CapabilityGrantModel))
            for identity, capabilities in grants.items():
                for capability in sorted(capabilities, key=lambda c: c.value):
                    self._session.add(CapabilityGrantModel(identity=identity, capability=capability.value))
            self._session.flush()
        except (SQLAlchemyError, OverflowError) as e:
            raise DatabaseError(
                f"Failed to save capability grants: {e}",
                operation="save_grants",
                table=CapabilityGrantModel.__tablename__,
                cause=e,
            ) from e

    # --------------------------------------------------------
    # LOAD
    # --------------------------------------------------------

    def load_state(self) -> MarketplaceState:
        """
        Rebuild state from persisted rows.

        An empty database yields a fresh state.

        Raises:
            DatabaseError: On SQLAlchemy failure
        """
        try:
            state = MarketplaceState()

            for row in self._session.scalars(select(DataRecordModel).order_by(DataRecordModel.record_id)):
                state.add_record(_row_to_record(row))

            for row in self._session.scalars(select(ConsentGrantModel)):
                grant = _row_to_consent(row)
                state.consents[(grant.owner, grant.category)] = grant

            for row in self._session.scalars(select(ResearchRequestModel)):
                state.requests[row.request_id] = _row_to_request(row)

            usage_rows = self._session.scalars(
                select(UsageLogModel).order_by(
                    UsageLogModel.record_id,
                    UsageLogModel.request_id,
                    UsageLogModel.purchase_index,
                )
            )
            for row in usage_rows:
                state.usage_log.setdefault((row.record_id, row.request_id), []).append(_row_to_usage(row))

            for row in self._session.scalars(select(QualityAssessmentModel)):
                state.assessments[row.record_id] = _row_to_assessment(row)

            for row in self._session.scalars(select(OwnerProfileModel)):
                state.owner_profiles[row.owner] = _row_to_owner_profile(row)

            for row in self._session.scalars(select(ConsumerProfileModel)):
                state.consumer_profiles[row.consumer] = _row_to_consumer_profile(row)

            platform = self._session.get(PlatformStateModel, PLATFORM_STATE_ID)
            if platform is not None:
                state.next_record_id = platform.next_record_id
                state.next_request_id = platform.next_request_id
                state.total_payments_distributed = platform.total_payments_distributed
                state.platform_revenue = platform.platform_revenue
                state.paused = platform.paused
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to load marketplace state: {e}", operation="load_state", cause=e) from e

        logger.info(
            f"Loaded marketplace state: {len(state.records)} records, "
            f"{len(state.requests)} requests"
        )
        return state

    def load_grants(self) -> Dict[str, Set[Capability]]:
        """
        Load explicit capability grants.

        Raises:
            DatabaseError: On SQLAlchemy failure
        """
        try:
            grants: Dict[str, Set[Capability]] = {}
            for row in self._session.scalars(select(CapabilityGrantModel)):
                grants.setdefault(row.identity, set()).add(Capability(row.capability))
            return grants
        except SQLAlchemyError as e:
            raise DatabaseError(
                f"Failed to load capability grants: {e}",
                operation="load_grants",
                table=CapabilityGrantModel.__tablename__,
                cause=e,
            ) from e


# ============================================================
# ROW CONVERSION
# ============================================================

def _record_to_row(record: DataRecord) -> DataRecordModel:
    return DataRecordModel(
        record_id=record.record_id,
        owner=record.owner,
        category=record.category.value,
        fingerprint=record.fingerprint,
        price=record.price,
        created_at=record.created_at,
        consent_expires_at=record.consent_expires_at,
        metadata_text=record.metadata,
        quality_score=record.quality_score,
        available=record.available,
        usage_count=record.usage_count,
        total_earned=record.total_earned,
    )


def _row_to_record(row: DataRecordModel) -> DataRecord:
    return DataRecord(
        record_id=row.record_id,
        owner=row.owner,
        category=DataCategory(row.category),
        fingerprint=bytes(row.fingerprint),
        price=row.price,
        created_at=row.created_at,
        consent_expires_at=row.consent_expires_at,
        metadata=row.metadata_text,
        quality_score=row.quality_score,
        available=row.available,
        usage_count=row.usage_count,
        total_earned=row.total_earned,
    )


def _consent_to_row(grant: ConsentGrant) -> ConsentGrantModel:
    return ConsentGrantModel(
        owner=grant.owner,
        category=grant.category.value,
        granted=grant.granted,
        granted_at=grant.granted_at,
        expires_at=grant.expires_at,
        purposes=list(grant.purposes),
        geo_restrictions=list(grant.geo_restrictions),
        can_reidentify=grant.can_reidentify,
    )


def _row_to_consent(row: ConsentGrantModel) -> ConsentGrant:
    return ConsentGrant(
        owner=row.owner,
        category=DataCategory(row.category),
        granted=row.granted,
        granted_at=row.granted_at,
        expires_at=row.expires_at,
        purposes=list(row.purposes or []),
        geo_restrictions=list(row.geo_restrictions or []),
        can_reidentify=row.can_reidentify,
    )


def _request_to_row(request: ResearchRequest) -> ResearchRequestModel:
    return ResearchRequestModel(
        request_id=request.request_id,
        consumer=request.consumer,
        title=request.title,
        description=request.description,
        purpose=request.purpose,
        institution=request.institution,
        approval_reference=request.approval_reference,
        categories=[c.value for c in request.categories],
        max_price_per_record=request.max_price_per_record,
        min_quality=request.min_quality,
        max_records=request.max_records,
        created_at=request.created_at,
        expires_at=request.expires_at,
        budget_allocated=request.budget_allocated,
        status=request.status.value,
        records_purchased=request.records_purchased,
        budget_spent=request.budget_spent,
        refunded=request.refunded,
    )


def _row_to_request(row: ResearchRequestModel) -> ResearchRequest:
    return ResearchRequest(
        request_id=row.request_id,
        consumer=row.consumer,
        title=row.title,
        description=row.description,
        purpose=row.purpose,
        institution=row.institution,
        approval_reference=row.approval_reference,
        categories=[DataCategory(c) for c in row.categories],
        max_price_per_record=row.max_price_per_record,
        min_quality=row.min_quality,
        max_records=row.max_records,
        created_at=row.created_at,
        expires_at=row.expires_at,
        budget_allocated=row.budget_allocated,
        status=RequestStatus(row.status),
        records_purchased=row.records_purchased,
        budget_spent=row.budget_spent,
        refunded=row.refunded,
    )


def _usage_to_row(entry: UsageLogEntry) -> UsageLogModel:
    return UsageLogModel(
        record_id=entry.record_id,
        request_id=entry.request_id,
        purchase_index=entry.purchase_index,
        consumer=entry.consumer,
        owner=entry.owner,
        purchased_at=entry.purchased_at,
        price_paid=entry.price_paid,
        usage_type=entry.usage_type.value,
        anonymization=entry.anonymization.value,
    )


def _row_to_usage(row: UsageLogModel) -> UsageLogEntry:
    return UsageLogEntry(
        record_id=row.record_id,
        request_id=row.request_id,
        consumer=row.consumer,
        owner=row.owner,
        purchased_at=row.purchased_at,
        price_paid=row.price_paid,
        usage_type=UsageType(row.usage_type),
        anonymization=AnonymizationLevel(row.anonymization),
        purchase_index=row.purchase_index,
    )


def _assessment_to_row(assessment: QualityAssessment) -> QualityAssessmentModel:
    return QualityAssessmentModel(
        record_id=assessment.record_id,
        assessor=assessment.assessor,
        completeness=assessment.completeness,
        accuracy=assessment.accuracy,
        timeliness=assessment.timeliness,
        consistency=assessment.consistency,
        final_score=assessment.final_score,
        assessed_at=assessment.assessed_at,
        notes=assessment.notes,
    )


def _row_to_assessment(row: QualityAssessmentModel) -> QualityAssessment:
    return QualityAssessment(
        record_id=row.record_id,
        assessor=row.assessor,
        completeness=row.completeness,
        accuracy=row.accuracy,
        timeliness=row.timeliness,
        consistency=row.consistency,
        final_score=row.final_score,
        assessed_at=row.assessed_at,
        notes=row.notes,
    )


def _owner_profile_to_row(profile: OwnerProfile) -> OwnerProfileModel:
    return OwnerProfileModel(
        owner=profile.owner,
        total_records=profile.total_records,
        total_earnings=profile.total_earnings,
        quality_score_total=profile.quality_score_total,
        assessed_records=profile.assessed_records,
        categories_available=sorted(c.value for c in profile.categories_available),
        verified=profile.verified,
        last_activity=profile.last_activity,
    )


def _row_to_owner_profile(row: OwnerProfileModel) -> OwnerProfile:
    return OwnerProfile(
        owner=row.owner,
        total_records=row.total_records,
        total_earnings=row.total_earnings,
        quality_score_total=row.quality_score_total,
        assessed_records=row.assessed_records,
        categories_available={DataCategory(c) for c in row.categories_available or []},
        verified=row.verified,
        last_activity=row.last_activity,
    )


def _consumer_profile_to_row(profile: ConsumerProfile) -> ConsumerProfileModel:
    return ConsumerProfileModel(
        consumer=profile.consumer,
        total_purchases=profile.total_purchases,
        total_spent=profile.total_spent,
        reputation_score=profile.reputation_score,
        verified=profile.verified,
        active_requests=profile.active_requests,
        completed_studies=profile.completed_studies,
    )


def _row_to_consumer_profile(row: ConsumerProfileModel) -> ConsumerProfile:
    return ConsumerProfile(
        consumer=row.consumer,
        total_purchases=row.total_purchases,
        total_spent=row.total_spent,
        reputation_score=row.reputation_score,
        verified=row.verified,
        active_requests=row.active_requests,
        completed_studies=row.completed_studies,
    )
