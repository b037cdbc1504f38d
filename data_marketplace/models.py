"""
Data Marketplace - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy ORM models for persisting marketplace state.

Includes:
- Data records and quality assessments
- Consent grants (one row per owner and category)
- Research requests
- Usage log (one row per settlement)
- Owner and consumer profiles
- Capability grants
- Platform counters (single row)

Amounts and heights are stored as integers.

============================================================
"""

from typing import List

from sqlalchemy import BigInteger, Boolean, Integer, JSON, LargeBinary, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from database.engine import Base


class DataRecordModel(Base):
    """Listed data record."""

    __tablename__ = "marketplace_records"

    record_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    owner: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    fingerprint: Mapped[bytes] = mapped_column(LargeBinary(32), nullable=False)
    """Content digest; raw data is never stored."""

    price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    consent_expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    metadata_text: Mapped[str] = mapped_column("metadata", Text, nullable=False, default="")
    quality_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class ConsentGrantModel(Base):
    """Consent grant keyed by (owner, category)."""

    __tablename__ = "marketplace_consents"

    owner: Mapped[str] = mapped_column(String(128), primary_key=True)
    category: Mapped[str] = mapped_column(String(32), primary_key=True)
    granted: Mapped[bool] = mapped_column(Boolean, nullable=False)
    granted_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    purposes: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    geo_restrictions: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    can_reidentify: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ResearchRequestModel(Base):
    """Funded research request."""

    __tablename__ = "marketplace_requests"

    request_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    consumer: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    purpose: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    institution: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    approval_reference: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    categories: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    max_price_per_record: Mapped[int] = mapped_column(BigInteger, nullable=False)
    min_quality: Mapped[int] = mapped_column(Integer, nullable=False)
    max_records: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    budget_allocated: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    records_purchased: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    budget_spent: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    refunded: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class UsageLogModel(Base):
    """One settlement of a (record, request) pair."""

    __tablename__ = "marketplace_usage_log"

    record_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    purchase_index: Mapped[int] = mapped_column(Integer, primary_key=True)
    consumer: Mapped[str] = mapped_column(String(128), nullable=False)
    owner: Mapped[str] = mapped_column(String(128), nullable=False)
    purchased_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    price_paid: Mapped[int] = mapped_column(BigInteger, nullable=False)
    usage_type: Mapped[str] = mapped_column(String(32), nullable=False)
    anonymization: Mapped[str] = mapped_column(String(32), nullable=False)


class QualityAssessmentModel(Base):
    """Current assessment of a record."""

    __tablename__ = "marketplace_assessments"

    record_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    assessor: Mapped[str] = mapped_column(String(128), nullable=False)
    completeness: Mapped[int] = mapped_column(Integer, nullable=False)
    accuracy: Mapped[int] = mapped_column(Integer, nullable=False)
    timeliness: Mapped[int] = mapped_column(Integer, nullable=False)
    consistency: Mapped[int] = mapped_column(Integer, nullable=False)
    final_score: Mapped[int] = mapped_column(Integer, nullable=False)
    assessed_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")


class OwnerProfileModel(Base):
    """Denormalized owner summary."""

    __tablename__ = "marketplace_owner_profiles"

    owner: Mapped[str] = mapped_column(String(128), primary_key=True)
    total_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_earnings: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    quality_score_total: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    assessed_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    categories_available: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_activity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class ConsumerProfileModel(Base):
    """Denormalized consumer summary."""

    __tablename__ = "marketplace_consumer_profiles"

    consumer: Mapped[str] = mapped_column(String(128), primary_key=True)
    total_purchases: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_spent: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    reputation_score: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    active_requests: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_studies: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class CapabilityGrantModel(Base):
    """Explicit capability held by a non-owner identity."""

    __tablename__ = "marketplace_capability_grants"

    identity: Mapped[str] = mapped_column(String(128), primary_key=True)
    capability: Mapped[str] = mapped_column(String(32), primary_key=True)


class PlatformStateModel(Base):
    """Counters and pause flag. Always a single row with id 1."""

    __tablename__ = "marketplace_platform_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    next_record_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    next_request_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_payments_distributed: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    platform_revenue: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    paused: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


__all__ = [
    "DataRecordModel",
    "ConsentGrantModel",
    "ResearchRequestModel",
    "UsageLogModel",
    "QualityAssessmentModel",
    "OwnerProfileModel",
    "ConsumerProfileModel",
    "CapabilityGrantModel",
    "PlatformStateModel",
]
