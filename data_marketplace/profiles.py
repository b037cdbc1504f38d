"""
Data Marketplace - Profile Aggregator.

============================================================
PURPOSE
============================================================
Maintains denormalized owner and consumer summaries.

The aggregator is never invoked on its own. Its hooks run
inside the same transition as the primary write that caused
them, after every check of that transition has passed.

============================================================
REBUILD
============================================================
rebuild_profiles() recomputes every profile from records,
assessments, requests and the usage log. Verification flags
are governance state and are carried over unchanged.
verify_consistency() diffs the cached profiles against a
rebuild.

============================================================
"""

from typing import Dict, List, Optional, Tuple

from core import constants
from .state import MarketplaceState
from .types import (
    ConsumerProfile,
    DataRecord,
    OwnerProfile,
    PaymentSplit,
    QualityAssessment,
    RequestStatus,
    ResearchRequest,
)


class ProfileAggregator:
    """Applies profile side effects of committed transitions."""

    # --------------------------------------------------------
    # OWNER SIDE
    # --------------------------------------------------------

    def on_record_registered(self, state: MarketplaceState, record: DataRecord) -> None:
        profile = state.owner_profile(record.owner)
        profile.total_records += 1
        profile.last_activity = max(profile.last_activity, record.created_at)

    def on_assessment(
        self,
        state: MarketplaceState,
        record: DataRecord,
        previous: Optional[QualityAssessment],
        assessment: QualityAssessment,
    ) -> None:
        profile = state.owner_profile(record.owner)

        if previous is None:
            profile.assessed_records += 1
            profile.quality_score_total += assessment.final_score
        else:
            profile.quality_score_total += assessment.final_score - previous.final_score

        if any(r.available for r in state.records_of(record.owner, record.category)):
            profile.categories_available.add(record.category)
        else:
            profile.categories_available.discard(record.category)

    # --------------------------------------------------------
    # CONSUMER SIDE
    # --------------------------------------------------------

    def on_request_opened(self, state: MarketplaceState, request: ResearchRequest) -> None:
        state.consumer_profile(request.consumer).active_requests += 1

    def on_request_closed(self, state: MarketplaceState, request: ResearchRequest) -> None:
        """Apply an ACTIVE -> terminal transition already written to request."""
        profile = state.consumer_profile(request.consumer)
        profile.active_requests -= 1
        if request.status == RequestStatus.COMPLETED:
            profile.completed_studies += 1
            profile.reputation_score += constants.REPUTATION_PER_COMPLETED_STUDY

    # --------------------------------------------------------
    # SETTLEMENT
    # --------------------------------------------------------

    def on_purchase(
        self,
        state: MarketplaceState,
        record: DataRecord,
        request: ResearchRequest,
        split: PaymentSplit,
        height: int,
    ) -> None:
        owner = state.owner_profile(record.owner)
        owner.total_earnings += split.owner_payment
        owner.last_activity = max(owner.last_activity, height)

        consumer = state.consumer_profile(request.consumer)
        consumer.total_purchases += 1
        consumer.total_spent += split.price
        consumer.reputation_score += constants.REPUTATION_PER_PURCHASE


def rebuild_profiles(
    state: MarketplaceState,
) -> Tuple[Dict[str, OwnerProfile], Dict[str, ConsumerProfile]]:
    """Recompute every profile from primary entities."""
    owners: Dict[str, OwnerProfile] = {}
    consumers: Dict[str, ConsumerProfile] = {}

    def owner(identity: str) -> OwnerProfile:
        if identity not in owners:
            cached = state.owner_profiles.get(identity)
            owners[identity] = OwnerProfile(owner=identity, verified=bool(cached and cached.verified))
        return owners[identity]

    def consumer(identity: str) -> ConsumerProfile:
        if identity not in consumers:
            cached = state.consumer_profiles.get(identity)
            consumers[identity] = ConsumerProfile(consumer=identity, verified=bool(cached and cached.verified))
        return consumers[identity]

    for record in state.records.values():
        profile = owner(record.owner)
        profile.total_records += 1
        profile.total_earnings += record.total_earned
        profile.last_activity = max(profile.last_activity, record.created_at)
        if record.available:
            profile.categories_available.add(record.category)

        assessment = state.assessments.get(record.record_id)
        if assessment is not None:
            profile.assessed_records += 1
            profile.quality_score_total += assessment.final_score

    for request in state.requests.values():
        profile = consumer(request.consumer)
        if request.status == RequestStatus.ACTIVE:
            profile.active_requests += 1
        elif request.status == RequestStatus.COMPLETED:
            profile.completed_studies += 1
            profile.reputation_score += constants.REPUTATION_PER_COMPLETED_STUDY

    for entries in state.usage_log.values():
        for entry in entries:
            buyer = consumer(entry.consumer)
            buyer.total_purchases += 1
            buyer.total_spent += entry.price_paid
            buyer.reputation_score += constants.REPUTATION_PER_PURCHASE

            seller = owner(entry.owner)
            seller.last_activity = max(seller.last_activity, entry.purchased_at)

    return owners, consumers


def verify_consistency(state: MarketplaceState) -> List[str]:
    """
    Compare cached profiles with a rebuild.

    Returns:
        Human-readable mismatches (empty when consistent)
    """
    owners, consumers = rebuild_profiles(state)
    problems = []

    for kind, cached, rebuilt in (
        ("owner", state.owner_profiles, owners),
        ("consumer", state.consumer_profiles, consumers),
    ):
        for identity in sorted(set(cached) | set(rebuilt)):
            if cached.get(identity) != rebuilt.get(identity):
                problems.append(
                    f"{kind} {identity}: cached={cached.get(identity)} rebuilt={rebuilt.get(identity)}"
                )

    return problems
