"""
Data Marketplace - Settlement Engine.

============================================================
PURPOSE
============================================================
Validates and executes a purchase of one record against one
research request as a single indivisible transition.

============================================================
DECISION LOGIC
============================================================

def purchase(consumer, record_id, request_id):
    if paused:                              SystemPaused
    if record or request missing:           NotFound
    if consumer != request.consumer:        Unauthorized
    if request not ACTIVE or expired:       InvalidState
    if record not available:                InvalidState
    if record.usage_count >= ceiling:       InvalidState
    if record.quality < request.min_quality: QualityTooLow
    if record.price > request.max_price:    InvalidAmount
    if request at capacity / out of budget: InsufficientBalance
    if pair already bought (policy):        AlreadyExists
    if consent revoked / never granted:     ConsentRequired
    if consent lapsed:                      DataExpired

    fee = price * fee_bps // 10000
    transfer(price - fee, escrow -> owner)   # commit point
    bookkeeping                              # never skipped

The first failing check in this order is the one reported.
Nothing is written before the transfer succeeds.

============================================================
"""

import logging
from typing import Optional

from core.clock import BlockClockProtocol
from core import constants
from core.exceptions import (
    AlreadyExistsError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidDataError,
    InvalidStateError,
    NotFoundError,
    QualityTooLowError,
    TransferFailedError,
    UnauthorizedError,
)
from .config import MarketplaceConfig
from .consent import ConsentLedger
from .escrow import close_request
from .ledger import LedgerAdapter
from .profiles import ProfileAggregator
from .state import MarketplaceState, StateStore
from .types import (
    AnonymizationLevel,
    ConsentGrant,
    DataRecord,
    PaymentSplit,
    RequestStatus,
    ResearchRequest,
    UsageLogEntry,
    UsageType,
)


logger = logging.getLogger(__name__)


class SettlementEngine:
    """
    Atomic purchase settlement.

    ============================================================
    INTERFACE
    ============================================================
    purchase(consumer, record_id, request_id) -> price paid

    The only component that reads registry, consent ledger
    and escrow together and writes all of them.
    ============================================================
    """

    def __init__(
        self,
        store: StateStore,
        config: MarketplaceConfig,
        clock: BlockClockProtocol,
        ledger: LedgerAdapter,
        profiles: ProfileAggregator,
    ):
        self._store = store
        self._config = config
        self._clock = clock
        self._ledger = ledger
        self._profiles = profiles

    def purchase(
        self,
        consumer: str,
        record_id: int,
        request_id: int,
        usage_type: UsageType = UsageType.RESEARCH,
    ) -> int:
        """
        Purchase a record against a research request.

        Returns:
            Price paid (platform fee included)
        """
        with self._store.transition("purchase") as state:
            now = self._clock.height()
            usage = self._parse_usage_type(usage_type)

            record, request, grant = self._validate(state, consumer, record_id, request_id, now)
            split = PaymentSplit.compute(
                record.price,
                self._config.fees.platform_fee_bps,
                constants.BPS_DENOMINATOR,
            )

            escrow = self._config.escrow_account
            if not self._ledger.transfer(split.owner_payment, escrow, record.owner):
                raise TransferFailedError(split.owner_payment, escrow, record.owner)

            self._commit(state, record, request, grant, split, usage, now)

        logger.info(
            f"Settled record {record_id} for request {request_id}: "
            f"price={split.price} fee={split.platform_fee} owner={split.owner_payment}"
        )
        return split.price

    # --------------------------------------------------------
    # VALIDATION
    # --------------------------------------------------------

    @staticmethod
    def _parse_usage_type(usage_type) -> UsageType:
        try:
            return UsageType(usage_type)
        except ValueError as e:
            raise InvalidDataError(
                f"Unknown usage type: {usage_type!r}",
                field="usage_type",
                cause=e,
            ) from e

    def _validate(
        self,
        state: MarketplaceState,
        consumer: str,
        record_id: int,
        request_id: int,
        now: int,
    ):
        record = state.records.get(record_id)
        if record is None:
            raise NotFoundError("DataRecord", record_id)

        request = state.requests.get(request_id)
        if request is None:
            raise NotFoundError("ResearchRequest", request_id)

        if consumer != request.consumer:
            raise UnauthorizedError(
                f"{consumer} does not own request {request_id}",
                caller=consumer,
            )

        if request.status != RequestStatus.ACTIVE:
            raise InvalidStateError(
                f"Request {request_id} is {request.status.value}",
                reason="request_not_active",
            )
        if request.is_expired(now):
            raise InvalidStateError(
                f"Request {request_id} expired at height {request.expires_at}",
                reason="request_expired",
            )

        if not record.available:
            raise InvalidStateError(
                f"Record {record_id} is not available",
                reason="record_unavailable",
            )

        ceiling = self._config.settlement.max_usage_per_record
        if record.usage_count >= ceiling:
            raise InvalidStateError(
                f"Record {record_id} reached usage ceiling {ceiling}",
                reason="usage_ceiling",
            )

        if record.quality_score < request.min_quality:
            raise QualityTooLowError(
                f"Record {record_id} quality below request minimum",
                score=record.quality_score,
                required=request.min_quality,
            )

        if record.price > request.max_price_per_record:
            raise InvalidAmountError(
                f"Record {record_id} price exceeds request maximum",
                amount=record.price,
                maximum=request.max_price_per_record,
            )

        if request.records_purchased >= request.max_records:
            raise InsufficientBalanceError(
                f"Request {request_id} reached max records",
                required=request.records_purchased + 1,
                available=request.max_records,
            )
        if record.price > request.remaining_budget:
            raise InsufficientBalanceError(
                f"Request {request_id} budget exhausted",
                required=record.price,
                available=request.remaining_budget,
            )

        if not self._config.settlement.allow_repeat_purchase and (record_id, request_id) in state.usage_log:
            raise AlreadyExistsError("UsageLogEntry", f"{record_id}/{request_id}")

        grant = ConsentLedger.require_live(state, record.owner, record.category, now)
        return record, request, grant

    # --------------------------------------------------------
    # BOOKKEEPING
    # --------------------------------------------------------

    def _commit(
        self,
        state: MarketplaceState,
        record: DataRecord,
        request: ResearchRequest,
        grant: ConsentGrant,
        split: PaymentSplit,
        usage_type: UsageType,
        now: int,
    ) -> None:
        state.platform_revenue += split.platform_fee

        record.usage_count += 1
        record.total_earned += split.owner_payment

        request.records_purchased += 1
        request.budget_spent += split.price

        entries = state.usage_log.setdefault((record.record_id, request.request_id), [])
        entries.append(UsageLogEntry(
            record_id=record.record_id,
            request_id=request.request_id,
            consumer=request.consumer,
            owner=record.owner,
            purchased_at=now,
            price_paid=split.price,
            usage_type=usage_type,
            anonymization=(
                AnonymizationLevel.PSEUDONYMIZED if grant.can_reidentify
                else AnonymizationLevel.ANONYMIZED
            ),
            purchase_index=len(entries),
        ))

        state.total_payments_distributed += split.owner_payment
        self._profiles.on_purchase(state, record, request, split, now)

        if (
            self._config.settlement.auto_complete_requests
            and request.records_purchased >= request.max_records
        ):
            close_request(state, request, RequestStatus.COMPLETED, self._profiles)
            logger.info(f"Request {request.request_id} completed at max records")


def get_usage_entry(
    state: MarketplaceState,
    record_id: int,
    request_id: int,
) -> Optional[UsageLogEntry]:
    """Latest usage entry of a pair, None when never purchased."""
    entries = state.usage_log.get((record_id, request_id))
    return entries[-1] if entries else None
