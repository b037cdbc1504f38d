"""
Data Marketplace - Request Escrow.

============================================================
PURPOSE
============================================================
Owns research requests and the budgets locked behind them.

OPEN (order of checks):
1. Paused                                -> SystemPaused
2. max_price_per_record out of range     -> InvalidAmount
3. min_quality below platform floor      -> QualityTooLow
4. Text/list/capacity bounds             -> InvalidData
5. Unknown category                      -> InvalidCategory
6. budget < max_records * max_price      -> InsufficientBalance
7. Ledger transfer consumer -> escrow    -> TransferFailed
   (nothing is persisted when it fails)

LIFECYCLE:
ACTIVE -> COMPLETED | CANCELLED, never back.
Unspent funds are refunded only after a terminal status.

============================================================
"""

import copy
import logging
from typing import Iterable, Optional

from core.clock import BlockClockProtocol
from core.exceptions import (
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
from .ledger import LedgerAdapter
from .profiles import ProfileAggregator
from .schemas import ResearchRequestSpec, require_amount, validate_input
from .state import MarketplaceState, StateStore
from .types import DataCategory, RequestStatus, ResearchRequest


logger = logging.getLogger(__name__)


class RequestEscrow:
    """Research requests and their escrowed budgets."""

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

    # --------------------------------------------------------
    # OPEN
    # --------------------------------------------------------

    def open(
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
        """
        Fund a research request.

        The full budget moves into escrow before the request
        is persisted.

        Returns:
            New request id
        """
        with self._store.transition("open_request") as state:
            now = self._clock.height()
            fees = self._config.fees
            quality = self._config.quality

            require_amount(max_price_per_record, fees.min_payment, fees.max_payment, "Max price per record")

            if isinstance(min_quality, int) and min_quality < quality.min_request_quality:
                raise QualityTooLowError(
                    f"Minimum quality {min_quality} below platform floor",
                    score=min_quality,
                    required=quality.min_request_quality,
                )

            spec = validate_input(
                ResearchRequestSpec,
                title=title,
                description=description,
                purpose=purpose,
                institution=institution,
                approval_reference=approval_reference,
                min_quality=min_quality,
                max_records=max_records,
                duration_blocks=(
                    self._config.requests.duration_blocks if duration_blocks is None else duration_blocks
                ),
            )
            needed = self._parse_categories(categories)

            required = spec.max_records * max_price_per_record
            if required > fees.max_budget:
                raise InvalidAmountError(
                    "max_records at max price exceeds the budget cap",
                    amount=required,
                    maximum=fees.max_budget,
                )
            if isinstance(budget, int) and not isinstance(budget, bool) and budget > fees.max_budget:
                raise InvalidAmountError(
                    "Budget exceeds the budget cap",
                    amount=budget,
                    maximum=fees.max_budget,
                )

            if isinstance(budget, bool) or not isinstance(budget, int) or budget < required:
                raise InsufficientBalanceError(
                    "Budget does not cover max_records at max price",
                    required=required,
                    available=budget if isinstance(budget, int) else None,
                )

            escrow = self._config.escrow_account
            if not self._ledger.transfer(budget, consumer, escrow):
                raise TransferFailedError(budget, consumer, escrow)

            request = ResearchRequest(
                request_id=state.allocate_request_id(),
                consumer=consumer,
                title=spec.title,
                description=spec.description,
                purpose=spec.purpose,
                institution=spec.institution,
                approval_reference=spec.approval_reference,
                categories=needed,
                max_price_per_record=max_price_per_record,
                min_quality=spec.min_quality,
                max_records=spec.max_records,
                created_at=now,
                expires_at=now + spec.duration_blocks,
                budget_allocated=budget,
            )
            state.requests[request.request_id] = request
            self._profiles.on_request_opened(state, request)

        logger.info(
            f"Opened request {request.request_id} for {consumer}: "
            f"budget={budget} max_records={request.max_records}"
        )
        return request.request_id

    # --------------------------------------------------------
    # TERMINAL TRANSITIONS
    # --------------------------------------------------------

    def cancel(self, consumer: str, request_id: int) -> ResearchRequest:
        """Move an active request to CANCELLED."""
        return self._close(consumer, request_id, RequestStatus.CANCELLED, "cancel_request")

    def complete(self, consumer: str, request_id: int) -> ResearchRequest:
        """Move an active request to COMPLETED."""
        return self._close(consumer, request_id, RequestStatus.COMPLETED, "complete_request")

    def withdraw_unspent(self, consumer: str, request_id: int) -> int:
        """
        Refund unspent escrow of a terminal request.

        Returns:
            Amount refunded
        """
        with self._store.transition("withdraw_unspent") as state:
            request = self._owned_request(state, consumer, request_id)

            if not request.status.is_terminal():
                raise InvalidStateError(
                    f"Request {request_id} is still active",
                    reason="request_active",
                )

            amount = request.remaining_budget
            if amount <= 0:
                raise InvalidStateError(
                    f"Request {request_id} has no unspent budget",
                    reason="nothing_to_refund",
                )

            escrow = self._config.escrow_account
            if not self._ledger.transfer(amount, escrow, consumer):
                raise TransferFailedError(amount, escrow, consumer)

            request.refunded += amount

        logger.info(f"Refunded {amount} of request {request_id} to {consumer}")
        return amount

    # --------------------------------------------------------
    # QUERIES
    # --------------------------------------------------------

    def get_request(self, request_id: int) -> Optional[ResearchRequest]:
        """Get a request by id, None when absent."""
        with self._store.read() as state:
            return copy.deepcopy(state.requests.get(request_id))

    # --------------------------------------------------------
    # INTERNAL
    # --------------------------------------------------------

    def _close(
        self,
        consumer: str,
        request_id: int,
        status: RequestStatus,
        operation: str,
    ) -> ResearchRequest:
        with self._store.transition(operation) as state:
            request = self._owned_request(state, consumer, request_id)
            close_request(state, request, status, self._profiles)

        logger.info(f"Request {request_id} moved to {status.value}")
        return copy.deepcopy(request)

    @staticmethod
    def _owned_request(state: MarketplaceState, consumer: str, request_id: int) -> ResearchRequest:
        request = state.requests.get(request_id)
        if request is None:
            raise NotFoundError("ResearchRequest", request_id)
        if request.consumer != consumer:
            raise UnauthorizedError(
                f"{consumer} does not own request {request_id}",
                caller=consumer,
            )
        return request

    @staticmethod
    def _parse_categories(categories: Iterable) -> list:
        if isinstance(categories, str):
            categories = [categories]
        needed = []
        for category in categories:
            parsed = DataCategory.parse(category)
            if parsed not in needed:
                needed.append(parsed)
        if not needed:
            raise InvalidDataError("At least one category is required", field="categories")
        return needed


def close_request(
    state: MarketplaceState,
    request: ResearchRequest,
    status: RequestStatus,
    profiles: ProfileAggregator,
) -> None:
    """
    Apply an ACTIVE -> terminal transition.

    Raises:
        InvalidStateError: If the request is already terminal
    """
    if request.status != RequestStatus.ACTIVE:
        raise InvalidStateError(
            f"Request {request.request_id} is {request.status.value}",
            reason="terminal_status",
        )
    request.status = status
    profiles.on_request_closed(state, request)
