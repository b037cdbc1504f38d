"""
Data Marketplace - Consent Ledger.

============================================================
PURPOSE
============================================================
Owns consent state per (owner, category).

RULES:
- A grant is valid for a fixed window from the grant height
- A new grant fully replaces the prior one
- Revocation takes effect at the current height and is not
  retroactive: purchases settled before it stand
- Grants are never removed; expiry is evaluated lazily

============================================================
"""

import copy
import logging
from typing import Iterable, Optional

from core.clock import BlockClockProtocol
from core.exceptions import (
    ConsentRequiredError,
    DataExpiredError,
    InvalidCategoryError,
    NotFoundError,
)
from .config import MarketplaceConfig
from .schemas import ConsentTerms, validate_input
from .state import MarketplaceState, StateStore
from .types import ConsentGrant, DataCategory


logger = logging.getLogger(__name__)


class ConsentLedger:
    """Per-(owner, category) consent grants."""

    def __init__(
        self,
        store: StateStore,
        config: MarketplaceConfig,
        clock: BlockClockProtocol,
    ):
        self._store = store
        self._config = config
        self._clock = clock

    # --------------------------------------------------------
    # MUTATIONS
    # --------------------------------------------------------

    def grant(
        self,
        owner: str,
        category,
        purposes: Iterable[str] = (),
        geo_restrictions: Iterable[str] = (),
        can_reidentify: bool = False,
    ) -> int:
        """
        Grant (or replace) consent for one category.

        Returns:
            Expiry height of the new grant

        Raises:
            SystemPausedError, InvalidCategoryError, InvalidDataError
        """
        with self._store.transition("grant_consent") as state:
            now = self._clock.height()
            parsed = DataCategory.parse(category)
            terms = validate_input(
                ConsentTerms,
                purposes=list(purposes),
                geo_restrictions=list(geo_restrictions),
                can_reidentify=can_reidentify,
            )

            expires_at = now + self._config.consent.duration_blocks
            state.consents[(owner, parsed)] = ConsentGrant(
                owner=owner,
                category=parsed,
                granted=True,
                granted_at=now,
                expires_at=expires_at,
                purposes=list(terms.purposes),
                geo_restrictions=list(terms.geo_restrictions),
                can_reidentify=terms.can_reidentify,
            )
            self._sync_record_expiry(state, owner, parsed, expires_at)

        logger.info(f"Consent granted by {owner} for {parsed.value} until height {expires_at}")
        return expires_at

    def revoke(self, owner: str, category) -> bool:
        """
        Revoke consent at the current height.

        Revoking an already revoked grant keeps its original
        revocation height.

        Raises:
            SystemPausedError, InvalidCategoryError, NotFoundError
        """
        with self._store.transition("revoke_consent") as state:
            now = self._clock.height()
            parsed = DataCategory.parse(category)
            grant = state.consents.get((owner, parsed))
            if grant is None:
                raise NotFoundError("ConsentGrant", f"{owner}/{parsed.value}")

            if not grant.granted:
                logger.debug(f"Consent {owner}/{parsed.value} already revoked at {grant.expires_at}")
                return True

            grant.granted = False
            grant.expires_at = now
            self._sync_record_expiry(state, owner, parsed, now)

        logger.info(f"Consent revoked by {owner} for {parsed.value} at height {now}")
        return True

    # --------------------------------------------------------
    # QUERIES
    # --------------------------------------------------------

    def get_grant(self, owner: str, category) -> Optional[ConsentGrant]:
        """Get the grant for a pair, None when absent or category unknown."""
        try:
            parsed = DataCategory.parse(category)
        except InvalidCategoryError:
            return None
        with self._store.read() as state:
            return copy.deepcopy(state.consents.get((owner, parsed)))

    def is_live(self, owner: str, category, at_height: Optional[int] = None) -> bool:
        """True iff a granted, unexpired grant exists at at_height."""
        grant = self.get_grant(owner, category)
        height = self._clock.height() if at_height is None else at_height
        return grant is not None and grant.is_live(height)

    # --------------------------------------------------------
    # INTERNAL
    # --------------------------------------------------------

    @staticmethod
    def require_live(
        state: MarketplaceState,
        owner: str,
        category: DataCategory,
        at_height: int,
    ) -> ConsentGrant:
        """
        Get the live grant for a pair inside a transition.

        Raises:
            DataExpiredError: Granted but the window lapsed
            ConsentRequiredError: Never granted, or revoked
        """
        grant = state.consents.get((owner, category))
        if grant is not None and grant.is_live(at_height):
            return grant
        if grant is not None and grant.is_lapsed(at_height):
            raise DataExpiredError(owner, category.value, grant.expires_at)
        raise ConsentRequiredError(owner, category.value)

    @staticmethod
    def _sync_record_expiry(
        state: MarketplaceState,
        owner: str,
        category: DataCategory,
        expires_at: int,
    ) -> None:
        for record in state.records_of(owner, category):
            record.consent_expires_at = expires_at
