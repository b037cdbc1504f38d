"""
Data Marketplace - Governance.

============================================================
PURPOSE
============================================================
Privileged platform actions:
- pause / unpause the marketplace
- grant / revoke capabilities
- set participant verification flags

Every action is authorized through the AuthorizationPolicy.
While paused, only unpause is accepted.

============================================================
"""

import logging

from core.exceptions import ConfigurationError, InvalidStateError, NotFoundError
from .policy import AuthorizationPolicy, RoleCapabilityPolicy
from .state import StateStore
from .types import Capability


logger = logging.getLogger(__name__)


class Governance:
    """Pause control, role management and verification."""

    def __init__(self, store: StateStore, policy: AuthorizationPolicy):
        self._store = store
        self._policy = policy

    # --------------------------------------------------------
    # PAUSE CONTROL
    # --------------------------------------------------------

    def pause(self, caller: str) -> bool:
        """Set the pause flag. Rejected with SystemPaused if already set."""
        with self._store.transition("pause") as state:
            self._policy.require(caller, Capability.CONTROL_PAUSE, "pause the marketplace")
            state.paused = True

        logger.warning(f"Marketplace paused by {caller}")
        return True

    def unpause(self, caller: str) -> bool:
        """Clear the pause flag."""
        with self._store.transition("unpause", allow_when_paused=True) as state:
            self._policy.require(caller, Capability.CONTROL_PAUSE, "unpause the marketplace")
            if not state.paused:
                raise InvalidStateError("Marketplace is not paused", reason="not_paused")
            state.paused = False

        logger.info(f"Marketplace unpaused by {caller}")
        return True

    @property
    def is_paused(self) -> bool:
        with self._store.read() as state:
            return state.paused

    # --------------------------------------------------------
    # ROLE MANAGEMENT
    # --------------------------------------------------------

    def grant_capability(self, caller: str, identity: str, capability: Capability) -> bool:
        """
        Grant a capability to an identity.

        Returns:
            True if newly granted
        """
        with self._store.transition("grant_capability"):
            self._policy.require(caller, Capability.MANAGE_ROLES, "manage roles")
            policy = self._role_policy()
            return policy.grant(identity, Capability.parse(capability))

    def revoke_capability(self, caller: str, identity: str, capability: Capability) -> bool:
        """
        Revoke a capability from an identity.

        Returns:
            True if it was held
        """
        with self._store.transition("revoke_capability"):
            self._policy.require(caller, Capability.MANAGE_ROLES, "manage roles")
            policy = self._role_policy()
            return policy.revoke(identity, Capability.parse(capability))

    # --------------------------------------------------------
    # VERIFICATION
    # --------------------------------------------------------

    def set_verification(self, caller: str, identity: str, verified: bool) -> bool:
        """
        Set the verification flag on every profile of identity.

        Raises:
            NotFoundError: If identity has neither profile
        """
        with self._store.transition("set_verification") as state:
            self._policy.require(caller, Capability.VERIFY_PARTICIPANTS, "verify participants")

            profiles = [
                p for p in (state.owner_profiles.get(identity), state.consumer_profiles.get(identity))
                if p is not None
            ]
            if not profiles:
                raise NotFoundError("Profile", identity)

            for profile in profiles:
                profile.verified = bool(verified)

        logger.info(f"Verification of {identity} set to {bool(verified)} by {caller}")
        return True

    # --------------------------------------------------------
    # INTERNAL
    # --------------------------------------------------------

    def _role_policy(self) -> RoleCapabilityPolicy:
        if not isinstance(self._policy, RoleCapabilityPolicy):
            raise ConfigurationError(
                f"{type(self._policy).__name__} does not support role changes",
                config_key="policy",
            )
        return self._policy
