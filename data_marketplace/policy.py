"""
Authorization Policy for the Marketplace.

============================================================
PURPOSE
============================================================
Maps an identity to the set of capabilities it holds.

Rules:
- The platform owner holds every capability
- Other identities hold only what was granted to them
- Components ask the policy; they never compare identities

Multi-assessor operation is a grant, not a code change.

============================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, FrozenSet, Set

from core.exceptions import UnauthorizedError
from .types import Capability


logger = logging.getLogger(__name__)


class AuthorizationPolicy(ABC):
    """Pluggable capability lookup."""

    @abstractmethod
    def capabilities_for(self, identity: str) -> FrozenSet[Capability]:
        """Get the capabilities held by an identity."""
        pass

    def has(self, identity: str, capability: Capability) -> bool:
        """Check a single capability."""
        return capability in self.capabilities_for(identity)

    def require(self, identity: str, capability: Capability, operation: str) -> None:
        """
        Ensure identity holds capability.

        Raises:
            UnauthorizedError: If it does not
        """
        if not self.has(identity, capability):
            raise UnauthorizedError(
                f"{identity} may not {operation}",
                caller=identity,
                required=capability.value,
            )


class RoleCapabilityPolicy(AuthorizationPolicy):
    """
    Platform owner plus explicit per-identity grants.

    The platform owner's capabilities cannot be revoked.
    """

    def __init__(self, platform_owner: str):
        if not platform_owner:
            raise ValueError("platform_owner is required")
        self._platform_owner = platform_owner
        self._grants: Dict[str, Set[Capability]] = {}

    @property
    def platform_owner(self) -> str:
        """Identity holding every capability."""
        return self._platform_owner

    def capabilities_for(self, identity: str) -> FrozenSet[Capability]:
        if identity == self._platform_owner:
            return frozenset(Capability)
        return frozenset(self._grants.get(identity, set()))

    def grant(self, identity: str, capability: Capability) -> bool:
        """
        Grant a capability.

        Returns:
            True if newly granted, False if already held
        """
        if identity == self._platform_owner:
            return False
        held = self._grants.setdefault(identity, set())
        if capability in held:
            return False
        held.add(capability)
        logger.info(f"Granted {capability.value} to {identity}")
        return True

    def revoke(self, identity: str, capability: Capability) -> bool:
        """
        Revoke a capability.

        Returns:
            True if it was held, False otherwise
        """
        held = self._grants.get(identity)
        if not held or capability not in held:
            return False
        held.discard(capability)
        if not held:
            del self._grants[identity]
        logger.info(f"Revoked {capability.value} from {identity}")
        return True

    def grants(self) -> Dict[str, FrozenSet[Capability]]:
        """Snapshot of explicit grants (platform owner excluded)."""
        return {identity: frozenset(caps) for identity, caps in self._grants.items()}
