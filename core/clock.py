"""
Core Module - Block Clock.

============================================================
RESPONSIBILITY
============================================================
Provides a unified, testable block-height clock for the engine.

- Every operation reads the height once, at its start
- Heights are monotonic non-decreasing integers
- Enables deterministic testing of consent and request expiry

============================================================
DESIGN PRINCIPLES
============================================================
- Single source of truth for "now"
- No background timers: expiry is evaluated lazily
- Mockable for testing
- Thread-safe

============================================================
"""

from abc import ABC, abstractmethod
from typing import Optional
import threading
import time


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class BlockClockProtocol(ABC):
    """Abstract interface for the block-height clock."""

    @abstractmethod
    def height(self) -> int:
        """Get current block height."""
        pass

    def blocks_until(self, target_height: int) -> int:
        """Get blocks remaining until target height (0 if passed)."""
        return max(0, target_height - self.height())


# ============================================================
# INTERVAL CLOCK (PRODUCTION)
# ============================================================

class IntervalBlockClock(BlockClockProtocol):
    """
    Derives block height from wall time and a fixed block interval.

    Used when the engine runs outside a chain and needs a
    monotonic height source.
    """

    def __init__(
        self,
        genesis_timestamp: Optional[float] = None,
        block_seconds: int = 12,
        genesis_height: int = 0,
    ):
        """
        Initialize interval clock.

        Args:
            genesis_timestamp: Unix time of genesis_height (defaults to now)
            block_seconds: Seconds per block
            genesis_height: Height at genesis_timestamp
        """
        if block_seconds <= 0:
            raise ValueError("block_seconds must be positive")

        self._genesis = genesis_timestamp if genesis_timestamp is not None else time.time()
        self._block_seconds = block_seconds
        self._genesis_height = genesis_height
        self._last = genesis_height
        self._lock = threading.Lock()

    def height(self) -> int:
        """Get current block height."""
        elapsed = max(0.0, time.time() - self._genesis)
        computed = self._genesis_height + int(elapsed // self._block_seconds)
        with self._lock:
            # Wall clock may step backwards; height may not.
            self._last = max(self._last, computed)
            return self._last


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockBlockClock(BlockClockProtocol):
    """
    Mock clock for testing.

    Allows height manipulation for deterministic tests.
    """

    def __init__(self, initial_height: int = 1):
        """
        Initialize mock clock.

        Args:
            initial_height: Starting block height
        """
        if initial_height < 0:
            raise ValueError("initial_height must be non-negative")
        self._height = initial_height
        self._lock = threading.Lock()

    def height(self) -> int:
        """Get current (mocked) height."""
        with self._lock:
            return self._height

    def set_height(self, new_height: int) -> None:
        """
        Jump to a block height.

        Raises:
            ValueError: If new_height is below the current height
        """
        with self._lock:
            if new_height < self._height:
                raise ValueError(
                    f"Block height is monotonic: {new_height} < {self._height}"
                )
            self._height = new_height

    def advance(self, blocks: int = 1) -> int:
        """
        Advance height by the given number of blocks.

        Returns:
            New height
        """
        if blocks < 0:
            raise ValueError("blocks must be non-negative")
        with self._lock:
            self._height += blocks
            return self._height


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "BlockClockProtocol",
    "IntervalBlockClock",
    "MockBlockClock",
]
