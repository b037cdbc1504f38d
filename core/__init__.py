"""
Core Module Package.

This package contains the core infrastructure components
that all other modules depend on.

Components:
- clock: Block-height clock abstraction
- exceptions: Marketplace exception hierarchy
- constants: Platform-wide constants
"""

from .clock import BlockClockProtocol, IntervalBlockClock, MockBlockClock
from .exceptions import ErrorKind, MarketplaceException

__all__ = [
    "BlockClockProtocol",
    "IntervalBlockClock",
    "MockBlockClock",
    "ErrorKind",
    "MarketplaceException",
]
