"""
Data Marketplace - Ledger Adapter.

============================================================
PURPOSE
============================================================
Value-transfer primitive consumed by escrow and settlement.

CONTRACT:
- transfer(amount, sender, recipient) -> bool
- All-or-nothing: False means no value moved
- The engine never retries; a failure aborts the operation

InMemoryLedger is the reference implementation used by
tests and local runs.

============================================================
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List

from core.exceptions import InvalidAmountError


logger = logging.getLogger(__name__)


class LedgerAdapter(ABC):
    """Abstract atomic value-transfer primitive."""

    @abstractmethod
    def transfer(self, amount: int, sender: str, recipient: str) -> bool:
        """
        Move amount from sender to recipient.

        Returns:
            True if the full amount moved, False if nothing moved
        """
        pass


@dataclass
class TransferRecord:
    """One completed transfer."""

    amount: int
    sender: str
    recipient: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryLedger(LedgerAdapter):
    """
    Balance-tracking ledger held in process memory.

    Transfers fail (return False) when the sender's balance
    does not cover the amount.
    """

    def __init__(self, balances: Dict[str, int] = None):
        self._balances: Dict[str, int] = dict(balances or {})
        self._history: List[TransferRecord] = []
        self._lock = threading.Lock()

    def deposit(self, account: str, amount: int) -> int:
        """
        Credit an account from outside the ledger.

        Returns:
            New balance
        """
        if amount <= 0:
            raise InvalidAmountError("Deposit must be positive", amount=amount)
        with self._lock:
            self._balances[account] = self._balances.get(account, 0) + amount
            return self._balances[account]

    def balance_of(self, account: str) -> int:
        """Get account balance (0 for unknown accounts)."""
        with self._lock:
            return self._balances.get(account, 0)

    @property
    def history(self) -> List[TransferRecord]:
        """Completed transfers, oldest first."""
        with self._lock:
            return list(self._history)

    def transfer(self, amount: int, sender: str, recipient: str) -> bool:
        """Move amount if sender can cover it."""
        if amount <= 0:
            logger.warning(f"Rejected non-positive transfer of {amount} from {sender}")
            return False

        with self._lock:
            available = self._balances.get(sender, 0)
            if available < amount:
                logger.warning(
                    f"Transfer of {amount} from {sender} to {recipient} failed: "
                    f"balance {available}"
                )
                return False

            self._balances[sender] = available - amount
            self._balances[recipient] = self._balances.get(recipient, 0) + amount
            self._history.append(TransferRecord(amount, sender, recipient))

        logger.debug(f"Transferred {amount} from {sender} to {recipient}")
        return True
