"""
Custody and Clock Collaborators

The ledger does not hold funds itself. Deposits, collateral, withdrawals and
loan disbursements are moved by an external custody gateway between callers
and a distinguished custody pool identity. Time comes from an external,
monotonically non-decreasing clock.
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import CustodyTransferFailedError
from .logging_config import get_logger, log_action


logger = get_logger("custody_ledger.custody")


class CustodyError(Exception):
    """Raised by a custody gateway when a transfer cannot be made"""


class CustodyGateway(ABC):
    """Funds-transfer primitive provided by the hosting platform"""

    @abstractmethod
    def transfer(self, amount: int, sender: str, recipient: str) -> None:
        """
        Move amount from sender to recipient.

        Raises:
            CustodyError: If sender lacks funds or the transfer is rejected.
                No funds move in that case.
        """
        pass


class Clock(ABC):
    """Monotonic time source"""

    @abstractmethod
    def now(self) -> int:
        """Current time in whole seconds"""
        pass


class SystemClock(Clock):
    """Wall clock in whole seconds, never going backwards"""

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            self._last = max(self._last, int(time.time()))
            return self._last


class ManualClock(Clock):
    """Clock advanced explicitly, for tests and simulations"""

    def __init__(self, start: int = 1000):
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Clock cannot move backwards")
        self._now += seconds
        return self._now

    def set(self, timestamp: int) -> int:
        if timestamp < self._now:
            raise ValueError("Clock cannot move backwards")
        self._now = timestamp
        return self._now


class InMemoryCustody(CustodyGateway):
    """
    Custody gateway keeping external balances per identity in memory

    Used for tests and for running the service without a settlement backend.
    """

    def __init__(self, balances: Optional[Dict[str, int]] = None):
        self._balances: Dict[str, int] = dict(balances or {})
        self._lock = threading.Lock()
        self.transfer_count = 0

    def fund(self, identity: str, amount: int) -> int:
        """Credit external funds to an identity"""
        if amount < 0:
            raise ValueError("Funding amount must not be negative")
        with self._lock:
            self._balances[identity] = self._balances.get(identity, 0) + amount
            return self._balances[identity]

    def balance_of(self, identity: str) -> int:
        with self._lock:
            return self._balances.get(identity, 0)

    def transfer(self, amount: int, sender: str, recipient: str) -> None:
        if amount <= 0:
            raise CustodyError(f"Transfer amount must be positive, got {amount}")
        if sender == recipient:
            raise CustodyError("Sender and recipient must differ")
        with self._lock:
            available = self._balances.get(sender, 0)
            if available < amount:
                raise CustodyError(
                    f"Insufficient external funds for {sender}: available {available}, requested {amount}"
                )
            self._balances[sender] = available - amount
            self._balances[recipient] = self._balances.get(recipient, 0) + amount
            self.transfer_count += 1


@dataclass(frozen=True)
class CustodyMovement:
    """A custody transfer issued within one ledger operation"""
    amount: int
    sender: str
    recipient: str


class TransferJournal:
    """
    Records the custody transfers issued by one operation so they can be
    reversed, newest first, if the operation fails later on.
    """

    def __init__(self, gateway: CustodyGateway, pool_identity: str):
        self.gateway = gateway
        self.pool_identity = pool_identity
        self.movements: List[CustodyMovement] = []

    def _move(self, amount: int, sender: str, recipient: str) -> None:
        # Zero-unit movements are skipped; custody platforms reject them
        if amount == 0:
            return
        try:
            self.gateway.transfer(amount, sender, recipient)
        except CustodyError as e:
            raise CustodyTransferFailedError(str(e)) from e
        self.movements.append(CustodyMovement(amount, sender, recipient))

    def pull(self, identity: str, amount: int) -> None:
        """Move funds from identity into the custody pool"""
        self._move(amount, identity, self.pool_identity)

    def push(self, identity: str, amount: int) -> None:
        """Move funds from the custody pool to identity"""
        self._move(amount, self.pool_identity, identity)

    def unwind(self) -> None:
        """
        Reverse every recorded movement, newest first

        Every reversal is attempted even if an earlier one fails.

        Raises:
            CustodyTransferFailedError: If any reversal was rejected
        """
        failed = []
        while self.movements:
            movement = self.movements.pop()
            details = {
                "amount": movement.amount,
                "sender": movement.sender,
                "recipient": movement.recipient
            }
            try:
                self.gateway.transfer(movement.amount, movement.recipient, movement.sender)
            except CustodyError as e:
                log_action(
                    logger, "error", f"Failed to reverse custody transfer: {e}",
                    action="custody_unwind", resource="custody", extra=details
                )
                failed.append(movement)
                continue
            log_action(
                logger, "warning", "Reversed custody transfer",
                action="custody_unwind", resource="custody", extra=details
            )

        if failed:
            raise CustodyTransferFailedError(
                f"{len(failed)} custody transfer(s) could not be reversed"
            )
