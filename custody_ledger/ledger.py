"""
Ledger Engine Module

BankingLedger is the single writer for all accounting state. Every public
operation runs under one lock; mutating operations run inside an atomic
storage scope together with a custody transfer journal, so a failure at any
step rolls back storage and reverses the custody transfers already made.

Business failures are returned as OperationResult values, never raised.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .accounts import AccountManager
from .audit import AuditTrail, AuditEventType
from .config import LedgerConfig, get_config
from .custody import Clock, CustodyGateway, TransferJournal
from .errors import ErrorKind, InvalidAmountError, LedgerError, NotAuthorizedError, error_for
from .loans import LoanManager
from .logging_config import get_logger, log_action
from .state import AggregateState, StateStore
from .storage import StorageInterface


logger = get_logger("custody_ledger.ledger")


@dataclass(frozen=True)
class OperationResult:
    """Tagged outcome of a ledger operation"""
    ok: bool
    value: Any = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, value: Any) -> 'OperationResult':
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: LedgerError) -> 'OperationResult':
        return cls(ok=False, error=error.kind, message=str(error))

    @property
    def code(self) -> Optional[int]:
        return self.error.code if self.error else None

    def unwrap(self) -> Any:
        """Return the value or raise the matching LedgerError"""
        if self.ok:
            return self.value
        raise error_for(self.error, self.message)


@dataclass(frozen=True)
class PlatformStats:
    total_deposits: int
    total_loans: int
    total_loan_count: int


class BankingLedger:
    """
    Custodial banking ledger: accounts, interest, transfers and loans
    """

    def __init__(
        self,
        storage: StorageInterface,
        custody: CustodyGateway,
        clock: Clock,
        audit_trail: Optional[AuditTrail] = None,
        config: Optional[LedgerConfig] = None
    ):
        self.storage = storage
        self.custody = custody
        self.clock = clock
        self.config = config or get_config()
        self.audit_trail = audit_trail or AuditTrail(storage)
        self.state_store = StateStore(storage, self.config.interest_rate)
        self.accounts = AccountManager(storage, self.state_store, self.audit_trail, self.config)
        self.loans = LoanManager(storage, self.state_store, self.audit_trail, self.config)
        self._lock = threading.RLock()

    # Account operations

    def create_account(self, caller: str, initial_deposit: int) -> OperationResult:
        """Open an account for caller; returns True"""
        def apply(now, journal):
            self.accounts.create_account(caller, initial_deposit, now, journal)
            return True
        return self._mutate("create_account", caller, apply, {"initial_deposit": initial_deposit})

    def deposit(self, caller: str, amount: int) -> OperationResult:
        """Deposit into caller's account; returns the amount"""
        return self._mutate(
            "deposit", caller,
            lambda now, journal: self.accounts.deposit(caller, amount, now, journal),
            {"amount": amount}
        )

    def withdraw(self, caller: str, amount: int) -> OperationResult:
        """Withdraw from caller's balance plus accrued interest; returns the amount"""
        return self._mutate(
            "withdraw", caller,
            lambda now, journal: self.accounts.withdraw(caller, amount, now, journal),
            {"amount": amount}
        )

    def transfer(self, caller: str, recipient: str, amount: int) -> OperationResult:
        """Move principal from caller to recipient; returns the amount"""
        return self._mutate(
            "transfer", caller,
            lambda now, journal: self.accounts.transfer(caller, recipient, amount, now),
            {"recipient": recipient, "amount": amount}
        )

    # Loan operations

    def request_loan(self, caller: str, loan_amount: int, collateral_amount: int) -> OperationResult:
        """Borrow against collateral; returns the new loan id"""
        return self._mutate(
            "request_loan", caller,
            lambda now, journal: self.loans.request_loan(caller, loan_amount, collateral_amount, now, journal),
            {"loan_amount": loan_amount, "collateral_amount": collateral_amount}
        )

    def repay_loan(self, caller: str, loan_id: int) -> OperationResult:
        """Repay a loan and release its collateral; returns the total repayment"""
        return self._mutate(
            "repay_loan", caller,
            lambda now, journal: self.loans.repay_loan(caller, loan_id, now, journal),
            {"loan_id": loan_id}
        )

    # Read accessors

    def account_balance(self, owner: str) -> OperationResult:
        """Principal plus accrued interest"""
        return self._read(
            "account_balance", owner,
            lambda: self.accounts.balance_with_interest(owner, self.clock.now())
        )

    def loan_details(self, owner: str, loan_id: int) -> OperationResult:
        """Stored loan record, active or repaid"""
        return self._read("loan_details", owner, lambda: self.loans.require_loan(owner, loan_id))

    def platform_stats(self) -> PlatformStats:
        with self._lock:
            state = self.state_store.load()
            return PlatformStats(
                total_deposits=state.total_deposits,
                total_loans=state.total_loans,
                total_loan_count=state.loan_id_counter
            )

    def account_exists(self, owner: str) -> bool:
        with self._lock:
            return self.accounts.account_exists(owner)

    def owner_loan_count(self, owner: str) -> int:
        """Number of loans ever issued to owner"""
        with self._lock:
            return self.loans.loan_count(owner)

    def is_paused(self) -> bool:
        with self._lock:
            return self.state_store.load().paused

    def current_loan_rate(self) -> int:
        """Rate that the next issued loan will snapshot"""
        with self._lock:
            return self.state_store.load().loan_interest_rate

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Check that total_loans equals the principal of all active loans

        Returns:
            Dictionary with the tracked and recomputed totals
        """
        with self._lock:
            state = self.state_store.load()
            active = self.loans.active_loans()
            active_principal = sum(loan.amount for loan in active)
            return {
                "valid": state.total_loans == active_principal,
                "total_loans": state.total_loans,
                "active_loan_principal": active_principal,
                "active_loan_count": len(active),
            }

    # Administrative operations

    def emergency_pause(self, caller: str) -> OperationResult:
        """Stop all mutating operations until resumed; owner only"""
        def apply(state: AggregateState):
            state.paused = True
            return True
        return self._administer("emergency_pause", caller, apply, AuditEventType.LEDGER_PAUSED)

    def emergency_resume(self, caller: str) -> OperationResult:
        """Lift an emergency pause; owner only"""
        def apply(state: AggregateState):
            state.paused = False
            return True
        return self._administer("emergency_resume", caller, apply, AuditEventType.LEDGER_RESUMED)

    def update_interest_rate(self, caller: str, new_rate: int) -> OperationResult:
        """Set the rate snapshotted by subsequently issued loans; owner only"""
        def validate():
            if isinstance(new_rate, bool) or not isinstance(new_rate, int):
                raise InvalidAmountError("Interest rate must be an integer")
            if new_rate < 0 or new_rate > self.config.max_interest_rate:
                raise InvalidAmountError(
                    f"Interest rate {new_rate} outside 0..{self.config.max_interest_rate}"
                )

        def apply(state: AggregateState):
            state.loan_interest_rate = new_rate
            return new_rate

        return self._administer(
            "update_interest_rate", caller, apply, AuditEventType.INTEREST_RATE_UPDATED,
            validate=validate, echo=new_rate, details={"new_rate": new_rate}
        )

    # Internals

    @contextmanager
    def _operation_scope(self):
        """Atomic storage scope plus a custody journal unwound on failure"""
        journal = TransferJournal(self.custody, self.config.custody_pool_identity)
        with self.storage.atomic():
            try:
                yield journal
            except BaseException:
                journal.unwind()
                raise

    def _mutate(
        self,
        operation: str,
        caller: str,
        apply: Callable[[int, TransferJournal], Any],
        details: Optional[Dict[str, Any]] = None
    ) -> OperationResult:
        with self._lock:
            try:
                if self.config.admin_controls_enforced and self.state_store.load().paused:
                    raise NotAuthorizedError("Ledger is paused")
                now = self.clock.now()
                with self._operation_scope() as journal:
                    value = apply(now, journal)
            except LedgerError as e:
                return self._rejected(operation, caller, e, details)
            return self._completed(operation, caller, value, details)

    def _read(self, operation: str, caller: str, fetch: Callable[[], Any]) -> OperationResult:
        with self._lock:
            try:
                value = fetch()
            except LedgerError as e:
                log_action(
                    logger, "debug", f"{operation} failed: {e}",
                    user_id=caller, action=operation, resource="ledger",
                    extra={"error": e.kind.label}
                )
                return OperationResult.failure(e)
            return OperationResult.success(value)

    def _administer(
        self,
        operation: str,
        caller: str,
        apply: Callable[[AggregateState], Any],
        event_type: AuditEventType,
        validate: Optional[Callable[[], None]] = None,
        echo: Any = True,
        details: Optional[Dict[str, Any]] = None
    ) -> OperationResult:
        with self._lock:
            try:
                if caller != self.config.ledger_owner:
                    raise NotAuthorizedError(f"{caller} is not the ledger owner")
                if validate:
                    validate()
                if not self.config.admin_controls_enforced:
                    # Inert mode: validate and echo only
                    value = echo
                else:
                    now = self.clock.now()
                    with self.storage.atomic():
                        state = self.state_store.load()
                        value = apply(state)
                        self.state_store.save(state)
                        self.audit_trail.log_event(
                            event_type=event_type,
                            entity_type="ledger",
                            entity_id="aggregate",
                            metadata=details or {},
                            user_id=caller,
                            ledger_time=now
                        )
            except LedgerError as e:
                return self._rejected(operation, caller, e, details)
            return self._completed(operation, caller, value, details)

    def _completed(self, operation: str, caller: str, value: Any, details: Optional[Dict[str, Any]]) -> OperationResult:
        log_action(
            logger, "info", f"{operation} completed",
            user_id=caller, action=operation, resource="ledger",
            extra=self._log_details(details, value=value)
        )
        return OperationResult.success(value)

    def _rejected(self, operation: str, caller: str, error: LedgerError, details: Optional[Dict[str, Any]]) -> OperationResult:
        log_action(
            logger, "warning", f"{operation} rejected: {error}",
            user_id=caller, action=operation, resource="ledger",
            extra=self._log_details(details, error=error.kind.label, code=error.code)
        )
        return OperationResult.failure(error)

    @staticmethod
    def _log_details(details: Optional[Dict[str, Any]], **fields) -> Dict[str, Any]:
        merged = dict(details or {})
        merged.update(fields)
        return merged
