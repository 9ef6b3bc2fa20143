"""
Account Management Module

Manages account lifecycle and principal balances. Each owner has at most
one account. Balances hold principal only; interest accrues on demand from
the deposit timestamp and is realized into principal on withdrawal.
"""

from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

from .audit import AuditTrail, AuditEventType
from .config import LedgerConfig
from .custody import TransferJournal
from .errors import (
    AccountAlreadyExistsError, AccountNotFoundError, InsufficientBalanceError,
    InvalidAmountError, NotAuthorizedError, require_amount
)
from .interest import calculate_interest
from .state import StateStore
from .storage import StorageInterface


@dataclass
class Account:
    """Deposit account owned by a single identity"""
    owner: str
    balance: int            # Principal on deposit, excludes unrealized interest
    deposit_timestamp: int  # Accrual anchor
    is_active: bool = True

    def __post_init__(self):
        if self.balance < 0:
            raise ValueError("Account balance cannot be negative")

    def accrued_interest(self, now: int, rate_percent: int, seconds_per_year: int) -> int:
        """Interest accrued since the anchor, not yet realized"""
        elapsed = max(0, now - self.deposit_timestamp)
        return calculate_interest(self.balance, rate_percent, elapsed, seconds_per_year)

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Account':
        return cls(**data)


class AccountManager:
    """
    Applies account operations. Callers provide the clock reading and the
    transfer journal of the enclosing atomic operation.
    """

    def __init__(
        self,
        storage: StorageInterface,
        state_store: StateStore,
        audit_trail: AuditTrail,
        config: LedgerConfig
    ):
        self.storage = storage
        self.state_store = state_store
        self.audit_trail = audit_trail
        self.config = config
        self.accounts_table = "accounts"

    def get_account(self, owner: str) -> Optional[Account]:
        """Get account by owner identity"""
        data = self.storage.load(self.accounts_table, owner)
        if data:
            return Account.from_dict(data)
        return None

    def account_exists(self, owner: str) -> bool:
        return self.storage.exists(self.accounts_table, owner)

    def require_account(self, owner: str) -> Account:
        account = self.get_account(owner)
        if account is None:
            raise AccountNotFoundError(f"Account for {owner} not found")
        return account

    def all_accounts(self) -> List[Account]:
        return [Account.from_dict(data) for data in self.storage.load_all(self.accounts_table)]

    def balance_with_interest(self, owner: str, now: int) -> int:
        """Principal plus accrued interest"""
        account = self.require_account(owner)
        return account.balance + self._interest(account, now)

    def create_account(self, owner: str, initial_deposit: int, now: int, journal: TransferJournal) -> Account:
        """
        Open an account funded from the owner's external funds

        Raises:
            InvalidAmountError: If initial_deposit is below the minimum deposit
            AccountAlreadyExistsError: If owner already has an account
            CustodyTransferFailedError: If the deposit cannot be pulled
        """
        require_amount(initial_deposit, "initial_deposit")
        if initial_deposit < self.config.min_deposit:
            raise InvalidAmountError(
                f"Initial deposit {initial_deposit} is below minimum {self.config.min_deposit}"
            )
        if self.account_exists(owner):
            raise AccountAlreadyExistsError(f"Account for {owner} already exists")

        journal.pull(owner, initial_deposit)

        account = Account(owner=owner, balance=initial_deposit, deposit_timestamp=now)
        self._save_account(account)

        state = self.state_store.load()
        state.total_deposits += initial_deposit
        self.state_store.save(state)

        self.audit_trail.log_event(
            event_type=AuditEventType.ACCOUNT_CREATED,
            entity_type="account",
            entity_id=owner,
            metadata={"initial_deposit": initial_deposit},
            user_id=owner,
            ledger_time=now
        )
        return account

    def deposit(self, owner: str, amount: int, now: int, journal: TransferJournal) -> int:
        """Add principal; accrued interest is not folded in and the anchor restarts"""
        account = self.require_account(owner)
        require_amount(amount)
        if amount < self.config.min_deposit:
            raise InvalidAmountError(f"Deposit {amount} is below minimum {self.config.min_deposit}")
        if not account.is_active:
            raise NotAuthorizedError(f"Account for {owner} is not active")

        journal.pull(owner, amount)

        previous_balance = account.balance
        account.balance += amount
        account.deposit_timestamp = now
        self._save_account(account)

        state = self.state_store.load()
        state.total_deposits += amount
        self.state_store.save(state)

        self.audit_trail.log_event(
            event_type=AuditEventType.DEPOSIT_MADE,
            entity_type="account",
            entity_id=owner,
            metadata={
                "amount": amount,
                "previous_balance": previous_balance,
                "new_balance": account.balance
            },
            user_id=owner,
            ledger_time=now
        )
        return amount

    def withdraw(self, owner: str, amount: int, now: int, journal: TransferJournal) -> int:
        """
        Withdraw from principal plus accrued interest

        Interest is realized into the remaining balance and the anchor
        restarts. total_deposits drops by the withdrawn amount only.
        """
        account = self.require_account(owner)
        if not account.is_active:
            raise NotAuthorizedError(f"Account for {owner} is not active")
        require_amount(amount)

        interest = self._interest(account, now)
        total_balance = account.balance + interest
        if amount > total_balance:
            raise InsufficientBalanceError(
                f"Insufficient balance: available {total_balance}, requested {amount}"
            )

        journal.push(owner, amount)

        previous_balance = account.balance
        account.balance = total_balance - amount
        account.deposit_timestamp = now
        self._save_account(account)

        state = self.state_store.load()
        state.total_deposits -= amount
        self.state_store.save(state)

        self.audit_trail.log_event(
            event_type=AuditEventType.WITHDRAWAL_MADE,
            entity_type="account",
            entity_id=owner,
            metadata={
                "amount": amount,
                "interest_realized": interest,
                "previous_balance": previous_balance,
                "new_balance": account.balance
            },
            user_id=owner,
            ledger_time=now
        )
        return amount

    def transfer(self, sender: str, recipient: str, amount: int, now: int) -> int:
        """
        Move principal between two accounts

        No custody movement, no interest and no anchor reset for either side.
        """
        sender_account = self.require_account(sender)
        recipient_account = self.require_account(recipient)
        if not sender_account.is_active or not recipient_account.is_active:
            raise NotAuthorizedError("Both accounts must be active")
        require_amount(amount)
        if amount > sender_account.balance:
            raise InsufficientBalanceError(
                f"Insufficient balance: available {sender_account.balance}, requested {amount}"
            )

        if sender != recipient:
            sender_account.balance -= amount
            recipient_account.balance += amount
            self._save_account(sender_account)
            self._save_account(recipient_account)

        self.audit_trail.log_event(
            event_type=AuditEventType.TRANSFER_COMPLETED,
            entity_type="account",
            entity_id=sender,
            metadata={
                "recipient": recipient,
                "amount": amount,
                "sender_balance": sender_account.balance,
                "recipient_balance": recipient_account.balance
            },
            user_id=sender,
            ledger_time=now
        )
        return amount

    def _interest(self, account: Account, now: int) -> int:
        return account.accrued_interest(now, self.config.interest_rate, self.config.seconds_per_year)

    def _save_account(self, account: Account) -> None:
        self.storage.save(self.accounts_table, account.owner, account.to_dict())
