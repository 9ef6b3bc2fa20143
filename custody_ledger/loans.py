"""
Loan Module

Over-collateralized loan issuance and repayment. Loan ids come from one
ledger-wide counter, but loans are always addressed by (owner, loan_id).
A repaid loan is kept for audit and never reactivated.
"""

from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

from .audit import AuditTrail, AuditEventType
from .config import LedgerConfig
from .custody import TransferJournal
from .errors import (
    InsufficientCollateralError, InvalidAmountError, LoanNotFoundError, require_amount
)
from .interest import calculate_interest, required_collateral
from .state import StateStore
from .storage import StorageInterface


@dataclass
class Loan:
    """Collateralized loan record"""
    owner: str
    loan_id: int
    amount: int          # Principal borrowed
    collateral: int      # Units locked in custody until repayment
    timestamp: int       # Issuance time, accrual anchor
    interest_rate: int   # Rate snapshot at issuance
    is_active: bool = True

    @property
    def key(self) -> str:
        return loan_key(self.owner, self.loan_id)

    def accrued_interest(self, now: int, seconds_per_year: int) -> int:
        elapsed = max(0, now - self.timestamp)
        return calculate_interest(self.amount, self.interest_rate, elapsed, seconds_per_year)

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Loan':
        return cls(**data)


def loan_key(owner: str, loan_id: int) -> str:
    """Storage key for the (owner, loan_id) pair"""
    return f"{owner}:{loan_id}"


class LoanManager:
    """
    Issues and settles loans. Callers provide the clock reading and the
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
        self.loans_table = "loans"
        self.loan_counts_table = "loan_counts"

    def get_loan(self, owner: str, loan_id: int) -> Optional[Loan]:
        """Get loan by owner and id"""
        data = self.storage.load(self.loans_table, loan_key(owner, loan_id))
        if data:
            return Loan.from_dict(data)
        return None

    def require_loan(self, owner: str, loan_id: int) -> Loan:
        loan = self.get_loan(owner, loan_id)
        if loan is None:
            raise LoanNotFoundError(f"Loan {loan_id} for {owner} not found")
        return loan

    def active_loans(self) -> List[Loan]:
        return [Loan.from_dict(data) for data in self.storage.find(self.loans_table, {"is_active": True})]

    def loan_count(self, owner: str) -> int:
        """Number of loans ever issued to owner"""
        data = self.storage.load(self.loan_counts_table, owner)
        return data["count"] if data else 0

    def request_loan(
        self,
        owner: str,
        loan_amount: int,
        collateral_amount: int,
        now: int,
        journal: TransferJournal
    ) -> int:
        """
        Issue a loan against collateral

        Collateral is pulled into custody first, then the principal is pushed
        to the owner. If either transfer fails the journal unwinds both.

        Returns:
            The new loan id
        """
        require_amount(loan_amount, "loan_amount")
        require_amount(collateral_amount, "collateral_amount")

        required = required_collateral(loan_amount, self.config.collateral_ratio)
        if collateral_amount < required:
            raise InsufficientCollateralError(
                f"Collateral {collateral_amount} is below required {required}"
            )
        if loan_amount <= 0:
            raise InvalidAmountError("Loan amount must be positive")

        journal.pull(owner, collateral_amount)
        journal.push(owner, loan_amount)

        state = self.state_store.load()
        loan_id = state.loan_id_counter + 1
        loan = Loan(
            owner=owner,
            loan_id=loan_id,
            amount=loan_amount,
            collateral=collateral_amount,
            timestamp=now,
            interest_rate=state.loan_interest_rate
        )
        self._save_loan(loan)

        state.loan_id_counter = loan_id
        state.total_loans += loan_amount
        self.state_store.save(state)

        self.storage.save(self.loan_counts_table, owner, {"owner": owner, "count": self.loan_count(owner) + 1})

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_ISSUED,
            entity_type="loan",
            entity_id=loan.key,
            metadata={
                "loan_id": loan_id,
                "amount": loan_amount,
                "collateral": collateral_amount,
                "interest_rate": loan.interest_rate
            },
            user_id=owner,
            ledger_time=now
        )
        return loan_id

    def repay_loan(self, owner: str, loan_id: int, now: int, journal: TransferJournal) -> int:
        """
        Repay principal plus accrued interest and release the collateral

        Returns:
            The total repayment pulled from the owner
        """
        if isinstance(loan_id, bool) or not isinstance(loan_id, int):
            raise LoanNotFoundError(f"Loan {loan_id!r} for {owner} not found")
        loan = self.require_loan(owner, loan_id)
        if not loan.is_active:
            raise LoanNotFoundError(f"Loan {loan_id} for {owner} is already repaid")

        interest = loan.accrued_interest(now, self.config.seconds_per_year)
        total_repayment = loan.amount + interest

        journal.pull(owner, total_repayment)
        journal.push(owner, loan.collateral)

        loan.is_active = False
        self._save_loan(loan)

        state = self.state_store.load()
        state.total_loans -= loan.amount
        self.state_store.save(state)

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_REPAID,
            entity_type="loan",
            entity_id=loan.key,
            metadata={
                "loan_id": loan_id,
                "principal": loan.amount,
                "interest": interest,
                "total_repayment": total_repayment,
                "collateral_returned": loan.collateral
            },
            user_id=owner,
            ledger_time=now
        )
        return total_repayment

    def _save_loan(self, loan: Loan) -> None:
        self.storage.save(self.loans_table, loan.key, loan.to_dict())
