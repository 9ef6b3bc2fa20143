"""
Aggregate Ledger State

Process-wide counters shared by account and loan operations. Stored as a
single record so that every operation updates them in the same atomic
step as the entity records they summarize.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict

from .storage import StorageInterface


@dataclass
class AggregateState:
    """Running totals and switches for the whole ledger"""
    total_deposits: int = 0   # Net deposits minus withdrawals; realized interest is not tracked
    total_loans: int = 0      # Outstanding loan principal
    loan_id_counter: int = 0  # Last issued loan id
    paused: bool = False
    loan_interest_rate: int = 0  # Rate snapshotted into newly issued loans

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AggregateState':
        return cls(**data)


class StateStore:
    """Loads and saves the single AggregateState record"""

    table = "ledger_state"
    record_id = "aggregate"

    def __init__(self, storage: StorageInterface, initial_loan_rate: int):
        self.storage = storage
        self.initial_loan_rate = initial_loan_rate

    def load(self) -> AggregateState:
        data = self.storage.load(self.table, self.record_id)
        if data is None:
            return AggregateState(loan_interest_rate=self.initial_loan_rate)
        return AggregateState.from_dict(data)

    def save(self, state: AggregateState) -> None:
        self.storage.save(self.table, self.record_id, state.to_dict())
