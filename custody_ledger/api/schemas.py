"""
Pydantic schemas for API requests and responses
"""

from pydantic import BaseModel, Field, StrictInt

from ..loans import Loan


class CreateAccountRequest(BaseModel):
    initial_deposit: StrictInt = Field(..., description="Initial deposit in base units")


class AmountRequest(BaseModel):
    amount: StrictInt = Field(..., description="Amount in base units")


class TransferRequest(BaseModel):
    recipient: str = Field(..., min_length=1)
    amount: StrictInt = Field(..., description="Amount in base units")


class LoanRequest(BaseModel):
    loan_amount: StrictInt = Field(..., description="Principal to borrow")
    collateral_amount: StrictInt = Field(..., description="Collateral to lock")


class InterestRateRequest(BaseModel):
    new_rate: StrictInt = Field(..., description="Annual loan rate in whole percent")


class LoanModel(BaseModel):
    owner: str
    loan_id: int
    amount: int
    collateral: int
    timestamp: int
    interest_rate: int
    is_active: bool

    @classmethod
    def from_loan(cls, loan: Loan) -> 'LoanModel':
        return cls(**loan.to_dict())


class PlatformStatsModel(BaseModel):
    total_deposits: int
    total_loans: int
    total_loan_count: int
