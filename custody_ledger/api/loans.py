"""
Loan endpoints
"""

from fastapi import APIRouter, Depends, status

from .auth import LedgerSystem, get_caller, get_ledger_system
from .schemas import LoanModel, LoanRequest


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def request_loan(
    request: LoanRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Borrow against collateral"""
    loan_id = system.ledger.request_loan(caller, request.loan_amount, request.collateral_amount).unwrap()
    return {
        "loan_id": loan_id,
        "owner": caller,
        "message": "Loan issued successfully"
    }


@router.post("/{loan_id}/repay")
async def repay_loan(
    loan_id: int,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Repay a loan and release its collateral"""
    total_repayment = system.ledger.repay_loan(caller, loan_id).unwrap()
    return {
        "loan_id": loan_id,
        "total_repayment": total_repayment,
        "message": "Loan repaid successfully"
    }


@router.get("/{owner}/count")
async def get_loan_count(
    owner: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Number of loans ever issued to owner"""
    return {"owner": owner, "loan_count": system.ledger.owner_loan_count(owner)}


@router.get("/{owner}/{loan_id}")
async def get_loan(
    owner: str,
    loan_id: int,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get loan details"""
    loan = system.ledger.loan_details(owner, loan_id).unwrap()
    return LoanModel.from_loan(loan).model_dump()
