"""
Account endpoints
"""

from fastapi import APIRouter, Depends, status

from .auth import LedgerSystem, get_caller, get_ledger_system
from .schemas import AmountRequest, CreateAccountRequest, TransferRequest


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_account(
    request: CreateAccountRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Open an account for the caller"""
    system.ledger.create_account(caller, request.initial_deposit).unwrap()
    return {
        "owner": caller,
        "created": True,
        "message": "Account created successfully"
    }


@router.post("/deposit")
async def deposit(
    request: AmountRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Deposit into the caller's account"""
    amount = system.ledger.deposit(caller, request.amount).unwrap()
    return {"owner": caller, "amount": amount}


@router.post("/withdraw")
async def withdraw(
    request: AmountRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Withdraw from the caller's balance including accrued interest"""
    amount = system.ledger.withdraw(caller, request.amount).unwrap()
    return {"owner": caller, "amount": amount}


@router.post("/transfer")
async def transfer(
    request: TransferRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Transfer principal to another account"""
    amount = system.ledger.transfer(caller, request.recipient, request.amount).unwrap()
    return {"sender": caller, "recipient": request.recipient, "amount": amount}


@router.get("/{owner}/balance")
async def get_balance(
    owner: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Balance including accrued interest"""
    balance = system.ledger.account_balance(owner).unwrap()
    return {"owner": owner, "balance": balance}


@router.get("/{owner}/exists")
async def account_exists(
    owner: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    return {"owner": owner, "exists": system.ledger.account_exists(owner)}
