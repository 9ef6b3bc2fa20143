"""
Administrative endpoints
"""

from fastapi import APIRouter, Depends

from .auth import LedgerSystem, get_caller, get_ledger_system
from .schemas import InterestRateRequest


router = APIRouter()


@router.post("/pause")
async def emergency_pause(
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Pause all mutating operations"""
    paused = system.ledger.emergency_pause(caller).unwrap()
    return {"paused": paused, "enforced": system.config.admin_controls_enforced}


@router.post("/resume")
async def emergency_resume(
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Lift an emergency pause"""
    system.ledger.emergency_resume(caller).unwrap()
    return {"paused": system.ledger.is_paused()}


@router.put("/interest-rate")
async def update_interest_rate(
    request: InterestRateRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Set the rate snapshotted by subsequently issued loans"""
    new_rate = system.ledger.update_interest_rate(caller, request.new_rate).unwrap()
    return {"interest_rate": new_rate, "enforced": system.config.admin_controls_enforced}


@router.get("/audit/verify")
async def verify_audit(
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Verify the audit hash chain and the loan total invariant"""
    return {
        "audit": system.audit_trail.verify_integrity(),
        "invariants": system.ledger.verify_invariants()
    }
