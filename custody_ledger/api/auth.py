"""
Ledger system wiring and caller identity dependencies
"""

from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..audit import AuditTrail
from ..config import LedgerConfig, get_config
from ..custody import Clock, CustodyGateway, InMemoryCustody, SystemClock
from ..ledger import BankingLedger
from ..storage import StorageInterface, create_storage


class LedgerSystem:
    """Ledger engine with its collaborators initialized"""

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        storage: Optional[StorageInterface] = None,
        custody: Optional[CustodyGateway] = None,
        clock: Optional[Clock] = None
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.storage_backend, self.config.sqlite_path)
        self.custody = custody or InMemoryCustody()
        self.clock = clock or SystemClock()
        self.audit_trail = AuditTrail(self.storage)
        self.ledger = BankingLedger(
            self.storage, self.custody, self.clock,
            audit_trail=self.audit_trail, config=self.config
        )


_ledger_system: Optional[LedgerSystem] = None


def get_ledger_system() -> LedgerSystem:
    """Dependency returning the process-wide ledger system"""
    global _ledger_system
    if _ledger_system is None:
        _ledger_system = LedgerSystem()
    return _ledger_system


def set_ledger_system(system: Optional[LedgerSystem]) -> None:
    """Replace the process-wide ledger system"""
    global _ledger_system
    _ledger_system = system


security = HTTPBearer(auto_error=False)


def issue_token(identity: str, config: Optional[LedgerConfig] = None) -> str:
    """Sign a bearer token whose subject is the caller identity"""
    config = config or get_config()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": identity,
        "iat": now,
        "exp": now + timedelta(hours=config.jwt_expiry_hours)
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)


def get_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: LedgerSystem = Depends(get_ledger_system)
) -> str:
    """Dependency that validates the bearer JWT and returns the caller identity"""
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")

    config = system.config
    try:
        payload = jwt.decode(credentials.credentials, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    identity = payload.get("sub")
    if not identity:
        raise HTTPException(status_code=401, detail="Invalid token")
    return identity
