"""
Ledger Error Taxonomy

Every business failure of a ledger operation is one of the kinds below.
Inside the engine they are raised as LedgerError subclasses; at the
operation boundary they are converted into OperationResult failures.
"""

from enum import Enum
from typing import Dict, Optional, Type


class ErrorKind(Enum):
    """Error kinds with their numeric codes"""
    NOT_AUTHORIZED = ("NotAuthorized", 401)
    INSUFFICIENT_BALANCE = ("InsufficientBalance", 402)
    INVALID_AMOUNT = ("InvalidAmount", 403)
    ACCOUNT_NOT_FOUND = ("AccountNotFound", 404)
    LOAN_NOT_FOUND = ("LoanNotFound", 405)
    INSUFFICIENT_COLLATERAL = ("InsufficientCollateral", 406)
    ACCOUNT_ALREADY_EXISTS = ("AccountAlreadyExists", 409)
    CUSTODY_TRANSFER_FAILED = ("CustodyTransferFailed", 502)

    def __init__(self, label: str, code: int):
        self.label = label
        self.code = code


class LedgerError(ValueError):
    """Base class for ledger business errors"""

    kind: ErrorKind = ErrorKind.INVALID_AMOUNT

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.kind.label)

    @property
    def code(self) -> int:
        return self.kind.code


class NotAuthorizedError(LedgerError):
    kind = ErrorKind.NOT_AUTHORIZED


class InsufficientBalanceError(LedgerError):
    kind = ErrorKind.INSUFFICIENT_BALANCE


class InvalidAmountError(LedgerError):
    kind = ErrorKind.INVALID_AMOUNT


class AccountNotFoundError(LedgerError):
    kind = ErrorKind.ACCOUNT_NOT_FOUND


class LoanNotFoundError(LedgerError):
    kind = ErrorKind.LOAN_NOT_FOUND


class InsufficientCollateralError(LedgerError):
    kind = ErrorKind.INSUFFICIENT_COLLATERAL


class AccountAlreadyExistsError(LedgerError):
    kind = ErrorKind.ACCOUNT_ALREADY_EXISTS


class CustodyTransferFailedError(LedgerError):
    kind = ErrorKind.CUSTODY_TRANSFER_FAILED


_ERRORS_BY_KIND: Dict[ErrorKind, Type[LedgerError]] = {
    cls.kind: cls for cls in (
        NotAuthorizedError,
        InsufficientBalanceError,
        InvalidAmountError,
        AccountNotFoundError,
        LoanNotFoundError,
        InsufficientCollateralError,
        AccountAlreadyExistsError,
        CustodyTransferFailedError,
    )
}


def error_for(kind: ErrorKind, message: Optional[str] = None) -> LedgerError:
    """Build the LedgerError subclass instance for an error kind"""
    return _ERRORS_BY_KIND[kind](message)


def require_amount(value, name: str = "amount") -> int:
    """Validate that value is a non-negative integer amount"""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise InvalidAmountError(f"{name} must not be negative")
    return value
