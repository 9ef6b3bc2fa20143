"""
Custody Ledger API Application Factory
"""

from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import get_config
from ..errors import ErrorKind, LedgerError
from ..logging_config import setup_logging
from .auth import LedgerSystem, get_ledger_system, set_ledger_system
from .accounts import router as accounts_router
from .loans import router as loans_router
from .admin import router as admin_router
from .schemas import PlatformStatsModel


HTTP_STATUS_BY_KIND = {
    ErrorKind.NOT_AUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorKind.ACCOUNT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.LOAN_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ACCOUNT_ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.CUSTODY_TRANSFER_FAILED: status.HTTP_502_BAD_GATEWAY,
}


def create_app(system: Optional[LedgerSystem] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    if system is not None:
        set_ledger_system(system)

    app = FastAPI(
        title="Custody Ledger API",
        description="Custodial banking ledger with deposits, transfers and collateralized loans",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        return JSONResponse(
            status_code=HTTP_STATUS_BY_KIND.get(exc.kind, status.HTTP_400_BAD_REQUEST),
            content={"error": exc.kind.label, "code": exc.code, "detail": str(exc)}
        )

    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])

    @app.get("/stats", response_model=PlatformStatsModel)
    async def platform_stats(system: LedgerSystem = Depends(get_ledger_system)):
        """Aggregate deposit and loan totals"""
        stats = system.ledger.platform_stats()
        return PlatformStatsModel(
            total_deposits=stats.total_deposits,
            total_loans=stats.total_loans,
            total_loan_count=stats.total_loan_count
        )

    @app.get("/health")
    async def health_check(system: LedgerSystem = Depends(get_ledger_system)):
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "custody_ledger_api",
            "version": __version__,
            "paused": system.ledger.is_paused()
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Configure logging and serve the API with uvicorn"""
    config = get_config()
    setup_logging(config.log_level, config.log_format, config.log_file)
    uvicorn.run(
        create_app(),
        host=host or config.api_host,
        port=port or config.api_port
    )
