"""
Game Bank API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..errors import BankingError
from ..logging_config import get_logger
from .system import BankSystem, get_bank_system
from .accounts import router as accounts_router
from .admin import router as admin_router
from .market import router as market_router
from .operations import router as operations_router


ERROR_STATUS_CODES = {
    "validation_error": 400,
    "insufficient_funds": 400,
    "insufficient_stock": 400,
    "insufficient_holdings": 400,
    "not_found": 404,
    "conflict": 409,
    "store_error": 503,
}

logger = get_logger("game_bank.api")


def create_app(system: Optional[BankSystem] = None, start_scheduler: Optional[bool] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        system: Pre-built bank system (tests pass one over an in-memory store)
        start_scheduler: Run the settlement timer while the app is up;
            defaults to config.settlement_enabled
    """
    bank_system = system or BankSystem()
    if start_scheduler is None:
        start_scheduler = bank_system.config.settlement_enabled

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_scheduler:
            bank_system.settlement_scheduler.start()
        yield
        bank_system.settlement_scheduler.stop()

    app = FastAPI(
        title="Game Bank API",
        description="Ledger and settlement engine of the in-game bank",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.bank_system = bank_system

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BankingError)
    async def banking_error_handler(request: Request, exc: BankingError):
        status_code = ERROR_STATUS_CODES.get(exc.kind, 400)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=status_code,
            content={"error": type(exc).__name__, "kind": exc.kind, "message": exc.message}
        )

    # Include routers
    app.include_router(operations_router, tags=["Operations"])
    app.include_router(market_router, tags=["Market"])
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "game_bank_api",
            "version": __version__,
            "settlement_running": bank_system.settlement_scheduler.is_running
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 3000, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "game_bank.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )


__all__ = ["create_app", "run_server", "BankSystem", "get_bank_system", "ERROR_STATUS_CODES"]
