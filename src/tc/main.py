"""
Coordinator Service Main Application

FastAPI entry point exposing the transaction log and the cleanup sweeper.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.tc.deps import app_state, get_sweeper
from src.tc.factory import build_store, build_txn_log
from src.tc.middleware import RequestLogMiddleware
from src.tc.models import HealthResponse
from src.tc.routers import admin, transactions
from src.txn.config import get_config
from src.txn.coordinator import TransactionCoordinator
from src.txn.exceptions import TxnException
from src.txn.sweeper import CleanupSweeper

# Configure logging
logging.basicConfig(
    level=get_config().log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI app.

    Handles startup and shutdown:
    - On startup: build store adapter, transaction log, coordinator; start the sweeper
    - On shutdown: stop the sweeper
    """
    config = get_config()

    logger.info("Starting coordinator service...")
    logger.info(
        f"Configuration: kv={config.kv_backend}, txn_log={config.txn_log_backend}, "
        f"cleanup={config.cleanup_enabled} every {config.cleanup_interval_s}s"
    )

    # pre-seeded adapters (tests, embedding) take precedence over config
    store = app_state["store"] if "store" in app_state else build_store(config)
    txn_log = app_state["txn_log"] if "txn_log" in app_state else build_txn_log(config)
    coordinator = TransactionCoordinator(store, txn_log, config=config)
    sweeper = CleanupSweeper(store, txn_log, config=config)
    if config.cleanup_enabled:
        sweeper.start()

    app_state.update({
        "store": store,
        "txn_log": txn_log,
        "coordinator": coordinator,
        "sweeper": sweeper,
        "config": config,
    })

    logger.info("Coordinator service started successfully")

    yield

    logger.info("Shutting down coordinator service...")
    sweeper.stop()
    logger.info("Coordinator service shut down complete")


# Create FastAPI app
app = FastAPI(
    title="Transaction Coordinator (TC)",
    description="Transaction log status and cleanup for optimistic multi-document transactions",
    version="1.0.0",
    lifespan=lifespan
)

# Add middleware
app.add_middleware(RequestLogMiddleware)

# Include routers
app.include_router(transactions.router, prefix="", tags=["Transactions"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])


# Exception handlers
@app.exception_handler(TxnException)
async def txn_exception_handler(request: Request, exc: TxnException):
    """Handle transaction exceptions."""
    logger.error(
        f"Txn Exception: {exc.message}",
        extra={"attempt_id": exc.attempt_id, "status_code": exc.status_code}
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unexpected error: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "details": str(exc)
        }
    )


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check."""
    return HealthResponse(
        service="Transaction Coordinator (TC)",
        status="running",
        cleanup_running=get_sweeper().running,
    )


# CLI entrypoint
if __name__ == "__main__":
    config = get_config()
    uvicorn.run(
        "src.tc.main:app",
        host=config.tc_host,
        port=config.tc_port,
        reload=False,
        log_level=config.log_level.lower()
    )
