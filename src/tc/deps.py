"""
Shared application state and FastAPI dependency helpers for the coordinator service.
"""

from typing import Dict

from src.kv.base.kv_store import KVStore
from src.txn.base.txn_log import TransactionLog
from src.txn.coordinator import TransactionCoordinator
from src.txn.sweeper import CleanupSweeper

# populated by the lifespan handler in src.tc.main
app_state: Dict = {}


def get_store() -> KVStore:
    """Get the document store adapter from app state."""
    return app_state["store"]


def get_txn_log() -> TransactionLog:
    """Get the transaction log from app state."""
    return app_state["txn_log"]


def get_coordinator() -> TransactionCoordinator:
    """Get the coordinator from app state."""
    return app_state["coordinator"]


def get_sweeper() -> CleanupSweeper:
    """Get the cleanup sweeper from app state."""
    return app_state["sweeper"]
