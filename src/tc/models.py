"""
Coordinator Service Data Models

Pydantic models for the coordinator service responses.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, Field

from src.txn.base.txn_log import TxnLogEntry


class StagedWriteModel(BaseModel):
    key: str
    op: str
    applied: bool
    applied_cas: Optional[int] = None


class TransactionStatusResponse(BaseModel):
    """Logged state of one attempt."""
    attempt_id: str = Field(..., description="Attempt ID")
    status: str = Field(..., description="PENDING | STAGED | COMMITTED | ROLLED_BACK | EXPIRED")
    deadline: float
    rollback_only: bool = False
    writes: List[StagedWriteModel] = Field(default_factory=list)

    @classmethod
    def from_entry(cls, entry: TxnLogEntry) -> "TransactionStatusResponse":
        return cls(
            attempt_id=entry.id,
            status=entry.state.value,
            deadline=entry.deadline,
            rollback_only=entry.rollback_only,
            writes=[
                StagedWriteModel(key=w.key, op=w.op.value, applied=w.applied, applied_cas=w.applied_cas)
                for w in entry.writes
            ],
        )


class SweepResponse(BaseModel):
    scanned: int
    committed: int
    rolled_back: int
    skipped: int
    reaped: int


class HealthResponse(BaseModel):
    service: str
    status: str
    cleanup_running: bool
    details: Optional[Any] = None
