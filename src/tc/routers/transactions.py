"""
Transaction API Router

Read access to the transaction log, used to settle the outcome of an
attempt after CommitAmbiguousError.
"""

from fastapi import APIRouter, Depends

from src.tc.deps import get_coordinator
from src.tc.models import TransactionStatusResponse
from src.txn.coordinator import TransactionCoordinator
from src.txn.exceptions import TxnException

router = APIRouter()


@router.get("/transactions/{attempt_id}", response_model=TransactionStatusResponse)
def get_transaction_status(
    attempt_id: str,
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """
    Query the logged state of an attempt.

    Unknown attempts (never logged, or already reaped) return 404.
    """
    entry = coordinator.status(attempt_id)
    if entry is None:
        raise TxnException(
            message=f"Transaction not found: {attempt_id}",
            status_code=404,
            attempt_id=attempt_id,
        )
    return TransactionStatusResponse.from_entry(entry)
