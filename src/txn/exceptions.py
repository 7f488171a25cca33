"""
Transaction Exceptions

This module defines the exception classes raised by the attempt context and
the transaction coordinator. CasMismatchError and TransactionExpiredError
raised inside an attempt are handled by the coordinator; callers of
``TransactionCoordinator.run`` only ever see TransactionExpiredError,
TransactionFailedError or CommitAmbiguousError.
"""

from typing import Optional


class TxnException(Exception):
    """
    Base exception class for all transaction errors.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[str] = None,
        attempt_id: Optional[str] = None,
    ):
        """
        Initialize TxnException.

        Args:
            message: Human-readable error message
            status_code: HTTP status code used when rendered by a service
            details: Additional error details (optional)
            attempt_id: Attempt associated with this error (optional)
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details
        self.attempt_id = attempt_id

    def to_dict(self) -> dict:
        """Convert exception to dict for JSON response."""
        result = {
            "error": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.attempt_id:
            result["attempt_id"] = self.attempt_id
        return result


class DocumentNotFoundError(TxnException):
    """Raised when a document read inside an attempt does not exist."""

    def __init__(self, key: str, attempt_id: Optional[str] = None):
        super().__init__(
            message=f"Document not found: {key}",
            status_code=404,
            attempt_id=attempt_id,
        )
        self.key = key


class DocumentExistsError(TxnException):
    """Raised when inserting a document that already exists."""

    def __init__(self, key: str, attempt_id: Optional[str] = None):
        super().__init__(
            message=f"Document already exists: {key}",
            status_code=409,
            attempt_id=attempt_id,
        )
        self.key = key


class CasMismatchError(TxnException):
    """
    Raised when a document changed between read and commit.

    Retryable: the coordinator converts it into a fresh attempt.
    """

    def __init__(
        self,
        key: str,
        expected_cas: Optional[int] = None,
        actual_cas: Optional[int] = None,
        attempt_id: Optional[str] = None,
    ):
        super().__init__(
            message=f"CAS mismatch on {key}",
            status_code=409,
            details=f"expected={expected_cas} actual={actual_cas}",
            attempt_id=attempt_id,
        )
        self.key = key
        self.expected_cas = expected_cas
        self.actual_cas = actual_cas


class NotReadBeforeWriteError(TxnException):
    """Raised on replace/remove of a key the attempt never read. Not retryable."""

    def __init__(self, key: str, attempt_id: Optional[str] = None):
        super().__init__(
            message=f"Document must be read before it is written: {key}",
            status_code=400,
            attempt_id=attempt_id,
        )
        self.key = key


class StoreUnavailableError(TxnException):
    """Raised when the document store or transaction log cannot be reached."""

    def __init__(
        self,
        message: str = "Document store unavailable",
        details: Optional[str] = None,
        attempt_id: Optional[str] = None,
    ):
        super().__init__(
            message=message,
            status_code=503,
            details=details,
            attempt_id=attempt_id,
        )


class TransactionExpiredError(TxnException):
    """Raised when the deadline or the attempt budget is exhausted before commit."""

    def __init__(
        self,
        message: str = "Transaction expired",
        details: Optional[str] = None,
        attempt_id: Optional[str] = None,
    ):
        super().__init__(
            message=message,
            status_code=408,
            details=details,
            attempt_id=attempt_id,
        )


class TransactionFailedError(TxnException):
    """
    Raised when user logic or the store fails with a non-retryable error.

    The original exception is kept in ``cause``. Nothing was applied.
    """

    def __init__(
        self,
        cause: Optional[BaseException] = None,
        message: str = "Transaction failed",
        attempt_id: Optional[str] = None,
    ):
        super().__init__(
            message=message,
            status_code=500,
            details=f"{type(cause).__name__}: {cause}" if cause is not None else None,
            attempt_id=attempt_id,
        )
        self.cause = cause


class CommitAmbiguousError(TxnException):
    """
    Raised when the commit phase started but its outcome cannot be confirmed.

    The transaction may or may not have applied. The log entry stays Staged
    and the cleanup sweeper resolves it; query the attempt status to learn
    the final outcome.
    """

    def __init__(
        self,
        attempt_id: str,
        details: Optional[str] = None,
    ):
        super().__init__(
            message="IN_DOUBT: commit outcome unknown",
            status_code=202,
            details=details or "Please query transaction status to verify final state",
            attempt_id=attempt_id,
        )
