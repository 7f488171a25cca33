from abc import ABC, abstractmethod
from typing import Any, Optional

from src.kv.base.err_code import KVResult


class KVStore(ABC):
    """
    KVStore is the boundary to the document store the coordinator runs on.

    Every successful write returns a fresh CAS token. Expected outcomes
    (missing key, CAS mismatch) are reported through ``KVResult.err``;
    implementations never raise for them.
    """

    @abstractmethod
    def get(self, key: str) -> KVResult:
        """Return the current Document for key, or KEY_NOT_FOUND."""
        pass

    @abstractmethod
    def put(self, key: str, value: Any, expected_cas: Optional[int]) -> KVResult:
        """
        Write value if the stored cas equals expected_cas.

        expected_cas=None means create-only: the key must not exist.
        On success the new cas is returned as the result value.
        """
        pass

    @abstractmethod
    def remove(self, key: str, expected_cas: int) -> KVResult:
        """Delete key if the stored cas equals expected_cas."""
        pass

    @abstractmethod
    def upsert(self, key: str, value: Any) -> KVResult:
        """Unconditional write, returns the new cas."""
        pass
