import copy
import itertools
import logging
import threading
from typing import Any, Dict, Optional

from src.kv.base.document import Document
from src.kv.base.err_code import ErrCode, KVResult
from src.kv.base.kv_store import KVStore

logger = logging.getLogger("kv")


class MemoryKVStore(KVStore):
    """
    Thread-safe in-process document store.

    Structure:
        key -> Document
    cas tokens come from one counter shared by all keys, so a token is never
    reused, even after a remove and re-create.
    """

    def __init__(self):
        self._docs: Dict[str, Document] = {}
        self._mutex = threading.Lock()
        self._cas_seq = itertools.count(1)

    def _next_cas(self) -> int:
        return next(self._cas_seq)

    def get(self, key: str) -> KVResult:
        with self._mutex:
            doc = self._docs.get(key)
            if doc is None:
                return KVResult(ok=False, err=ErrCode.KEY_NOT_FOUND)
            return KVResult(ok=True, value=copy.deepcopy(doc))

    def put(self, key: str, value: Any, expected_cas: Optional[int]) -> KVResult:
        if not key:
            return KVResult(ok=False, err=ErrCode.INVALID_ARGUMENT)
        with self._mutex:
            current = self._docs.get(key)
            if expected_cas is None:
                if current is not None:
                    logger.debug("KV.put create-only conflict: key=%s cas=%s", key, current.cas)
                    return KVResult(ok=False, err=ErrCode.CAS_MISMATCH)
            elif current is None or current.cas != expected_cas:
                logger.debug(
                    "KV.put cas mismatch: key=%s expected=%s current=%s",
                    key, expected_cas, current.cas if current else None,
                )
                return KVResult(ok=False, err=ErrCode.CAS_MISMATCH)
            cas = self._next_cas()
            self._docs[key] = Document(key=key, value=copy.deepcopy(value), cas=cas)
            return KVResult(ok=True, value=cas)

    def remove(self, key: str, expected_cas: int) -> KVResult:
        with self._mutex:
            current = self._docs.get(key)
            if current is None:
                return KVResult(ok=False, err=ErrCode.KEY_NOT_FOUND)
            if current.cas != expected_cas:
                return KVResult(ok=False, err=ErrCode.CAS_MISMATCH)
            del self._docs[key]
            return KVResult(ok=True)

    def upsert(self, key: str, value: Any) -> KVResult:
        if not key:
            return KVResult(ok=False, err=ErrCode.INVALID_ARGUMENT)
        with self._mutex:
            cas = self._next_cas()
            self._docs[key] = Document(key=key, value=copy.deepcopy(value), cas=cas)
            return KVResult(ok=True, value=cas)

