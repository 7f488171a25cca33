"""
Non-transactional read-modify-write.

A single document is read, transformed and written back with its read cas;
a concurrent writer makes the put fail and the loop starts over. There is
no transaction log and no cleanup: use TransactionCoordinator when more
than one document must change together.
"""

import logging
import time
from typing import Any, Callable, Optional

from src.kv.base.document import to_content
from src.kv.base.err_code import ErrCode
from src.kv.base.kv_store import KVStore
from src.txn.exceptions import CasMismatchError, DocumentNotFoundError, StoreUnavailableError

logger = logging.getLogger(__name__)


def cas_update(
    store: KVStore,
    key: str,
    fn: Callable[[Any], Any],
    max_retries: int = 16,
    backoff_base_s: float = 0.001,
    backoff_max_s: float = 0.1,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Apply fn to the current value of key until the write sticks.

    Returns:
        The new cas of the document

    Raises:
        DocumentNotFoundError: key does not exist
        CasMismatchError: still conflicting after max_retries retries
        StoreUnavailableError: the store reported an I/O failure
    """
    last_cas: Optional[int] = None
    for n in range(max_retries + 1):
        res = store.get(key)
        if not res.ok:
            if res.err is ErrCode.KEY_NOT_FOUND:
                raise DocumentNotFoundError(key)
            raise StoreUnavailableError(details=f"get {key}: {res.err.name}")

        doc = res.value
        last_cas = doc.cas
        put = store.put(key, to_content(fn(doc.content())), doc.cas)
        if put.ok:
            if n:
                logger.debug("cas_update: key=%s succeeded after %d retries", key, n)
            return put.value
        if put.err is not ErrCode.CAS_MISMATCH:
            raise StoreUnavailableError(details=f"put {key}: {put.err.name}")

        logger.debug("cas_update: key=%s cas=%s lost race, retry=%d", key, doc.cas, n + 1)
        if n < max_retries:
            sleep(min(backoff_max_s, backoff_base_s * (2 ** n)))

    raise CasMismatchError(key, expected_cas=last_cas)
