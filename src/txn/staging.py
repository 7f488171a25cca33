"""
Staged write helpers shared by the coordinator and the cleanup sweeper.

A StagedWrite is applied with CAS fencing against the value the attempt
read, and reverted with CAS fencing against the value the attempt wrote.
"""

import enum
import logging

from src.kv.base.err_code import ErrCode, KVResult
from src.kv.base.kv_store import KVStore
from src.txn.base.attempt import StagedWrite, WriteOp
from src.txn.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


class WriteStatus(enum.Enum):
    UNAPPLIED = "UNAPPLIED"    # store still holds what the attempt read
    APPLIED = "APPLIED"        # store holds what the attempt wrote
    FOREIGN = "FOREIGN"        # somebody else changed the key


def apply_write(store: KVStore, w: StagedWrite) -> KVResult:
    if w.op is WriteOp.INSERT:
        res = store.put(w.key, w.value, None)
    elif w.op is WriteOp.REPLACE:
        res = store.put(w.key, w.value, w.cas_at_read)
    else:
        res = store.remove(w.key, w.cas_at_read)
    if res.ok:
        w.applied = True
        w.applied_cas = res.value if w.op is not WriteOp.REMOVE else None
    return res


def revert_write(store: KVStore, w: StagedWrite) -> KVResult:
    if w.op is WriteOp.INSERT:
        res = store.remove(w.key, w.applied_cas)
    elif w.op is WriteOp.REPLACE:
        res = store.put(w.key, w.before, w.applied_cas)
    else:
        # re-create the removed document
        res = store.put(w.key, w.before, None)
    if res.ok:
        w.applied = False
        w.applied_cas = None
    return res


def is_conflict(res: KVResult) -> bool:
    return res.err in (ErrCode.CAS_MISMATCH, ErrCode.KEY_NOT_FOUND, ErrCode.KEY_EXISTS)


def inspect_write(store: KVStore, w: StagedWrite) -> WriteStatus:
    """
    Compare a staged write with what the store currently holds.

    A write whose put reached the store but whose log update was lost is
    recognised by its value (or, for removes, by the key being gone) and
    adopted as applied.
    """
    res = store.get(w.key)
    if not res.ok and res.err is not ErrCode.KEY_NOT_FOUND:
        raise StoreUnavailableError(details=f"get {w.key}: {res.err.name}")
    doc = res.value if res.ok else None

    if w.op is WriteOp.REMOVE:
        if doc is None:
            w.applied = True
            return WriteStatus.APPLIED
        if not w.applied and doc.cas == w.cas_at_read:
            return WriteStatus.UNAPPLIED
        return WriteStatus.FOREIGN

    if w.applied:
        if doc is not None and doc.cas == w.applied_cas:
            return WriteStatus.APPLIED
        return WriteStatus.FOREIGN

    if w.op is WriteOp.INSERT and doc is None:
        return WriteStatus.UNAPPLIED
    if w.op is WriteOp.REPLACE and doc is not None and doc.cas == w.cas_at_read:
        return WriteStatus.UNAPPLIED
    if doc is not None and doc.value == w.value:
        logger.info("adopting unlogged write: key=%s cas=%s", w.key, doc.cas)
        w.applied = True
        w.applied_cas = doc.cas
        return WriteStatus.APPLIED
    return WriteStatus.FOREIGN
