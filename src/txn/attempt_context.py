import copy
import logging
from typing import Any

from src.kv.base.document import Document, to_content
from src.kv.base.err_code import ErrCode, KVResult
from src.kv.base.kv_store import KVStore
from src.txn.base.attempt import Attempt, StagedWrite, WriteOp
from src.txn.exceptions import (
    CasMismatchError,
    DocumentExistsError,
    DocumentNotFoundError,
    NotReadBeforeWriteError,
    StoreUnavailableError,
    TransactionExpiredError,
)

logger = logging.getLogger(__name__)


class AttemptContext:
    """
    The view of the store that user logic gets for one attempt.

    Reads go to the store and record the observed cas in the attempt's read
    set. Writes are only staged in the write set; the coordinator applies
    them at commit. Nothing done here is visible to other readers.
    """

    def __init__(self, store: KVStore, attempt: Attempt):
        self.store = store
        self.attempt = attempt

    @property
    def attempt_id(self) -> str:
        return self.attempt.id

    # =========================================================
    # Internal helper methods
    # =========================================================

    def _check_deadline(self):
        if self.attempt.expired():
            raise TransactionExpiredError(
                details="deadline exceeded during attempt",
                attempt_id=self.attempt.id,
            )

    def _load(self, key: str) -> KVResult:
        # the deadline is checked on both sides of every store round trip
        self._check_deadline()
        res = self.store.get(key)
        self._check_deadline()
        if not res.ok and res.err is not ErrCode.KEY_NOT_FOUND:
            raise StoreUnavailableError(
                details=f"get {key}: {res.err.name}",
                attempt_id=self.attempt.id,
            )
        return res

    def _require_read(self, key: str) -> int:
        if key not in self.attempt.read_set:
            raise NotReadBeforeWriteError(key, attempt_id=self.attempt.id)
        return self.attempt.read_set[key]

    # =========================================================
    # Operations
    # =========================================================

    def get(self, key: str) -> Document:
        staged = self.attempt.write_set.get(key)
        if staged is not None:
            if staged.op is WriteOp.REMOVE:
                raise DocumentNotFoundError(key, attempt_id=self.attempt.id)
            return Document(key=key, value=copy.deepcopy(staged.value), cas=staged.cas_at_read)

        res = self._load(key)
        first_cas = self.attempt.read_set.get(key)
        if not res.ok:
            if first_cas is not None:
                # removed by another writer since our first read
                raise CasMismatchError(key, first_cas, None, attempt_id=self.attempt.id)
            raise DocumentNotFoundError(key, attempt_id=self.attempt.id)
        doc: Document = res.value

        if first_cas is None:
            self.attempt.read_set[key] = doc.cas
            self.attempt.before_images[key] = copy.deepcopy(doc.value)
        elif first_cas != doc.cas:
            logger.info(
                "Attempt.get changed under us: attempt=%s key=%s first=%s now=%s",
                self.attempt.id, key, first_cas, doc.cas,
            )
            raise CasMismatchError(key, first_cas, doc.cas, attempt_id=self.attempt.id)
        logger.debug("Attempt.get: attempt=%s key=%s cas=%s", self.attempt.id, key, doc.cas)
        return doc

    def replace(self, key: str, value: Any) -> None:
        staged = self.attempt.write_set.get(key)
        if staged is not None and staged.op is WriteOp.INSERT:
            staged.value = to_content(value)
            return
        if staged is not None and staged.op is WriteOp.REMOVE:
            raise DocumentNotFoundError(key, attempt_id=self.attempt.id)

        cas = self._require_read(key)
        self.attempt.write_set[key] = StagedWrite(
            key=key,
            op=WriteOp.REPLACE,
            value=to_content(value),
            cas_at_read=cas,
            before=self.attempt.before_images.get(key),
        )
        logger.debug("Attempt.replace staged: attempt=%s key=%s cas=%s", self.attempt.id, key, cas)

    def insert(self, key: str, value: Any) -> None:
        staged = self.attempt.write_set.get(key)
        if staged is not None:
            if staged.op is not WriteOp.REMOVE:
                raise DocumentExistsError(key, attempt_id=self.attempt.id)
            # remove followed by insert of the same key is a replace
            staged.op = WriteOp.REPLACE
            staged.value = to_content(value)
            return
        if key in self.attempt.read_set:
            raise DocumentExistsError(key, attempt_id=self.attempt.id)

        res = self._load(key)
        if res.ok:
            raise DocumentExistsError(key, attempt_id=self.attempt.id)
        self.attempt.write_set[key] = StagedWrite(key=key, op=WriteOp.INSERT, value=to_content(value))
        logger.debug("Attempt.insert staged: attempt=%s key=%s", self.attempt.id, key)

    def remove(self, key: str) -> None:
        staged = self.attempt.write_set.get(key)
        if staged is not None:
            if staged.op is WriteOp.REMOVE:
                raise DocumentNotFoundError(key, attempt_id=self.attempt.id)
            if staged.op is WriteOp.INSERT:
                # never reached the store, nothing to remove
                del self.attempt.write_set[key]
                return

        cas = self._require_read(key)
        self.attempt.write_set[key] = StagedWrite(
            key=key,
            op=WriteOp.REMOVE,
            cas_at_read=cas,
            before=self.attempt.before_images.get(key),
        )
        logger.debug("Attempt.remove staged: attempt=%s key=%s cas=%s", self.attempt.id, key, cas)
