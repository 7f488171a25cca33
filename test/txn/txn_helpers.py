"""
Transaction test helpers: store wrappers that inject latency, concurrent
writers and transport failures, plus coordinator / log factories.
"""
import time

from src.kv.base.err_code import ErrCode, KVResult
from src.kv.base.kv_store import KVStore
from src.kv.impl.memory_kv_store import MemoryKVStore
from src.txn.base.attempt import AttemptState, StagedWrite, WriteOp
from src.txn.base.txn_log import TxnLogEntry
from src.txn.config import TxnConfig
from src.txn.coordinator import TransactionCoordinator
from src.txn.impl.memory_txn_log import MemoryTransactionLog


# ==================== Store wrappers ====================

class WrappedKVStore(KVStore):
    def __init__(self, inner: KVStore):
        self.inner = inner

    def get(self, key):
        return self.inner.get(key)

    def put(self, key, value, expected_cas):
        return self.inner.put(key, value, expected_cas)

    def remove(self, key, expected_cas):
        return self.inner.remove(key, expected_cas)

    def upsert(self, key, value):
        return self.inner.upsert(key, value)


class SlowKVStore(WrappedKVStore):
    """Every get takes `delay` seconds."""

    def __init__(self, inner, delay):
        super().__init__(inner)
        self.delay = delay

    def get(self, key):
        time.sleep(self.delay)
        return self.inner.get(key)


class InterferingKVStore(WrappedKVStore):
    """
    After the first `times` gets of `key`, a foreign writer applies `mutate`
    to the document, simulating a concurrent update between read and commit.
    """

    def __init__(self, inner, key, mutate, times=1):
        super().__init__(inner)
        self.key = key
        self.mutate = mutate
        self.remaining = times

    def get(self, key):
        r = self.inner.get(key)
        if key == self.key and r.ok and self.remaining > 0:
            self.remaining -= 1
            self.inner.upsert(key, self.mutate(r.value.content()))
        return r


class RemovingKVStore(WrappedKVStore):
    """A foreign writer removes `key` right after its first get."""

    def __init__(self, inner, key):
        super().__init__(inner)
        self.key = key
        self.done = False

    def get(self, key):
        r = self.inner.get(key)
        if key == self.key and r.ok and not self.done:
            self.done = True
            self.inner.remove(key, r.value.cas)
        return r


class PutHookKVStore(WrappedKVStore):
    """Calls `hook(key)` once right before the first put on `key`."""

    def __init__(self, inner, key, hook):
        super().__init__(inner)
        self.key = key
        self.hook = hook

    def put(self, key, value, expected_cas):
        if key == self.key and self.hook is not None:
            hook, self.hook = self.hook, None
            hook(key)
        return self.inner.put(key, value, expected_cas)


class FailingPutKVStore(WrappedKVStore):
    """Puts on `key` fail with `err` while `failing` is set."""

    def __init__(self, inner, key, err=ErrCode.IO_ERROR):
        super().__init__(inner)
        self.key = key
        self.err = err
        self.failing = True

    def put(self, key, value, expected_cas):
        if key == self.key and self.failing:
            return KVResult(ok=False, err=self.err)
        return self.inner.put(key, value, expected_cas)


# ==================== Factories ====================

def new_config(**overrides) -> TxnConfig:
    settings = {
        "max_attempts": 10,
        "timeout_s": 5.0,
        "backoff_base_s": 0.0,
        "backoff_max_s": 0.0,
        "cleanup_enabled": False,
        "cleanup_interval_s": 0.05,
        "cleanup_grace_s": 0.0,
        "log_retention_s": 0.0,
    }
    settings.update(overrides)
    return TxnConfig(**settings)


def new_coordinator(store=None, txn_log=None, **overrides):
    store = store if store is not None else MemoryKVStore()
    txn_log = txn_log if txn_log is not None else MemoryTransactionLog()
    return TransactionCoordinator(store, txn_log, config=new_config(**overrides), sleep=lambda s: None)


def seed(store, key, value):
    r = store.put(key, value, None)
    assert r.ok, f"seed {key} failed: {r.err}"
    return r.value


def value_of(store, key):
    r = store.get(key)
    return r.value.value if r.ok else None


def cas_of(store, key):
    r = store.get(key)
    return r.value.cas if r.ok else None


def replace_write(store, key, new_value):
    doc = store.get(key).value
    return StagedWrite(key=key, op=WriteOp.REPLACE, value=new_value, cas_at_read=doc.cas, before=doc.value)


def staged_entry(txn_log, writes, deadline=0.0, state=AttemptState.STAGED, attempt_id="a" * 32, rollback_only=False):
    entry = TxnLogEntry(id=attempt_id, state=state, deadline=deadline, writes=writes, rollback_only=rollback_only)
    assert txn_log.write(entry)
    return entry


def snapshot(store, keys):
    return {k: (value_of(store, k), cas_of(store, k)) for k in keys}
