import time

from src.kv.base.err_code import ErrCode, KVResult
from src.kv.impl.memory_kv_store import MemoryKVStore
from src.txn.base.attempt import AttemptState, StagedWrite, WriteOp
from src.txn.impl.memory_txn_log import MemoryTransactionLog
from src.txn.staging import apply_write
from src.txn.sweeper import CleanupSweeper, SweepReport
from txn_helpers import (
    WrappedKVStore,
    cas_of,
    new_config,
    replace_write,
    seed,
    snapshot,
    staged_entry,
    value_of,
)


class DownKVStore(WrappedKVStore):
    def get(self, key):
        return KVResult(ok=False, err=ErrCode.IO_ERROR)


def new_sweeper(store, txn_log, **overrides):
    return CleanupSweeper(store, txn_log, config=new_config(**overrides))


def test_stale_pending_entry_is_rolled_back():
    store, txn_log = MemoryKVStore(), MemoryTransactionLog()
    staged_entry(txn_log, [], state=AttemptState.PENDING)

    report = new_sweeper(store, txn_log).run_once()

    assert report.scanned == 1
    assert report.rolled_back == 1
    assert txn_log.read("a" * 32).state is AttemptState.ROLLED_BACK


def test_consistent_staged_entry_is_rolled_forward():
    store, txn_log = MemoryKVStore(), MemoryTransactionLog()
    seed(store, "k1", {"v": 1})
    seed(store, "k2", {"v": 1})

    w1 = replace_write(store, "k1", {"v": 2})
    apply_write(store, w1)
    w2 = replace_write(store, "k2", {"v": 2})
    w3 = StagedWrite(key="k3", op=WriteOp.INSERT, value={"v": 3})
    staged_entry(txn_log, [w1, w2, w3])

    report = new_sweeper(store, txn_log).run_once()

    assert report.committed == 1
    assert value_of(store, "k1") == {"v": 2}
    assert value_of(store, "k2") == {"v": 2}
    assert value_of(store, "k3") == {"v": 3}
    entry = txn_log.read("a" * 32)
    assert entry.state is AttemptState.COMMITTED
    assert all(w.applied for w in entry.writes)


def test_foreign_write_forces_rollback():
    store, txn_log = MemoryKVStore(), MemoryTransactionLog()
    seed(store, "k1", {"v": 1})
    seed(store, "k2", {"v": 1})

    w1 = replace_write(store, "k1", {"v": 2})
    apply_write(store, w1)
    w2 = replace_write(store, "k2", {"v": 2})
    staged_entry(txn_log, [w1, w2])
    store.upsert("k2", {"v": 99})

    report = new_sweeper(store, txn_log).run_once()

    assert report.rolled_back == 1
    assert value_of(store, "k1") == {"v": 1}
    assert value_of(store, "k2") == {"v": 99}
    assert txn_log.read("a" * 32).state is AttemptState.ROLLED_BACK


def test_rollback_only_entry_is_never_rolled_forward():
    store, txn_log = MemoryKVStore(), MemoryTransactionLog()
    seed(store, "k1", {"v": 1})
    w1 = replace_write(store, "k1", {"v": 2})
    apply_write(store, w1)
    staged_entry(txn_log, [w1], rollback_only=True)

    report = new_sweeper(store, txn_log).run_once()

    assert report.rolled_back == 1
    assert value_of(store, "k1") == {"v": 1}


def test_removed_document_is_restored_on_rollback():
    store, txn_log = MemoryKVStore(), MemoryTransactionLog()
    seed(store, "k1", {"v": 1})
    w1 = StagedWrite(key="k1", op=WriteOp.REMOVE, cas_at_read=cas_of(store, "k1"), before={"v": 1})
    apply_write(store, w1)
    staged_entry(txn_log, [w1], rollback_only=True)

    new_sweeper(store, txn_log).run_once()

    assert value_of(store, "k1") == {"v": 1}


def test_unlogged_write_is_adopted():
    store, txn_log = MemoryKVStore(), MemoryTransactionLog()
    seed(store, "k1", {"v": 1})
    w1 = replace_write(store, "k1", {"v": 2})
    staged_entry(txn_log, [w1])
    # the put landed but the coordinator died before logging it
    store.put("k1", {"v": 2}, w1.cas_at_read)
    landed = cas_of(store, "k1")

    report = new_sweeper(store, txn_log).run_once()

    assert report.committed == 1
    assert cas_of(store, "k1") == landed
    assert txn_log.read("a" * 32).writes[0].applied_cas == landed


def test_sweep_is_idempotent():
    store, txn_log = MemoryKVStore(), MemoryTransactionLog()
    seed(store, "k1", {"v": 1})
    w1 = replace_write(store, "k1", {"v": 2})
    staged_entry(txn_log, [w1])
    sweeper = new_sweeper(store, txn_log)

    sweeper.run_once()
    before = snapshot(store, ["k1"])
    report = sweeper.run_once()

    assert report == SweepReport()
    assert snapshot(store, ["k1"]) == before


def test_resolve_of_terminal_entry_is_noop():
    store, txn_log = MemoryKVStore(), MemoryTransactionLog()
    entry = staged_entry(txn_log, [], state=AttemptState.COMMITTED)

    assert new_sweeper(store, txn_log).resolve(entry) is None
    assert txn_log.read(entry.id).state is AttemptState.COMMITTED


def test_entry_within_grace_is_left_alone():
    store, txn_log = MemoryKVStore(), MemoryTransactionLog()
    seed(store, "k1", {"v": 1})
    w1 = replace_write(store, "k1", {"v": 2})
    staged_entry(txn_log, [w1], deadline=time.time())

    report = new_sweeper(store, txn_log, cleanup_grace_s=60.0).run_once()

    assert report.scanned == 0
    assert value_of(store, "k1") == {"v": 1}
    assert txn_log.read("a" * 32).state is AttemptState.STAGED


def test_unreachable_store_skips_entry():
    inner, txn_log = MemoryKVStore(), MemoryTransactionLog()
    seed(inner, "k1", {"v": 1})
    w1 = replace_write(inner, "k1", {"v": 2})
    staged_entry(txn_log, [w1])

    report = new_sweeper(DownKVStore(inner), txn_log).run_once()

    assert report.skipped == 1
    assert txn_log.read("a" * 32).state is AttemptState.STAGED


def test_old_terminal_entries_are_reaped():
    store, txn_log = MemoryKVStore(), MemoryTransactionLog()
    staged_entry(txn_log, [], state=AttemptState.COMMITTED, attempt_id="old")
    sweeper = new_sweeper(store, txn_log, log_retention_s=10.0)

    assert sweeper.run_once().reaped == 0
    report = sweeper.run_once(now=time.time() + 60)

    assert report.reaped == 1
    assert txn_log.read("old") is None


def test_background_thread_resolves_entries():
    store, txn_log = MemoryKVStore(), MemoryTransactionLog()
    staged_entry(txn_log, [], state=AttemptState.PENDING)
    sweeper = new_sweeper(store, txn_log, cleanup_interval_s=0.01)

    sweeper.start()
    try:
        assert sweeper.running
        for _ in range(200):
            if txn_log.read("a" * 32).state.terminal:
                break
            time.sleep(0.01)
    finally:
        sweeper.stop()

    assert not sweeper.running
    assert txn_log.read("a" * 32).state is AttemptState.ROLLED_BACK
