import time

import pytest

from src.kv.impl.memory_kv_store import MemoryKVStore
from src.txn.attempt_context import AttemptContext
from src.txn.base.attempt import Attempt, WriteOp
from src.txn.exceptions import (
    CasMismatchError,
    DocumentExistsError,
    DocumentNotFoundError,
    NotReadBeforeWriteError,
    TransactionExpiredError,
)
from txn_helpers import SlowKVStore, cas_of, seed, value_of


def new_ctx(store=None, timeout=5.0):
    store = store if store is not None else MemoryKVStore()
    return AttemptContext(store, Attempt(deadline=time.time() + timeout)), store


def test_get_records_first_read_cas():
    ctx, store = new_ctx()
    cas = seed(store, "doc1", {"num": 0})

    doc = ctx.get("doc1")
    assert doc.content() == {"num": 0}
    assert ctx.attempt.read_set == {"doc1": cas}

    ctx.get("doc1")
    assert ctx.attempt.read_set == {"doc1": cas}


def test_second_read_after_foreign_write_conflicts():
    ctx, store = new_ctx()
    cas = seed(store, "doc1", {"num": 0})
    ctx.get("doc1")

    store.put("doc1", {"num": 5}, cas)

    with pytest.raises(CasMismatchError) as exc:
        ctx.get("doc1")
    assert exc.value.expected_cas == cas
    assert ctx.attempt.read_set == {"doc1": cas}


def test_second_read_after_foreign_remove_conflicts():
    ctx, store = new_ctx()
    cas = seed(store, "doc1", {"num": 0})
    ctx.get("doc1")

    store.remove("doc1", cas)

    with pytest.raises(CasMismatchError) as exc:
        ctx.get("doc1")
    assert exc.value.expected_cas == cas
    assert exc.value.actual_cas is None


def test_get_missing_raises_not_found():
    ctx, _ = new_ctx()
    with pytest.raises(DocumentNotFoundError):
        ctx.get("nope")
    assert ctx.attempt.read_set == {}


def test_replace_requires_prior_read():
    ctx, store = new_ctx()
    seed(store, "doc1", {"num": 0})
    with pytest.raises(NotReadBeforeWriteError):
        ctx.replace("doc1", {"num": 1})
    assert ctx.attempt.write_set == {}


def test_remove_requires_prior_read():
    ctx, store = new_ctx()
    seed(store, "doc1", {"num": 0})
    with pytest.raises(NotReadBeforeWriteError):
        ctx.remove("doc1")


def test_replace_is_staged_not_visible():
    ctx, store = new_ctx()
    cas = seed(store, "doc1", {"num": 0})

    ctx.get("doc1")
    ctx.replace("doc1", {"num": 1})

    w = ctx.attempt.write_set["doc1"]
    assert w.op is WriteOp.REPLACE
    assert w.cas_at_read == cas
    assert w.before == {"num": 0}
    assert value_of(store, "doc1") == {"num": 0}
    assert cas_of(store, "doc1") == cas


def test_read_your_own_writes():
    ctx, store = new_ctx()
    seed(store, "doc1", {"num": 0})
    ctx.get("doc1")
    ctx.replace("doc1", {"num": 1})
    assert ctx.get("doc1").content() == {"num": 1}

    ctx.insert("doc2", {"num": 2})
    assert ctx.get("doc2").content() == {"num": 2}


def test_insert_existing_document_fails():
    ctx, store = new_ctx()
    seed(store, "doc1", {"num": 0})
    with pytest.raises(DocumentExistsError):
        ctx.insert("doc1", {"num": 1})


def test_insert_twice_in_attempt_fails():
    ctx, _ = new_ctx()
    ctx.insert("doc1", {"num": 0})
    with pytest.raises(DocumentExistsError):
        ctx.insert("doc1", {"num": 1})


def test_insert_then_remove_stages_nothing():
    ctx, store = new_ctx()
    ctx.insert("doc1", {"num": 0})
    ctx.remove("doc1")
    assert ctx.attempt.write_set == {}
    assert value_of(store, "doc1") is None


def test_removed_key_reads_as_missing():
    ctx, store = new_ctx()
    seed(store, "doc1", {"num": 0})
    ctx.get("doc1")
    ctx.remove("doc1")

    with pytest.raises(DocumentNotFoundError):
        ctx.get("doc1")
    with pytest.raises(DocumentNotFoundError):
        ctx.replace("doc1", {"num": 1})
    assert value_of(store, "doc1") == {"num": 0}


def test_remove_then_insert_becomes_replace():
    ctx, store = new_ctx()
    cas = seed(store, "doc1", {"num": 0})
    ctx.get("doc1")
    ctx.remove("doc1")
    ctx.insert("doc1", {"num": 9})

    w = ctx.attempt.write_set["doc1"]
    assert w.op is WriteOp.REPLACE
    assert w.cas_at_read == cas
    assert w.value == {"num": 9}


def test_expired_deadline_aborts_store_call():
    store = SlowKVStore(MemoryKVStore(), delay=0.02)
    seed(store, "doc1", {"num": 0})
    ctx, _ = new_ctx(store, timeout=0.001)

    with pytest.raises(TransactionExpiredError):
        ctx.get("doc1")
    assert ctx.attempt.read_set == {}
