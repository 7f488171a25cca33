from dataclasses import dataclass

from fastapi.testclient import TestClient

from src.kv.base.err_code import ErrCode
from src.kv.impl.http_kv_store import HttpKVStore
from src.kv.impl.memory_kv_store import MemoryKVStore
from src.kvs.service.kv_service import create_app


def new_http_store():
    backing = MemoryKVStore()
    client = TestClient(create_app(backing))
    return HttpKVStore("http://testserver", client), backing


@dataclass
class MyData:
    a_string: str
    an_int: int


def test_health():
    client = TestClient(create_app(MemoryKVStore()))
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_get_missing_maps_to_key_not_found():
    store, _ = new_http_store()
    r = store.get("missing")
    assert not r.ok
    assert r.err == ErrCode.KEY_NOT_FOUND


def test_put_get_roundtrip_over_http():
    store, backing = new_http_store()
    cas = store.put("user::1", {"name": "alice"}, None).value

    r = store.get("user::1")
    assert r.ok
    assert r.value.value == {"name": "alice"}
    assert r.value.cas == cas
    assert backing.get("user::1").value.cas == cas


def test_cas_mismatch_over_http():
    store, _ = new_http_store()
    cas = store.put("doc1", {"num": 0}, None).value
    store.put("doc1", {"num": 1}, cas)

    r = store.put("doc1", {"num": 2}, cas)
    assert r.err == ErrCode.CAS_MISMATCH
    assert store.put("doc1", {}, None).err == ErrCode.CAS_MISMATCH


def test_remove_over_http():
    store, _ = new_http_store()
    cas = store.put("doc1", {"num": 0}, None).value

    assert store.remove("doc1", cas + 1).err == ErrCode.CAS_MISMATCH
    assert store.remove("doc1", cas).ok
    assert store.remove("doc1", cas).err == ErrCode.KEY_NOT_FOUND


def test_upsert_and_content_as_over_http():
    store, _ = new_http_store()
    store.upsert("imarandomkey", {"a_string": "foo", "an_int": 3})
    r = store.upsert("imarandomkey", {"a_string": "foo", "an_int": 6})
    assert r.ok

    data = store.get("imarandomkey").value.content_as(MyData)
    assert data == MyData("foo", 6)


def test_unreachable_service_is_io_error():
    store = HttpKVStore("http://127.0.0.1:9")
    r = store.get("doc1")
    assert not r.ok
    assert r.err == ErrCode.IO_ERROR
    assert store.check_health() is False
