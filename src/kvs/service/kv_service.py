import logging

import pymysql
from fastapi import FastAPI

from src.kv.base.kv_store import KVStore
from src.kv.impl.memory_kv_store import MemoryKVStore
from src.kv.impl.mysql_kv_store import MySQLKVStore
from src.kvs.base.err_handle import handle_kv_result
from src.kvs.config import KVServiceConfig, get_config
from src.kvs.models.models import CasResponse, DocumentResponse, PutRequest, UpsertRequest

logger = logging.getLogger(__name__)


def build_store(config: KVServiceConfig) -> KVStore:
    if config.backend == "mysql":
        conn = pymysql.connect(
            host=config.mysql_host,
            port=config.mysql_port,
            user=config.mysql_user,
            password=config.mysql_password,
            database=config.mysql_database,
            autocommit=True,
            cursorclass=pymysql.cursors.DictCursor,
        )
        store = MySQLKVStore(conn, table=config.mysql_table)
        store.create_table()
        return store
    if config.backend != "memory":
        raise ValueError(f"unknown KV backend: {config.backend}")
    return MemoryKVStore()


def create_app(store: KVStore) -> FastAPI:
    app = FastAPI(title="KV Store Service")
    app.state.store = store

    # -----------------------------
    # Document APIs
    # -----------------------------

    # registered before the catch-all key routes
    @app.post("/docs/{key:path}/upsert", response_model=CasResponse)
    def upsert_doc(key: str, req: UpsertRequest):
        cas = handle_kv_result(store.upsert(key, req.value))
        logger.debug("upsert: key=%s cas=%s", key, cas)
        return CasResponse(cas=cas)

    @app.get("/docs/{key:path}", response_model=DocumentResponse)
    def get_doc(key: str):
        doc = handle_kv_result(store.get(key))
        return DocumentResponse(key=doc.key, value=doc.value, cas=doc.cas)

    @app.put("/docs/{key:path}", response_model=CasResponse)
    def put_doc(key: str, req: PutRequest):
        cas = handle_kv_result(store.put(key, req.value, req.expected_cas))
        logger.debug("put: key=%s expected=%s cas=%s", key, req.expected_cas, cas)
        return CasResponse(cas=cas)

    @app.delete("/docs/{key:path}")
    def delete_doc(key: str, expected_cas: int):
        handle_kv_result(store.remove(key, expected_cas))
        return {"ok": True}

    # -----------------------------
    # Ops APIs
    # -----------------------------

    @app.get("/health")
    def health():
        return {"status": "ok", "backend": type(store).__name__}

    return app


# port = 8101
app = create_app(build_store(get_config()))
