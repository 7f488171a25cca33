import json
import logging
import threading
import uuid
from typing import Any, Optional

import pymysql

from src.kv.base.document import Document
from src.kv.base.err_code import ErrCode, KVResult
from src.kv.base.kv_store import KVStore

logger = logging.getLogger("kv")


def new_cas() -> int:
    # opaque 63-bit token; fits a signed BIGINT
    return uuid.uuid4().int >> 65


class MySQLKVStore(KVStore):
    def __init__(
        self,
        conn: pymysql.connections.Connection,
        table: str = "KV_DOCS",
    ):
        """
        conn   : MySQL connection (autocommit, DictCursor)
        table  : document table with columns doc_key, doc_value, cas
        """
        self.conn = conn
        self.table = table
        # one pymysql connection is not safe to share between threads
        self._mutex = threading.Lock()

        logger.info("KVStore initialized: backend=mysql table=%s", table)

    def create_table(self) -> None:
        sql = f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                doc_key   VARCHAR(250) NOT NULL PRIMARY KEY,
                doc_value LONGTEXT     NOT NULL,
                cas       BIGINT       NOT NULL
            )
        """
        with self._mutex, self.conn.cursor() as cur:
            cur.execute(sql)

    # =========================================================
    # Read
    # =========================================================
    def get(self, key: str) -> KVResult:
        sql = f"SELECT doc_value, cas FROM {self.table} WHERE doc_key = %s"
        try:
            with self._mutex, self.conn.cursor() as cur:
                cur.execute(sql, (key,))
                row = cur.fetchone()
        except pymysql.MySQLError as e:
            logger.error("KV.get failed: key=%s err=%s", key, e)
            return KVResult(ok=False, err=ErrCode.IO_ERROR)

        if row is None:
            return KVResult(ok=False, err=ErrCode.KEY_NOT_FOUND)
        doc = Document(key=key, value=json.loads(row["doc_value"]), cas=int(row["cas"]))
        return KVResult(ok=True, value=doc)

    # =========================================================
    # Write
    # =========================================================
    def put(self, key: str, value: Any, expected_cas: Optional[int]) -> KVResult:
        if not key:
            return KVResult(ok=False, err=ErrCode.INVALID_ARGUMENT)
        cas = new_cas()
        body = json.dumps(value, ensure_ascii=False)

        try:
            with self._mutex, self.conn.cursor() as cur:
                if expected_cas is None:
                    try:
                        cur.execute(
                            f"INSERT INTO {self.table} (doc_key, doc_value, cas) VALUES (%s, %s, %s)",
                            (key, body, cas),
                        )
                    except pymysql.err.IntegrityError:
                        logger.debug("KV.put create-only conflict: key=%s", key)
                        return KVResult(ok=False, err=ErrCode.CAS_MISMATCH)
                else:
                    cur.execute(
                        f"UPDATE {self.table} SET doc_value = %s, cas = %s "
                        f"WHERE doc_key = %s AND cas = %s",
                        (body, cas, key, expected_cas),
                    )
                    if cur.rowcount != 1:
                        logger.debug("KV.put cas mismatch: key=%s expected=%s", key, expected_cas)
                        return KVResult(ok=False, err=ErrCode.CAS_MISMATCH)
        except pymysql.MySQLError as e:
            logger.error("KV.put failed: key=%s err=%s", key, e)
            return KVResult(ok=False, err=ErrCode.IO_ERROR)

        return KVResult(ok=True, value=cas)

    def remove(self, key: str, expected_cas: int) -> KVResult:
        try:
            with self._mutex, self.conn.cursor() as cur:
                cur.execute(
                    f"DELETE FROM {self.table} WHERE doc_key = %s AND cas = %s",
                    (key, expected_cas),
                )
                if cur.rowcount == 1:
                    return KVResult(ok=True)
                cur.execute(f"SELECT 1 FROM {self.table} WHERE doc_key = %s", (key,))
                exists = cur.fetchone() is not None
        except pymysql.MySQLError as e:
            logger.error("KV.remove failed: key=%s err=%s", key, e)
            return KVResult(ok=False, err=ErrCode.IO_ERROR)

        if not exists:
            return KVResult(ok=False, err=ErrCode.KEY_NOT_FOUND)
        return KVResult(ok=False, err=ErrCode.CAS_MISMATCH)

    def upsert(self, key: str, value: Any) -> KVResult:
        if not key:
            return KVResult(ok=False, err=ErrCode.INVALID_ARGUMENT)
        cas = new_cas()
        sql = f"""
            INSERT INTO {self.table} (doc_key, doc_value, cas)
            VALUES (%s, %s, %s)
            ON DUPLICATE KEY UPDATE doc_value = VALUES(doc_value), cas = VALUES(cas)
        """
        try:
            with self._mutex, self.conn.cursor() as cur:
                cur.execute(sql, (key, json.dumps(value, ensure_ascii=False), cas))
        except pymysql.MySQLError as e:
            logger.error("KV.upsert failed: key=%s err=%s", key, e)
            return KVResult(ok=False, err=ErrCode.IO_ERROR)
        return KVResult(ok=True, value=cas)
