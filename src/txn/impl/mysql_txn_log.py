import json
import logging
import threading
from typing import Iterator, Optional

import pymysql

from src.txn.base.attempt import TERMINAL_STATES
from src.txn.base.txn_log import TransactionLog, TxnLogEntry

logger = logging.getLogger(__name__)

_TERMINAL = tuple(sorted(s.value for s in TERMINAL_STATES))


class MySQLTransactionLog(TransactionLog):
    def __init__(
        self,
        conn: pymysql.connections.Connection,
        table: str = "TXN_LOG",
        page_size: int = 100,
    ):
        """
        conn       : MySQL connection (autocommit, DictCursor)
        table      : log table (attempt_id, state, deadline, updated_at, body)
        page_size  : rows fetched per round trip while scanning
        """
        self.conn = conn
        self.table = table
        self.page_size = page_size
        self._mutex = threading.Lock()

        logger.info("TransactionLog initialized: backend=mysql table=%s", table)

    def create_table(self) -> None:
        sql = f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                attempt_id VARCHAR(64) NOT NULL PRIMARY KEY,
                state      VARCHAR(16) NOT NULL,
                deadline   DOUBLE      NOT NULL,
                updated_at DOUBLE      NOT NULL,
                body       LONGTEXT    NOT NULL,
                INDEX idx_state_deadline (state, deadline)
            )
        """
        with self._mutex, self.conn.cursor() as cur:
            cur.execute(sql)

    def write(self, entry: TxnLogEntry) -> bool:
        body = json.dumps(entry.to_dict(), ensure_ascii=False)
        placeholders = ", ".join(["%s"] * len(_TERMINAL))
        with self._mutex, self.conn.cursor() as cur:
            # never move an entry out of a terminal state
            cur.execute(
                f"UPDATE {self.table} SET state = %s, deadline = %s, updated_at = %s, body = %s "
                f"WHERE attempt_id = %s AND state NOT IN ({placeholders})",
                (entry.state.value, entry.deadline, entry.updated_at, body, entry.id, *_TERMINAL),
            )
            if cur.rowcount == 1:
                return True
            try:
                cur.execute(
                    f"INSERT INTO {self.table} (attempt_id, state, deadline, updated_at, body) "
                    f"VALUES (%s, %s, %s, %s, %s)",
                    (entry.id, entry.state.value, entry.deadline, entry.updated_at, body),
                )
            except pymysql.err.IntegrityError:
                # rowcount counts changed rows only; an identical rewrite lands here too
                cur.execute(f"SELECT state FROM {self.table} WHERE attempt_id = %s", (entry.id,))
                row = cur.fetchone()
                if row is not None and row["state"] not in _TERMINAL:
                    return True
                logger.warning(
                    "TxnLog.write refused: id=%s already terminal, requested %s",
                    entry.id, entry.state.value,
                )
                return False
        return True

    def read(self, attempt_id: str) -> Optional[TxnLogEntry]:
        with self._mutex, self.conn.cursor() as cur:
            cur.execute(f"SELECT body FROM {self.table} WHERE attempt_id = %s", (attempt_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return TxnLogEntry.from_dict(json.loads(row["body"]))

    def _scan(self, where: str, args: tuple) -> Iterator[TxnLogEntry]:
        last_id = ""
        while True:
            with self._mutex, self.conn.cursor() as cur:
                cur.execute(
                    f"SELECT attempt_id, body FROM {self.table} "
                    f"WHERE {where} AND attempt_id > %s ORDER BY attempt_id LIMIT %s",
                    (*args, last_id, self.page_size),
                )
                rows = cur.fetchall()
            if not rows:
                return
            for row in rows:
                yield TxnLogEntry.from_dict(json.loads(row["body"]))
            last_id = rows[-1]["attempt_id"]

    def scan_stale(self, threshold: float) -> Iterator[TxnLogEntry]:
        placeholders = ", ".join(["%s"] * len(_TERMINAL))
        return self._scan(
            f"deadline < %s AND state NOT IN ({placeholders})",
            (threshold, *_TERMINAL),
        )

    def scan_terminal(self, older_than: float) -> Iterator[TxnLogEntry]:
        placeholders = ", ".join(["%s"] * len(_TERMINAL))
        return self._scan(
            f"updated_at < %s AND state IN ({placeholders})",
            (older_than, *_TERMINAL),
        )

    def remove(self, attempt_id: str) -> None:
        with self._mutex, self.conn.cursor() as cur:
            cur.execute(f"DELETE FROM {self.table} WHERE attempt_id = %s", (attempt_id,))
