"""
Builds the document store adapter and the transaction log named by TxnConfig.
"""

import logging

import httpx
import pymysql

from src.kv.base.kv_store import KVStore
from src.kv.impl.http_kv_store import HttpKVStore
from src.kv.impl.memory_kv_store import MemoryKVStore
from src.kv.impl.mysql_kv_store import MySQLKVStore
from src.txn.base.txn_log import TransactionLog
from src.txn.config import TxnConfig
from src.txn.impl.file_txn_log import FileTransactionLog
from src.txn.impl.memory_txn_log import MemoryTransactionLog
from src.txn.impl.mysql_txn_log import MySQLTransactionLog

logger = logging.getLogger(__name__)


def new_mysql_conn(config: TxnConfig):
    return pymysql.connect(
        host=config.mysql_host,
        port=config.mysql_port,
        user=config.mysql_user,
        password=config.mysql_password,
        database=config.mysql_database,
        autocommit=True,
        cursorclass=pymysql.cursors.DictCursor,
    )


def build_store(config: TxnConfig) -> KVStore:
    backend = config.kv_backend
    logger.info("Building document store: backend=%s", backend)
    if backend == "memory":
        return MemoryKVStore()
    if backend == "mysql":
        store = MySQLKVStore(new_mysql_conn(config), table=config.mysql_kv_table)
        store.create_table()
        return store
    if backend == "http":
        timeout = httpx.Timeout(
            config.http_read_timeout,
            connect=config.http_connect_timeout,
        )
        return HttpKVStore(config.kv_base_url, httpx.Client(timeout=timeout))
    raise ValueError(f"unknown kv backend: {backend}")


def build_txn_log(config: TxnConfig) -> TransactionLog:
    backend = config.txn_log_backend
    logger.info("Building transaction log: backend=%s", backend)
    if backend == "memory":
        return MemoryTransactionLog()
    if backend == "file":
        return FileTransactionLog(config.txn_log_path)
    if backend == "mysql":
        txn_log = MySQLTransactionLog(new_mysql_conn(config), table=config.mysql_log_table)
        txn_log.create_table()
        return txn_log
    raise ValueError(f"unknown transaction log backend: {backend}")
