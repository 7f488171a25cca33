"""
Walk-through of the transaction API.

Upserts a document, then doubles one of its fields inside a transaction.
If another writer changes the document between the read and the commit,
the attempt rolls back and the function runs again.

    python -m scripts.txn_example                         # in-process store
    python -m scripts.txn_example http://127.0.0.1:8101   # kv service
"""

import logging
import sys
from dataclasses import dataclass

from src.kv.impl.http_kv_store import HttpKVStore
from src.kv.impl.memory_kv_store import MemoryKVStore
from src.kv.base.document import to_content
from src.txn.coordinator import TransactionCoordinator
from src.txn.impl.memory_txn_log import MemoryTransactionLog

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("txn_example")


@dataclass
class MyData:
    a_string: str
    an_int: int


def main(argv):
    store = HttpKVStore(argv[1]) if len(argv) > 1 else MemoryKVStore()

    res = store.upsert("imarandomkey", to_content(MyData("foo", 3)))
    logger.info("upsert result: ok=%s cas=%s", res.ok, res.value)
    if not res.ok:
        return 1

    with TransactionCoordinator(store, MemoryTransactionLog()) as txns:
        def double_it(ctx):
            doc = ctx.get("imarandomkey")
            data = doc.content_as(MyData)
            data.an_int *= 2
            ctx.replace("imarandomkey", data)

        result = txns.run(double_it)

    logger.info("new CAS for doc: %s (attempts=%d)", result.cas["imarandomkey"], result.attempts)
    logger.info("document now: %s", store.get("imarandomkey").value.content())
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
