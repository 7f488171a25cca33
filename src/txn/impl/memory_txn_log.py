import copy
import logging
import threading
from typing import Dict, Iterator, Optional

from src.txn.base.txn_log import TransactionLog, TxnLogEntry

logger = logging.getLogger(__name__)


class MemoryTransactionLog(TransactionLog):
    """
    In-process transaction log.

    Entries are stored as plain dicts so callers never share mutable state
    with the log.
    """

    def __init__(self):
        self._entries: Dict[str, dict] = {}
        self._mutex = threading.Lock()

    def write(self, entry: TxnLogEntry) -> bool:
        with self._mutex:
            current = self._entries.get(entry.id)
            if current is not None:
                prev = TxnLogEntry.from_dict(current)
                if prev.state.terminal:
                    logger.warning(
                        "TxnLog.write refused: id=%s is %s, requested %s",
                        entry.id, prev.state.value, entry.state.value,
                    )
                    return False
            self._entries[entry.id] = copy.deepcopy(entry.to_dict())
            return True

    def read(self, attempt_id: str) -> Optional[TxnLogEntry]:
        with self._mutex:
            d = self._entries.get(attempt_id)
        return TxnLogEntry.from_dict(copy.deepcopy(d)) if d is not None else None

    def scan_stale(self, threshold: float) -> Iterator[TxnLogEntry]:
        with self._mutex:
            ids = sorted(self._entries.keys())
        for attempt_id in ids:
            # re-read: the entry may have been resolved since the snapshot
            entry = self.read(attempt_id)
            if entry is None or entry.state.terminal:
                continue
            if entry.deadline < threshold:
                yield entry

    def scan_terminal(self, older_than: float) -> Iterator[TxnLogEntry]:
        with self._mutex:
            ids = sorted(self._entries.keys())
        for attempt_id in ids:
            entry = self.read(attempt_id)
            if entry is not None and entry.state.terminal and entry.updated_at < older_than:
                yield entry

    def remove(self, attempt_id: str) -> None:
        with self._mutex:
            self._entries.pop(attempt_id, None)

    def __len__(self):
        with self._mutex:
            return len(self._entries)
