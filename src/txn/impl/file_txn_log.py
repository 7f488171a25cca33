import copy
import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, Iterator, Optional

from src.txn.base.txn_log import TransactionLog, TxnLogEntry

logger = logging.getLogger(__name__)


class FileTransactionLog(TransactionLog):
    """
    Transaction log persisted to a single JSON state file.

    State file schema:
    {
      "entries": {
        "<attempt id>": {"id": ..., "state": "STAGED", "deadline": ..., "writes": [...], ...},
        ...
      }
    }

    The file is loaded once at construction and rewritten atomically on
    every change, so a crash leaves either the old or the new state.
    """

    def __init__(self, path: str):
        self.path = path
        self.state_dir = os.path.dirname(path) or "."
        self._mutex = threading.Lock()
        self._entries: Dict[str, dict] = self._load_state_file()["entries"]
        logger.info("FileTransactionLog loaded: path=%s entries=%d", path, len(self._entries))

    # =========================================================
    # Internal helper methods
    # =========================================================

    def _ensure_state_dir(self):
        os.makedirs(self.state_dir, exist_ok=True)

    def _load_state_file(self) -> Dict[str, Any]:
        self._ensure_state_dir()
        if not os.path.exists(self.path):
            return {"entries": {}}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                obj = json.load(f)
        except (OSError, ValueError) as e:
            logger.exception("TxnLog state load failed, treat as empty. path=%s err=%s", self.path, e)
            return {"entries": {}}
        if not isinstance(obj, dict) or not isinstance(obj.get("entries"), dict):
            return {"entries": {}}
        return obj

    def _atomic_write_json(self, obj: Dict[str, Any]):
        """
        Atomic write: write temp -> fsync -> replace.
        """
        self._ensure_state_dir()
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp_txn_log_", dir=self.state_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(obj, f, ensure_ascii=False, separators=(",", ":"))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def _flush(self):
        self._atomic_write_json({"entries": self._entries})

    # =========================================================
    # TransactionLog
    # =========================================================

    def write(self, entry: TxnLogEntry) -> bool:
        with self._mutex:
            current = self._entries.get(entry.id)
            if current is not None and TxnLogEntry.from_dict(current).state.terminal:
                logger.warning(
                    "TxnLog.write refused: id=%s is %s, requested %s",
                    entry.id, current["state"], entry.state.value,
                )
                return False
            previous = current
            self._entries[entry.id] = copy.deepcopy(entry.to_dict())
            try:
                self._flush()
            except OSError:
                # keep memory and disk in agreement
                if previous is None:
                    self._entries.pop(entry.id, None)
                else:
                    self._entries[entry.id] = previous
                raise
            return True

    def read(self, attempt_id: str) -> Optional[TxnLogEntry]:
        with self._mutex:
            d = self._entries.get(attempt_id)
        return TxnLogEntry.from_dict(copy.deepcopy(d)) if d is not None else None

    def scan_stale(self, threshold: float) -> Iterator[TxnLogEntry]:
        with self._mutex:
            ids = sorted(self._entries.keys())
        for attempt_id in ids:
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
            if self._entries.pop(attempt_id, None) is not None:
                self._flush()
