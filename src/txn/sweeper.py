import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from src.kv.base.kv_store import KVStore
from src.txn.base.attempt import AttemptState
from src.txn.base.txn_log import TransactionLog, TxnLogEntry
from src.txn.config import TxnConfig, get_config
from src.txn.exceptions import StoreUnavailableError
from src.txn.staging import WriteStatus, apply_write, inspect_write, revert_write

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    scanned: int = 0
    committed: int = 0
    rolled_back: int = 0
    skipped: int = 0
    reaped: int = 0


class CleanupSweeper:
    """
    Resolves attempts abandoned by their coordinator.

    An entry is stale once its deadline lies more than ``grace_s`` in the
    past and it is still PENDING or STAGED. A STAGED entry whose writes are
    all either applied or still applicable is rolled forward; anything else
    is rolled back. The sweeper shares nothing with live coordinators but
    the transaction log and the store, and resolving an entry twice has the
    same effect as resolving it once.
    """

    def __init__(
        self,
        store: KVStore,
        txn_log: TransactionLog,
        config: Optional[TxnConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.txn_log = txn_log
        self.config = config or get_config()
        self._clock = clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # =========================================================
    # Scheduling
    # =========================================================

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="txn-cleanup", daemon=True)
        self._thread.start()
        logger.info("Cleanup sweeper started: interval=%ss grace=%ss",
                    self.config.cleanup_interval_s, self.config.cleanup_grace_s)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Cleanup sweeper stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop.wait(self.config.cleanup_interval_s):
            try:
                self.run_once()
            except Exception:
                logger.exception("Cleanup sweep failed")

    # =========================================================
    # Sweeping
    # =========================================================

    def run_once(self, now: Optional[float] = None) -> SweepReport:
        now = self._clock() if now is None else now
        report = SweepReport()
        for entry in self.txn_log.scan_stale(now - self.config.cleanup_grace_s):
            report.scanned += 1
            try:
                outcome = self.resolve(entry)
            except StoreUnavailableError as e:
                logger.warning("Cleanup skipped: attempt=%s err=%s", entry.id, e.details)
                outcome = None
            if outcome is AttemptState.COMMITTED:
                report.committed += 1
            elif outcome is AttemptState.ROLLED_BACK:
                report.rolled_back += 1
            else:
                report.skipped += 1

        if self.config.log_retention_s > 0:
            for entry in self.txn_log.scan_terminal(now - self.config.log_retention_s):
                self.txn_log.remove(entry.id)
                report.reaped += 1

        if report.scanned or report.reaped:
            logger.info("Cleanup sweep done: %s", report)
        return report

    def resolve(self, entry: TxnLogEntry) -> Optional[AttemptState]:
        """
        Drive one stale entry to a terminal state.

        Returns the state written, or None if the entry was already terminal
        or changed under us.
        """
        if entry.state.terminal:
            return None

        if entry.state is AttemptState.STAGED and not entry.rollback_only:
            statuses = [inspect_write(self.store, w) for w in entry.writes]
            if WriteStatus.FOREIGN not in statuses and self._roll_forward(entry):
                return self._mark(entry, AttemptState.COMMITTED)

        self._roll_back(entry)
        return self._mark(entry, AttemptState.ROLLED_BACK)

    def _roll_forward(self, entry: TxnLogEntry) -> bool:
        for w in entry.writes:
            if w.applied:
                continue
            res = apply_write(self.store, w)
            if not res.ok:
                logger.warning(
                    "Cleanup roll-forward lost race: attempt=%s key=%s err=%s",
                    entry.id, w.key, res.err.name,
                )
                return False
            entry.updated_at = self._clock()
            self.txn_log.write(entry)
        return True

    def _roll_back(self, entry: TxnLogEntry) -> None:
        for w in reversed(entry.writes):
            if not w.applied or inspect_write(self.store, w) is not WriteStatus.APPLIED:
                continue
            res = revert_write(self.store, w)
            if not res.ok:
                logger.warning(
                    "Cleanup compensation failed: attempt=%s key=%s err=%s",
                    entry.id, w.key, res.err.name,
                )

    def _mark(self, entry: TxnLogEntry, state: AttemptState) -> Optional[AttemptState]:
        entry.state = state
        entry.updated_at = self._clock()
        if not self.txn_log.write(entry):
            return None
        logger.info("Cleanup resolved: attempt=%s state=%s writes=%d", entry.id, state.value, len(entry.writes))
        return state
