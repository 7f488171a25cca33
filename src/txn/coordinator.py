import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from src.kv.base.err_code import ErrCode
from src.kv.base.kv_store import KVStore
from src.txn.attempt_context import AttemptContext
from src.txn.base.attempt import Attempt, AttemptState, StagedWrite
from src.txn.base.txn_log import TransactionLog, TxnLogEntry
from src.txn.config import TxnConfig, get_config
from src.txn.exceptions import (
    CasMismatchError,
    CommitAmbiguousError,
    StoreUnavailableError,
    TransactionExpiredError,
    TransactionFailedError,
)
from src.txn.staging import apply_write, is_conflict, revert_write
from src.txn.sweeper import CleanupSweeper

logger = logging.getLogger(__name__)


@dataclass
class CommitResult:
    attempt_id: str
    attempts: int
    state: AttemptState = AttemptState.COMMITTED
    cas: Dict[str, Optional[int]] = field(default_factory=dict)   # None for removed keys


class TransactionCoordinator:
    """
    Runs user logic as an optimistic multi-document transaction.

    Each attempt re-executes user logic with a fresh AttemptContext. At
    commit the read set is validated against the store, the write set is
    recorded in the transaction log as STAGED and then applied key by key
    with CAS fencing. A conflict anywhere before the final log write rolls
    the attempt back and starts a new one, until the attempt budget or the
    deadline runs out. If cleanup resolved the entry while this attempt
    stalled, its logged outcome is reported instead.
    """

    def __init__(
        self,
        store: KVStore,
        txn_log: TransactionLog,
        config: Optional[TxnConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.txn_log = txn_log
        self.config = config or get_config()
        self._sleep = sleep
        self._sweeper = None

        logger.info(
            "TransactionCoordinator initialized: store=%s log=%s max_attempts=%s timeout=%ss",
            type(store).__name__,
            type(txn_log).__name__,
            self.config.max_attempts,
            self.config.timeout_s,
        )

    # =========================================================
    # Public API
    # =========================================================

    def run(
        self,
        user_fn: Callable[[AttemptContext], None],
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> CommitResult:
        """
        Run user_fn transactionally.

        Args:
            user_fn: Callable receiving an AttemptContext. It may be called
                more than once and must not keep state between calls.
            max_attempts: Attempt budget (defaults to config.max_attempts)
            timeout: Wall-clock budget in seconds (defaults to config.timeout_s)

        Returns:
            CommitResult of the attempt that committed

        Raises:
            TransactionExpiredError: deadline or attempt budget exhausted
            TransactionFailedError: user logic or the store failed; nothing applied
            CommitAmbiguousError: the commit may or may not have applied
            ValueError: max_attempts is less than 1
        """
        max_attempts = self.config.max_attempts if max_attempts is None else max_attempts
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        timeout = self.config.timeout_s if timeout is None else timeout
        deadline = time.time() + timeout
        last_conflict: Optional[CasMismatchError] = None

        for n in range(1, max_attempts + 1):
            attempt = Attempt(deadline=deadline)
            try:
                self._log(attempt, AttemptState.PENDING)
                user_fn(AttemptContext(self.store, attempt))
                return self._commit(attempt, n)
            except CasMismatchError as e:
                last_conflict = e
                exhausted = n == max_attempts or attempt.expired()
                self._finish(attempt, AttemptState.EXPIRED if exhausted else AttemptState.ROLLED_BACK)
                if exhausted:
                    break
                logger.info(
                    "Txn conflict, retrying: attempt=%s n=%d key=%s",
                    attempt.id, n, e.key,
                )
            except TransactionExpiredError as e:
                self._finish(attempt, AttemptState.EXPIRED)
                logger.warning("Txn expired: attempt=%s n=%d", attempt.id, n)
                raise TransactionExpiredError(
                    details=e.details, attempt_id=attempt.id
                ) from e
            except CommitAmbiguousError:
                raise
            except Exception as e:
                self._finish(attempt, AttemptState.ROLLED_BACK)
                logger.warning(
                    "Txn failed: attempt=%s n=%d error=%s", attempt.id, n, e,
                    exc_info=True,
                )
                raise TransactionFailedError(cause=e, attempt_id=attempt.id) from e

            pause = min(self.config.backoff_max_s, self.config.backoff_base_s * (2 ** (n - 1)))
            pause = min(pause, max(0.0, deadline - time.time()))
            if pause > 0:
                self._sleep(pause)

        details = f"gave up after {n} attempt(s)"
        if last_conflict is not None:
            details += f", last conflict on {last_conflict.key}"
        logger.warning("Txn expired: attempt=%s %s", attempt.id, details)
        raise TransactionExpiredError(details=details, attempt_id=attempt.id)

    def status(self, attempt_id: str) -> Optional[TxnLogEntry]:
        """Look up the logged state of an attempt, e.g. after CommitAmbiguousError."""
        return self.txn_log.read(attempt_id)

    def start_cleanup(self):
        """Start the background cleanup sweeper if config.cleanup_enabled."""
        if not self.config.cleanup_enabled or self._sweeper is not None:
            return self._sweeper
        self._sweeper = CleanupSweeper(self.store, self.txn_log, config=self.config)
        self._sweeper.start()
        return self._sweeper

    def close(self) -> None:
        if self._sweeper is not None:
            self._sweeper.stop()
            self._sweeper = None

    def __enter__(self):
        self.start_cleanup()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # =========================================================
    # Internal helper methods
    # =========================================================

    def _log(self, attempt: Attempt, state: AttemptState) -> bool:
        attempt.state = state
        return self.txn_log.write(TxnLogEntry.from_attempt(attempt, state))

    def _finish(self, attempt: Attempt, state: AttemptState) -> None:
        """Record a terminal state for an attempt that never staged."""
        if attempt.state is not AttemptState.PENDING:
            return
        try:
            self._log(attempt, state)
        except Exception as e:
            # the sweeper resolves PENDING leftovers
            logger.error("Txn log write failed: attempt=%s state=%s err=%s", attempt.id, state.value, e)

    def _validate_reads(self, attempt: Attempt) -> None:
        for key, cas in attempt.read_set.items():
            res = self.store.get(key)
            if not res.ok and res.err is not ErrCode.KEY_NOT_FOUND:
                raise StoreUnavailableError(details=f"get {key}: {res.err.name}", attempt_id=attempt.id)
            current = res.value.cas if res.ok else None
            if current != cas:
                logger.info(
                    "Txn validate conflict: attempt=%s key=%s read=%s current=%s",
                    attempt.id, key, cas, current,
                )
                raise CasMismatchError(key, cas, current, attempt_id=attempt.id)

    def _commit(self, attempt: Attempt, n: int) -> CommitResult:
        self._validate_reads(attempt)
        if attempt.expired():
            raise TransactionExpiredError(details="deadline exceeded before commit", attempt_id=attempt.id)

        if not attempt.write_set:
            self._log(attempt, AttemptState.COMMITTED)
            logger.info("Txn committed (read-only): attempt=%s n=%d", attempt.id, n)
            return CommitResult(attempt_id=attempt.id, attempts=n)

        # ---------- Phase 1: stage ----------
        entry = TxnLogEntry.from_attempt(attempt, AttemptState.STAGED)
        if not self.txn_log.write(entry):
            # the sweeper already resolved this attempt as abandoned
            raise TransactionExpiredError(details="attempt reaped by cleanup", attempt_id=attempt.id)
        attempt.state = AttemptState.STAGED
        logger.info("Txn staged: attempt=%s keys=%s", attempt.id, list(attempt.write_set.keys()))

        # ---------- Phase 2: apply ----------
        for w in entry.writes:
            if attempt.expired():
                # past the deadline cleanup may be resolving the entry concurrently
                logger.error("Txn deadline passed mid-apply: attempt=%s key=%s", attempt.id, w.key)
                raise CommitAmbiguousError(
                    attempt.id, details=f"deadline exceeded before put {w.key}; left to cleanup"
                )
            res = apply_write(self.store, w)
            if res.ok:
                logger.debug("Txn apply: attempt=%s key=%s op=%s cas=%s", attempt.id, w.key, w.op.value, w.applied_cas)
                self._record_progress(attempt, entry)
                continue
            if is_conflict(res):
                logger.warning(
                    "Txn apply conflict: attempt=%s key=%s err=%s",
                    attempt.id, w.key, res.err.name,
                )
                return self._settle_conflict(attempt, entry, w, n)
            logger.error("Txn apply failed: attempt=%s key=%s err=%s", attempt.id, w.key, res.err.name)
            raise CommitAmbiguousError(
                attempt.id, details=f"put {w.key} failed with {res.err.name}; outcome unknown"
            )

        entry.state = AttemptState.COMMITTED
        entry.updated_at = time.time()
        self._write_entry(attempt, entry)
        attempt.state = AttemptState.COMMITTED
        logger.info("Txn committed: attempt=%s n=%d keys=%d", attempt.id, n, len(entry.writes))
        return CommitResult(
            attempt_id=attempt.id,
            attempts=n,
            cas={w.key: w.applied_cas for w in entry.writes},
        )

    def _write_entry(self, attempt: Attempt, entry: TxnLogEntry) -> None:
        try:
            accepted = self.txn_log.write(entry)
        except Exception as e:
            raise CommitAmbiguousError(attempt.id, details=f"transaction log write failed: {e}") from e
        if not accepted:
            raise CommitAmbiguousError(attempt.id, details="entry resolved concurrently by cleanup")

    def _record_progress(self, attempt: Attempt, entry: TxnLogEntry) -> None:
        entry.updated_at = time.time()
        self._write_entry(attempt, entry)

    def _settle_conflict(self, attempt: Attempt, entry: TxnLogEntry, w: StagedWrite, n: int) -> CommitResult:
        """
        Handle a CAS conflict while applying.

        Cleanup may have resolved the entry while this coordinator stalled,
        in which case the logged outcome stands and nothing is compensated.
        """
        try:
            current = self.txn_log.read(attempt.id)
        except Exception as e:
            raise CommitAmbiguousError(attempt.id, details=f"transaction log read failed: {e}") from e
        if current is not None and current.state is AttemptState.COMMITTED:
            attempt.state = AttemptState.COMMITTED
            logger.info("Txn committed by cleanup: attempt=%s n=%d", attempt.id, n)
            return CommitResult(
                attempt_id=attempt.id,
                attempts=n,
                cas={x.key: x.applied_cas for x in current.writes},
            )
        if current is not None and current.state is AttemptState.ROLLED_BACK:
            attempt.state = AttemptState.ROLLED_BACK
            logger.info("Txn rolled back by cleanup: attempt=%s n=%d", attempt.id, n)
            raise CasMismatchError(w.key, w.cas_at_read, None, attempt_id=attempt.id)
        if current is None or current.state.terminal or self._applied_by_cleanup(current, w):
            # cleanup is mid-way through this entry
            raise CommitAmbiguousError(
                attempt.id, details=f"put {w.key} conflicted while cleanup was resolving the attempt"
            )

        self._rollback(attempt, entry)
        raise CasMismatchError(w.key, w.cas_at_read, None, attempt_id=attempt.id)

    def _applied_by_cleanup(self, current: TxnLogEntry, w: StagedWrite) -> bool:
        # this coordinator never logged w as applied; cleanup logs each roll-forward put
        return any(x.key == w.key and x.applied for x in current.writes)

    def _rollback(self, attempt: Attempt, entry: TxnLogEntry) -> None:
        """Compensate applied writes, newest first. Leftovers go to the sweeper."""
        complete = True
        for w in reversed(entry.writes):
            if not w.applied:
                continue
            res = revert_write(self.store, w)
            if not res.ok:
                complete = False
                logger.warning(
                    "Txn compensation failed: attempt=%s key=%s op=%s err=%s",
                    attempt.id, w.key, w.op.value, res.err.name,
                )

        entry.updated_at = time.time()
        if complete:
            entry.state = AttemptState.ROLLED_BACK
        else:
            entry.rollback_only = True
        try:
            self.txn_log.write(entry)
        except Exception as e:
            logger.error("Txn log write failed during rollback: attempt=%s err=%s", attempt.id, e)
        attempt.state = entry.state
        logger.info(
            "Txn rolled back: attempt=%s complete=%s",
            attempt.id, complete,
        )
