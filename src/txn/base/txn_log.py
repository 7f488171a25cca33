import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from src.txn.base.attempt import Attempt, AttemptState, StagedWrite


@dataclass
class TxnLogEntry:
    id: str
    state: AttemptState
    deadline: float
    writes: List[StagedWrite] = field(default_factory=list)
    rollback_only: bool = False
    updated_at: float = field(default_factory=time.time)

    @classmethod
    def from_attempt(cls, attempt: Attempt, state: Optional[AttemptState] = None) -> "TxnLogEntry":
        return cls(
            id=attempt.id,
            state=state or attempt.state,
            deadline=attempt.deadline,
            writes=list(attempt.write_set.values()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "state": self.state.value,
            "deadline": self.deadline,
            "writes": [w.to_dict() for w in self.writes],
            "rollback_only": self.rollback_only,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TxnLogEntry":
        return cls(
            id=d["id"],
            state=AttemptState(d["state"]),
            deadline=float(d["deadline"]),
            writes=[StagedWrite.from_dict(w) for w in d.get("writes", [])],
            rollback_only=bool(d.get("rollback_only", False)),
            updated_at=float(d.get("updated_at", 0.0)),
        )


class TransactionLog(ABC):
    """
    Durable record of attempt state, keyed by attempt id.

    write() is last-write-wins per id, except that an entry already in a
    terminal state keeps that state: implementations ignore the write and
    return False.
    """

    @abstractmethod
    def write(self, entry: TxnLogEntry) -> bool:
        """Persist the latest state of an attempt. Returns False if refused."""
        pass

    @abstractmethod
    def read(self, attempt_id: str) -> Optional[TxnLogEntry]:
        """Return the entry for attempt_id, or None if unknown."""
        pass

    @abstractmethod
    def scan_stale(self, threshold: float) -> Iterator[TxnLogEntry]:
        """
        Lazily yield non-terminal entries whose deadline < threshold.

        The sequence is finite and can be restarted by calling again.
        """
        pass

    @abstractmethod
    def scan_terminal(self, older_than: float) -> Iterator[TxnLogEntry]:
        """Yield terminal entries last updated before older_than."""
        pass

    @abstractmethod
    def remove(self, attempt_id: str) -> None:
        """Reap an entry."""
        pass
