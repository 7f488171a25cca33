import enum
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class AttemptState(str, enum.Enum):
    PENDING = "PENDING"
    STAGED = "STAGED"
    COMMITTED = "COMMITTED"
    ROLLED_BACK = "ROLLED_BACK"
    EXPIRED = "EXPIRED"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {AttemptState.COMMITTED, AttemptState.ROLLED_BACK, AttemptState.EXPIRED}
)


class WriteOp(str, enum.Enum):
    INSERT = "INSERT"
    REPLACE = "REPLACE"
    REMOVE = "REMOVE"


@dataclass
class StagedWrite:
    key: str
    op: WriteOp
    value: Any = None
    cas_at_read: Optional[int] = None     # None for inserts: key was absent
    before: Any = None                    # before-image used for compensation
    applied: bool = False
    applied_cas: Optional[int] = None     # new cas of an applied insert/replace

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "op": self.op.value,
            "value": self.value,
            "cas_at_read": self.cas_at_read,
            "before": self.before,
            "applied": self.applied,
            "applied_cas": self.applied_cas,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "StagedWrite":
        return cls(
            key=d["key"],
            op=WriteOp(d["op"]),
            value=d.get("value"),
            cas_at_read=d.get("cas_at_read"),
            before=d.get("before"),
            applied=bool(d.get("applied", False)),
            applied_cas=d.get("applied_cas"),
        )


@dataclass
class Attempt:
    """
    One execution of a transaction's user logic.

    read_set    key -> cas observed by the first read
    write_set   key -> StagedWrite, in staging order
    """
    deadline: float
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: AttemptState = AttemptState.PENDING
    read_set: Dict[str, int] = field(default_factory=dict)
    write_set: Dict[str, StagedWrite] = field(default_factory=dict)
    before_images: Dict[str, Any] = field(default_factory=dict)
    start_time: float = field(default_factory=time.time)

    def expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.deadline
