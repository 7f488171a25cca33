import enum


class ErrCode(enum.Enum):
    SUCCESS = 0

    # ---------- Client / semantic errors (usually non-retryable) ----------
    INVALID_ARGUMENT = 10        # empty key, value not JSON serialisable, etc.
    KEY_EXISTS = 11              # create-only put on an existing key
    KEY_NOT_FOUND = 12           # get/remove on a missing key

    # ---------- Concurrency / conflict (retryable) ----------
    CAS_MISMATCH = 30            # expected cas differs from the stored one

    # ---------- Storage / system (usually retryable or escalate) ----------
    IO_ERROR = 40                # transport or database failure
    TIMEOUT = 41
    INTERNAL_INVARIANT = 42

    UNKNOWN_ERROR = 99


class KVResult:
    def __init__(self, ok: bool, value=None, err=ErrCode.SUCCESS):
        self.ok = ok
        self.value = value
        self.err = err

    def __repr__(self):
        if self.ok:
            return f"KVResult(ok=True, value={self.value!r})"
        return f"KVResult(ok=False, err={self.err.name})"
