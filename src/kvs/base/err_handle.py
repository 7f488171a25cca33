from fastapi import HTTPException

from src.kv.base.err_code import ErrCode, KVResult

ERR_HTTP_MAP = {
    ErrCode.INVALID_ARGUMENT: 400,
    ErrCode.KEY_NOT_FOUND: 404,
    ErrCode.KEY_EXISTS: 409,
    ErrCode.CAS_MISMATCH: 409,
    ErrCode.IO_ERROR: 503,
    ErrCode.TIMEOUT: 504,
    ErrCode.INTERNAL_INVARIANT: 500,
}


def handle_kv_result(res: KVResult):
    if res.ok:
        return res.value
    status = ERR_HTTP_MAP.get(res.err, 500)
    raise HTTPException(
        status_code=status,
        detail=res.err.name,
    )
