"""
HTTP KV Store Client

Talks to the KV store service (src.kvs.service.kv_service) and exposes it
through the KVStore interface, so the coordinator can run against a remote
store exactly as it runs against an in-process one.

Service endpoints:
- GET    /docs/{key}                     -> {"key", "value", "cas"}
- PUT    /docs/{key}                     body {"value", "expected_cas"} -> {"cas"}
- POST   /docs/{key}/upsert              body {"value"} -> {"cas"}
- DELETE /docs/{key}?expected_cas=<cas>  -> {"ok": true}
Failures carry the ErrCode name in "detail".
"""

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from src.kv.base.document import Document
from src.kv.base.err_code import ErrCode, KVResult
from src.kv.base.kv_store import KVStore

logger = logging.getLogger("kv")


class HttpKVStore(KVStore):
    def __init__(self, base_url: str, http_client: Optional[httpx.Client] = None):
        """
        Args:
            base_url: Base URL of the KV service (e.g., http://localhost:8101)
            http_client: Shared httpx client for connection pooling
        """
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client or httpx.Client(timeout=httpx.Timeout(5.0, read=30.0))

    def _url(self, key: str) -> str:
        return f"{self.base_url}/docs/{quote(key, safe='')}"

    def _failure(self, response: httpx.Response) -> KVResult:
        try:
            detail = response.json().get("detail")
            err = ErrCode[detail]
        except (ValueError, KeyError, TypeError, AttributeError):
            err = ErrCode.UNKNOWN_ERROR
        return KVResult(ok=False, err=err)

    def _send(self, method: str, url: str, **kwargs) -> Optional[httpx.Response]:
        try:
            return self.http_client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("KV %s %s timed out: %s", method, url, e)
            return None
        except httpx.RequestError as e:
            logger.error("KV %s %s failed to connect: %s", method, url, e)
            return None

    def get(self, key: str) -> KVResult:
        response = self._send("GET", self._url(key))
        if response is None:
            return KVResult(ok=False, err=ErrCode.IO_ERROR)
        if response.status_code != 200:
            return self._failure(response)
        data = response.json()
        return KVResult(ok=True, value=Document(key=data["key"], value=data["value"], cas=data["cas"]))

    def put(self, key: str, value: Any, expected_cas: Optional[int]) -> KVResult:
        response = self._send(
            "PUT", self._url(key), json={"value": value, "expected_cas": expected_cas}
        )
        if response is None:
            return KVResult(ok=False, err=ErrCode.IO_ERROR)
        if response.status_code != 200:
            return self._failure(response)
        return KVResult(ok=True, value=response.json()["cas"])

    def remove(self, key: str, expected_cas: int) -> KVResult:
        response = self._send("DELETE", self._url(key), params={"expected_cas": expected_cas})
        if response is None:
            return KVResult(ok=False, err=ErrCode.IO_ERROR)
        if response.status_code != 200:
            return self._failure(response)
        return KVResult(ok=True)

    def upsert(self, key: str, value: Any) -> KVResult:
        response = self._send("POST", f"{self._url(key)}/upsert", json={"value": value})
        if response is None:
            return KVResult(ok=False, err=ErrCode.IO_ERROR)
        if response.status_code != 200:
            return self._failure(response)
        return KVResult(ok=True, value=response.json()["cas"])

    def check_health(self) -> bool:
        try:
            response = self.http_client.get(f"{self.base_url}/health", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("KV health check failed: %s", e)
            return False
