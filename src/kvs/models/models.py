from typing import Any, Optional

from pydantic import BaseModel


class PutRequest(BaseModel):
    value: Any
    expected_cas: Optional[int] = None


class UpsertRequest(BaseModel):
    value: Any


class DocumentResponse(BaseModel):
    key: str
    value: Any
    cas: int


class CasResponse(BaseModel):
    cas: int
