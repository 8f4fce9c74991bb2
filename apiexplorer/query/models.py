from __future__ import annotations
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")
BODY_METHODS = ("POST", "PUT")


class KeyValue(BaseModel):
    key: str = ""
    value: str = ""


class QueryRequest(BaseModel):
    """One ad-hoc request from the query builder. Built per execution, never stored."""

    method: str = "GET"
    path: str
    params: List[KeyValue] = Field(default_factory=list)
    headers: List[KeyValue] = Field(default_factory=list)
    body: Optional[str] = None

    @field_validator("method")
    @classmethod
    def _known_method(cls, value: str) -> str:
        method = value.strip().upper()
        if method not in METHODS:
            raise ValueError(f"Unsupported HTTP method: {value!r}")
        return method

    @field_validator("path")
    @classmethod
    def _non_empty_path(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("path must not be empty")
        return value.strip()

    @property
    def is_absolute(self) -> bool:
        return self.path.lower().startswith(("http://", "https://"))


class ApiResponseEnvelope(BaseModel):
    """Result of one query execution. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    data: Any = None
    suggested_names: Dict[str, str] = Field(default_factory=dict)
    error: Optional[str] = None
    is_discovery: bool = False
    namespace: Optional[str] = None

    @classmethod
    def failure(cls, message: str) -> "ApiResponseEnvelope":
        return cls(data=None, suggested_names={}, error=message)

    @property
    def ok(self) -> bool:
        return self.error is None
