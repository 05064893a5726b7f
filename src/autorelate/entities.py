"""entities.py
Shared type definitions used across the auto-relate pipeline.

OpenAlex payloads are validated with pydantic models; anything that does not
match the expected shape is treated by the client as "not found".
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar, TypedDict

from pydantic import BaseModel, Field

T = TypeVar("T")


class Work(BaseModel):
    """OpenAlex work restricted to the fields requested by the client."""

    id: str
    doi: Optional[str] = None
    title: Optional[str] = None
    referenced_works: list[str] = Field(default_factory=list)
    cited_by_api_url: Optional[str] = None
    cited_by_count: int = 0

    class Config:
        extra = "ignore"


class DoiRecord(BaseModel):
    doi: Optional[str] = None

    class Config:
        extra = "ignore"


class DoiPage(BaseModel):
    """A ``/works`` list response fetched with ``select=doi``."""

    results: Optional[list[DoiRecord]] = None

    class Config:
        extra = "ignore"


class LookupStatus(str, Enum):
    FOUND = "found"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass
class LookupResult(Generic[T]):
    """Outcome of one external lookup.

    Failures are reported here instead of raised, so one document's bad
    response never aborts a batch.
    """

    status: LookupStatus
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is LookupStatus.FOUND

    @classmethod
    def found(cls, value: T) -> "LookupResult[T]":
        return cls(LookupStatus.FOUND, value)

    @classmethod
    def empty(cls) -> "LookupResult[T]":
        return cls(LookupStatus.EMPTY)

    @classmethod
    def failed(cls, error: str) -> "LookupResult[T]":
        return cls(LookupStatus.FAILED, error=error)


@dataclass
class BatchReport:
    """Aggregate counts for one batch or manual run."""

    items_processed: int = 0
    relations_added: int = 0
    skipped: int = 0
    errors: int = 0


class LibraryRecord(TypedDict, total=False):
    """Canonical schema for library items stored in Elasticsearch."""

    key: str
    title: str
    doi: str | None
    item_type: str
    library_id: str
    related: list[str]
