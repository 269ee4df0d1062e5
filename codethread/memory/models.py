from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from codethread.utils.ids import generate_id, now


class MemoryType(str, Enum):
    CODE = "code"
    CHAT = "chat"
    REFERENCE = "reference"
    SNIPPET = "snippet"
    FEEDBACK = "feedback"
    CONTEXT = "context"


class MemoryMetadata(BaseModel):
    type: MemoryType = MemoryType.CONTEXT
    key: Optional[str] = Field(default=None, description="Stable identity; a later add with the same key replaces the entry")
    source: str = "system"
    tags: List[str] = Field(default_factory=list)
    session_id: Optional[str] = None
    language: Optional[str] = None
    title: Optional[str] = None
    importance: Optional[float] = None
    custom: Dict[str, Any] = Field(default_factory=dict)


class MemoryEntry(BaseModel):
    """A single entry held by the external memory service."""

    id: str = Field(default_factory=lambda: generate_id("mem"))
    content: str
    metadata: MemoryMetadata = Field(default_factory=MemoryMetadata)
    created_at: float = Field(default_factory=now)
    updated_at: float = Field(default_factory=now)
    relevance: Optional[float] = Field(default=None, description="Similarity score assigned by search")


class MemorySearchParams(BaseModel):
    query: Optional[str] = None
    types: Optional[List[MemoryType]] = None
    tags: Optional[List[str]] = None
    session_id: Optional[str] = None
    max_results: int = 10
    threshold: Optional[float] = None


class MemorySearchResult(BaseModel):
    entries: List[MemoryEntry] = Field(default_factory=list)
    total_count: int = 0
