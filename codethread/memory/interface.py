from __future__ import annotations

from typing import Protocol, runtime_checkable

from codethread.memory.models import MemoryEntry, MemoryMetadata, MemorySearchParams, MemorySearchResult


@runtime_checkable
class MemoryService(Protocol):
    """External key/value + search capability consumed by the engine."""

    async def search(self, collection: str, params: MemorySearchParams) -> MemorySearchResult:
        ...

    async def add(self, collection: str, content: str, metadata: MemoryMetadata) -> MemoryEntry:
        ...
