from __future__ import annotations

from typing import Any, Optional

from codethread.errors import ExternalServiceError
from codethread.memory.local import InMemoryMemoryService
from codethread.memory.models import MemoryEntry, MemoryMetadata, MemorySearchParams, MemorySearchResult


class FailingMemoryService:
    def __init__(self, *, fail_search: bool = True, fail_add: bool = True) -> None:
        self.fail_search = fail_search
        self.fail_add = fail_add
        self.search_calls = 0
        self.add_calls = 0

    async def search(self, collection: str, params: MemorySearchParams) -> MemorySearchResult:
        self.search_calls += 1
        if self.fail_search:
            raise ExternalServiceError("search backend unavailable")
        return MemorySearchResult()

    async def add(self, collection: str, content: str, metadata: MemoryMetadata) -> MemoryEntry:
        self.add_calls += 1
        if self.fail_add:
            raise ExternalServiceError("storage backend unavailable")
        return MemoryEntry(content=content, metadata=metadata)


class RecordingMemoryService(InMemoryMemoryService):
    def __init__(self, *, search_result: Optional[MemorySearchResult] = None) -> None:
        super().__init__()
        self.search_result = search_result
        self.searches: list[tuple[str, MemorySearchParams]] = []
        self.adds: list[dict[str, Any]] = []

    async def search(self, collection: str, params: MemorySearchParams) -> MemorySearchResult:
        self.searches.append((collection, params))
        if self.search_result is not None:
            return self.search_result
        return await super().search(collection, params)

    async def add(self, collection: str, content: str, metadata: MemoryMetadata) -> MemoryEntry:
        self.adds.append({"collection": collection, "content": content, "metadata": metadata})
        return await super().add(collection, content, metadata)
