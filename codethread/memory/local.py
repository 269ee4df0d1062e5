from __future__ import annotations

import asyncio
import re
from typing import Iterable, Optional

from loguru import logger

from codethread.errors import ValidationError
from codethread.memory.models import MemoryEntry, MemoryMetadata, MemorySearchParams, MemorySearchResult
from codethread.utils.ids import now


_WORD_RE = re.compile(r"\w+")


class InMemoryMemoryService:
    """进程内的记忆服务实现，按关键词重叠打分。"""

    def __init__(self, *, max_entries_per_collection: int = 1000) -> None:
        self._collections: dict[str, list[MemoryEntry]] = {}
        self._max_entries = max_entries_per_collection
        self._lock = asyncio.Lock()

    async def add(self, collection: str, content: str, metadata: MemoryMetadata) -> MemoryEntry:
        if not collection:
            raise ValidationError("collection name is required")
        async with self._lock:
            entries = self._collections.setdefault(collection, [])
            if metadata.key is not None:
                entries[:] = [entry for entry in entries if entry.metadata.key != metadata.key]
            timestamp = now()
            entry = MemoryEntry(
                content=content,
                metadata=metadata.model_copy(deep=True),
                created_at=timestamp,
                updated_at=timestamp,
            )
            entries.append(entry)
            if len(entries) > self._max_entries:
                del entries[: len(entries) - self._max_entries]
            logger.debug(f"Stored memory {entry.id} in '{collection}'")
            return entry.model_copy(deep=True)

    async def search(self, collection: str, params: MemorySearchParams) -> MemorySearchResult:
        async with self._lock:
            candidates = [
                entry
                for entry in self._collections.get(collection, [])
                if _matches_filters(entry, params)
            ]

        if params.query:
            scored: list[tuple[float, int, MemoryEntry]] = []
            for index, entry in enumerate(candidates):
                score = calculate_relevance(params.query, entry.content)
                if params.threshold is not None and score < params.threshold:
                    continue
                scored.append((score, index, entry))
            scored.sort(key=lambda item: (-item[0], item[1]))
            results = [entry.model_copy(update={"relevance": score}, deep=True) for score, _, entry in scored]
        else:
            results = [entry.model_copy(deep=True) for entry in candidates]

        total = len(results)
        limit = params.max_results if params.max_results > 0 else total
        return MemorySearchResult(entries=results[:limit], total_count=total)

    async def get(self, collection: str, ids: Iterable[str]) -> list[MemoryEntry]:
        wanted = list(ids)
        async with self._lock:
            by_id = {entry.id: entry for entry in self._collections.get(collection, [])}
        return [by_id[item].model_copy(deep=True) for item in wanted if item in by_id]

    def count(self, collection: Optional[str] = None) -> int:
        if collection is not None:
            return len(self._collections.get(collection, []))
        return sum(len(entries) for entries in self._collections.values())


def calculate_relevance(query: str, content: str) -> float:
    query_lower = query.lower()
    content_lower = content.lower()

    query_words = set(_WORD_RE.findall(query_lower))
    content_words = set(_WORD_RE.findall(content_lower))
    if not query_words:
        return 0.0

    score = len(query_words & content_words) / len(query_words)
    if query_lower in content_lower:
        score += 0.3
    return min(score, 1.0)


def _matches_filters(entry: MemoryEntry, params: MemorySearchParams) -> bool:
    meta = entry.metadata
    if params.types and meta.type not in params.types:
        return False
    if params.tags and not set(params.tags) & set(meta.tags):
        return False
    if params.session_id is not None and meta.session_id != params.session_id:
        return False
    return True
