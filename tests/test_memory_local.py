from __future__ import annotations

import asyncio

import pytest

from codethread.errors import ValidationError
from codethread.memory.interface import MemoryService
from codethread.memory.local import InMemoryMemoryService, calculate_relevance
from codethread.memory.models import MemoryMetadata, MemorySearchParams, MemoryType


def _seed(service: InMemoryMemoryService) -> None:
    async def _run() -> None:
        await service.add("notes", "login form with email field", MemoryMetadata(type=MemoryType.CHAT, tags=["ui"]))
        await service.add("notes", "database migration script", MemoryMetadata(type=MemoryType.CODE))
        await service.add("notes", "email validation for the login form", MemoryMetadata(type=MemoryType.CHAT))

    asyncio.run(_run())


def test_local_service_satisfies_protocol() -> None:
    assert isinstance(InMemoryMemoryService(), MemoryService)


def test_calculate_relevance() -> None:
    assert calculate_relevance("login form", "the login form") == 1.0
    assert calculate_relevance("login page", "login form") == 0.5
    assert calculate_relevance("", "anything") == 0.0


def test_search_scores_and_orders_by_relevance() -> None:
    service = InMemoryMemoryService()
    _seed(service)

    result = asyncio.run(service.search("notes", MemorySearchParams(query="login form", threshold=0.5)))

    assert [entry.content for entry in result.entries] == [
        "login form with email field",
        "email validation for the login form",
    ]
    assert result.total_count == 2
    assert all(entry.relevance == 1.0 for entry in result.entries)


def test_search_filters_types_and_tags() -> None:
    service = InMemoryMemoryService()
    _seed(service)

    code = asyncio.run(service.search("notes", MemorySearchParams(types=[MemoryType.CODE])))
    tagged = asyncio.run(service.search("notes", MemorySearchParams(tags=["ui"])))
    limited = asyncio.run(service.search("notes", MemorySearchParams(max_results=1)))

    assert [entry.content for entry in code.entries] == ["database migration script"]
    assert [entry.content for entry in tagged.entries] == ["login form with email field"]
    assert len(limited.entries) == 1
    assert limited.total_count == 3


def test_get_returns_entries_by_id() -> None:
    service = InMemoryMemoryService()
    entry = asyncio.run(service.add("notes", "hello", MemoryMetadata()))

    fetched = asyncio.run(service.get("notes", [entry.id, "mem_missing"]))

    assert [item.id for item in fetched] == [entry.id]
    assert service.count("notes") == 1
    assert service.count() == 1


def test_add_requires_collection() -> None:
    service = InMemoryMemoryService()
    with pytest.raises(ValidationError):
        asyncio.run(service.add("", "hello", MemoryMetadata()))


def test_collections_are_capped() -> None:
    service = InMemoryMemoryService(max_entries_per_collection=2)

    async def _run() -> None:
        for index in range(3):
            await service.add("notes", f"entry {index}", MemoryMetadata())

    asyncio.run(_run())
    result = asyncio.run(service.search("notes", MemorySearchParams()))
    assert [entry.content for entry in result.entries] == ["entry 1", "entry 2"]


def test_keyed_add_replaces_previous_entry() -> None:
    service = InMemoryMemoryService()
    asyncio.run(service.add("notes", "first draft", MemoryMetadata(key="doc-1")))
    asyncio.run(service.add("notes", "unrelated", MemoryMetadata()))
    latest = asyncio.run(service.add("notes", "second draft", MemoryMetadata(key="doc-1")))

    result = asyncio.run(service.search("notes", MemorySearchParams()))

    assert service.count("notes") == 2
    assert [entry.content for entry in result.entries] == ["unrelated", "second draft"]
    assert result.entries[1].id == latest.id
