from __future__ import annotations

import asyncio

import pytest

from codethread.config import EngineSettings
from codethread.conversation.models import EditAction
from codethread.errors import NotFoundError
from codethread.memory.models import MemoryEntry, MemoryMetadata, MemorySearchResult, MemoryType
from codethread.retrieval.models import RetrievalOptions
from codethread.retrieval.retriever import ContextRetriever
from codethread.utils.text import estimate_tokens
from tests.fakes.memory import FailingMemoryService, RecordingMemoryService
from tests.utils import add_turn, make_graph


def _build(memory=None, settings=None):
    graph, store = make_graph(memory=memory, settings=settings)
    retriever = ContextRetriever(graph, store, memory, settings=settings)
    return graph, store, retriever


def test_empty_graph_yields_empty_bundle() -> None:
    _, _, retriever = _build()
    bundle = asyncio.run(retriever.retrieve_context())

    assert bundle.is_empty
    assert bundle.conversation_context == ""
    assert bundle.total_tokens == 0


def test_explicit_query_searches_memory_without_turns() -> None:
    memory = RecordingMemoryService()
    asyncio.run(
        memory.add("conversation-turns", "login form validation", MemoryMetadata(type=MemoryType.CHAT)),
    )
    graph, _, retriever = _build(memory=memory)

    empty = asyncio.run(retriever.retrieve_context())
    bundle = asyncio.run(
        retriever.retrieve_context({"semantic_search_query": "login form validation", "similarity_threshold": 0.1}),
    )

    assert empty.is_empty
    assert len(memory.searches) == 1
    assert [entry.content for entry in bundle.memories] == ["login form validation"]
    assert bundle.referenced_turns == []
    assert bundle.total_tokens == estimate_tokens("login form validation")

    add_turn(graph, "unrelated prompt")
    limited = asyncio.run(
        retriever.retrieve_context({"turn_limit": 0, "semantic_search_query": "login form", "similarity_threshold": 0.1}),
    )
    assert limited.referenced_turns == []
    assert len(limited.memories) == 1


def test_turns_most_recent_first_and_limited() -> None:
    graph, _, retriever = _build()
    turns = [add_turn(graph, f"prompt {index}", explanation=f"reply {index}") for index in range(5)]

    bundle = asyncio.run(retriever.retrieve_context(RetrievalOptions(turn_limit=3, include_memories=False)))

    assert [turn.id for turn in bundle.referenced_turns] == [turns[4].id, turns[3].id, turns[2].id]
    assert bundle.conversation_context.index("prompt 2") < bundle.conversation_context.index("prompt 4")
    assert "User: prompt 3\nAssistant: reply 3" in bundle.conversation_context
    assert "prompt 1" not in bundle.conversation_context


def test_reference_turn_walks_its_own_lineage() -> None:
    graph, _, retriever = _build()
    root = add_turn(graph, "root")
    add_turn(graph, "main line")
    fork = add_turn(graph, "fork", parent_turn_id=root.id)

    bundle = asyncio.run(retriever.retrieve_context({"include_memories": False}, fork.id))

    assert [turn.id for turn in bundle.referenced_turns] == [fork.id, root.id]
    with pytest.raises(NotFoundError):
        asyncio.run(retriever.retrieve_context(None, "turn_missing"))


def test_code_blocks_resolve_to_current_version() -> None:
    graph, store, retriever = _build()
    first = add_turn(graph, "page", {"html": "<div/>", "css": "div {}"})
    add_turn(graph, "unrelated")
    html_block_id = first.code_block_refs[0].id
    store.add_version(html_block_id, "<div>latest</div>", "manual")

    bundle = asyncio.run(
        retriever.retrieve_context(RetrievalOptions(turn_limit=2, include_memories=False)),
    )

    assert [snippet.block_id for snippet in bundle.code_blocks] == [ref.id for ref in first.code_block_refs]
    assert bundle.code_blocks[0].code == "<div>latest</div>"
    assert "[CODE html – " in bundle.conversation_context
    assert "```css\ndiv {}\n```" in bundle.conversation_context


def test_code_block_limit_and_toggle() -> None:
    graph, _, retriever = _build()
    add_turn(graph, "page", {"html": "<div/>", "css": "div {}", "js": "let a = 1;"})

    limited = asyncio.run(retriever.retrieve_context({"code_block_limit": 2, "include_memories": False}))
    disabled = asyncio.run(retriever.retrieve_context({"include_code_blocks": False, "include_memories": False}))

    assert [snippet.language for snippet in limited.code_blocks] == ["html", "css"]
    assert disabled.code_blocks == []
    assert "[CODE" not in disabled.conversation_context


def test_memory_query_and_threshold_are_delegated() -> None:
    entry = MemoryEntry(content="earlier discussion about forms", metadata=MemoryMetadata(type=MemoryType.CHAT))
    memory = RecordingMemoryService(search_result=MemorySearchResult(entries=[entry], total_count=1))
    graph, _, retriever = _build(memory=memory)
    add_turn(graph, "first prompt")
    add_turn(graph, "second prompt")

    bundle = asyncio.run(retriever.retrieve_context({"similarity_threshold": 0.4, "memory_types": ["chat"]}))

    collection, params = memory.searches[-1]
    assert collection == "conversation-turns"
    assert params.query == "second prompt\nfirst prompt"
    assert params.threshold == 0.4
    assert params.types == [MemoryType.CHAT]
    assert bundle.memories == [entry]
    assert bundle.total_tokens == estimate_tokens(bundle.conversation_context) + estimate_tokens(entry.content)


def test_explicit_semantic_query_wins_and_is_truncated_otherwise() -> None:
    memory = RecordingMemoryService(search_result=MemorySearchResult())
    graph, _, retriever = _build(memory=memory)
    add_turn(graph, "x" * 800)

    asyncio.run(retriever.retrieve_context({"semantic_search_query": "forms"}))
    asyncio.run(retriever.retrieve_context())

    assert memory.searches[0][1].query == "forms"
    assert len(memory.searches[1][1].query) == 500


def test_memory_failure_degrades_to_partial_bundle() -> None:
    memory = FailingMemoryService()
    graph, _, retriever = _build(memory=memory)
    add_turn(graph, "page", {"html": "<div/>"})

    bundle = asyncio.run(retriever.retrieve_context())

    assert memory.search_calls == 1
    assert bundle.memories == []
    assert bundle.degraded
    assert "search backend unavailable" in bundle.memory_error
    assert len(bundle.referenced_turns) == 1
    assert len(bundle.code_blocks) == 1


def test_options_default_from_settings() -> None:
    settings = EngineSettings(turn_limit=1, include_memories=False)
    graph, _, retriever = _build(settings=settings)
    add_turn(graph, "a")
    b = add_turn(graph, "b")

    bundle = asyncio.run(retriever.retrieve_context())

    assert [turn.id for turn in bundle.referenced_turns] == [b.id]


def test_build_follow_up_prompt() -> None:
    memory = RecordingMemoryService()
    graph, _, retriever = _build(memory=memory)
    add_turn(graph, "make a page", {"css": "body {}"}, explanation="done")

    prompt = asyncio.run(retriever.build_follow_up_prompt("use a dark theme", EditAction.MODIFY, "css"))

    assert prompt.content == "Modify the css code to: use a dark theme"
    assert prompt.context.startswith("Action: modify\nTarget: css")
    assert "Recent conversation:\nUser: make a page" in prompt.context
    assert "Relevant code blocks:\nLanguage: css\n```css\nbody {}\n```" in prompt.context
    assert memory.searches == []


def test_find_related_turns_maps_memory_entries() -> None:
    graph, store = make_graph()
    turn = add_turn(graph, "login form")
    entries = [
        MemoryEntry(content="login form", metadata=MemoryMetadata(custom={"turn_id": turn.id})),
        MemoryEntry(content="login form again", metadata=MemoryMetadata(custom={"turn_id": turn.id})),
        MemoryEntry(content="stale", metadata=MemoryMetadata(custom={"turn_id": "turn_gone"})),
    ]
    memory = RecordingMemoryService(search_result=MemorySearchResult(entries=entries, total_count=3))
    retriever = ContextRetriever(graph, store, memory)

    related = asyncio.run(retriever.find_related_turns("login form"))

    assert [item.id for item in related] == [turn.id]


def test_find_related_turns_degrades() -> None:
    graph, _, retriever = _build(memory=FailingMemoryService())
    add_turn(graph, "x")
    assert asyncio.run(retriever.find_related_turns("x")) == []
