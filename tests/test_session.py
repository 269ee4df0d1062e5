from __future__ import annotations

import asyncio

import pytest

from codethread.config import EngineSettings
from codethread.conversation.models import EditAction
from codethread.memory.local import InMemoryMemoryService
from codethread.memory.models import MemorySearchParams
from codethread.session import ConversationSession
from tests.fakes.memory import FailingMemoryService


def test_session_rejects_non_memory_service() -> None:
    with pytest.raises(TypeError):
        ConversationSession(memory=object())


def test_record_turn_persists_turn_and_code() -> None:
    memory = InMemoryMemoryService()
    session = ConversationSession(memory)
    asyncio.run(session.initialize())

    turn = asyncio.run(
        session.record_turn(
            "build a landing page",
            "Here you go.\n```html\n<div>hi</div>\n```\n```css\ndiv { color: red; }\n```",
            "openai",
            "gpt-test",
        )
    )

    assert len(turn.memory_ids) == 1
    assert session.code_store.dirty_block_ids == []
    assert memory.count("conversation-turns") == 1
    assert memory.count("code-blocks") == 2
    stored = asyncio.run(memory.get("conversation-turns", turn.memory_ids))
    assert stored[0].metadata.custom["turn_id"] == turn.id


def test_record_turn_infers_intent() -> None:
    session = ConversationSession()
    asyncio.run(session.record_turn("page", "```html\n<div/>\n```\n```css\na {}\n```", "openai", "gpt-test"))

    turn = asyncio.run(
        session.record_turn(
            "refactor the css please",
            "```css\na { color: blue; }\n```\n```html\n<p>changed</p>\n```",
            "openai",
            "gpt-test",
            infer_intent=True,
        )
    )

    assert turn.edit_action is EditAction.REFACTOR
    assert turn.edit_target == "css"
    html_ref = next(ref for ref in turn.code_block_refs if ref.language == "html")
    assert session.code_store.get_version(html_ref.id, html_ref.version_id).code == "<div/>"


def test_persistence_failures_do_not_break_recording() -> None:
    session = ConversationSession(FailingMemoryService())
    turn = asyncio.run(session.record_turn("page", "```html\n<div/>\n```", "openai", "gpt-test"))

    assert turn.memory_ids == []
    assert len(session.code_store.dirty_block_ids) == 1


def test_initialize_restores_blocks_from_shared_memory() -> None:
    memory = InMemoryMemoryService()
    first = ConversationSession(memory)
    turn = asyncio.run(first.record_turn("page", "```python\nprint('hi')\n```", "openai", "gpt-test"))

    second = ConversationSession(memory)
    loaded = asyncio.run(second.initialize())

    assert loaded == 1
    assert asyncio.run(second.initialize()) == 0
    block = second.code_store.require_block(turn.code_block_refs[0].id)
    assert block.current_version.code == "print('hi')"


def test_build_prompt_composes_all_layers() -> None:
    session = ConversationSession(settings=EngineSettings(similarity_threshold=0.1))
    asyncio.run(session.record_turn("make a login form", "```html\n<form></form>\n```", "openai", "gpt-test"))

    composed = asyncio.run(
        session.build_prompt(
            "Add a password field",
            system_preset="CODING",
            user_preset="DEVELOPER",
        )
    )

    assert [summary.type for summary in composed.layers] == ["system", "task", "memory", "user_preferences"]
    assert "Add a password field" in composed.text
    assert "User: make a login form" in composed.text
    assert "[CHAT] (openai" in composed.text
    assert composed.metadata["memory_error"] is None
    assert composed.metadata["context_tokens"] > 0

    again = asyncio.run(session.build_prompt("Add a password field", system_preset="CODING", user_preset="DEVELOPER"))
    assert len(session.composer.all_layers()) == 4
    assert again.text == composed.text


def test_build_prompt_reports_memory_degradation() -> None:
    session = ConversationSession(FailingMemoryService())
    asyncio.run(session.record_turn("page", "```html\n<div/>\n```", "openai", "gpt-test"))

    composed = asyncio.run(session.build_prompt("next step"))

    assert "search backend unavailable" in composed.metadata["memory_error"]
    assert "next step" in composed.text


def test_build_prompt_budget_drops_preferences_first() -> None:
    session = ConversationSession()
    asyncio.run(session.record_turn("page", "```html\n<div/>\n```", "openai", "gpt-test"))

    full = asyncio.run(session.build_prompt("task"))
    trimmed = asyncio.run(session.build_prompt("task", max_tokens=full.total_tokens - 1))

    assert [summary.type for summary in trimmed.excluded_layers] == ["user_preferences"]


def test_turn_search_round_trip() -> None:
    memory = InMemoryMemoryService()
    session = ConversationSession(memory)
    turn = asyncio.run(session.record_turn("login form validation", "Sure.", "openai", "gpt-test"))

    result = asyncio.run(memory.search("conversation-turns", MemorySearchParams(query="login form")))
    related = asyncio.run(session.retriever.find_related_turns("login form validation"))

    assert result.entries[0].metadata.custom["turn_id"] == turn.id
    assert [item.id for item in related] == [turn.id]
