from __future__ import annotations

from typing import Any, Optional

from codethread.code.store import CodeBlockStore
from codethread.config import EngineSettings
from codethread.conversation.graph import ConversationGraph
from codethread.conversation.models import Turn, TurnPrompt, TurnResponse
from codethread.memory.interface import MemoryService


def make_response(
    code_blocks: Optional[dict[str, str]] = None,
    *,
    content: str = "",
    explanation: Optional[str] = None,
) -> TurnResponse:
    return TurnResponse(content=content, code_blocks=dict(code_blocks or {}), explanation=explanation)


def make_graph(
    *,
    memory: Optional[MemoryService] = None,
    settings: Optional[EngineSettings] = None,
) -> tuple[ConversationGraph, CodeBlockStore]:
    store = CodeBlockStore(memory, settings=settings)
    graph = ConversationGraph(store, settings=settings)
    return graph, store


def add_turn(
    graph: ConversationGraph,
    prompt: str = "build a page",
    code_blocks: Optional[dict[str, str]] = None,
    *,
    explanation: Optional[str] = None,
    provider: str = "openai",
    model: str = "gpt-test",
    **kwargs: Any,
) -> Turn:
    return graph.add_turn(
        TurnPrompt(content=prompt),
        make_response(code_blocks, content=explanation or "", explanation=explanation),
        provider,
        model,
        **kwargs,
    )
