from __future__ import annotations

from typing import Any, Mapping, Optional

from loguru import logger

from codethread.code.naming import infer_contextual_name
from codethread.code.store import CodeBlockStore
from codethread.config import EngineSettings
from codethread.conversation.graph import ConversationGraph
from codethread.conversation.intent import ALL_TARGET, describe_edit
from codethread.conversation.models import EditAction, Turn, TurnPrompt
from codethread.errors import ValidationError
from codethread.memory.interface import MemoryService
from codethread.memory.models import MemoryEntry, MemorySearchParams
from codethread.retrieval.models import CodeSnippet, ContextBundle, RetrievalOptions
from codethread.retrieval.renderer import render_conversation_context, render_follow_up_context
from codethread.utils.text import estimate_tokens


SYNTHESIZED_QUERY_MAX_CHARS = 500
RELATED_TURN_THRESHOLD = 0.6

_FOLLOW_UP_OPTIONS = {
    "turn_limit": 3,
    "include_code_blocks": True,
    "code_block_limit": 2,
    "include_memories": False,
}


class ContextRetriever:
    """从会话图与代码块存储中组装有界的上下文包。

    本身不持有状态；每次调用基于当前快照重新计算。外部记忆检索失败时
    降级为空记忆列表，并在 ``ContextBundle.memory_error`` 中说明原因。
    """

    def __init__(
        self,
        graph: ConversationGraph,
        code_store: CodeBlockStore,
        memory: Optional[MemoryService] = None,
        *,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        self._graph = graph
        self._code_store = code_store
        self._memory = memory
        self._settings = settings or EngineSettings()

    def default_options(self, **overrides: Any) -> RetrievalOptions:
        return RetrievalOptions.from_settings(self._settings, **overrides)

    async def retrieve_context(
        self,
        options: Optional[RetrievalOptions | Mapping[str, Any]] = None,
        reference_turn_id: Optional[str] = None,
    ) -> ContextBundle:
        resolved = self._resolve_options(options)
        turns = self._select_turns(resolved.turn_limit, reference_turn_id)
        snippets = self._collect_code(turns, resolved.code_block_limit) if resolved.include_code_blocks else []

        memories: list[MemoryEntry] = []
        memory_error: Optional[str] = None
        query = resolved.semantic_search_query or _synthesize_query(turns)
        if resolved.include_memories and self._memory is not None and query:
            memories, memory_error = await self._search_memories(query, resolved)

        context = render_conversation_context(reversed(turns), snippets)
        chars_per_token = self._settings.chars_per_token
        total = estimate_tokens(context, chars_per_token) + sum(
            estimate_tokens(entry.content, chars_per_token) for entry in memories
        )
        logger.debug(
            f"Retrieved context: {len(turns)} turns, {len(snippets)} code blocks, "
            f"{len(memories)} memories, ~{total} tokens"
        )
        return ContextBundle(
            conversation_context=context,
            referenced_turns=turns,
            code_blocks=snippets,
            memories=memories,
            total_tokens=total,
            memory_error=memory_error,
        )

    async def build_follow_up_prompt(
        self,
        user_prompt: str,
        edit_action: Optional[EditAction] = None,
        edit_target: Optional[str] = None,
        turn_id: Optional[str] = None,
    ) -> TurnPrompt:
        """Wrap a follow-up edit request with a narrow slice of recent context."""
        bundle = await self.retrieve_context(RetrievalOptions(**_FOLLOW_UP_OPTIONS), turn_id)
        action = edit_action or EditAction.MODIFY
        target = edit_target or ALL_TARGET
        context = render_follow_up_context(
            action.value,
            target,
            render_conversation_context(reversed(bundle.referenced_turns)) if bundle.referenced_turns else None,
            bundle.code_blocks,
        )
        return TurnPrompt(content=f"{describe_edit(action, target)}: {user_prompt}", context=context)

    async def find_related_turns(self, content: str, limit: int = 5) -> list[Turn]:
        if self._memory is None or not content:
            return []
        params = MemorySearchParams(query=content, max_results=limit, threshold=RELATED_TURN_THRESHOLD)
        try:
            result = await self._memory.search(self._settings.turn_collection, params)
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Related-turn search failed: {exc}")
            return []

        related: list[Turn] = []
        seen: set[str] = set()
        for entry in result.entries:
            turn_id = entry.metadata.custom.get("turn_id")
            if not turn_id or turn_id in seen:
                continue
            turn = self._graph.get_turn(turn_id)
            if turn is None:
                continue
            seen.add(turn_id)
            related.append(turn)
        return related

    def _resolve_options(self, options: Optional[RetrievalOptions | Mapping[str, Any]]) -> RetrievalOptions:
        if options is None:
            return self.default_options()
        if isinstance(options, RetrievalOptions):
            return options
        if isinstance(options, Mapping):
            try:
                return self.default_options(**dict(options))
            except ValueError as exc:
                raise ValidationError(f"Invalid retrieval options: {exc}") from exc
        raise ValidationError(f"Unsupported retrieval options: {type(options).__name__}")

    def _select_turns(self, limit: int, reference_turn_id: Optional[str]) -> list[Turn]:
        if limit <= 0:
            return []
        if reference_turn_id is not None:
            chain = self._graph.get_lineage(reference_turn_id, limit)
        else:
            chain = self._graph.get_active_branch().turns[-limit:]
        return list(reversed(chain))

    def _collect_code(self, turns: list[Turn], limit: int) -> list[CodeSnippet]:
        snippets: list[CodeSnippet] = []
        seen: set[str] = set()
        for turn in turns:
            for ref in turn.code_block_refs:
                if len(snippets) >= limit:
                    return snippets
                if ref.id in seen:
                    continue
                seen.add(ref.id)
                block = self._code_store.get_block(ref.id)
                if block is None:
                    logger.warning(f"Turn {turn.id} references unknown code block {ref.id}")
                    continue
                current = block.current_version
                snippets.append(
                    CodeSnippet(
                        block_id=block.id,
                        language=block.language,
                        name=infer_contextual_name(block.language, current.code, block.filename),
                        version_id=current.id,
                        code=current.code,
                        updated_at=current.created_at,
                    )
                )
        return snippets

    async def _search_memories(
        self,
        query: str,
        options: RetrievalOptions,
    ) -> tuple[list[MemoryEntry], Optional[str]]:
        params = MemorySearchParams(
            query=query,
            types=options.memory_types,
            max_results=options.max_memory_results,
            threshold=options.similarity_threshold,
        )
        try:
            result = await self._memory.search(self._settings.turn_collection, params)
        except Exception as exc:  # noqa: BLE001
            message = f"{type(exc).__name__}: {exc}"
            logger.warning(f"Memory search failed, continuing without memories: {message}")
            return [], message
        return list(result.entries), None


def _synthesize_query(turns: list[Turn]) -> str:
    joined = "\n".join(turn.prompt.content for turn in turns if turn.prompt.content)
    return joined[:SYNTHESIZED_QUERY_MAX_CHARS]
