from __future__ import annotations

from typing import Any, Mapping, Optional

from loguru import logger

from codethread.code.store import CodeBlockStore
from codethread.config import EngineSettings
from codethread.conversation.graph import ConversationGraph
from codethread.conversation.models import EditAction, Turn, TurnPrompt, TurnResponse
from codethread.conversation.response import parse_response
from codethread.memory.interface import MemoryService
from codethread.memory.local import InMemoryMemoryService
from codethread.memory.models import MemoryMetadata, MemoryType
from codethread.prompting.composer import ComposedPrompt, PromptComposer
from codethread.prompting.layers import UserPreferences
from codethread.retrieval.models import ContextBundle, RetrievalOptions
from codethread.retrieval.renderer import render_turn_block
from codethread.retrieval.retriever import ContextRetriever


class ConversationSession:
    """Central coordinator wiring the stores, retriever and composer for one session.

    All components share one memory adapter and one settings object; nothing
    is kept in module-level state. Call :meth:`initialize` once before use.
    """

    def __init__(
        self,
        memory: Optional[MemoryService] = None,
        *,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        if memory is not None and not isinstance(memory, MemoryService):
            raise TypeError(f"memory must implement MemoryService, got {type(memory)}")
        self.settings = settings or EngineSettings()
        self.memory: MemoryService = memory if memory is not None else InMemoryMemoryService()
        self.code_store = CodeBlockStore(self.memory, settings=self.settings)
        self.graph = ConversationGraph(self.code_store, settings=self.settings)
        self.retriever = ContextRetriever(self.graph, self.code_store, self.memory, settings=self.settings)
        self.composer = PromptComposer(settings=self.settings)
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> int:
        """加载已持久化的代码块；重复调用不会重新加载。"""
        if self._initialized:
            return 0
        loaded = await self.code_store.initialize()
        self._initialized = True
        return loaded

    async def record_turn(
        self,
        prompt: TurnPrompt | str,
        response: TurnResponse | str,
        provider: str,
        model: str,
        edit_action: Optional[EditAction | str] = None,
        edit_target: Optional[str] = None,
        parent_turn_id: Optional[str] = None,
        *,
        infer_intent: bool = False,
    ) -> Turn:
        prompt_model = TurnPrompt(content=prompt) if isinstance(prompt, str) else prompt
        response_model = (
            parse_response(response, provider=provider, model=model) if isinstance(response, str) else response
        )
        if infer_intent and edit_action is None and edit_target is None:
            intent = self.graph.analyze_intent(prompt_model.content)
            edit_action, edit_target = intent.action, intent.target

        turn = self.graph.add_turn(
            prompt_model,
            response_model,
            provider,
            model,
            edit_action,
            edit_target,
            parent_turn_id,
        )
        await self._persist_turn(turn)
        await self.code_store.flush()
        return turn

    async def retrieve_context(
        self,
        options: Optional[RetrievalOptions | Mapping[str, Any]] = None,
        reference_turn_id: Optional[str] = None,
    ) -> ContextBundle:
        return await self.retriever.retrieve_context(options, reference_turn_id)

    async def build_prompt(
        self,
        task: Optional[str],
        *,
        system_prompt: Optional[str] = None,
        system_preset: Optional[str] = None,
        preferences: Optional[UserPreferences | Mapping[str, Any]] = None,
        user_preset: Optional[str] = None,
        options: Optional[RetrievalOptions | Mapping[str, Any]] = None,
        reference_turn_id: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> ComposedPrompt:
        """Compose system, task, preferences and memory layers for the next model call."""
        self.composer.clear_layers()
        bundle = await self.retriever.retrieve_context(options, reference_turn_id)
        self.composer.create_system_prompt(system_prompt, system_preset)
        self.composer.create_task_instruction(task)
        self.composer.create_user_preferences(preferences, user_preset)
        self.composer.memory_layer_from_bundle(bundle)
        composed = self.composer.compose(max_tokens=max_tokens)
        composed.metadata["context_tokens"] = bundle.total_tokens
        composed.metadata["memory_error"] = bundle.memory_error
        return composed

    async def _persist_turn(self, turn: Turn) -> None:
        if not self.settings.persist_turns:
            return
        branch = self.graph.get_active_branch()
        metadata = MemoryMetadata(
            type=MemoryType.CHAT,
            source=turn.provider,
            tags=list(turn.metadata.tags),
            session_id=branch.id,
            custom={
                "turn_id": turn.id,
                "branch_id": branch.id,
                "provider": turn.provider,
                "model": turn.model,
                "edit_action": turn.edit_action.value if turn.edit_action else None,
                "edit_target": turn.edit_target,
                "created_at": turn.created_at,
            },
        )
        try:
            entry = await self.memory.add(self.settings.turn_collection, render_turn_block(turn), metadata)
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Failed to persist turn {turn.id} to memory: {exc}")
            return
        self.graph.attach_memory(turn.id, entry.id)
