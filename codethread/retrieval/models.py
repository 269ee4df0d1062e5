from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from codethread.config import EngineSettings
from codethread.conversation.models import Turn
from codethread.memory.models import MemoryEntry, MemoryType


class RetrievalOptions(BaseModel):
    turn_limit: int = Field(default=10, ge=0)
    include_code_blocks: bool = True
    code_block_limit: int = Field(default=5, ge=0)
    include_memories: bool = True
    memory_types: Optional[List[MemoryType]] = None
    semantic_search_query: Optional[str] = None
    similarity_threshold: Optional[float] = Field(default=0.7, ge=0.0, le=1.0)
    max_memory_results: int = Field(default=10, ge=0)

    @classmethod
    def from_settings(cls, settings: EngineSettings, **overrides: object) -> "RetrievalOptions":
        values = {
            "turn_limit": settings.turn_limit,
            "include_code_blocks": settings.include_code_blocks,
            "code_block_limit": settings.code_block_limit,
            "include_memories": settings.include_memories,
            "similarity_threshold": settings.similarity_threshold,
            "max_memory_results": settings.memory_max_results,
        }
        values.update(overrides)
        return cls.model_validate(values)


class CodeSnippet(BaseModel):
    """A code block resolved to one concrete version for retrieval."""

    block_id: str
    language: str
    name: str
    version_id: str
    code: str
    updated_at: float


class ContextBundle(BaseModel):
    """Request-scoped retrieval result; never persisted."""

    conversation_context: str = ""
    referenced_turns: List[Turn] = Field(default_factory=list, description="Most recent first")
    code_blocks: List[CodeSnippet] = Field(default_factory=list)
    memories: List[MemoryEntry] = Field(default_factory=list)
    total_tokens: int = 0
    memory_error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.memory_error is not None

    @property
    def is_empty(self) -> bool:
        return not (self.referenced_turns or self.code_blocks or self.memories)
