from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from codethread.code.models import CodeBlockRef


class EditAction(str, Enum):
    REFACTOR = "refactor"
    OPTIMIZE = "optimize"
    ADD = "add"
    REMOVE = "remove"
    FIX = "fix"
    EXPLAIN = "explain"
    REGENERATE = "regenerate"
    MODIFY = "modify"
    CONVERT = "convert"


class RelationType(str, Enum):
    SEQUENTIAL = "sequential"
    BRANCH = "branch"
    REVISION = "revision"
    REFERENCE = "reference"
    MERGE = "merge"


class TurnPrompt(BaseModel):
    content: str
    context: Optional[str] = None


class ResponseMeta(BaseModel):
    provider: str = "unknown"
    model: str = "unknown"
    cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class TurnResponse(BaseModel):
    """Structured model reply: raw text plus per-language code content."""

    content: str = ""
    code_blocks: Dict[str, str] = Field(default_factory=dict)
    explanation: Optional[str] = None
    meta: ResponseMeta = Field(default_factory=ResponseMeta)


class TurnMetadata(BaseModel):
    tags: List[str] = Field(default_factory=list)
    importance: float = 1.0
    custom: Dict[str, Any] = Field(default_factory=dict)


class Turn(BaseModel):
    """One prompt/response exchange in the conversation graph."""

    id: str
    created_at: float
    prompt: TurnPrompt
    response: TurnResponse
    code_block_refs: List[CodeBlockRef] = Field(default_factory=list)
    edit_action: Optional[EditAction] = None
    edit_target: Optional[str] = None
    provider: str
    model: str
    parent_turn_id: Optional[str] = None
    memory_ids: List[str] = Field(default_factory=list)
    metadata: TurnMetadata = Field(default_factory=TurnMetadata)

    @property
    def is_root(self) -> bool:
        return self.parent_turn_id is None


class Branch(BaseModel):
    """Named path through the turn graph; ``turns`` shares the graph's Turn objects."""

    id: str
    name: str
    description: Optional[str] = None
    root_turn_id: Optional[str] = None
    created_at: float
    active: bool = False
    turns: List[Turn] = Field(default_factory=list)

    @property
    def tip(self) -> Optional[Turn]:
        return self.turns[-1] if self.turns else None

    @property
    def turn_ids(self) -> List[str]:
        return [turn.id for turn in self.turns]


class Relation(BaseModel):
    source_id: str
    target_id: str
    type: RelationType = RelationType.SEQUENTIAL
    created_at: float
    metadata: Dict[str, Any] = Field(default_factory=dict)
