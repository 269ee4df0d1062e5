"""codethread: conversational context and code-versioning engine."""

from .code import CodeBlock, CodeBlockRef, CodeBlockStore, CodeBlockVersion
from .config import EngineSettings, load_settings
from .conversation import Branch, ConversationGraph, EditAction, RelationType, Turn, TurnPrompt, TurnResponse
from .errors import EngineError, ExternalServiceError, LineageError, NotFoundError, ValidationError
from .memory import InMemoryMemoryService, MemoryService
from .prompting import ComposedPrompt, LayerPriority, LayerType, PromptComposer
from .retrieval import ContextBundle, ContextRetriever, RetrievalOptions
from .session import ConversationSession

__all__ = [
    "Branch",
    "CodeBlock",
    "CodeBlockRef",
    "CodeBlockStore",
    "CodeBlockVersion",
    "ComposedPrompt",
    "ContextBundle",
    "ContextRetriever",
    "ConversationGraph",
    "ConversationSession",
    "EditAction",
    "EngineError",
    "EngineSettings",
    "ExternalServiceError",
    "InMemoryMemoryService",
    "LayerPriority",
    "LayerType",
    "LineageError",
    "MemoryService",
    "NotFoundError",
    "PromptComposer",
    "RelationType",
    "RetrievalOptions",
    "Turn",
    "TurnPrompt",
    "TurnResponse",
    "ValidationError",
    "load_settings",
]
