"""Conversation graph: turns, branches, relations and edit-intent helpers."""

from .graph import ConversationGraph
from .intent import IntentAnalysis, analyze_intent, describe_edit
from .models import (
    Branch,
    EditAction,
    Relation,
    RelationType,
    ResponseMeta,
    Turn,
    TurnMetadata,
    TurnPrompt,
    TurnResponse,
)
from .response import extract_code_blocks, guess_language, looks_like_code, normalize_language, parse_response

__all__ = [
    "Branch",
    "ConversationGraph",
    "EditAction",
    "IntentAnalysis",
    "Relation",
    "RelationType",
    "ResponseMeta",
    "Turn",
    "TurnMetadata",
    "TurnPrompt",
    "TurnResponse",
    "analyze_intent",
    "describe_edit",
    "extract_code_blocks",
    "guess_language",
    "looks_like_code",
    "normalize_language",
    "parse_response",
]
