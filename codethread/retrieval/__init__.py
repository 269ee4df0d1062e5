"""Context retrieval: bounded bundles of turns, code and memories."""

from .models import CodeSnippet, ContextBundle, RetrievalOptions
from .renderer import render_conversation_context, render_follow_up_context
from .retriever import ContextRetriever

__all__ = [
    "CodeSnippet",
    "ContextBundle",
    "ContextRetriever",
    "RetrievalOptions",
    "render_conversation_context",
    "render_follow_up_context",
]
