"""External memory interface and an in-process implementation."""

from .interface import MemoryService
from .local import InMemoryMemoryService, calculate_relevance
from .models import MemoryEntry, MemoryMetadata, MemorySearchParams, MemorySearchResult, MemoryType

__all__ = [
    "MemoryService",
    "InMemoryMemoryService",
    "calculate_relevance",
    "MemoryEntry",
    "MemoryMetadata",
    "MemorySearchParams",
    "MemorySearchResult",
    "MemoryType",
]
