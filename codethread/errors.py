from __future__ import annotations

from typing import Optional


class EngineError(Exception):
    """Base error for conversation engine operations."""


class NotFoundError(EngineError):
    """Raised when a turn, block, version, branch or layer id is unknown."""

    def __init__(self, kind: str, identifier: str, message: Optional[str] = None) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(message or f"Unknown {kind}: {identifier}")


class ValidationError(EngineError):
    """Raised when input content, priorities, filters or settings are invalid."""


class ExternalServiceError(EngineError):
    """Raised by third-party memory adapters when their backend fails.

    The in-process adapter never raises it; engine components catch it (and any
    other adapter error) and degrade.
    """


class LineageError(EngineError):
    """Raised when a version parent chain cycles or dangles."""
