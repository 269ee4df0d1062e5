"""Prompt layer variants.

Every layer renders through ``render()``; variant-specific operations live on
the variant itself and are reached by pattern matching in the composer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import ClassVar, Optional


class LayerType(str, Enum):
    SYSTEM = "system"
    TASK = "task"
    MEMORY = "memory"
    USER_PREFERENCES = "user_preferences"
    ADHOC = "adhoc"


class LayerPriority(IntEnum):
    LOW = 100
    MEDIUM = 500
    HIGH = 900
    CRITICAL = 1000


class ResponseTone(str, Enum):
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    TECHNICAL = "technical"
    CASUAL = "casual"
    FORMAL = "formal"
    ANALYTICAL = "analytical"
    METHODICAL = "methodical"


class ResponseFormat(str, Enum):
    DEFAULT = "default"
    STRUCTURED = "structured"
    CONVERSATIONAL = "conversational"
    STEP_BY_STEP = "step_by_step"
    CODE_FOCUSED = "code_focused"
    BULLET_POINTS = "bullet_points"


DEFAULT_SYSTEM_LINE = "You are a helpful AI assistant."
MEMORY_HEADER = "Relevant context from previous interactions:"

_TONE_INSTRUCTIONS: dict[ResponseTone, str] = {
    ResponseTone.PROFESSIONAL: "Maintain a professional and business-appropriate tone in all responses.",
    ResponseTone.FRIENDLY: "Use a friendly, approachable, and conversational tone.",
    ResponseTone.TECHNICAL: "Use precise technical language appropriate for developers and technical professionals.",
    ResponseTone.CASUAL: "Keep the tone casual and relaxed, as if talking to a colleague.",
    ResponseTone.FORMAL: "Maintain a formal and respectful tone throughout the interaction.",
    ResponseTone.ANALYTICAL: "Approach responses with an analytical mindset, focusing on logic and systematic thinking.",
    ResponseTone.METHODICAL: "Be methodical and systematic in your approach, breaking down complex topics step by step.",
}

_FORMAT_INSTRUCTIONS: dict[ResponseFormat, str] = {
    ResponseFormat.DEFAULT: "Format responses in a clear and readable manner.",
    ResponseFormat.STRUCTURED: "Structure your responses with clear headings, sections, and organized information.",
    ResponseFormat.CONVERSATIONAL: "Format responses in a natural, conversational style.",
    ResponseFormat.STEP_BY_STEP: "Break down complex processes into clear, numbered steps.",
    ResponseFormat.CODE_FOCUSED: "Focus on code examples and technical implementation details.",
    ResponseFormat.BULLET_POINTS: "Use bullet points and lists to organize information clearly.",
}


@dataclass
class UserPreferences:
    tone: ResponseTone = ResponseTone.TECHNICAL
    format: ResponseFormat = ResponseFormat.DEFAULT
    include_explanations: bool = True
    include_examples: bool = False
    custom_instructions: Optional[str] = None


@dataclass
class MemoryLayerEntry:
    type: str
    content: str
    source: Optional[str] = None
    timestamp: Optional[float] = None
    relevance: Optional[float] = None

    def render(self) -> str:
        details = [self.source or "unknown"]
        if self.timestamp is not None:
            details.append(datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat(timespec="seconds"))
        return f"[{self.type.upper()}] ({', '.join(details)}): {self.content}"


@dataclass
class PromptLayer:
    id: str
    content: str = ""
    priority: int = LayerPriority.MEDIUM
    enabled: bool = True
    sequence: int = 0

    layer_type: ClassVar[LayerType] = LayerType.ADHOC

    @property
    def type_name(self) -> str:
        return self.layer_type.value

    def render(self) -> str:
        return self.content.strip()


@dataclass
class SystemLayer(PromptLayer):
    layer_type: ClassVar[LayerType] = LayerType.SYSTEM

    def render(self) -> str:
        return self.content.strip() or DEFAULT_SYSTEM_LINE


@dataclass
class TaskLayer(PromptLayer):
    examples: list[str] = field(default_factory=list)

    layer_type: ClassVar[LayerType] = LayerType.TASK

    def add_example(self, example: str) -> bool:
        if not isinstance(example, str) or not example.strip():
            return False
        self.examples.append(example.strip())
        return True

    def render(self) -> str:
        parts: list[str] = []
        if self.content.strip():
            parts.append(self.content.strip())
        if self.examples:
            parts.append("Examples:")
            parts.extend(f"{index}. {example}" for index, example in enumerate(self.examples, start=1))
        return "\n".join(parts)


@dataclass
class MemoryLayer(PromptLayer):
    """记忆层：按相关度降序渲染条目，无相关度时保持插入顺序。"""

    entries: list[MemoryLayerEntry] = field(default_factory=list)
    max_entries: int = 10

    layer_type: ClassVar[LayerType] = LayerType.MEMORY

    def add_entry(self, entry: MemoryLayerEntry) -> None:
        self.entries.append(entry)
        if self.max_entries > 0 and len(self.entries) > self.max_entries:
            self.entries = self.entries[-self.max_entries :]

    def ordered_entries(self) -> list[MemoryLayerEntry]:
        indexed = list(enumerate(self.entries))
        scored = sorted(
            (item for item in indexed if item[1].relevance is not None),
            key=lambda item: (-item[1].relevance, item[0]),
        )
        unscored = [item for item in indexed if item[1].relevance is None]
        return [entry for _, entry in [*scored, *unscored]]

    def render(self) -> str:
        parts: list[str] = []
        if self.content.strip():
            parts.append(self.content.strip())
        if self.entries:
            parts.append(MEMORY_HEADER)
            parts.extend(entry.render() for entry in self.ordered_entries())
        return "\n".join(parts)


@dataclass
class PreferencesLayer(PromptLayer):
    preferences: UserPreferences = field(default_factory=UserPreferences)

    layer_type: ClassVar[LayerType] = LayerType.USER_PREFERENCES

    def render(self) -> str:
        prefs = self.preferences
        parts = [
            _TONE_INSTRUCTIONS.get(prefs.tone, "Maintain an appropriate and helpful tone."),
            _FORMAT_INSTRUCTIONS.get(prefs.format, _FORMAT_INSTRUCTIONS[ResponseFormat.DEFAULT]),
        ]
        if prefs.include_explanations:
            parts.append("Always provide clear explanations for your reasoning and decisions.")
        if prefs.include_examples:
            parts.append("Include relevant examples to illustrate your points when appropriate.")
        if prefs.custom_instructions:
            parts.append(f"Additional instructions: {prefs.custom_instructions}")
        if self.content.strip():
            parts.append(self.content.strip())
        return "\n".join(parts)


@dataclass
class AdhocLayer(PromptLayer):
    label: str = LayerType.ADHOC.value

    @property
    def type_name(self) -> str:
        return self.label
