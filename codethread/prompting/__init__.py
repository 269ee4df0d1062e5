"""Prompt composition: prioritized layers merged under a token budget."""

from .budget import DropLowestPriorityPolicy, LayerBudgetPolicy, PromptBudgeter, RenderedLayer
from .composer import CompletePromptOptions, ComposedPrompt, LayerSummary, PromptComposer
from .layers import (
    AdhocLayer,
    LayerPriority,
    LayerType,
    MemoryLayer,
    MemoryLayerEntry,
    PreferencesLayer,
    PromptLayer,
    ResponseFormat,
    ResponseTone,
    SystemLayer,
    TaskLayer,
    UserPreferences,
)
from .presets import DEFAULT_SYSTEM_PROMPTS, DEFAULT_USER_PREFERENCES, TASK_INSTRUCTION_TEMPLATES, USER_PREFERENCE_PRESETS
from .renderer import PromptRenderer

__all__ = [
    "AdhocLayer",
    "CompletePromptOptions",
    "ComposedPrompt",
    "DEFAULT_SYSTEM_PROMPTS",
    "DEFAULT_USER_PREFERENCES",
    "DropLowestPriorityPolicy",
    "LayerBudgetPolicy",
    "LayerPriority",
    "LayerSummary",
    "LayerType",
    "MemoryLayer",
    "MemoryLayerEntry",
    "PreferencesLayer",
    "PromptBudgeter",
    "PromptComposer",
    "PromptLayer",
    "PromptRenderer",
    "RenderedLayer",
    "ResponseFormat",
    "ResponseTone",
    "SystemLayer",
    "TaskLayer",
    "TASK_INSTRUCTION_TEMPLATES",
    "USER_PREFERENCE_PRESETS",
    "UserPreferences",
]
