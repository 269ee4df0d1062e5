from __future__ import annotations

from dataclasses import fields, replace
from itertools import count
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, Field
from rich.console import Console
from rich.table import Table

from codethread.config import EngineSettings
from codethread.errors import NotFoundError, ValidationError
from codethread.prompting.budget import PromptBudgeter, RenderedLayer
from codethread.prompting.layers import (
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
from codethread.prompting.presets import (
    DEFAULT_SYSTEM_PROMPTS,
    DEFAULT_USER_PREFERENCES,
    TASK_INSTRUCTION_TEMPLATES,
    USER_PREFERENCE_PRESETS,
)
from codethread.prompting.renderer import PromptRenderer
from codethread.retrieval.models import ContextBundle
from codethread.utils.ids import generate_id
from codethread.utils.text import estimate_tokens, preview


LayerFilter = Callable[[PromptLayer], bool]

REASON_BUDGET = "budget"
REASON_RENDER_ERROR = "render_error"

_LAYER_CLASSES: dict[LayerType, type[PromptLayer]] = {
    LayerType.SYSTEM: SystemLayer,
    LayerType.TASK: TaskLayer,
    LayerType.MEMORY: MemoryLayer,
    LayerType.USER_PREFERENCES: PreferencesLayer,
    LayerType.ADHOC: AdhocLayer,
}

_DEFAULT_PRIORITIES: dict[LayerType, int] = {
    LayerType.SYSTEM: LayerPriority.HIGH,
    LayerType.TASK: LayerPriority.MEDIUM,
    LayerType.MEMORY: LayerPriority.MEDIUM,
    LayerType.USER_PREFERENCES: LayerPriority.LOW,
    LayerType.ADHOC: LayerPriority.MEDIUM,
}


class LayerSummary(BaseModel):
    id: str
    type: str
    priority: int
    tokens: int = 0
    reason: Optional[str] = None


class ComposedPrompt(BaseModel):
    text: str = ""
    layers: List[LayerSummary] = Field(default_factory=list)
    excluded_layers: List[LayerSummary] = Field(default_factory=list)
    total_tokens: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CompletePromptOptions(BaseModel):
    system_prompt: Optional[str] = None
    system_preset: Optional[str] = None
    task_instruction: Optional[str] = None
    task_template: Optional[str] = None
    task_examples: List[str] = Field(default_factory=list)
    user_preferences: Optional[UserPreferences | Dict[str, Any]] = None
    user_preset: Optional[str] = None
    memory_content: Optional[str] = None
    memory_entries: List[MemoryLayerEntry] = Field(default_factory=list)
    max_tokens: Optional[int] = None


class PromptComposer:
    """Registry of prioritized prompt layers merged into one prompt text.

    ``compose()`` is a pure function of the current layers and the budget:
    calling it twice with no mutation in between yields identical output.
    """

    def __init__(
        self,
        *,
        settings: Optional[EngineSettings] = None,
        budgeter: Optional[PromptBudgeter] = None,
        renderer: Optional[PromptRenderer] = None,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._budgeter = budgeter or PromptBudgeter()
        self._renderer = renderer or PromptRenderer()
        self._layers: dict[str, PromptLayer] = {}
        self._sequence = count()

    # ------------------------------------------------------------------
    # registry
    # ------------------------------------------------------------------
    def create_layer(
        self,
        layer_type: LayerType | str,
        content: str = "",
        priority: Optional[int] = None,
        *,
        label: Optional[str] = None,
    ) -> str:
        resolved = _coerce_layer_type(layer_type)
        if not isinstance(content, str):
            raise ValidationError("Layer content must be text")
        layer_priority = _DEFAULT_PRIORITIES[resolved] if priority is None else _validate_priority(priority)

        layer_id = generate_id("layer")
        layer_class = _LAYER_CLASSES[resolved]
        layer = layer_class(id=layer_id, content=content, priority=layer_priority, sequence=next(self._sequence))
        if isinstance(layer, AdhocLayer) and label:
            layer.label = label
        if isinstance(layer, MemoryLayer):
            layer.max_entries = self._settings.memory_layer_max_entries
        self._layers[layer_id] = layer
        logger.debug(f"Created {layer.type_name} layer {layer_id} (priority={layer_priority})")
        return layer_id

    def get_layer(self, layer_id: str) -> Optional[PromptLayer]:
        return self._layers.get(layer_id)

    def require_layer(self, layer_id: str) -> PromptLayer:
        layer = self._layers.get(layer_id)
        if layer is None:
            raise NotFoundError("layer", layer_id)
        return layer

    def all_layers(self) -> list[PromptLayer]:
        return list(self._layers.values())

    def set_content(self, layer_id: str, content: str) -> None:
        if not isinstance(content, str):
            raise ValidationError("Layer content must be text")
        self.require_layer(layer_id).content = content

    def set_priority(self, layer_id: str, priority: int) -> None:
        layer = self.require_layer(layer_id)
        layer.priority = _validate_priority(priority)

    def set_enabled(self, layer_id: str, enabled: bool) -> None:
        self.require_layer(layer_id).enabled = bool(enabled)

    def remove_layer(self, layer_id: str) -> bool:
        return self._layers.pop(layer_id, None) is not None

    def clear_layers(self) -> None:
        self._layers.clear()
        logger.debug("Cleared all prompt layers")

    # ------------------------------------------------------------------
    # variant operations
    # ------------------------------------------------------------------
    def add_memory_entry(self, layer_id: str, entry: MemoryLayerEntry) -> bool:
        match self.require_layer(layer_id):
            case MemoryLayer() as layer:
                layer.add_entry(entry)
                return True
            case _:
                return False

    def add_task_example(self, layer_id: str, example: str) -> bool:
        match self.require_layer(layer_id):
            case TaskLayer() as layer:
                return layer.add_example(example)
            case _:
                return False

    def set_user_preferences(self, layer_id: str, preferences: UserPreferences | Mapping[str, Any]) -> bool:
        match self.require_layer(layer_id):
            case PreferencesLayer() as layer:
                layer.preferences = _merge_preferences(layer.preferences, preferences)
                return True
            case _:
                return False

    # ------------------------------------------------------------------
    # standard layers
    # ------------------------------------------------------------------
    def create_system_prompt(self, content: Optional[str] = None, preset: Optional[str] = None) -> str:
        text = content or ""
        if not text and preset:
            text = _lookup(DEFAULT_SYSTEM_PROMPTS, preset, "system preset")
        return self.create_layer(LayerType.SYSTEM, text)

    def create_task_instruction(
        self,
        content: Optional[str] = None,
        template: Optional[str] = None,
        examples: Sequence[str] = (),
    ) -> str:
        parts = []
        if template:
            parts.append(_lookup(TASK_INSTRUCTION_TEMPLATES, template, "task template"))
        if content:
            parts.append(content)
        layer_id = self.create_layer(LayerType.TASK, "\n\n".join(parts))
        for example in examples:
            self.add_task_example(layer_id, example)
        return layer_id

    def create_memory_layer(
        self,
        content: Optional[str] = None,
        entries: Sequence[MemoryLayerEntry] = (),
    ) -> str:
        layer_id = self.create_layer(LayerType.MEMORY, content or "")
        for entry in entries:
            self.add_memory_entry(layer_id, entry)
        return layer_id

    def create_user_preferences(
        self,
        preferences: Optional[UserPreferences | Mapping[str, Any]] = None,
        preset: Optional[str] = None,
    ) -> str:
        base = _lookup(USER_PREFERENCE_PRESETS, preset, "user preset") if preset else DEFAULT_USER_PREFERENCES
        layer_id = self.create_layer(LayerType.USER_PREFERENCES)
        self.set_user_preferences(layer_id, _merge_preferences(base, preferences or {}))
        return layer_id

    def memory_layer_from_bundle(self, bundle: ContextBundle) -> str:
        """把检索得到的上下文包转成记忆层。"""
        if bundle.degraded:
            logger.warning(f"Building memory layer from a degraded bundle: {bundle.memory_error}")
        entries = [
            MemoryLayerEntry(
                type=entry.metadata.type.value,
                content=entry.content,
                source=entry.metadata.source,
                timestamp=entry.created_at,
                relevance=entry.relevance,
            )
            for entry in bundle.memories
        ]
        return self.create_memory_layer(bundle.conversation_context, entries)

    def create_complete_prompt(self, options: CompletePromptOptions | Mapping[str, Any]) -> ComposedPrompt:
        opts = options if isinstance(options, CompletePromptOptions) else CompletePromptOptions.model_validate(dict(options))
        self.create_system_prompt(opts.system_prompt, opts.system_preset)
        self.create_task_instruction(opts.task_instruction, opts.task_template, opts.task_examples)
        self.create_user_preferences(opts.user_preferences, opts.user_preset)
        self.create_memory_layer(opts.memory_content, opts.memory_entries)
        return self.compose(max_tokens=opts.max_tokens)

    # ------------------------------------------------------------------
    # composition
    # ------------------------------------------------------------------
    def compose(self, filter: Optional[LayerFilter] = None, *, max_tokens: Optional[int] = None) -> ComposedPrompt:
        if filter is not None and not callable(filter):
            raise ValidationError("Layer filter must be callable")
        budget = self._settings.max_prompt_tokens if max_tokens is None else max_tokens
        if budget is not None and (isinstance(budget, bool) or not isinstance(budget, int) or budget < 0):
            raise ValidationError(f"Invalid token budget: {budget!r}")

        selected = [layer for layer in self._layers.values() if layer.enabled and self._accepts(filter, layer)]

        rendered: list[RenderedLayer] = []
        excluded: list[LayerSummary] = []
        for layer in selected:
            try:
                text = layer.render()
            except Exception as exc:  # noqa: BLE001
                logger.warning(f"Layer {layer.id} ({layer.type_name}) failed to render: {exc}")
                excluded.append(_summary_for(layer, tokens=0, reason=REASON_RENDER_ERROR))
                continue
            rendered.append(
                RenderedLayer(
                    id=layer.id,
                    type=layer.type_name,
                    priority=layer.priority,
                    sequence=layer.sequence,
                    text=text or "",
                )
            )

        ordered = self._renderer.order(rendered)
        kept, dropped = self._budgeter.fit(ordered, budget, self._measure)
        for item in dropped:
            logger.debug(f"Excluded layer {item.id} ({item.type}) to fit {budget} tokens")
            excluded.append(self._summary(item, REASON_BUDGET))

        text = self._renderer.render(kept)
        return ComposedPrompt(
            text=text,
            layers=[self._summary(item) for item in kept],
            excluded_layers=excluded,
            total_tokens=estimate_tokens(text, self._settings.chars_per_token),
            metadata={
                "layer_count": len(kept),
                "max_tokens": budget,
                "layers": [{"id": item.id, "type": item.type, "priority": item.priority} for item in kept],
            },
        )

    def debug_preview(self) -> str:
        lines = ["=== Prompt Composer Debug Preview ===", f"Total layers: {len(self._layers)}", ""]
        for layer in self._ordered_layers():
            lines.append(f"Layer: {layer.id}")
            lines.append(f"  Type: {layer.type_name}")
            lines.append(f"  Priority: {layer.priority}")
            lines.append(f"  Enabled: {layer.enabled}")
            lines.append(f"  Content: {preview(_safe_render(layer))}")
            lines.append("")
        composed = self.compose()
        lines.append(f"=== Composed Prompt ({len(composed.text)} chars, ~{composed.total_tokens} tokens) ===")
        lines.append(composed.text)
        return "\n".join(lines)

    def print_debug_preview(self, console: Optional[Console] = None) -> None:
        console = console or Console()
        table = Table(title="Prompt layers")
        table.add_column("Layer")
        table.add_column("Type")
        table.add_column("Priority", justify="right")
        table.add_column("Enabled")
        table.add_column("Content")
        for layer in self._ordered_layers():
            table.add_row(
                layer.id,
                layer.type_name,
                str(layer.priority),
                "yes" if layer.enabled else "no",
                preview(_safe_render(layer), 60),
            )
        console.print(table)
        composed = self.compose()
        console.print(f"Composed prompt: {len(composed.text)} chars, ~{composed.total_tokens} tokens")
        console.print(composed.text, markup=False)

    def _ordered_layers(self) -> list[PromptLayer]:
        return sorted(self._layers.values(), key=lambda layer: (-layer.priority, layer.sequence))

    def _measure(self, layers: list[RenderedLayer]) -> int:
        return estimate_tokens(self._renderer.render(layers), self._settings.chars_per_token)

    def _summary(self, item: RenderedLayer, reason: Optional[str] = None) -> LayerSummary:
        return LayerSummary(
            id=item.id,
            type=item.type,
            priority=item.priority,
            tokens=estimate_tokens(item.text, self._settings.chars_per_token),
            reason=reason,
        )

    @staticmethod
    def _accepts(filter: Optional[LayerFilter], layer: PromptLayer) -> bool:
        if filter is None:
            return True
        try:
            return bool(filter(layer))
        except Exception as exc:
            raise ValidationError(f"Layer filter failed on {layer.id}: {exc}") from exc


def _summary_for(layer: PromptLayer, *, tokens: int, reason: Optional[str]) -> LayerSummary:
    return LayerSummary(id=layer.id, type=layer.type_name, priority=layer.priority, tokens=tokens, reason=reason)


def _safe_render(layer: PromptLayer) -> str:
    try:
        return layer.render()
    except Exception as exc:  # noqa: BLE001
        return f"<render failed: {exc}>"


def _coerce_layer_type(layer_type: LayerType | str) -> LayerType:
    if isinstance(layer_type, LayerType):
        return layer_type
    try:
        return LayerType(str(layer_type).lower())
    except ValueError as exc:
        raise ValidationError(f"Unknown layer type: {layer_type}") from exc


def _validate_priority(priority: Any) -> int:
    if isinstance(priority, bool) or not isinstance(priority, int) or priority < 0:
        raise ValidationError(f"Invalid layer priority: {priority!r}")
    return int(priority)


def _lookup(table: Mapping[str, Any], key: str, kind: str) -> Any:
    value = table.get(key.upper())
    if value is None:
        raise ValidationError(f"Unknown {kind}: {key}")
    return value


def _merge_preferences(
    base: UserPreferences,
    overrides: UserPreferences | Mapping[str, Any],
) -> UserPreferences:
    if isinstance(overrides, UserPreferences):
        return replace(overrides)
    known = {item.name for item in fields(UserPreferences)}
    unknown = set(overrides) - known
    if unknown:
        raise ValidationError(f"Unknown preference fields: {', '.join(sorted(unknown))}")
    values = dict(overrides)
    try:
        if "tone" in values:
            values["tone"] = ResponseTone(values["tone"])
        if "format" in values:
            values["format"] = ResponseFormat(values["format"])
    except ValueError as exc:
        raise ValidationError(f"Invalid preference value: {exc}") from exc
    return replace(base, **values)
