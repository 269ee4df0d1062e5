from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from codethread.errors import ValidationError


ENV_CONFIG_PATH = "CODETHREAD_CONFIG"
_SECTION_KEY = "codethread"


class EngineSettings(BaseModel):
    """会话引擎的运行配置（纯声明，不含副作用）。"""

    turn_limit: int = Field(default=10, description="Turns walked back from the reference turn")
    code_block_limit: int = Field(default=5, description="Distinct code blocks surfaced per retrieval")
    include_code_blocks: bool = True
    include_memories: bool = True
    similarity_threshold: Optional[float] = Field(default=0.7, description="Passed verbatim to memory search")
    memory_max_results: int = 10
    max_prompt_tokens: Optional[int] = Field(default=None, description="Token ceiling for composed prompts")
    chars_per_token: int = 4
    compute_diffs: bool = True
    memory_layer_max_entries: int = 10
    turn_collection: str = "conversation-turns"
    code_collection: str = "code-blocks"
    persist_turns: bool = True
    persist_code_blocks: bool = True
    default_branch_name: str = "Main Conversation"

    @field_validator("turn_limit", "code_block_limit", "memory_max_results", "memory_layer_max_entries")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @field_validator("chars_per_token")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("similarity_threshold")
    @classmethod
    def _threshold_range(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and not 0.0 <= value <= 1.0:
            raise ValueError("must be between 0.0 and 1.0")
        return value


def load_settings(
    path: Optional[str | Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> EngineSettings:
    """按 默认值 -> 配置文件 -> overrides 的顺序合并配置。"""
    config_path = path or os.getenv(ENV_CONFIG_PATH)
    file_data = load_from_path(config_path) if config_path else {}
    merged = _merge_dicts(file_data, dict(overrides or {}))
    try:
        return EngineSettings.model_validate(merged)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid engine settings: {exc}") from exc


def load_from_path(path: str | Path) -> dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Engine config not found: {path}")

    with config_path.open("r", encoding="utf-8") as handle:
        if config_path.suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(handle)
        elif config_path.suffix == ".json":
            data = json.load(handle)
        else:
            raise ValidationError(f"Unsupported config format: {config_path.suffix}")

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValidationError("Engine config must be a mapping")
    section = data.get(_SECTION_KEY)
    if isinstance(section, Mapping):
        return dict(section)
    return dict(data)


def _merge_dicts(*layers: Mapping[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            merged[key] = value
    return merged
