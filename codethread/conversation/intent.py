"""Lexical edit-intent classifier. Best effort; always returns a value."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

from codethread.conversation.models import EditAction


ALL_TARGET = "all"

_ACTION_KEYWORDS: tuple[tuple[EditAction, tuple[str, ...]], ...] = (
    (EditAction.REFACTOR, ("refactor", "restructure", "rewrite")),
    (EditAction.OPTIMIZE, ("optimize", "optimise", "improve", "speed up", "faster")),
    (EditAction.ADD, ("add", "include", "insert", "create")),
    (EditAction.REMOVE, ("remove", "delete", "take out")),
    (EditAction.FIX, ("fix", "debug", "solve", "correct")),
    (EditAction.EXPLAIN, ("explain", "describe", "clarify")),
    (EditAction.REGENERATE, ("regenerate", "redo", "start over")),
    (EditAction.MODIFY, ("modify", "change", "update")),
    (EditAction.CONVERT, ("convert", "transform", "port")),
)

_TARGET_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("html", ("html", "markup", "dom")),
    ("css", ("css", "style", "styles", "styling", "stylesheet")),
    ("js", ("javascript", "js", "script", "functionality")),
    ("python", ("python", "py")),
    (ALL_TARGET, ("everything", "all", "code", "project")),
)

_ACTION_DESCRIPTIONS: dict[EditAction, str] = {
    EditAction.REFACTOR: "Refactor {target} to",
    EditAction.OPTIMIZE: "Optimize {target} to",
    EditAction.ADD: "Add to {target}",
    EditAction.REMOVE: "Remove from {target}",
    EditAction.FIX: "Fix {target} to",
    EditAction.EXPLAIN: "Explain {target}",
    EditAction.REGENERATE: "Regenerate {target}",
    EditAction.MODIFY: "Modify {target} to",
    EditAction.CONVERT: "Convert {target} to",
}


@dataclass(frozen=True)
class IntentAnalysis:
    action: EditAction = EditAction.MODIFY
    target: str = ALL_TARGET


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(r"\b" + r"\s+".join(re.escape(part) for part in keyword.split()) + r"\b")


_ACTION_PATTERNS = tuple(
    (action, tuple(_keyword_pattern(keyword) for keyword in keywords))
    for action, keywords in _ACTION_KEYWORDS
)
_TARGET_PATTERNS = tuple(
    (target, tuple(_keyword_pattern(keyword) for keyword in keywords))
    for target, keywords in _TARGET_KEYWORDS
)


def analyze_intent(prompt: Any) -> IntentAnalysis:
    try:
        text = str(prompt or "").lower()
    except Exception:  # noqa: BLE001
        return IntentAnalysis()

    action = EditAction.MODIFY
    for candidate, patterns in _ACTION_PATTERNS:
        if any(pattern.search(text) for pattern in patterns):
            action = candidate
            break

    target = ALL_TARGET
    for candidate, patterns in _TARGET_PATTERNS:
        if any(pattern.search(text) for pattern in patterns):
            target = candidate
            break

    return IntentAnalysis(action=action, target=target)


def describe_edit(action: Optional[EditAction], target: Optional[str]) -> str:
    target_text = "the entire codebase" if not target or target == ALL_TARGET else f"the {target} code"
    template = _ACTION_DESCRIPTIONS.get(action) if action is not None else None
    if template is None:
        return f"Update {target_text} to"
    return template.format(target=target_text)
