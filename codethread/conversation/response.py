"""Turn raw model output into a :class:`TurnResponse`.

Fenced Markdown blocks are grouped by language. Text without fences that
still looks like source code becomes a single block with a guessed language.
All helpers here are pure and never raise on odd input.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from codethread.conversation.models import ResponseMeta, TurnResponse


_FENCE_RE = re.compile(r"```([\w#+-]+)?[ \t]*\n([\s\S]*?)```")
_BLANK_RUN_RE = re.compile(r"\n{3,}")

LANGUAGE_ALIASES: dict[str, str] = {
    "javascript": "js",
    "typescript": "ts",
    "py": "python",
    "python3": "python",
    "shell": "bash",
    "sh": "bash",
    "md": "markdown",
    "csharp": "c#",
    "yml": "yaml",
}

_CODE_INDICATORS = tuple(
    re.compile(pattern, flags)
    for pattern, flags in (
        (r"\{[\s\S]*?\}", 0),
        (r"\n\s*function\s+\w+\(", 0),
        (r"\n\s*(public|private|protected)\s", 0),
        (r"\n\s*(class|interface|enum)\s+\w+", 0),
        (r"\n\s*(def|fn|func)\s+\w+\(", 0),
        (r"\n\s*import\s+[\w\s{},*]+\s+from", 0),
        (r"[<>].*[<>]", 0),
        (r"\n\s*@\w+", 0),
        (r"\n\s*#include", 0),
        (r";\s*$", re.MULTILINE),
        (r"\n\s*//", 0),
        (r"\n\s*#\s+\w+", 0),
        (r"\"\w+\":\s*[{\[\"\d]", 0),
    )
)
_MIN_CODE_INDICATORS = 3


def normalize_language(language: Optional[str]) -> str:
    key = (language or "").strip().lower()
    if not key:
        return "text"
    return LANGUAGE_ALIASES.get(key, key)


def looks_like_code(text: Any) -> bool:
    """启发式判断：命中至少三个代码特征即视为代码。"""
    if not isinstance(text, str) or not text.strip():
        return False
    hits = sum(1 for pattern in _CODE_INDICATORS if pattern.search(text))
    return hits >= _MIN_CODE_INDICATORS


def guess_language(text: Any) -> str:
    if not isinstance(text, str):
        return "text"
    if "<html" in text or "<!DOCTYPE" in text:
        return "html"
    if "function" in text or "const " in text:
        return "js"
    if "import " in text and " from " in text:
        return "ts"
    if "def " in text and ":" in text:
        return "python"
    return "text"


def extract_code_blocks(text: Any) -> dict[str, str]:
    if not isinstance(text, str):
        return {}
    grouped: dict[str, list[str]] = {}
    for match in _FENCE_RE.finditer(text):
        code = match.group(2).strip()
        if not code:
            continue
        grouped.setdefault(normalize_language(match.group(1)), []).append(code)
    return {language: "\n\n".join(parts) for language, parts in grouped.items()}


def parse_response(text: Any, provider: str = "unknown", model: str = "unknown") -> TurnResponse:
    content = text if isinstance(text, str) else ("" if text is None else str(text))
    meta = ResponseMeta(provider=provider, model=model)

    code_blocks = extract_code_blocks(content)
    if code_blocks:
        explanation = _BLANK_RUN_RE.sub("\n\n", _FENCE_RE.sub("", content)).strip()
        return TurnResponse(
            content=content,
            code_blocks=code_blocks,
            explanation=explanation or None,
            meta=meta,
        )

    if looks_like_code(content):
        return TurnResponse(
            content=content,
            code_blocks={guess_language(content): content.strip()},
            explanation=None,
            meta=meta,
        )

    return TurnResponse(content=content, explanation=content.strip() or None, meta=meta)
