"""Best-effort labels for code blocks. Never used for identity."""

from __future__ import annotations

import re
from typing import Optional


_CLASS_NAME_RE = re.compile(r"class\s+(\w+)")
_FUNCTION_NAME_RE = re.compile(r"function\s+(\w+)")
_ARROW_COMPONENT_RE = re.compile(r"const\s+([A-Z]\w*)\s*=\s*\(")
_PY_DEF_RE = re.compile(r"^\s*def\s+\w+", re.MULTILINE)
_PY_CLASS_RE = re.compile(r"^\s*class\s+\w+", re.MULTILINE)


def infer_contextual_name(language: str, code: str, filename: Optional[str] = None) -> str:
    if filename:
        return filename

    lang = (language or "").lower()

    if lang == "html":
        lowered = code.lower()
        if "<html" in lowered or "<!doctype" in lowered:
            return "Main HTML document"
        if "<nav" in lowered:
            return "Navigation component"
        if "<form" in lowered:
            return "Form component"

    if lang in {"js", "ts", "jsx", "tsx"}:
        if "class" in code and "extends Component" in code:
            match = _CLASS_NAME_RE.search(code)
            if match:
                return f"{match.group(1)} component"
        if "function" in code and "return" in code and "<" in code:
            match = _FUNCTION_NAME_RE.search(code)
            if match:
                return f"{match.group(1)} component"
        match = _ARROW_COMPONENT_RE.search(code)
        if match and "<" in code:
            return f"{match.group(1)} component"
        if "function" in code and "<" not in code:
            return "Utility functions"

    if lang == "css":
        return "Stylesheet"

    if lang == "python":
        defs = len(_PY_DEF_RE.findall(code))
        classes = len(_PY_CLASS_RE.findall(code))
        if classes and defs:
            return "Python class definition"
        if classes:
            return "Python classes"
        if defs:
            return "Python functions"

    if lang == "sql":
        return "Database query"

    return f"{lang or 'text'} code"
