from __future__ import annotations

import math
from typing import Any


_TRUNCATION_MARK = "\n...<truncated>...\n"

DEFAULT_CHARS_PER_TOKEN = 4


def estimate_tokens(text: Any, chars_per_token: int = DEFAULT_CHARS_PER_TOKEN) -> int:
    """粗略估算 token 数：字符数 / chars_per_token，向上取整。"""
    if not text:
        return 0
    divisor = chars_per_token if chars_per_token and chars_per_token > 0 else DEFAULT_CHARS_PER_TOKEN
    return math.ceil(len(str(text)) / divisor)


def truncate_text(text: Any, max_chars: int) -> str:
    """按最大长度截断文本，保留首尾内容。"""
    if text is None:
        return ""
    text_value = str(text)
    if max_chars <= 0:
        return ""
    if len(text_value) <= max_chars:
        return text_value
    mark_len = len(_TRUNCATION_MARK)
    head = max_chars // 2
    tail = max_chars - head - mark_len
    if tail < 0:
        return text_value[:max_chars]
    return text_value[:head] + _TRUNCATION_MARK + text_value[-tail:]


def preview(text: Any, limit: int = 100) -> str:
    """单行预览，用于日志与调试输出。"""
    if text is None:
        return ""
    flat = " ".join(str(text).split())
    if len(flat) <= limit:
        return flat
    return flat[:limit] + "..."
