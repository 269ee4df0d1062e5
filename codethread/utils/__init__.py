"""
Utility helpers shared by the conversation engine.

- Identifier and timestamp generation (ids.py)
- Token estimation and text truncation (text.py)
"""

from codethread.utils.ids import generate_id, now
from codethread.utils.text import estimate_tokens, preview, truncate_text

__all__ = [
    "generate_id",
    "now",
    "estimate_tokens",
    "preview",
    "truncate_text",
]
