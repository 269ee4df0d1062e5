"""Code block store: versioned code artifacts produced across turns."""

from .diff import compute_diff
from .models import CodeBlock, CodeBlockMetadata, CodeBlockRef, CodeBlockVersion
from .naming import infer_contextual_name
from .store import CodeBlockStore

__all__ = [
    "CodeBlock",
    "CodeBlockMetadata",
    "CodeBlockRef",
    "CodeBlockStore",
    "CodeBlockVersion",
    "compute_diff",
    "infer_contextual_name",
]
