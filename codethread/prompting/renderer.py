from __future__ import annotations

from typing import Iterable

from codethread.prompting.budget import RenderedLayer


class PromptRenderer:
    """按优先级稳定排序并拼接已渲染的层。"""

    separator = "\n\n"

    def order(self, layers: Iterable[RenderedLayer]) -> list[RenderedLayer]:
        return sorted(layers, key=lambda layer: (-layer.priority, layer.sequence))

    def render(self, layers: Iterable[RenderedLayer]) -> str:
        contents = [layer.text.strip() for layer in layers if layer.text and layer.text.strip()]
        return self.separator.join(contents)
