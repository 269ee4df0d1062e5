from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Protocol


@dataclass
class RenderedLayer:
    id: str
    type: str
    priority: int
    sequence: int
    text: str


Measure = Callable[[list[RenderedLayer]], int]


class LayerBudgetPolicy(Protocol):
    def fit(
        self,
        layers: Iterable[RenderedLayer],
        max_tokens: Optional[int],
        measure: Measure,
    ) -> tuple[list[RenderedLayer], list[RenderedLayer]]:
        ...


class DropLowestPriorityPolicy:
    """按优先级整层裁剪：从排序末尾（最低优先级、同级中最晚创建）开始丢弃。

    层内容永不截断；输入须已按 (-priority, sequence) 排好序。
    """

    def fit(
        self,
        layers: Iterable[RenderedLayer],
        max_tokens: Optional[int],
        measure: Measure,
    ) -> tuple[list[RenderedLayer], list[RenderedLayer]]:
        kept = list(layers)
        if max_tokens is None:
            return kept, []

        dropped: list[RenderedLayer] = []
        while kept and measure(kept) > max_tokens:
            dropped.append(kept.pop())
        return kept, dropped


class PromptBudgeter:
    """基于策略执行 token 预算。"""

    def __init__(self, policy: Optional[LayerBudgetPolicy] = None) -> None:
        self.policy = policy or DropLowestPriorityPolicy()

    def fit(
        self,
        layers: Iterable[RenderedLayer],
        max_tokens: Optional[int],
        measure: Measure,
    ) -> tuple[list[RenderedLayer], list[RenderedLayer]]:
        return self.policy.fit(layers, max_tokens, measure)
