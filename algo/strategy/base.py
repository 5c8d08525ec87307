"""策略协议与策略槽位。

策略只对“已收盘 K 线窗口”给出方向投票，不关心仓位、资金与下单；
权重与是否为趋势过滤器由 `StrategySlot` 在组合层面标注，而不是写进策略本身。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import pandas as pd

from shared.models.models import Signal


@runtime_checkable
class Strategy(Protocol):
    """策略协议：`analyze(window) -> Signal` + `status_value() -> str`。"""

    name: str

    def analyze(self, window: pd.DataFrame) -> Signal:
        """输入按时间升序的已收盘 K 线窗口，输出 BUY/SELL/HOLD。"""
        ...

    def status_value(self) -> str:
        """最近一次 analyze 的诊断状态（指标值等），用于成交快照。"""
        ...


@dataclass(frozen=True)
class StrategySlot:
    """策略 + 不可变权重 + 是否为趋势过滤器。"""

    strategy: Strategy
    weight: int = 0
    is_regime_filter: bool = False

    @property
    def name(self) -> str:
        return self.strategy.name

    def __post_init__(self):
        if self.weight < 0:
            raise ValueError(f"strategy weight must be >= 0, got {self.weight}")
        if self.is_regime_filter and self.weight != 0:
            raise ValueError("regime filter must not carry a weight")
