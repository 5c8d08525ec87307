"""加权投票聚合器。

所有方向性策略对同一窗口（只含已收盘 K 线）投票：BUY = +weight，SELL = -weight，HOLD = 0。
趋势过滤器单独投票：
- 过滤器 HOLD：总分乘以 hold_dampening（默认 0.5）并向零截断；
- 总分 > 0 而过滤器 SELL，或总分 < 0 而过滤器 BUY：闸门关闭，不允许开仓。

聚合过程无副作用，实时循环与回测共用同一个实例方法。
"""

from __future__ import annotations

from typing import Mapping, Sequence

import pandas as pd

from algo.strategy.base import StrategySlot
from algo.strategy.indicators import as_frame
from shared.config.schema import ScoringConfig
from shared.models.models import Candle, ScoreBreakdown, Signal
from shared.utils.logging import setup_logger


def contribution(signal: Signal, weight: int) -> int:
    if signal is Signal.BUY:
        return weight
    if signal is Signal.SELL:
        return -weight
    return 0


def gate_passed(score: int, regime_signal: Signal) -> bool:
    """过滤器方向与非零总分相反时返回 False，其余情况（含 0 分、过滤器 HOLD）为 True。"""
    if score > 0 and regime_signal is Signal.SELL:
        return False
    if score < 0 and regime_signal is Signal.BUY:
        return False
    return True


def compute_score(
    signals: Mapping[str, Signal],
    weights: Mapping[str, int],
    regime_signal: Signal,
    hold_dampening: float = 0.5,
) -> tuple[int, bool]:
    """由各策略信号计算 (总分, 闸门)。

    Parameters
    ----------
    signals:
        策略名 -> 信号。
    weights:
        策略名 -> 权重；缺失的策略按 0 处理。
    regime_signal:
        趋势过滤器信号。
    hold_dampening:
        过滤器 HOLD 时的衰减系数。

    Returns
    -------
    tuple[int, bool]
        (total_score, adx_gate_passed)
    """
    score = sum(contribution(sig, int(weights.get(name, 0))) for name, sig in signals.items())
    if regime_signal is Signal.HOLD:
        # int() 向零截断：+9 -> +4，-9 -> -4
        score = int(score * hold_dampening)
    return score, gate_passed(score, regime_signal)


class SignalAggregator:
    """策略组合 + 阈值 -> ScoreBreakdown / 开仓方向 / 反转判断。"""

    def __init__(
        self,
        slots: Sequence[StrategySlot],
        long_threshold: int = 7,
        short_threshold: int = -7,
        hold_dampening: float = 0.5,
    ):
        filters = [s for s in slots if s.is_regime_filter]
        if len(filters) != 1:
            raise ValueError(f"exactly one regime filter is required, got {len(filters)}")
        if long_threshold <= 0 or short_threshold >= 0:
            raise ValueError("long_threshold must be > 0 and short_threshold < 0")
        self.regime = filters[0]
        self.slots = [s for s in slots if not s.is_regime_filter]
        names = [s.name for s in self.slots]
        if len(set(names)) != len(names):
            raise ValueError("strategy names must be unique")
        self.weights = {s.name: s.weight for s in self.slots}
        self.long_threshold = int(long_threshold)
        self.short_threshold = int(short_threshold)
        self.hold_dampening = float(hold_dampening)
        self.logger = setup_logger("aggregator")
        self.logger.info(
            "aggregator ready: %d strategies, regime filter=%s, thresholds=%+d/%+d",
            len(self.slots),
            self.regime.name,
            self.long_threshold,
            self.short_threshold,
        )

    @classmethod
    def from_config(cls, slots: Sequence[StrategySlot], scoring: ScoringConfig) -> "SignalAggregator":
        return cls(
            slots,
            long_threshold=scoring.long_threshold,
            short_threshold=scoring.short_threshold,
            hold_dampening=scoring.hold_dampening,
        )

    def score(self, window: pd.DataFrame | Sequence[Candle]) -> ScoreBreakdown:
        """对已收盘 K 线窗口打分。调用方负责剔除正在形成的 bar。"""
        frame = as_frame(window)
        signals: dict[str, Signal] = {}
        diagnostics: dict[str, str] = {}
        for slot in self.slots:
            signals[slot.name] = slot.strategy.analyze(frame)
            diagnostics[slot.name] = slot.strategy.status_value()
        regime_signal = self.regime.strategy.analyze(frame)
        diagnostics[self.regime.name] = self.regime.strategy.status_value()

        total, passed = compute_score(signals, self.weights, regime_signal, self.hold_dampening)
        self.logger.debug("score=%d regime=%s gate=%s", total, regime_signal.value, passed)
        return ScoreBreakdown(
            total_score=total,
            signals=signals,
            adx_gate_passed=passed,
            regime_signal=regime_signal,
            diagnostics=diagnostics,
        )

    def entry_direction(self, breakdown: ScoreBreakdown) -> Signal:
        """闸门通过且达到阈值时返回开仓方向，否则 HOLD。"""
        if not breakdown.adx_gate_passed:
            return Signal.HOLD
        if breakdown.total_score >= self.long_threshold:
            return Signal.BUY
        if breakdown.total_score <= self.short_threshold:
            return Signal.SELL
        return Signal.HOLD

    def is_reversal(self, direction: Signal, score: int) -> bool:
        """持仓方向被反向阈值打穿。"""
        if direction is Signal.BUY:
            return score <= self.short_threshold
        if direction is Signal.SELL:
            return score >= self.long_threshold
        return False
