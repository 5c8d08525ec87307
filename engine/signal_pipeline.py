"""信号决策管线（评分 → 开仓方向 / 退出决定 → 账本）。

实时循环与回测共用这里的决策步骤，避免两处实现漂移：
- 开仓：闸门通过且达到阈值；
- 退出：反向阈值被打穿时强制 "Signal Reversal" 全平，覆盖风控的任何决定；
  否则交给 RiskManager.evaluate_exit。
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from algo.risk.manager import RiskManager
from algo.scoring.aggregator import SignalAggregator
from engine.ledger import PositionLedger
from shared.models.models import ExitAction, ExitDecision, ScoreBreakdown, Signal, TradeRecord

REVERSAL_REASON = "Signal Reversal"


def decide_entry(aggregator: SignalAggregator, breakdown: ScoreBreakdown) -> Signal:
    return aggregator.entry_direction(breakdown)


def decide_exit(
    *,
    aggregator: SignalAggregator,
    risk: RiskManager,
    breakdown: ScoreBreakdown,
    ledger: PositionLedger,
    mark_price: float,
    closed_window: Sequence[Any] | None = None,
) -> ExitDecision:
    """持仓状态下的退出决定（至多一个）。"""
    pos = ledger.position
    if not pos.is_open:
        return ExitDecision.none()
    if aggregator.is_reversal(pos.direction, breakdown.total_score):
        return ExitDecision.close_all(REVERSAL_REASON)
    return risk.evaluate_exit(closed_window, pos.direction, pos.entry_price, mark_price, ledger.leverage)


def apply_exit(
    ledger: PositionLedger,
    decision: ExitDecision,
    price: float,
    ts: datetime | None,
    exit_marker: Any = None,
) -> TradeRecord | None:
    """把退出决定落到账本上；NO_ACTION 返回 None。"""
    if decision.action is ExitAction.CLOSE_ALL:
        return ledger.close_all(price, decision.reason, ts, exit_marker=exit_marker)
    if decision.action is ExitAction.CLOSE_PARTIAL:
        return ledger.close_partial(price, decision.amount_ratio, decision.reason, ts)
    return None
