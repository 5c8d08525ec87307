"""核心数据结构：Candle/Signal/ScoreBreakdown/Position/ExitDecision/TradeRecord。"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Signal(str, Enum):
    """单个策略的方向投票。"""

    BUY = "Buy"
    SELL = "Sell"
    HOLD = "Hold"


class ExitAction(str, Enum):
    NO_ACTION = "NoAction"
    CLOSE_PARTIAL = "ClosePartial"
    CLOSE_ALL = "CloseAll"


@dataclass(frozen=True)
class Candle:
    """K 线数据（ts 为开盘时间，也是排序键）。"""

    ts: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    trade_count: int = 0
    close_ts: datetime | None = None


@dataclass(frozen=True)
class ScoreBreakdown:
    """聚合器输出：总分 + 各策略信号 + ADX 闸门。

    Notes
    -----
    `signals` / `diagnostics` 按策略注册顺序保存，键为策略名。
    """

    total_score: int
    signals: dict[str, Signal]
    adx_gate_passed: bool
    regime_signal: Signal = Signal.HOLD
    diagnostics: dict[str, str] = field(default_factory=dict)


@dataclass
class Position:
    """当前持仓（单一品种、单一方向）。direction == HOLD 表示空仓。"""

    direction: Signal = Signal.HOLD
    entry_price: float = 0.0
    amount: float = 0.0
    entry_ts: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.direction is not Signal.HOLD


@dataclass(frozen=True)
class ExitDecision:
    """一次退出评估的结果（不持久化）。"""

    action: ExitAction = ExitAction.NO_ACTION
    reason: str = ""
    amount_ratio: float = 1.0

    @classmethod
    def none(cls) -> "ExitDecision":
        return cls()

    @classmethod
    def close_all(cls, reason: str) -> "ExitDecision":
        return cls(action=ExitAction.CLOSE_ALL, reason=reason, amount_ratio=1.0)

    @classmethod
    def close_partial(cls, reason: str, amount_ratio: float) -> "ExitDecision":
        if not 0.0 < amount_ratio < 1.0:
            raise ValueError(f"partial amount_ratio must be in (0, 1), got {amount_ratio}")
        return cls(action=ExitAction.CLOSE_PARTIAL, reason=reason, amount_ratio=amount_ratio)


@dataclass
class RiskParameters:
    """止损/止盈百分比 + 单笔持仓内的移动止盈状态。

    stop_loss_percent / take_profit_percent 为价格百分比（0.02 表示 2%）。
    peak_roe / partial_taken 只在一笔持仓存续期间有效，开仓时重置。
    """

    stop_loss_percent: float = 0.01
    take_profit_percent: float = 0.02
    peak_roe: float = 0.0
    partial_taken: bool = False

    def reset_trailing(self) -> None:
        self.peak_roe = 0.0
        self.partial_taken = False


@dataclass(frozen=True)
class TradeRecord:
    """一次平仓（或部分平仓）的不可变快照。"""

    direction: Signal
    entry_price: float
    exit_price: float
    amount: float
    realized_pnl: float
    realized_roe: float
    leverage: float
    exit_reason: str
    entry_time: datetime | None
    exit_time: datetime | None
    total_score_at_entry: int = 0
    signals_at_entry: dict[str, Signal] = field(default_factory=dict)
    diagnostics_at_entry: dict[str, str] = field(default_factory=dict)
    symbol: str = ""
    interval: str = ""
    balance_after: float = 0.0
    is_partial: bool = False

    @property
    def title(self) -> str:
        hhmm = self.exit_time.strftime("%H:%M") if self.exit_time else "--:--"
        if self.is_partial:
            return f"[{hhmm}] PARTIAL ${self.realized_pnl:+.1f}"
        side = "L" if self.direction is Signal.BUY else "S"
        return f"[{hhmm}] {self.symbol} {side} ${self.realized_pnl:+.1f}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_time": self.entry_time.isoformat() if self.entry_time else None,
            "exit_time": self.exit_time.isoformat() if self.exit_time else None,
            "symbol": self.symbol,
            "interval": self.interval,
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "direction": self.direction.value,
            "amount": self.amount,
            "pnl": self.realized_pnl,
            "roe": self.realized_roe,
            "leverage": self.leverage,
            "exit_reason": self.exit_reason,
            "is_partial": self.is_partial,
            "balance_after": self.balance_after,
            "total_score": self.total_score_at_entry,
            "strategy_signals": {k: v.value for k, v in self.signals_at_entry.items()},
            "strategy_status_values": dict(self.diagnostics_at_entry),
        }


@dataclass
class BacktestResult:
    """回测汇总。log 为逐行可读报告。"""

    final_balance: float = 0.0
    total_pnl: float = 0.0
    max_drawdown_percent: float = 0.0
    win_count: int = 0
    loss_count: int = 0
    log: str = ""
    bankrupt: bool = False
    bar_count: int = 0
    trades: list[TradeRecord] = field(default_factory=list)
    trade_log_path: str | None = None


@dataclass(frozen=True)
class FeaturePoint:
    """模式匹配样本：特征向量 + 之后 N 根 bar 的对数收益和（标签）。"""

    timestamp: datetime
    vector: tuple[float, ...]
    future_return: float | None = None
