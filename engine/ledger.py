"""单品种单仓位账本：余额 + 当前持仓 + 成交历史。

实时循环与回测共用同一个账本实现，PnL 统一走 `shared.utils.pnl.realized_pnl`。
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List

from shared.models.models import Position, ScoreBreakdown, Signal, TradeRecord
from shared.utils.pnl import DEFAULT_FEE_RATE, realized_pnl, realized_roe, unrealized_pnl


class PositionLedger:
    """持仓账本。

    Parameters
    ----------
    balance:
        初始余额。
    symbol / interval / leverage:
        写入成交记录的交易参数（可在空仓时修改）。
    fee_rate:
        单边手续费率。

    Notes
    -----
    - 同一时间至多一个持仓，重复开仓抛 ValueError；
    - `history` 最新在前（展示用），`trades` 按时间顺序（落盘用）。
    """

    def __init__(
        self,
        balance: float,
        symbol: str = "",
        interval: str = "",
        leverage: float = 1.0,
        fee_rate: float = DEFAULT_FEE_RATE,
    ):
        self.balance = float(balance)
        self.symbol = symbol
        self.interval = interval
        self.leverage = float(leverage)
        self.fee_rate = fee_rate
        self.position = Position()
        self.last_exit_ts: Any = None
        self._entry_snapshot: ScoreBreakdown | None = None
        self._trades: list[TradeRecord] = []

    @property
    def is_flat(self) -> bool:
        return not self.position.is_open

    @property
    def trades(self) -> List[TradeRecord]:
        return list(self._trades)

    @property
    def history(self) -> List[TradeRecord]:
        return list(reversed(self._trades))

    def unrealized_pnl(self, mark_price: float) -> float:
        return unrealized_pnl(self.position, mark_price, self.fee_rate)

    def open(
        self,
        direction: Signal,
        price: float,
        amount: float,
        ts: datetime | None,
        snapshot: ScoreBreakdown | None = None,
    ) -> Position:
        """开仓并保存入场时的评分快照。"""
        if self.position.is_open:
            raise ValueError("a position is already open")
        if direction is Signal.HOLD:
            raise ValueError("cannot open a HOLD position")
        if amount <= 0 or price <= 0:
            raise ValueError(f"invalid entry: price={price} amount={amount}")
        self.position = Position(direction=direction, entry_price=float(price), amount=float(amount), entry_ts=ts)
        self._entry_snapshot = snapshot
        return self.position

    def _realize(self, exit_price: float, amount: float, reason: str, ts: datetime | None, partial: bool) -> TradeRecord:
        pos = self.position
        pnl = realized_pnl(pos.entry_price, exit_price, amount, pos.direction, self.fee_rate)
        self.balance += pnl
        snap = self._entry_snapshot
        record = TradeRecord(
            direction=pos.direction,
            entry_price=pos.entry_price,
            exit_price=float(exit_price),
            amount=amount,
            realized_pnl=pnl,
            realized_roe=realized_roe(pnl, amount, pos.entry_price, self.leverage),
            leverage=self.leverage,
            exit_reason=reason,
            entry_time=pos.entry_ts,
            exit_time=ts,
            total_score_at_entry=snap.total_score if snap else 0,
            signals_at_entry=dict(snap.signals) if snap else {},
            diagnostics_at_entry=dict(snap.diagnostics) if snap else {},
            symbol=self.symbol,
            interval=self.interval,
            balance_after=self.balance,
            is_partial=partial,
        )
        self._trades.append(record)
        return record

    def close_partial(self, exit_price: float, ratio: float, reason: str, ts: datetime | None) -> TradeRecord:
        """平掉 ratio 比例的仓位，持仓方向不变。"""
        if not self.position.is_open:
            raise ValueError("no open position")
        if not 0.0 < ratio < 1.0:
            raise ValueError(f"partial ratio must be in (0, 1), got {ratio}")
        closed = self.position.amount * ratio
        record = self._realize(exit_price, closed, reason, ts, partial=True)
        self.position.amount -= closed
        return record

    def close_all(self, exit_price: float, reason: str, ts: datetime | None, exit_marker: Any = None) -> TradeRecord:
        """全部平仓，回到空仓并记录冷却起点。

        exit_marker 为冷却计时起点（实时为时间，回测为 bar 序号），默认取 ts。
        """
        if not self.position.is_open:
            raise ValueError("no open position")
        record = self._realize(exit_price, self.position.amount, reason, ts, partial=False)
        self.position = Position()
        self._entry_snapshot = None
        self.last_exit_ts = ts if exit_marker is None else exit_marker
        return record
