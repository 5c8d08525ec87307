"""实时（纸面）交易循环。

每个轮询周期：
拉取最新 K 线 → 剔除正在形成的 bar → 评分 → 空仓则判断开仓（冷却期内跳过），
持仓则判断退出（反转优先）→ 回调状态。

单次迭代的任何异常都会被捕获并通过 on_log 报告，循环继续。
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Callable

from algo.risk.manager import RiskManager
from algo.scoring.aggregator import SignalAggregator
from algo.sizing.base import Sizer
from algo.sizing.full_leverage import FullLeverageSizer
from engine.base_engine import BaseEngine, EngineResult
from engine.ledger import PositionLedger
from engine.signal_pipeline import apply_exit, decide_entry, decide_exit
from market_data.client import CandleSource
from shared.config.schema import LiveConfig
from shared.models.models import ExitAction, Position, Signal, TradeRecord
from shared.utils.logging import setup_logger
from shared.utils.pnl import DEFAULT_FEE_RATE


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TradingEngine(BaseEngine):
    """实时循环引擎（模拟余额，不下真实订单）。

    Parameters
    ----------
    source:
        K 线数据源，`fetch_latest` 返回 (candles, ok)。
    aggregator / risk:
        与回测共用的评分器与风控。
    symbol / interval / leverage / balance:
        交易参数，显式传入，不读取全局配置。
    on_log:
        `on_log(message)` 日志回调。
    on_status_update:
        `on_status_update(score, mark_price, unrealized_pnl)`，每次迭代至多一次。
    clock / sleep:
        可注入的时钟与休眠函数（测试用）。
    max_ticks:
        跑多少次迭代后退出；None 表示直到 stop()。
    """

    def __init__(
        self,
        *,
        source: CandleSource,
        aggregator: SignalAggregator,
        risk: RiskManager,
        symbol: str = "BTCUSDT",
        interval: str = "5m",
        leverage: float = 10.0,
        balance: float = 10000.0,
        live_cfg: LiveConfig | None = None,
        sizer: Sizer | None = None,
        fee_rate: float = DEFAULT_FEE_RATE,
        on_log: Callable[[str], None] | None = None,
        on_status_update: Callable[[int, float, float], None] | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
        max_ticks: int | None = None,
    ):
        self.logger = setup_logger("engine")
        self.source = source
        self.aggregator = aggregator
        self.risk = risk
        self.cfg = live_cfg or LiveConfig()
        self.sizer = sizer or FullLeverageSizer()
        self.on_log = on_log
        self.on_status_update = on_status_update
        self._clock = clock
        self._sleep = sleep
        self._max_ticks = max_ticks

        self._symbol = symbol.upper()
        self._interval = interval
        self._leverage = float(leverage)
        self.ledger = PositionLedger(
            balance, symbol=self._symbol, interval=interval, leverage=self._leverage, fee_rate=fee_rate
        )
        self.risk.update_parameters(self._interval, self._leverage, self._symbol)

        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.ticks = 0

    # ---- 可在运行时修改的交易参数（仅空仓时） ----
    def _require_flat(self, field: str) -> None:
        if not self.ledger.is_flat:
            raise ValueError(f"cannot change {field} while a position is open")

    @property
    def symbol(self) -> str:
        return self._symbol

    @symbol.setter
    def symbol(self, value: str) -> None:
        self._require_flat("symbol")
        self._symbol = value.upper()
        self.ledger.symbol = self._symbol
        self.risk.update_parameters(self._interval, self._leverage, self._symbol)

    @property
    def interval(self) -> str:
        return self._interval

    @interval.setter
    def interval(self, value: str) -> None:
        self._require_flat("interval")
        self._interval = value
        self.ledger.interval = value
        self.risk.update_parameters(self._interval, self._leverage, self._symbol)

    @property
    def leverage(self) -> float:
        return self._leverage

    @leverage.setter
    def leverage(self, value: float) -> None:
        self._require_flat("leverage")
        self._leverage = float(value)
        self.ledger.leverage = self._leverage
        self.risk.update_parameters(self._interval, self._leverage, self._symbol)

    @property
    def balance(self) -> float:
        return self.ledger.balance

    @property
    def position(self) -> Position:
        return self.ledger.position

    @property
    def trade_history(self) -> list[TradeRecord]:
        """最新在前。"""
        return self.ledger.history

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ---- 生命周期 ----
    def start(self) -> None:
        """在后台线程启动循环。"""
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="trading-engine", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """设置停止标志（每次迭代检查一次）；从其它线程调用时等待退出。"""
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def run(self) -> EngineResult:
        self.logger.info("Live loop started: %s %s x%s balance=%.2f", self._symbol, self._interval, self._leverage, self.balance)
        while not self._stop.is_set():
            if self._max_ticks is not None and self.ticks >= self._max_ticks:
                break
            self.ticks += 1
            try:
                self.tick()
            except Exception as exc:
                self.logger.exception("live iteration failed")
                self._log(f"[Engine Error] {exc}")
            self._sleep(self.cfg.poll_interval_secs)
        self.logger.info("Live loop stopped after %d ticks", self.ticks)
        return EngineResult(summary=self.build_summary())

    def build_summary(self) -> dict:
        trades = self.ledger.trades
        return {
            "symbol": self._symbol,
            "interval": self._interval,
            "leverage": self._leverage,
            "ticks": self.ticks,
            "balance": self.balance,
            "position": self.position.direction.value,
            "trades": len(trades),
            "realized_pnl": sum(t.realized_pnl for t in trades),
        }

    def _log(self, message: str) -> None:
        self.logger.info(message)
        self._emit(self.on_log, message)

    def _in_cooldown(self, now: datetime) -> bool:
        last = self.ledger.last_exit_ts
        if last is None:
            return False
        return (now - last).total_seconds() < self.cfg.cooldown_secs

    # ---- 单次迭代 ----
    def tick(self) -> bool:
        """执行一次轮询迭代；数据不足时返回 False，状态不变。"""
        candles, ok = self.source.fetch_latest(self._symbol, self._interval, self.cfg.fetch_limit)
        if not ok or len(candles) < self.cfg.min_bars:
            self.logger.debug("not ready: ok=%s bars=%d", ok, len(candles))
            return False

        mark_price = candles[-1].close
        closed = candles[:-1]
        now = self._clock()
        breakdown = self.aggregator.score(closed)

        if self.ledger.is_flat:
            if not self._in_cooldown(now):
                direction = decide_entry(self.aggregator, breakdown)
                if direction is not Signal.HOLD:
                    self._enter(direction, mark_price, now, breakdown)
        else:
            decision = decide_exit(
                aggregator=self.aggregator,
                risk=self.risk,
                breakdown=breakdown,
                ledger=self.ledger,
                mark_price=mark_price,
                closed_window=closed,
            )
            record = apply_exit(self.ledger, decision, mark_price, now)
            if record is not None:
                tag = "[PARTIAL]" if decision.action is ExitAction.CLOSE_PARTIAL else "[CLOSED]"
                self._log(f"{tag} {record.exit_reason} PnL:${record.realized_pnl:.2f}")

        self._emit(self.on_status_update, breakdown.total_score, mark_price, self.ledger.unrealized_pnl(mark_price))
        return True

    def _enter(self, direction: Signal, price: float, now: datetime, breakdown) -> None:
        amount = self.sizer.entry_amount(price=price, balance=self.balance, leverage=self._leverage)
        if amount <= 0:
            self.logger.warning("skip entry: non-positive size at price %s", price)
            return
        self.ledger.open(direction, price, amount, now, snapshot=breakdown)
        self.risk.update_parameters(self._interval, self._leverage, self._symbol)
        self.risk.on_entry(price)
        side = "LONG" if direction is Signal.BUY else "SHORT"
        self._log(f"[{side}] {self._symbol} Score {breakdown.total_score}")
