"""单次回测引擎（BacktestEngine）。

逐 bar 回放历史 K 线，与实时循环共用评分器、风控与决策管线：
- 每根 bar 用之前 window 根已收盘 K 线评分；
- bar 内价格路径：持空仓单时 [O, H, L, C]，否则 [O, L, H, C]；
- 空仓且过了冷却 bar 数时按阈值开仓，持仓时先判反转再交给风控；全平后跳出本 bar 路径；
- 每根 bar 更新峰值与最大回撤，余额 <= 0 立即终止（破产）；
- 运行结束写出 JSON 交易日志（失败只记入报告，不影响返回结果）。
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

from algo.risk.manager import RiskManager
from algo.scoring.aggregator import SignalAggregator
from algo.sizing.volatility_risk import VolatilityRiskSizer
from algo.strategy.indicators import candles_to_frame
from analysis.reporting import (
    BANKRUPTCY_LINE,
    build_trade_log_path,
    export_trade_log,
    format_header,
    format_trade_line,
    not_enough_data_message,
)
from engine.base_engine import BaseEngine, EngineResult
from engine.ledger import PositionLedger
from engine.signal_pipeline import apply_exit, decide_entry, decide_exit
from market_data.client import CandleSource
from market_data.loader import dedupe_and_sort, load_candles_from_csv
from shared.config.schema import BacktestConfig
from shared.models.models import BacktestResult, Candle, Signal
from shared.utils.logging import setup_logger
from shared.utils.pnl import DEFAULT_FEE_RATE


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def intra_bar_path(candle: Candle, short: bool) -> tuple[float, float, float, float]:
    """bar 内价格路径近似：对持仓不利的方向先走。"""
    if short:
        return candle.open, candle.high, candle.low, candle.close
    return candle.open, candle.low, candle.high, candle.close


class BacktestEngine(BaseEngine):
    """回测引擎。

    Parameters
    ----------
    aggregator / risk:
        与实时循环共用的评分器与风控。
    symbol / interval / leverage / balance:
        回测参数（显式传入）。
    backtest_cfg:
        窗口、冷却、sizing、数据源与日志目录。
    source:
        历史数据源；`backtest_cfg.data_source` 设置时改为读取 CSV。
    export_log:
        是否写出 JSON 交易日志。
    """

    def __init__(
        self,
        *,
        aggregator: SignalAggregator,
        risk: RiskManager,
        symbol: str = "BTCUSDT",
        interval: str = "5m",
        leverage: float = 10.0,
        balance: float = 10000.0,
        backtest_cfg: BacktestConfig | None = None,
        source: CandleSource | None = None,
        fee_rate: float = DEFAULT_FEE_RATE,
        clock: Callable[[], datetime] = _utcnow,
        export_log: bool = True,
    ):
        self.logger = setup_logger("backtest")
        self.aggregator = aggregator
        self.risk = risk
        self.symbol = symbol.upper()
        self.interval = interval
        self.leverage = float(leverage)
        self.initial_balance = float(balance)
        self.cfg = backtest_cfg or BacktestConfig()
        self.source = source
        self.fee_rate = fee_rate
        self._clock = clock
        self.export_log = export_log
        # (bar 开盘时间, 余额, 截至该 bar 的最大回撤%)
        self.equity_curve: list[tuple[datetime, float, float]] = []
        self.history: list[Candle] = []

    def load_history(self) -> list[Candle]:
        """CSV 数据源优先，否则从交易所拉取最近 lookback_days 天。"""
        if self.cfg.data_source:
            return load_candles_from_csv(self.cfg.data_source)
        if self.source is None:
            raise ValueError("backtest needs a candle source or backtest.data_source")
        end = self._clock()
        start = end - timedelta(days=self.cfg.lookback_days)
        return dedupe_and_sort(self.source.fetch_range(self.symbol, self.interval, start, end))

    def run(self) -> EngineResult:
        self.history = self.load_history()
        self.logger.info("Backtest %s %s: %d candles loaded", self.symbol, self.interval, len(self.history))
        result = self.simulate(self.history)
        summary = {
            "symbol": self.symbol,
            "interval": self.interval,
            "leverage": self.leverage,
            "initial_balance": self.initial_balance,
            "final_balance": result.final_balance,
            "total_pnl": result.total_pnl,
            "max_drawdown_percent": result.max_drawdown_percent,
            "win_count": result.win_count,
            "loss_count": result.loss_count,
            "bankrupt": result.bankrupt,
            "bars": result.bar_count,
        }
        return EngineResult(summary=summary, artifacts={"result": result, "trade_log": result.trade_log_path})

    def simulate(self, candles: Sequence[Candle]) -> BacktestResult:
        """回放一段历史 K 线并返回汇总。"""
        history = dedupe_and_sort(candles)
        cfg = self.cfg
        self.equity_curve = []
        if len(history) < cfg.min_history:
            msg = not_enough_data_message(cfg.min_history)
            self.logger.warning(msg)
            return BacktestResult(final_balance=self.initial_balance, log=msg, bar_count=len(history))

        frame = candles_to_frame(history)
        ledger = PositionLedger(
            self.initial_balance,
            symbol=self.symbol,
            interval=self.interval,
            leverage=self.leverage,
            fee_rate=self.fee_rate,
        )
        self.risk.update_parameters(self.interval, self.leverage, self.symbol)
        sizer = VolatilityRiskSizer(
            stop_pct=self.risk.estimated_stop_pct(self.interval, self.symbol),
            risk_fraction=cfg.risk_fraction,
            min_notional=cfg.min_notional,
            default_stop_pct=cfg.default_stop_pct,
        )

        lines = format_header(self.symbol, self.interval, self.leverage, history[0].ts, history[-1].ts, len(history))
        peak = ledger.balance
        max_dd = 0.0
        wins = losses = 0
        bankrupt = False

        for i in range(cfg.window, len(history)):
            closed = frame.iloc[i - cfg.window:i]
            bar = history[i]
            breakdown = self.aggregator.score(closed)
            short = ledger.position.direction is Signal.SELL

            for price in intra_bar_path(bar, short):
                if ledger.is_flat:
                    last_exit = ledger.last_exit_ts
                    if last_exit is not None and i - last_exit < cfg.cooldown_bars:
                        continue
                    direction = decide_entry(self.aggregator, breakdown)
                    if direction is Signal.HOLD:
                        continue
                    amount = sizer.entry_amount(price=price, balance=ledger.balance, leverage=self.leverage)
                    if amount <= 0:
                        continue
                    ledger.open(direction, price, amount, bar.ts, snapshot=breakdown)
                    self.risk.on_entry(price)
                    self.risk.update_parameters(self.interval, self.leverage, self.symbol)
                    continue

                decision = decide_exit(
                    aggregator=self.aggregator,
                    risk=self.risk,
                    breakdown=breakdown,
                    ledger=ledger,
                    mark_price=price,
                    closed_window=closed,
                )
                record = apply_exit(ledger, decision, price, bar.ts, exit_marker=i)
                if record is None:
                    continue
                lines.append(format_trade_line(record))
                if record.realized_pnl > 0:
                    wins += 1
                else:
                    losses += 1
                if ledger.is_flat:
                    break

            if ledger.balance > peak:
                peak = ledger.balance
            dd = (peak - ledger.balance) / peak * 100 if peak > 0 else 0.0
            if dd > max_dd:
                max_dd = dd
            self.equity_curve.append((bar.ts, ledger.balance, max_dd))

            if ledger.balance <= 0:
                lines.append(BANKRUPTCY_LINE)
                bankrupt = True
                self.logger.warning("Bankruptcy at bar %d (%s), balance=%.2f", i, bar.ts, ledger.balance)
                break

        result = BacktestResult(
            final_balance=ledger.balance,
            total_pnl=ledger.balance - self.initial_balance,
            max_drawdown_percent=max_dd,
            win_count=wins,
            loss_count=losses,
            bankrupt=bankrupt,
            bar_count=len(history),
            trades=ledger.trades,
        )
        if self.export_log:
            path = build_trade_log_path(cfg.log_dir, self.symbol, self.interval, self._clock())
            try:
                result.trade_log_path = str(export_trade_log(result.trades, path))
                lines.append(f"[BACKTEST LOG] Trade records saved to: {result.trade_log_path}")
            except OSError as exc:
                self.logger.warning("trade log export failed: %s", exc)
                lines.append(f"[BACKTEST LOG ERROR] {exc}")
        result.log = "\n".join(lines) + "\n"
        self.logger.info(
            "Backtest done: balance=%.2f pnl=%.2f maxDD=%.2f%% W/L=%d/%d",
            result.final_balance,
            result.total_pnl,
            result.max_drawdown_percent,
            wins,
            losses,
        )
        return result
