"""止损/止盈/移动止盈与部分平仓。"""

from __future__ import annotations

from typing import Any, Sequence

from shared.config.schema import RiskConfig
from shared.models.models import ExitDecision, RiskParameters, Signal
from shared.utils.logging import setup_logger
from shared.utils.pnl import net_roe, roe


class RiskManager:
    """风险管理器。

    Parameters
    ----------
    risk_cfg:
        波动率表、费率与移动止盈参数。
    interval / leverage / symbol:
        初始交易参数，决定止损/止盈百分比。
    suppress_warnings:
        是否抑制参数变化日志（回测常用）。

    Notes
    -----
    - 止损百分比 = 周期基础波动率 × 品种系数 × stop_loss_multiplier；
      止盈百分比 = 止损百分比 × reward_risk_ratio。
    - 移动止盈状态（峰值 ROE、是否已部分平仓）只属于当前持仓，`on_entry` 时重置。
    """

    def __init__(
        self,
        risk_cfg: RiskConfig | None = None,
        interval: str = "5m",
        leverage: float = 10.0,
        symbol: str = "BTCUSDT",
        suppress_warnings: bool = False,
    ):
        self.cfg = risk_cfg or RiskConfig()
        self.logger = setup_logger("risk")
        self.suppress_warnings = suppress_warnings
        self.interval = ""
        self.leverage = 0.0
        self.symbol = ""
        self.params = RiskParameters()
        self.entry_price = 0.0
        self.update_parameters(interval, leverage, symbol)

    # ---- 波动率表 ----
    def base_vol(self, interval: str) -> float:
        return float(self.cfg.interval_base_vol.get(interval, self.cfg.default_base_vol))

    def symbol_multiplier(self, symbol: str) -> float:
        return float(self.cfg.symbol_vol_multipliers.get(symbol.upper(), self.cfg.default_symbol_multiplier))

    def estimated_stop_pct(self, interval: str, symbol: str) -> float:
        """仓位计算用的预估止损百分比（不含 stop_loss_multiplier）。"""
        return self.base_vol(interval) * self.symbol_multiplier(symbol)

    def update_parameters(self, interval: str, leverage: float, symbol: str) -> RiskParameters:
        """interval/leverage/symbol 任一变化时重算止损止盈百分比。"""
        changed = (interval, float(leverage), symbol.upper()) != (self.interval, self.leverage, self.symbol)
        self.interval = interval
        self.leverage = float(leverage)
        self.symbol = symbol.upper()

        sl = self.estimated_stop_pct(interval, symbol) * self.cfg.stop_loss_multiplier
        self.params.stop_loss_percent = sl
        self.params.take_profit_percent = sl * self.cfg.reward_risk_ratio
        if changed and not self.suppress_warnings:
            self.logger.info(
                "[RISK] %s %s x%s -> SL %.3f%% / TP %.3f%%",
                self.symbol,
                self.interval,
                self.leverage,
                self.params.stop_loss_percent * 100,
                self.params.take_profit_percent * 100,
            )
        return self.params

    def on_entry(self, entry_price: float) -> None:
        """新开仓：重置移动止盈状态。"""
        self.entry_price = float(entry_price)
        self.params.reset_trailing()

    # ---- ROE ----
    def calculate_roe(self, entry_price: float, mark_price: float, direction: Signal, leverage: float) -> float:
        return roe(entry_price, mark_price, direction, leverage)

    def calculate_net_roe(self, entry_price: float, mark_price: float, direction: Signal, leverage: float) -> float:
        return net_roe(entry_price, mark_price, direction, leverage, self.cfg.fee_rate)

    def evaluate_exit(
        self,
        candles: Sequence[Any] | None,
        direction: Signal,
        entry_price: float,
        mark_price: float,
        leverage: float,
    ) -> ExitDecision:
        """一次退出评估，至多返回一个决定。

        顺序：止损 -> 止盈 -> 移动止盈（首次部分平仓，之后全平）。
        部分平仓后峰值重置为当前 ROE，剩余仓位按新峰值的回撤再判断。
        `candles` 为已收盘窗口，当前规则不使用，保留给基于 K 线的退出规则。
        """
        if direction is Signal.HOLD or entry_price <= 0 or leverage <= 0:
            return ExitDecision.none()

        cur = self.calculate_roe(entry_price, mark_price, direction, leverage)
        sl_roe = self.params.stop_loss_percent * leverage
        tp_roe = self.params.take_profit_percent * leverage

        if cur <= -sl_roe:
            return ExitDecision.close_all("Stop Loss")
        if cur >= tp_roe:
            return ExitDecision.close_all("Take Profit")

        if cur > self.params.peak_roe:
            self.params.peak_roe = cur
        peak = self.params.peak_roe
        # 部分平仓后保持激活，峰值从平仓时的 ROE 重新计
        armed = self.params.partial_taken or peak >= tp_roe * self.cfg.trailing_activation_ratio
        if not armed or peak <= 0:
            return ExitDecision.none()

        if peak - cur > peak * self.cfg.trailing_giveback_ratio:
            if not self.params.partial_taken:
                self.params.partial_taken = True
                self.params.peak_roe = cur
                return ExitDecision.close_partial("Trailing Partial", self.cfg.partial_close_ratio)
            return ExitDecision.close_all("Trailing Stop")
        return ExitDecision.none()
