"""趋势类策略：SuperTrend / Ichimoku / 均线交叉 / 线性回归 / ADX 过滤。"""

from __future__ import annotations

import numpy as np
import pandas as pd

from algo.strategy.indicators import adx, atr, ema, last, linreg_slope
from shared.models.models import Signal


class SuperTrendStrategy:
    """SuperTrend：ATR 通道翻转判断趋势方向。

    收盘价在 SuperTrend 线之上 -> BUY，之下 -> SELL。
    """

    name = "supertrend"

    def __init__(self, period: int = 10, multiplier: float = 3.0):
        self.period = int(period)
        self.multiplier = float(multiplier)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < self.period + 2:
            self._status = "warmup"
            return Signal.HOLD

        atr_v = atr(window, self.period).to_numpy()
        hl2 = ((window["high"] + window["low"]) / 2.0).to_numpy()
        close = window["close"].to_numpy(dtype=float)
        upper = hl2 + self.multiplier * atr_v
        lower = hl2 - self.multiplier * atr_v

        trend_up = True
        final_upper = np.nan
        final_lower = np.nan
        for i in range(len(window)):
            if np.isnan(atr_v[i]):
                continue
            if np.isnan(final_upper):
                final_upper, final_lower = upper[i], lower[i]
                trend_up = close[i] >= hl2[i]
                continue
            # 通道只朝趋势方向收紧
            final_upper = upper[i] if (upper[i] < final_upper or close[i - 1] > final_upper) else final_upper
            final_lower = lower[i] if (lower[i] > final_lower or close[i - 1] < final_lower) else final_lower
            if trend_up and close[i] < final_lower:
                trend_up = False
            elif not trend_up and close[i] > final_upper:
                trend_up = True

        line = final_lower if trend_up else final_upper
        self._status = f"{'UP' if trend_up else 'DOWN'} line={line:.4f}"
        return Signal.BUY if trend_up else Signal.SELL

    def status_value(self) -> str:
        return self._status


class IchimokuCloudStrategy:
    """一目均衡表：价格在云上且转换线 > 基准线 -> BUY；反之 SELL。"""

    name = "ichimoku"

    def __init__(self, tenkan: int = 9, kijun: int = 26, senkou_b: int = 52):
        self.tenkan = int(tenkan)
        self.kijun = int(kijun)
        self.senkou_b = int(senkou_b)
        self._status = "N/A"

    @staticmethod
    def _mid(df: pd.DataFrame, n: int) -> pd.Series:
        return (df["high"].rolling(n, min_periods=n).max() + df["low"].rolling(n, min_periods=n).min()) / 2.0

    def analyze(self, window: pd.DataFrame) -> Signal:
        tenkan = self._mid(window, self.tenkan)
        kijun = self._mid(window, self.kijun)
        # 先行带向前平移 kijun 根：当前 bar 对应的是 kijun 根之前计算出的云
        span_a = ((tenkan + kijun) / 2.0).shift(self.kijun)
        span_b = self._mid(window, self.senkou_b).shift(self.kijun)

        t, k, a, b = last(tenkan), last(kijun), last(span_a), last(span_b)
        close = float(window["close"].iloc[-1]) if len(window) else None
        if None in (t, k, a, b, close):
            self._status = "warmup"
            return Signal.HOLD

        top, bottom = max(a, b), min(a, b)
        self._status = f"close={close:.4f} cloud=[{bottom:.4f},{top:.4f}] tk={t:.4f}/{k:.4f}"
        if close > top and t > k:
            return Signal.BUY
        if close < bottom and t < k:
            return Signal.SELL
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status


class MaCrossStrategy:
    """EMA 快慢线位置关系。"""

    name = "ma_cross"

    def __init__(self, fast: int = 9, slow: int = 21):
        if fast >= slow:
            raise ValueError("fast must be < slow")
        self.fast = int(fast)
        self.slow = int(slow)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        fast = last(ema(window["close"], self.fast))
        slow = last(ema(window["close"], self.slow))
        if fast is None or slow is None:
            self._status = "warmup"
            return Signal.HOLD
        self._status = f"ema{self.fast}={fast:.4f} ema{self.slow}={slow:.4f}"
        if fast > slow:
            return Signal.BUY
        if fast < slow:
            return Signal.SELL
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status


class LinRegStrategy:
    """线性回归斜率（按最新收盘价归一化）。"""

    name = "linreg"

    def __init__(self, period: int = 20, min_slope_pct: float = 0.0005):
        self.period = int(period)
        self.min_slope_pct = float(min_slope_pct)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < self.period:
            self._status = "warmup"
            return Signal.HOLD
        closes = window["close"].to_numpy(dtype=float)[-self.period:]
        ref = closes[-1]
        if ref <= 0:
            self._status = "invalid price"
            return Signal.HOLD
        slope_pct = linreg_slope(closes) / ref
        self._status = f"slope={slope_pct * 100:.4f}%/bar"
        if slope_pct > self.min_slope_pct:
            return Signal.BUY
        if slope_pct < -self.min_slope_pct:
            return Signal.SELL
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status


class AdxFilterStrategy:
    """趋势强度过滤器（Regime Filter）。

    ADX >= threshold 时按 +DI/-DI 给方向；趋势不够强时给 HOLD（聚合器据此减半总分）。
    它本身不计分，也不会单独触发开仓。
    """

    name = "adx_filter"

    def __init__(self, period: int = 14, threshold: float = 25.0):
        self.period = int(period)
        self.threshold = float(threshold)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        adx_line, plus_di, minus_di = adx(window, self.period)
        a, p, m = last(adx_line), last(plus_di), last(minus_di)
        if a is None or p is None or m is None:
            self._status = "warmup"
            return Signal.HOLD
        self._status = f"ADX={a:.2f} +DI={p:.2f} -DI={m:.2f}"
        if a < self.threshold:
            return Signal.HOLD
        if p > m:
            return Signal.BUY
        if m > p:
            return Signal.SELL
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status
