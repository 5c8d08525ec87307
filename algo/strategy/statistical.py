"""统计类策略：Z-Score、Hurst 指数、效率系数、Vector K 线、Delta 背离。"""

from __future__ import annotations

import math

import numpy as np
import pandas as pd

from shared.models.models import Signal


class ZScoreStrategy:
    """收盘价 Z 分数均值回归。"""

    name = "zscore"

    def __init__(self, period: int = 20, entry_z: float = 2.0):
        self.period = int(period)
        self.entry_z = float(entry_z)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < self.period:
            self._status = "warmup"
            return Signal.HOLD
        closes = window["close"].to_numpy(dtype=float)[-self.period:]
        std = closes.std()
        if std <= 0:
            self._status = "z=0.00"
            return Signal.HOLD
        z = (closes[-1] - closes.mean()) / std
        self._status = f"z={z:.2f}"
        if z <= -self.entry_z:
            return Signal.BUY
        if z >= self.entry_z:
            return Signal.SELL
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status


class HurstExponentStrategy:
    """Hurst 指数（滞后方差法）。

    H > trend_h：趋势延续，顺近期收益方向；H < revert_h：均值回归，逆近期收益方向。
    默认权重为 0，只作为诊断快照。
    """

    name = "hurst_exponent"

    def __init__(self, max_lag: int = 20, momentum: int = 10, trend_h: float = 0.55, revert_h: float = 0.45):
        self.max_lag = int(max_lag)
        self.momentum = int(momentum)
        self.trend_h = float(trend_h)
        self.revert_h = float(revert_h)
        self._status = "N/A"

    def hurst(self, closes: np.ndarray) -> float | None:
        if np.any(closes <= 0):
            return None
        log_p = np.log(closes)
        lags = range(2, self.max_lag)
        tau = [np.std(log_p[lag:] - log_p[:-lag]) for lag in lags]
        if any(t <= 0 for t in tau):
            return None
        slope, _ = np.polyfit(np.log(list(lags)), np.log(tau), 1)
        return float(slope)

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < self.max_lag * 2:
            self._status = "warmup"
            return Signal.HOLD
        closes = window["close"].to_numpy(dtype=float)
        h = self.hurst(closes)
        if h is None or math.isnan(h):
            self._status = "H=N/A"
            return Signal.HOLD

        ret = closes[-1] - closes[-1 - self.momentum]
        self._status = f"H={h:.3f}"
        if ret == 0:
            return Signal.HOLD
        up = ret > 0
        if h > self.trend_h:
            return Signal.BUY if up else Signal.SELL
        if h < self.revert_h:
            return Signal.SELL if up else Signal.BUY
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status


class EfficiencyRatioStrategy:
    """Kaufman 效率系数：走势足够“干净”时顺方向投票。"""

    name = "efficiency_ratio"

    def __init__(self, period: int = 10, threshold: float = 0.5):
        self.period = int(period)
        self.threshold = float(threshold)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < self.period + 1:
            self._status = "warmup"
            return Signal.HOLD
        closes = window["close"].to_numpy(dtype=float)[-self.period - 1:]
        change = closes[-1] - closes[0]
        noise = np.abs(np.diff(closes)).sum()
        er = abs(change) / noise if noise > 0 else 0.0
        self._status = f"ER={er:.3f}"
        if er < self.threshold or change == 0:
            return Signal.HOLD
        return Signal.BUY if change > 0 else Signal.SELL

    def status_value(self) -> str:
        return self._status


class VectorPatternStrategy:
    """Vector K 线（PVSRA 风格）：成交量 >= 2 倍均量，或 量×振幅 创近 N 根新高。"""

    name = "vector_pattern"

    def __init__(self, period: int = 10, volume_mult: float = 2.0):
        self.period = int(period)
        self.volume_mult = float(volume_mult)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < self.period + 1:
            self._status = "warmup"
            return Signal.HOLD
        vol = window["volume"].to_numpy(dtype=float)
        spread = (window["high"] - window["low"]).to_numpy(dtype=float)
        climax = vol * spread
        prev_vol = vol[-self.period - 1:-1]
        avg_vol = prev_vol.mean()

        is_vector = (avg_vol > 0 and vol[-1] >= self.volume_mult * avg_vol) or (
            climax[-1] > 0 and climax[-1] >= climax[-self.period - 1:-1].max()
        )
        ratio = vol[-1] / avg_vol if avg_vol > 0 else 0.0
        self._status = f"vector={'Y' if is_vector else 'N'} vol x{ratio:.2f}"
        if not is_vector:
            return Signal.HOLD
        o, c = float(window["open"].iloc[-1]), float(window["close"].iloc[-1])
        if c > o:
            return Signal.BUY
        if c < o:
            return Signal.SELL
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status


class DeltaDivergenceStrategy:
    """成交量 Delta 背离。

    每根 bar 的近似 delta = volume × (close − open) / (high − low)。
    价格创新低而累计 delta 抬高 -> BUY；价格创新高而累计 delta 走低 -> SELL。
    """

    name = "delta_divergence"

    def __init__(self, period: int = 14):
        self.period = int(period)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < self.period * 2:
            self._status = "warmup"
            return Signal.HOLD
        rng = (window["high"] - window["low"]).to_numpy(dtype=float)
        body = (window["close"] - window["open"]).to_numpy(dtype=float)
        vol = window["volume"].to_numpy(dtype=float)
        delta = np.divide(vol * body, rng, out=np.zeros_like(vol), where=rng > 0)
        cum = np.cumsum(delta)
        closes = window["close"].to_numpy(dtype=float)

        p = self.period
        prev_close, last_close = closes[-2 * p:-p], closes[-p:]
        prev_cum, last_cum = cum[-2 * p:-p], cum[-p:]
        self._status = f"cumDelta={cum[-1]:.2f}"
        if last_close.min() < prev_close.min() and last_cum.min() > prev_cum.min():
            return Signal.BUY
        if last_close.max() > prev_close.max() and last_cum.max() < prev_cum.max():
            return Signal.SELL
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status
