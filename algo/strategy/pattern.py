"""形态类策略：内包线、分形突破、RSI 背离、波动率挤压、K 线形态。"""

from __future__ import annotations

import numpy as np
import pandas as pd

from algo.strategy.indicators import atr, bollinger, ema, rsi
from shared.models.models import Signal


class InsideBarStrategy:
    """内包线突破：倒数第二根被母线包含，最新一根收盘突破母线高/低点。"""

    name = "inside_bar"

    def __init__(self):
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < 3:
            self._status = "warmup"
            return Signal.HOLD
        mother, inside, bar = window.iloc[-3], window.iloc[-2], window.iloc[-1]
        if not (inside["high"] <= mother["high"] and inside["low"] >= mother["low"]):
            self._status = "no inside bar"
            return Signal.HOLD
        self._status = f"mother=[{mother['low']:.4f},{mother['high']:.4f}]"
        if bar["close"] > mother["high"]:
            return Signal.BUY
        if bar["close"] < mother["low"]:
            return Signal.SELL
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status


class FractalBreakoutStrategy:
    """Bill Williams 分形突破：最新一根收盘上穿最近的上分形 / 下穿最近的下分形。"""

    name = "fractal_breakout"

    def __init__(self, wing: int = 2):
        self.wing = int(wing)
        self._status = "N/A"

    def _last_fractals(self, h: np.ndarray, low: np.ndarray) -> tuple[float | None, float | None]:
        up = down = None
        w = self.wing
        # 分形需要右侧 wing 根确认，且不使用最新一根
        for i in range(len(h) - 2 - w, w - 1, -1):
            left_h, right_h = h[i - w:i], h[i + 1:i + 1 + w]
            left_l, right_l = low[i - w:i], low[i + 1:i + 1 + w]
            if up is None and h[i] > left_h.max() and h[i] > right_h.max():
                up = float(h[i])
            if down is None and low[i] < left_l.min() and low[i] < right_l.min():
                down = float(low[i])
            if up is not None and down is not None:
                break
        return up, down

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < 2 * self.wing + 3:
            self._status = "warmup"
            return Signal.HOLD
        h = window["high"].to_numpy(dtype=float)
        low = window["low"].to_numpy(dtype=float)
        c = window["close"].to_numpy(dtype=float)
        up, down = self._last_fractals(h, low)
        self._status = f"up={up} down={down}"
        if up is not None and c[-1] > up >= c[-2]:
            return Signal.BUY
        if down is not None and c[-1] < down <= c[-2]:
            return Signal.SELL
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status


class RsiDivergenceStrategy:
    """RSI 背离：近段价格新低而 RSI 抬高（且处于低位）-> BUY；镜像 -> SELL。"""

    name = "rsi_divergence"

    def __init__(self, period: int = 14, lookback: int = 30, recent: int = 5, oversold: float = 40.0, overbought: float = 60.0):
        self.period = int(period)
        self.lookback = int(lookback)
        self.recent = int(recent)
        self.oversold = float(oversold)
        self.overbought = float(overbought)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < self.period + self.lookback:
            self._status = "warmup"
            return Signal.HOLD
        r = rsi(window["close"], self.period).to_numpy(dtype=float)[-self.lookback:]
        low = window["low"].to_numpy(dtype=float)[-self.lookback:]
        h = window["high"].to_numpy(dtype=float)[-self.lookback:]
        if np.isnan(r).any():
            self._status = "warmup"
            return Signal.HOLD
        self._status = f"RSI={r[-1]:.2f}"

        split = self.lookback - self.recent
        old_lo, new_lo = int(np.argmin(low[:split])), split + int(np.argmin(low[split:]))
        if low[new_lo] < low[old_lo] and r[new_lo] > r[old_lo] and r[new_lo] < self.oversold:
            return Signal.BUY
        old_hi, new_hi = int(np.argmax(h[:split])), split + int(np.argmax(h[split:]))
        if h[new_hi] > h[old_hi] and r[new_hi] < r[old_hi] and r[new_hi] > self.overbought:
            return Signal.SELL
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status


class VolatilitySqueezeStrategy:
    """TTM 式挤压释放：布林带从肯特纳通道内部扩张出来的第一根，按动量方向投票。"""

    name = "volatility_squeeze"

    def __init__(self, period: int = 20, bb_k: float = 2.0, kc_mult: float = 1.5):
        self.period = int(period)
        self.bb_k = float(bb_k)
        self.kc_mult = float(kc_mult)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < self.period + 2:
            self._status = "warmup"
            return Signal.HOLD
        close = window["close"]
        _, bb_up, bb_lo = bollinger(close, self.period, self.bb_k)
        kc_mid = ema(close, self.period)
        kc_rng = atr(window, self.period) * self.kc_mult
        squeeze_on = (bb_up < kc_mid + kc_rng) & (bb_lo > kc_mid - kc_rng)

        donchian_mid = (window["high"].rolling(self.period).max() + window["low"].rolling(self.period).min()) / 2.0
        momentum = close - (donchian_mid + close.rolling(self.period).mean()) / 2.0

        was_on, now_on = bool(squeeze_on.iloc[-2]), bool(squeeze_on.iloc[-1])
        mom = momentum.iloc[-1]
        if pd.isna(mom):
            self._status = "warmup"
            return Signal.HOLD
        self._status = f"squeeze={'ON' if now_on else 'OFF'} mom={mom:+.4f}"
        if was_on and not now_on:
            if mom > 0:
                return Signal.BUY
            if mom < 0:
                return Signal.SELL
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status


class PatternCandleStrategy:
    """经典 K 线形态：吞没、锤子线、射击之星。"""

    name = "pattern_candle"

    def __init__(self, trend_lookback: int = 5, wick_ratio: float = 2.0):
        self.trend_lookback = int(trend_lookback)
        self.wick_ratio = float(wick_ratio)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < self.trend_lookback + 2:
            self._status = "warmup"
            return Signal.HOLD
        prev, bar = window.iloc[-2], window.iloc[-1]
        o, h, low, c = float(bar["open"]), float(bar["high"]), float(bar["low"]), float(bar["close"])
        po, pc = float(prev["open"]), float(prev["close"])
        body = abs(c - o)
        upper_wick = h - max(o, c)
        lower_wick = min(o, c) - low
        ref = float(window["close"].iloc[-self.trend_lookback - 1])
        downtrend, uptrend = pc < ref, pc > ref

        if pc < po and c > o and c >= po and o <= pc:
            self._status = "bullish engulfing"
            return Signal.BUY
        if pc > po and c < o and c <= po and o >= pc:
            self._status = "bearish engulfing"
            return Signal.SELL
        if body > 0 and downtrend and lower_wick >= self.wick_ratio * body and upper_wick <= body:
            self._status = "hammer"
            return Signal.BUY
        if body > 0 and uptrend and upper_wick >= self.wick_ratio * body and lower_wick <= body:
            self._status = "shooting star"
            return Signal.SELL
        self._status = "none"
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status
