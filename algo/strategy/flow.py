"""资金流/结构类策略：订单块、FVG、VWAP 回归、巨鲸主动成交、聪明钱扫流动性。"""

from __future__ import annotations

import numpy as np
import pandas as pd

from shared.models.models import Signal


class OrderBlockStrategy:
    """订单块（Order Block）回踩。

    在 lookback 内寻找最近一根“冲击 K 线”（实体 >= impulse × 平均实体），
    其前一根反向 K 线即订单块；最新收盘回到订单块区间内 -> 顺冲击方向投票。
    """

    name = "order_block"

    def __init__(self, lookback: int = 30, impulse: float = 2.0):
        self.lookback = int(lookback)
        self.impulse = float(impulse)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < self.lookback + 2:
            self._status = "warmup"
            return Signal.HOLD

        o = window["open"].to_numpy(dtype=float)
        h = window["high"].to_numpy(dtype=float)
        low = window["low"].to_numpy(dtype=float)
        c = window["close"].to_numpy(dtype=float)
        body = np.abs(c - o)
        avg_body = body[-self.lookback - 1:-1].mean()
        if avg_body <= 0:
            self._status = "flat"
            return Signal.HOLD

        n = len(window)
        # 最新一根是回踩 bar，不参与冲击识别
        for i in range(n - 2, n - self.lookback - 1, -1):
            if body[i] < self.impulse * avg_body:
                continue
            bullish = c[i] > o[i]
            ob = i - 1
            if (c[ob] > o[ob]) == bullish:
                continue
            zone_low, zone_high = low[ob], h[ob]
            self._status = f"{'BULL' if bullish else 'BEAR'} OB [{zone_low:.4f},{zone_high:.4f}]"
            if zone_low <= c[-1] <= zone_high:
                return Signal.BUY if bullish else Signal.SELL
            return Signal.HOLD

        self._status = "no block"
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status


class FairValueGapStrategy:
    """公允价值缺口（FVG）回补。

    三根 K 线结构：low[i] > high[i-2] 为看涨缺口，high[i] < low[i-2] 为看跌缺口。
    最近一个缺口被最新 bar 回踩且收盘守住缺口 -> 顺缺口方向投票。
    """

    name = "fair_value_gap"

    def __init__(self, lookback: int = 30):
        self.lookback = int(lookback)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < self.lookback + 3:
            self._status = "warmup"
            return Signal.HOLD

        h = window["high"].to_numpy(dtype=float)
        low = window["low"].to_numpy(dtype=float)
        c = window["close"].to_numpy(dtype=float)
        n = len(window)
        for i in range(n - 2, n - self.lookback - 1, -1):
            if low[i] > h[i - 2]:
                gap_low, gap_high = h[i - 2], low[i]
                self._status = f"BULL FVG [{gap_low:.4f},{gap_high:.4f}]"
                if low[-1] <= gap_high and c[-1] >= gap_low:
                    return Signal.BUY
                return Signal.HOLD
            if h[i] < low[i - 2]:
                gap_low, gap_high = h[i], low[i - 2]
                self._status = f"BEAR FVG [{gap_low:.4f},{gap_high:.4f}]"
                if h[-1] >= gap_low and c[-1] <= gap_high:
                    return Signal.SELL
                return Signal.HOLD

        self._status = "no gap"
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status


class VwapReversionStrategy:
    """滚动 VWAP 偏离回归：跌破下轨做多，升破上轨做空。"""

    name = "vwap_reversion"

    def __init__(self, period: int = 50, band_std: float = 2.0):
        self.period = int(period)
        self.band_std = float(band_std)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < self.period:
            self._status = "warmup"
            return Signal.HOLD

        tail = window.iloc[-self.period:]
        typical = ((tail["high"] + tail["low"] + tail["close"]) / 3.0).to_numpy(dtype=float)
        vol = tail["volume"].to_numpy(dtype=float)
        if vol.sum() <= 0:
            self._status = "no volume"
            return Signal.HOLD

        vwap = float(np.dot(typical, vol) / vol.sum())
        dev = tail["close"].to_numpy(dtype=float) - vwap
        std = float(dev.std())
        close = float(tail["close"].iloc[-1])
        self._status = f"vwap={vwap:.4f} dev={close - vwap:+.4f} std={std:.4f}"
        if std <= 0:
            return Signal.HOLD
        if close < vwap - self.band_std * std:
            return Signal.BUY
        if close > vwap + self.band_std * std:
            return Signal.SELL
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status


class WhaleAggressionStrategy:
    """巨鲸主动成交：放量且单笔成交均量放大的 K 线，按实体方向投票。"""

    name = "whale_aggression"

    def __init__(self, period: int = 20, volume_mult: float = 3.0, size_mult: float = 1.5):
        self.period = int(period)
        self.volume_mult = float(volume_mult)
        self.size_mult = float(size_mult)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < self.period + 1:
            self._status = "warmup"
            return Signal.HOLD

        vol = window["volume"].to_numpy(dtype=float)
        trades = window["trade_count"].to_numpy(dtype=float)
        avg_vol = vol[-self.period - 1:-1].mean()
        if avg_vol <= 0:
            self._status = "no volume"
            return Signal.HOLD

        vol_ratio = vol[-1] / avg_vol
        # 无成交笔数数据时只看成交量
        size_ratio = 1.0 + self.size_mult
        if trades[-1] > 0 and trades[-self.period - 1:-1].sum() > 0:
            avg_size = vol[-self.period - 1:-1].sum() / trades[-self.period - 1:-1].sum()
            size_ratio = (vol[-1] / trades[-1]) / avg_size if avg_size > 0 else 0.0
        self._status = f"vol x{vol_ratio:.2f} size x{size_ratio:.2f}"

        if vol_ratio < self.volume_mult or size_ratio < self.size_mult:
            return Signal.HOLD
        o, c = float(window["open"].iloc[-1]), float(window["close"].iloc[-1])
        if c > o:
            return Signal.BUY
        if c < o:
            return Signal.SELL
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status


class SmartMoneyStrategy:
    """扫流动性：刺破前高/前低后收回，按反向投票。"""

    name = "smart_money"

    def __init__(self, swing: int = 20):
        self.swing = int(swing)
        self._status = "N/A"

    def analyze(self, window: pd.DataFrame) -> Signal:
        if len(window) < self.swing + 1:
            self._status = "warmup"
            return Signal.HOLD

        prev = window.iloc[-self.swing - 1:-1]
        swing_low = float(prev["low"].min())
        swing_high = float(prev["high"].max())
        bar = window.iloc[-1]
        self._status = f"range=[{swing_low:.4f},{swing_high:.4f}]"
        if bar["low"] < swing_low and bar["close"] > swing_low:
            return Signal.BUY
        if bar["high"] > swing_high and bar["close"] < swing_high:
            return Signal.SELL
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status
