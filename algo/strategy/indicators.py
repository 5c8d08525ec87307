"""策略共用的指标计算（pandas/numpy 版本）。

输入统一为 K 线 DataFrame（列：ts/open/high/low/close/volume/trade_count），
输出为与输入等长、索引对齐的 Series；不足窗口的位置为 NaN。
"""

from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from shared.models.models import Candle

CANDLE_COLS = ["ts", "open", "high", "low", "close", "volume", "trade_count"]


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """Candle 序列 -> DataFrame（按 ts 升序，索引 0..n-1）。"""
    rows = [
        {
            "ts": c.ts,
            "open": c.open,
            "high": c.high,
            "low": c.low,
            "close": c.close,
            "volume": c.volume,
            "trade_count": c.trade_count,
        }
        for c in candles
    ]
    if not rows:
        return pd.DataFrame(columns=CANDLE_COLS)
    df = pd.DataFrame(rows, columns=CANDLE_COLS)
    return df.sort_values("ts").reset_index(drop=True)


def as_frame(window: pd.DataFrame | Sequence[Candle]) -> pd.DataFrame:
    if isinstance(window, pd.DataFrame):
        return window
    return candles_to_frame(window)


def sma(series: pd.Series, period: int) -> pd.Series:
    return series.rolling(period, min_periods=period).mean()


def ema(series: pd.Series, period: int) -> pd.Series:
    return series.ewm(span=period, adjust=False, min_periods=period).mean()


def true_range(df: pd.DataFrame) -> pd.Series:
    prev_close = df["close"].shift(1)
    tr1 = df["high"] - df["low"]
    tr2 = (df["high"] - prev_close).abs()
    tr3 = (df["low"] - prev_close).abs()
    return pd.concat([tr1, tr2, tr3], axis=1).max(axis=1)


def atr(df: pd.DataFrame, period: int = 14) -> pd.Series:
    """平均真实波幅（Wilder 平滑）。"""
    return true_range(df).ewm(alpha=1.0 / period, adjust=False, min_periods=period).mean()


def rsi(series: pd.Series, period: int = 14) -> pd.Series:
    delta = series.diff()
    gain = delta.clip(lower=0.0)
    loss = (-delta).clip(lower=0.0)
    avg_gain = gain.ewm(alpha=1.0 / period, adjust=False, min_periods=period).mean()
    avg_loss = loss.ewm(alpha=1.0 / period, adjust=False, min_periods=period).mean()
    rs = avg_gain / avg_loss.replace(0.0, np.nan)
    out = 100.0 - (100.0 / (1.0 + rs))
    # 只有上涨没有下跌时 RSI=100
    return out.where(avg_loss != 0.0, 100.0).where(avg_gain.notna())


def adx(df: pd.DataFrame, period: int = 14) -> tuple[pd.Series, pd.Series, pd.Series]:
    """返回 (ADX, +DI, -DI)。"""
    up_move = df["high"].diff()
    down_move = -df["low"].diff()
    plus_dm = up_move.where((up_move > down_move) & (up_move > 0), 0.0)
    minus_dm = down_move.where((down_move > up_move) & (down_move > 0), 0.0)

    alpha = 1.0 / period
    tr_s = true_range(df).ewm(alpha=alpha, adjust=False, min_periods=period).mean()
    plus_di = 100.0 * plus_dm.ewm(alpha=alpha, adjust=False, min_periods=period).mean() / tr_s
    minus_di = 100.0 * minus_dm.ewm(alpha=alpha, adjust=False, min_periods=period).mean() / tr_s

    di_sum = (plus_di + minus_di).replace(0.0, np.nan)
    dx = 100.0 * (plus_di - minus_di).abs() / di_sum
    adx_line = dx.ewm(alpha=alpha, adjust=False, min_periods=period).mean()
    return adx_line, plus_di, minus_di


def bollinger(series: pd.Series, period: int = 20, k: float = 2.0) -> tuple[pd.Series, pd.Series, pd.Series]:
    """返回 (mid, upper, lower)。"""
    mid = sma(series, period)
    std = series.rolling(period, min_periods=period).std(ddof=0)
    return mid, mid + k * std, mid - k * std


def linreg_slope(values: np.ndarray) -> float:
    """最小二乘斜率（每根 bar 的价格变化）。"""
    n = len(values)
    if n < 2:
        return 0.0
    x = np.arange(n, dtype=float)
    slope, _ = np.polyfit(x, values.astype(float), 1)
    return float(slope)


def last(series: pd.Series) -> float | None:
    """取最后一个值；NaN 视为不可用。"""
    if series.empty:
        return None
    val = series.iloc[-1]
    if pd.isna(val):
        return None
    return float(val)
