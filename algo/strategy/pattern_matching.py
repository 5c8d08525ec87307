"""k 近邻形态匹配策略。

从历史 K 线构造特征点（最近 vector_len 根对数收益，做 z-score 归一化），
标签为之后 horizon 根的对数收益和；对最新窗口取 k 个最近邻的标签均值，
与 ±threshold 比较给出方向。
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from shared.models.models import Candle, FeaturePoint, Signal
from shared.utils.logging import setup_logger

logger = setup_logger("strategy-pattern_matching")


def _log_returns(closes: np.ndarray) -> np.ndarray:
    return np.diff(np.log(closes))


def _normalize(vec: np.ndarray) -> np.ndarray:
    std = vec.std()
    if std <= 0:
        return vec - vec.mean()
    return (vec - vec.mean()) / std


def build_feature_points(candles: Sequence[Candle], vector_len: int = 10, horizon: int = 5) -> list[FeaturePoint]:
    """从按时间升序的 K 线构造带标签的特征点。

    Parameters
    ----------
    candles:
        历史 K 线（收盘价需 > 0）。
    vector_len:
        特征向量长度（对数收益个数）。
    horizon:
        标签向前看的 bar 数。

    Returns
    -------
    list[FeaturePoint]
        只包含标签完整的样本。
    """
    if vector_len <= 0 or horizon <= 0:
        raise ValueError("vector_len and horizon must be > 0")
    closes = np.array([c.close for c in candles], dtype=float)
    if len(closes) < vector_len + horizon + 1 or np.any(closes <= 0):
        return []
    rets = _log_returns(closes)
    points: list[FeaturePoint] = []
    # rets[i] 对应 candles[i] -> candles[i+1]
    for end in range(vector_len, len(rets) - horizon + 1):
        vec = _normalize(rets[end - vector_len:end])
        label = float(rets[end:end + horizon].sum())
        points.append(
            FeaturePoint(
                timestamp=candles[end].ts,
                vector=tuple(float(x) for x in vec),
                future_return=label,
            )
        )
    return points


class PatternMatchingStrategy:
    """kNN 形态匹配：用历史相似形态的后续收益均值投票。"""

    name = "pattern_matching"

    def __init__(
        self,
        historical_candles: Sequence[Candle],
        k: int = 20,
        threshold: float = 0.001,
        vector_len: int = 10,
        horizon: int = 5,
    ):
        if k <= 0:
            raise ValueError("k must be > 0")
        self.k = int(k)
        self.threshold = float(threshold)
        self.vector_len = int(vector_len)
        self.horizon = int(horizon)
        self.points = build_feature_points(historical_candles, self.vector_len, self.horizon)
        if self.points:
            self._matrix = np.array([p.vector for p in self.points], dtype=float)
            self._labels = np.array([p.future_return for p in self.points], dtype=float)
        else:
            self._matrix = np.empty((0, self.vector_len))
            self._labels = np.empty(0)
        self._status = "N/A"
        logger.info("pattern library built: %d feature points", len(self.points))

    def expected_return(self, recent: Sequence[Candle]) -> float | None:
        closes = np.array([c.close for c in recent], dtype=float)
        if len(closes) < self.vector_len + 1 or np.any(closes <= 0) or not len(self._labels):
            return None
        query = _normalize(_log_returns(closes)[-self.vector_len:])
        dist = np.linalg.norm(self._matrix - query, axis=1)
        k = min(self.k, len(dist))
        nearest = np.argpartition(dist, k - 1)[:k]
        return float(self._labels[nearest].mean())

    def decide(self, recent: Sequence[Candle]) -> Signal:
        """对最新窗口给出 BUY/SELL/HOLD。"""
        expected = self.expected_return(recent)
        if expected is None:
            self._status = "warmup"
            return Signal.HOLD
        self._status = f"expected={expected:+.5f} k={min(self.k, len(self._labels))}"
        if expected > self.threshold:
            return Signal.BUY
        if expected < -self.threshold:
            return Signal.SELL
        return Signal.HOLD

    def status_value(self) -> str:
        return self._status
