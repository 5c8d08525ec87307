import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# 确保项目根目录在 sys.path，便于测试内直接以顶层包名导入
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from algo.strategy.base import StrategySlot  # noqa: E402
from algo.scoring.aggregator import SignalAggregator  # noqa: E402
from shared.models.models import Candle, Signal  # noqa: E402

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_candle(i: int, o: float, h: float, low: float, c: float, volume: float = 100.0, step_min: int = 5) -> Candle:
    ts = T0 + timedelta(minutes=step_min * i)
    return Candle(ts=ts, open=o, high=h, low=low, close=c, volume=volume, trade_count=10, close_ts=ts + timedelta(minutes=step_min))


def flat_candles(n: int, price: float = 100.0, start: int = 0) -> list[Candle]:
    return [make_candle(start + i, price, price, price, price) for i in range(n)]


def candles_from_closes(closes, spread: float = 0.5) -> list[Candle]:
    out = []
    prev = closes[0]
    for i, c in enumerate(closes):
        o = prev
        out.append(make_candle(i, o, max(o, c) + spread, min(o, c) - spread, c))
        prev = c
    return out


class FixedStrategy:
    """固定输出的测试策略；signal 可以在测试中修改。"""

    def __init__(self, name: str, signal: Signal = Signal.HOLD):
        self.name = name
        self.signal = signal
        self.calls = 0

    def analyze(self, window) -> Signal:
        self.calls += 1
        return self.signal

    def status_value(self) -> str:
        return f"fixed={self.signal.value}"


def fixed_aggregator(score_signal: Signal = Signal.HOLD, weight: int = 9, regime: Signal = Signal.HOLD):
    """单个加权策略 + 趋势过滤器，返回 (aggregator, 策略, 过滤器)。"""
    strat = FixedStrategy("voter", score_signal)
    flt = FixedStrategy("adx_filter", regime)
    agg = SignalAggregator([StrategySlot(strat, weight), StrategySlot(flt, 0, is_regime_filter=True)])
    return agg, strat, flt


class ScriptedSource:
    """按脚本返回 fetch_latest 结果；脚本耗尽后重复最后一个。"""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = 0

    def fetch_latest(self, symbol, interval, limit):
        idx = min(self.calls, len(self.responses) - 1)
        self.calls += 1
        resp = self.responses[idx]
        if isinstance(resp, Exception):
            raise resp
        return resp

    def fetch_range(self, symbol, interval, start, end):
        return []


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
