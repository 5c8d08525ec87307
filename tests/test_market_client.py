from datetime import timedelta

import pytest
import requests

from conftest import T0
from market_data.client import BinanceFuturesClient, FakeCandleSource, parse_kline

T0_MS = int(T0.timestamp() * 1000)
MINUTE_MS = 60_000


def _kline(open_ms, close=100.0):
    return [open_ms, "100", "101", "99", str(close), "10", open_ms + MINUTE_MS - 1, "1000", 42, "5", "500", "0"]


class _Resp:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return self.payload


class _StubSession:
    """按 startTime/limit 切片返回固定的一分钟 K 线。"""

    def __init__(self, klines, fail_on_call=None, payload=None):
        self.klines = klines
        self.fail_on_call = fail_on_call
        self.payload = payload
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append(dict(params))
        if self.fail_on_call is not None and len(self.calls) >= self.fail_on_call:
            raise requests.ConnectionError("network down")
        if self.payload is not None:
            return _Resp(self.payload)
        if "startTime" in params:
            rows = [k for k in self.klines if k[0] >= params["startTime"]]
        else:
            rows = self.klines[-params["limit"]:]
        return _Resp(rows[: params["limit"]])


def _client(session, sleeps):
    return BinanceFuturesClient(page_limit=10, page_delay_secs=0.05, session=session, sleep=sleeps.append)


def test_parse_kline_fields():
    c = parse_kline(_kline(T0_MS, close=100.5))
    assert c.ts == T0
    assert c.close == 100.5
    assert c.trade_count == 42
    assert c.close_ts == T0 + timedelta(milliseconds=MINUTE_MS - 1)


def test_fetch_range_pages_until_end():
    klines = [_kline(T0_MS + i * MINUTE_MS) for i in range(25)]
    session, sleeps = _StubSession(klines), []
    candles = _client(session, sleeps).fetch_range("btcusdt", "1m", T0, T0 + timedelta(minutes=24))

    assert len(candles) == 25
    assert [c.ts for c in candles] == sorted(c.ts for c in candles)
    assert len(session.calls) == 3
    assert sleeps == [0.05, 0.05]
    assert session.calls[0]["symbol"] == "BTCUSDT"
    assert session.calls[1]["startTime"] == T0_MS + 9 * MINUTE_MS + 1000


def test_fetch_range_filters_beyond_end():
    klines = [_kline(T0_MS + i * MINUTE_MS) for i in range(25)]
    candles = _client(_StubSession(klines), []).fetch_range("BTCUSDT", "1m", T0, T0 + timedelta(minutes=4))
    assert len(candles) == 5


def test_fetch_range_keeps_pages_before_failure():
    klines = [_kline(T0_MS + i * MINUTE_MS) for i in range(25)]
    session = _StubSession(klines, fail_on_call=2)
    candles = _client(session, []).fetch_range("BTCUSDT", "1m", T0, T0 + timedelta(minutes=24))
    assert len(candles) == 10
    assert len(session.calls) == 2


def test_fetch_latest_success():
    klines = [_kline(T0_MS + i * MINUTE_MS) for i in range(5)]
    candles, ok = _client(_StubSession(klines), []).fetch_latest("BTCUSDT", "1m", 3)
    assert ok
    assert [c.ts for c in candles] == [T0 + timedelta(minutes=m) for m in (2, 3, 4)]


@pytest.mark.parametrize(
    "session",
    [
        _StubSession([], fail_on_call=1),
        _StubSession([]),
        _StubSession([], payload={"code": -1121, "msg": "Invalid symbol."}),
    ],
)
def test_fetch_latest_failure_is_flagged(session):
    assert _client(session, []).fetch_latest("BTCUSDT", "1m", 10) == ([], False)


def test_fake_source_advances_one_bar_per_poll():
    src = FakeCandleSource(interval="1m", history=50, seed=3)
    first, ok = src.fetch_latest("X", "1m", 1000)
    second, _ = src.fetch_latest("X", "1m", 1000)
    assert ok
    assert len(second) == len(first) + 1
    assert second[-1].ts - second[-2].ts == timedelta(minutes=1)
    assert all(c.low <= min(c.open, c.close) and c.high >= max(c.open, c.close) for c in second)


@pytest.mark.live
def test_live_binance_latest_klines():
    candles, ok = BinanceFuturesClient().fetch_latest("BTCUSDT", "1m", 5)
    assert ok and len(candles) == 5
