"""K 线数据源（Binance USDⓈ-M 合约 REST / 假数据）。

数据源协议只有两个方法：
- `fetch_latest(symbol, interval, limit) -> (candles, ok)`：实时轮询，失败返回 ([], False)；
- `fetch_range(symbol, interval, start, end) -> candles`：回测历史，分页 + 节流，
  某一页失败只终止后续分页，返回已累积的数据。
返回的 K 线都按开盘时间升序且无重复。
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Protocol, Sequence

import numpy as np
import requests

from market_data.loader import dedupe_and_sort
from shared.config.schema import ExchangeConfig
from shared.models.models import Candle
from shared.utils.logging import setup_logger

INTERVAL_SECONDS = {"1m": 60, "5m": 300, "15m": 900, "1h": 3600, "4h": 14400, "1d": 86400}


class CandleSource(Protocol):
    """K 线数据源协议。"""

    def fetch_latest(self, symbol: str, interval: str, limit: int) -> tuple[List[Candle], bool]: ...

    def fetch_range(self, symbol: str, interval: str, start: datetime, end: datetime) -> List[Candle]: ...


def _ms_to_dt(ms: Any) -> datetime:
    return datetime.fromtimestamp(int(ms) / 1000, tz=timezone.utc)


def parse_kline(item: Sequence[Any]) -> Candle:
    """Binance kline 数组 -> Candle。

    数组布局：[openTime, open, high, low, close, volume, closeTime, quoteVolume, trades, ...]
    """
    return Candle(
        ts=_ms_to_dt(item[0]),
        open=float(item[1]),
        high=float(item[2]),
        low=float(item[3]),
        close=float(item[4]),
        volume=float(item[5]),
        trade_count=int(item[8]) if len(item) > 8 else 0,
        close_ts=_ms_to_dt(item[6]) if len(item) > 6 else None,
    )


class BinanceFuturesClient:
    """Binance USDⓈ-M 合约 K 线 REST 客户端（只读行情，不下单）。"""

    KLINES_PATH = "/fapi/v1/klines"

    def __init__(
        self,
        base_url: str = "https://fapi.binance.com",
        timeout_secs: float = 10.0,
        page_limit: int = 1000,
        page_delay_secs: float = 0.05,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        logger=None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_secs = timeout_secs
        self.page_limit = int(page_limit)
        self.page_delay_secs = page_delay_secs
        self.session = session or requests.Session()
        self._sleep = sleep
        self.logger = logger or setup_logger("market-binance")

    @classmethod
    def from_config(cls, cfg: ExchangeConfig, **kwargs) -> "BinanceFuturesClient":
        return cls(
            base_url=cfg.base_url,
            timeout_secs=cfg.timeout_secs,
            page_limit=cfg.page_limit,
            page_delay_secs=cfg.page_delay_secs,
            **kwargs,
        )

    def _get_klines(self, params: dict[str, Any]) -> list[list[Any]]:
        resp = self.session.get(self.base_url + self.KLINES_PATH, params=params, timeout=self.timeout_secs)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, list):
            raise ValueError(f"Unexpected klines payload: {data!r}")
        return data

    def fetch_latest(self, symbol: str, interval: str, limit: int = 1000) -> tuple[List[Candle], bool]:
        """拉取最近 limit 根 K 线（最后一根为正在形成的 bar）。"""
        params = {"symbol": symbol.upper(), "interval": interval, "limit": int(limit)}
        try:
            data = self._get_klines(params)
        except (requests.RequestException, ValueError) as exc:
            self.logger.warning("fetch_latest %s %s failed: %s", symbol, interval, exc)
            return [], False
        if not data:
            return [], False
        return dedupe_and_sort(parse_kline(item) for item in data), True

    def fetch_range(self, symbol: str, interval: str, start: datetime, end: datetime) -> List[Candle]:
        """分页拉取 [start, end] 内的 K 线。"""
        start_ms = int(start.timestamp() * 1000)
        end_ms = int(end.timestamp() * 1000)
        candles: list[Candle] = []
        cur = start_ms
        pages = 0
        while cur <= end_ms:
            params = {
                "symbol": symbol.upper(),
                "interval": interval,
                "startTime": cur,
                "limit": self.page_limit,
            }
            try:
                data = self._get_klines(params)
            except (requests.RequestException, ValueError) as exc:
                self.logger.warning("fetch_range page %d failed, keep %d candles: %s", pages, len(candles), exc)
                break
            page = [item for item in data if int(item[0]) <= end_ms]
            if not page:
                break
            candles.extend(parse_kline(item) for item in page)
            pages += 1
            last_open = max(int(item[0]) for item in page)
            if last_open >= end_ms:
                break
            cur = last_open + 1000
            if self.page_delay_secs > 0:
                self._sleep(self.page_delay_secs)

        result = dedupe_and_sort(candles)
        self.logger.info("fetched %d candles for %s %s in %d pages", len(result), symbol, interval, pages)
        return result


class FakeCandleSource:
    """本地假数据源：固定种子的随机游走，便于离线开发/测试。

    每次 `fetch_latest` 推进一根 bar，最后一根视为正在形成的 bar。
    """

    def __init__(
        self,
        interval: str = "5m",
        start_price: float = 100.0,
        history: int = 300,
        seed: int = 7,
        start: datetime | None = None,
        logger=None,
    ):
        self.step = timedelta(seconds=INTERVAL_SECONDS.get(interval, 300))
        self.start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.rng = np.random.default_rng(seed)
        self.logger = logger or setup_logger("market-fake")
        self._bars: list[Candle] = []
        self._price = float(start_price)
        for _ in range(history):
            self._append_bar()
        self.logger.info("fake source ready: %d bars from %.4f (seed=%d)", history, start_price, seed)

    def _append_bar(self) -> None:
        ts = self.start + self.step * len(self._bars)
        o = self._price
        c = max(o * (1 + self.rng.normal(0, 0.004)), 1e-6)
        h = max(o, c) * (1 + abs(self.rng.normal(0, 0.002)))
        low = min(o, c) * (1 - abs(self.rng.normal(0, 0.002)))
        vol = float(self.rng.uniform(50, 150))
        self._bars.append(
            Candle(
                ts=ts,
                open=o,
                high=h,
                low=low,
                close=c,
                volume=vol,
                trade_count=int(vol * 10),
                close_ts=ts + self.step,
            )
        )
        self._price = c

    def fetch_latest(self, symbol: str, interval: str, limit: int = 1000) -> tuple[List[Candle], bool]:
        self._append_bar()
        return self._bars[-int(limit):], True

    def fetch_range(self, symbol: str, interval: str, start: datetime, end: datetime) -> List[Candle]:
        return [c for c in self._bars if start <= c.ts <= end]
