"""行情数据模块（market_data）。

该包聚合：
- K 线数据源（Binance USDⓈ-M 合约 REST / 本地假数据）
- K 线 CSV 读写与去重排序
"""

from market_data.client import BinanceFuturesClient, CandleSource, FakeCandleSource
from market_data.loader import dedupe_and_sort, load_candles_from_csv, save_candles_to_csv

__all__ = [
    "CandleSource",
    "BinanceFuturesClient",
    "FakeCandleSource",
    "dedupe_and_sort",
    "load_candles_from_csv",
    "save_candles_to_csv",
]
