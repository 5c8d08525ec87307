"""K 线 CSV 读写与去重排序。

CSV 列：ts, open, high, low, close, volume, trade_count, close_ts
（兼容 start_ts/end_ts、open_time/close_time 等别名；时间可为 ISO 字符串或毫秒/秒时间戳）。
"""

from __future__ import annotations

import csv
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List

from shared.models.models import Candle
from shared.utils.logging import setup_logger

CSV_HEADER = ["ts", "open", "high", "low", "close", "volume", "trade_count", "close_ts"]

_TS_ALIASES = ("ts", "start_ts", "open_time", "timestamp")
_CLOSE_TS_ALIASES = ("close_ts", "end_ts", "close_time")
_TRADES_ALIASES = ("trade_count", "trades", "count")

logger = setup_logger("market-csv")


def _parse_dt(val: str) -> datetime:
    val = val.strip()
    try:
        if val.isdigit():
            ts_int = int(val)
            if ts_int > 1e12:
                return datetime.fromtimestamp(ts_int / 1000, tz=timezone.utc)
            return datetime.fromtimestamp(ts_int, tz=timezone.utc)
        dt = datetime.fromisoformat(val.replace("Z", "+00:00"))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, OverflowError, OSError) as exc:
        raise ValueError(f"Invalid datetime value: {val}") from exc


def _first(row: dict[str, str], keys: Iterable[str]) -> str | None:
    for k in keys:
        v = row.get(k)
        if v not in (None, ""):
            return v
    return None


def _row_to_candle(row: dict[str, str]) -> Candle:
    ts_raw = _first(row, _TS_ALIASES)
    if ts_raw is None:
        raise ValueError(f"CSV row has no timestamp column: {row}")
    close_raw = _first(row, _CLOSE_TS_ALIASES)
    trades_raw = _first(row, _TRADES_ALIASES)
    return Candle(
        ts=_parse_dt(ts_raw),
        open=float(row["open"]),
        high=float(row["high"]),
        low=float(row["low"]),
        close=float(row["close"]),
        volume=float(row.get("volume") or 0),
        trade_count=int(float(trades_raw)) if trades_raw is not None else 0,
        close_ts=_parse_dt(close_raw) if close_raw is not None else None,
    )


def dedupe_and_sort(candles: Iterable[Candle]) -> List[Candle]:
    """按开盘时间去重（后出现的覆盖先出现的）并升序排序。"""
    dedup: dict[datetime, Candle] = {}
    for c in candles:
        dedup[c.ts] = c
    return sorted(dedup.values(), key=lambda c: c.ts)


def load_candles_from_csv(path: str | Path) -> List[Candle]:
    """读取 K 线 CSV，返回去重排序后的列表。"""
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Kline file not found: {csv_path}")
    with csv_path.open("r", newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        candles = [_row_to_candle(row) for row in reader]
    result = dedupe_and_sort(candles)
    logger.info("loaded %d candles from %s (%d rows)", len(result), csv_path, len(candles))
    return result


def save_candles_to_csv(candles: Iterable[Candle], path: str | Path) -> Path:
    """把 K 线写入 CSV（覆盖），用于缓存下载结果。"""
    dest = Path(path)
    dest.parent.mkdir(parents=True, exist_ok=True)
    with dest.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for c in dedupe_and_sort(candles):
            writer.writerow(
                [
                    c.ts.isoformat(),
                    f"{c.open}",
                    f"{c.high}",
                    f"{c.low}",
                    f"{c.close}",
                    f"{c.volume}",
                    c.trade_count,
                    c.close_ts.isoformat() if c.close_ts else "",
                ]
            )
    logger.info("saved candles to %s", dest)
    return dest
