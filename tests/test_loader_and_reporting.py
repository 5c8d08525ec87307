from datetime import datetime, timezone

import pytest

from analysis.reporting import build_trade_log_path, format_trade_line, summary_table
from conftest import T0, flat_candles, make_candle
from engine.ledger import PositionLedger
from market_data.loader import dedupe_and_sort, load_candles_from_csv, save_candles_to_csv
from shared.models.models import BacktestResult, Signal


def test_csv_aliases_and_epoch_timestamps(tmp_path):
    path = tmp_path / "k.csv"
    path.write_text(
        "open_time,open,high,low,close,volume,trades,close_time\n"
        "1704067500000,2,3,1,2.5,10,7,1704067799999\n"
        "1704067200,1,2,0.5,1.5,5,3,\n",
        encoding="utf-8",
    )
    candles = load_candles_from_csv(path)
    assert [c.ts for c in candles] == [T0, datetime(2024, 1, 1, 0, 5, tzinfo=timezone.utc)]
    assert candles[0].trade_count == 3 and candles[0].close_ts is None
    assert candles[1].close == 2.5 and candles[1].close_ts is not None


def test_csv_naive_iso_is_utc(tmp_path):
    path = tmp_path / "k.csv"
    path.write_text("ts,open,high,low,close,volume\n2024-01-01 00:00:00,1,1,1,1,1\n", encoding="utf-8")
    assert load_candles_from_csv(path)[0].ts == T0


def test_csv_save_then_load_keeps_order(tmp_path):
    candles = flat_candles(5)
    path = save_candles_to_csv(list(reversed(candles)), tmp_path / "sub" / "k.csv")
    assert load_candles_from_csv(path) == candles


def test_missing_csv():
    with pytest.raises(FileNotFoundError):
        load_candles_from_csv("nope/missing.csv")


def test_bad_timestamp_rejected(tmp_path):
    path = tmp_path / "k.csv"
    path.write_text("ts,open,high,low,close\nyesterday,1,1,1,1\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid datetime"):
        load_candles_from_csv(path)


def test_dedupe_keeps_last_duplicate():
    a = make_candle(0, 1, 1, 1, 1)
    b = make_candle(0, 2, 2, 2, 2)
    c = make_candle(1, 3, 3, 3, 3)
    assert dedupe_and_sort([c, a, b]) == [b, c]


def test_trade_line_format():
    ledger = PositionLedger(10000.0)
    ledger.open(Signal.SELL, 100.0, 10.0, T0)
    part = ledger.close_partial(98.0, 0.5, "Trailing Partial", make_candle(3, 1, 1, 1, 1).ts)
    full = ledger.close_all(103.0, "Stop Loss", make_candle(4, 1, 1, 1, 1).ts)

    assert format_trade_line(part) == (
        f"[01-01 00:15] PARTIAL (Trailing Partial) | WIN | PnL: ${part.realized_pnl:.2f} | Bal: ${part.balance_after:.0f}"
    )
    assert format_trade_line(full).startswith("[01-01 00:20] EXIT (Stop Loss) | LOSS | PnL: $-")


def test_trade_log_path_name(tmp_path):
    now = datetime(2024, 3, 5, 7, 8, 9)
    assert build_trade_log_path(tmp_path, "ETHUSDT", "15m", now) == tmp_path / "bt_ETHUSDT_15m_20240305_070809.json"


def test_summary_table_rows():
    table = summary_table(BacktestResult(final_balance=9000.0, total_pnl=-1000.0, bankrupt=True), 10000.0)
    assert table.row_count == 6
