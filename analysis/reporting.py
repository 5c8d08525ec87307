"""回测报告：逐行文本报告、JSON 交易日志、控制台汇总表。"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Iterable, Sequence

from rich.table import Table

from shared.models.models import BacktestResult, TradeRecord
from shared.utils.json_sanitize import sanitize_for_json

REPORT_TITLE = "=== BACKTEST REPORT ==="
SEPARATOR = "-" * 66
BANKRUPTCY_LINE = "!!! BANKRUPTCY !!!"


def not_enough_data_message(min_history: int) -> str:
    return f"Not enough data (Need > {min_history} candles)"


def format_header(
    symbol: str,
    interval: str,
    leverage: float,
    first_ts: datetime,
    last_ts: datetime,
    bar_count: int,
) -> list[str]:
    """报告头：品种/周期/杠杆/数据范围/bar 数。"""
    return [
        REPORT_TITLE,
        f"Target: {symbol} | Interval: {interval} | Leverage: {leverage:g}x",
        f"Data Range: {first_ts:%Y/%m/%d %H:%M} ~ {last_ts:%Y/%m/%d %H:%M} ({bar_count} Candles)",
        SEPARATOR,
    ]


def format_trade_line(record: TradeRecord) -> str:
    """`[MM-dd HH:mm] EXIT (原因) | WIN/LOSS | PnL: $x.xx | Bal: $x`"""
    ts = f"{record.exit_time:%m-%d %H:%M}" if record.exit_time else "--"
    kind = "PARTIAL" if record.is_partial else "EXIT"
    outcome = "WIN" if record.realized_pnl > 0 else "LOSS"
    return (
        f"[{ts}] {kind} ({record.exit_reason}) | {outcome} | "
        f"PnL: ${record.realized_pnl:.2f} | Bal: ${record.balance_after:.0f}"
    )


def build_trade_log_path(log_dir: str | Path, symbol: str, interval: str, now: datetime) -> Path:
    return Path(log_dir) / f"bt_{symbol}_{interval}_{now:%Y%m%d_%H%M%S}.json"


def export_trade_log(trades: Iterable[TradeRecord], path: str | Path) -> Path:
    """按时间顺序写出 JSON 交易日志（含入场时的策略信号与诊断快照）。

    Raises
    ------
    OSError
        目录不可写等 IO 错误，由调用方决定如何报告。
    """
    dest = Path(path)
    dest.parent.mkdir(parents=True, exist_ok=True)
    payload = sanitize_for_json([t.to_dict() for t in trades])
    with dest.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
    return dest


def write_text_report(log: str, path: str | Path) -> Path:
    dest = Path(path)
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_text(log, encoding="utf-8")
    return dest


def summary_table(result: BacktestResult, initial_balance: float, title: str = "BACKTEST RESULTS") -> Table:
    """控制台汇总表（rich）。"""
    pnl_pct = result.total_pnl / initial_balance * 100 if initial_balance else 0.0
    table = Table(title=title, show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Final Balance", f"${result.final_balance:,.0f}")
    pnl_style = "green" if result.total_pnl >= 0 else "red"
    table.add_row("Total PnL", f"[{pnl_style}]{result.total_pnl:+,.0f} ({pnl_pct:.1f}%)[/{pnl_style}]")
    table.add_row("Win/Loss", f"{result.win_count}W / {result.loss_count}L")
    table.add_row("Max Drawdown", f"-{result.max_drawdown_percent:.2f}%")
    table.add_row("Bars", str(result.bar_count))
    if result.bankrupt:
        table.add_row("Status", "[bold red]BANKRUPT[/bold red]")
    return table


def trades_table(trades: Sequence[TradeRecord], limit: int = 20) -> Table:
    """最近若干笔成交（最新在前）。"""
    table = Table(title="Recent Trades")
    for col in ("Exit Time", "Side", "Entry", "Exit", "PnL", "Reason"):
        table.add_column(col)
    for t in list(reversed(trades))[:limit]:
        side = "L" if t.direction.value == "Buy" else "S"
        table.add_row(
            f"{t.exit_time:%m-%d %H:%M}" if t.exit_time else "--",
            side,
            f"{t.entry_price:.4f}",
            f"{t.exit_price:.4f}",
            f"{t.realized_pnl:+.2f}",
            t.exit_reason,
        )
    return table
