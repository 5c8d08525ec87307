from pathlib import Path

import pytest

import main
from conftest import candles_from_closes, flat_candles
from market_data.loader import load_candles_from_csv, save_candles_to_csv


def test_parse_args_defaults_and_subcommands():
    args = main.parse_args([])
    assert args.task is None
    assert args.config == "config/config.yml"

    args = main.parse_args(["live", "--max-ticks", "3", "--fake", "--config", "x.yml"])
    assert (args.task, args.max_ticks, args.fake, args.config) == ("live", 3, True, "x.yml")

    args = main.parse_args(["--config", "y.yml", "backtest"])
    assert (args.task, args.config) == ("backtest", "y.yml")

    assert main.parse_args(["test", "--include-live"]).include_live_tests


def _config(tmp_path: Path, body: str) -> str:
    path = tmp_path / "config.yml"
    path.write_text(body, encoding="utf-8")
    return str(path)


def test_pattern_task(tmp_path):
    csv_path = tmp_path / "growth.csv"
    save_candles_to_csv(candles_from_closes([100 * 1.01 ** i for i in range(150)]), csv_path)
    cfg = _config(tmp_path, f"mode: console\npattern:\n  data_source: {csv_path}\n")

    out = main.main(["--config", cfg])
    assert out["signal"] == "Buy"


def test_pattern_task_rejects_short_history(tmp_path):
    csv_path = tmp_path / "short.csv"
    save_candles_to_csv(flat_candles(50), csv_path)
    cfg = _config(tmp_path, f"pattern:\n  data_source: {csv_path}\n")
    with pytest.raises(ValueError, match="Not enough candles"):
        main.main(["pattern", "--config", cfg])


def test_backtest_task_writes_report(tmp_path):
    csv_path = tmp_path / "flat.csv"
    save_candles_to_csv(flat_candles(220), csv_path)
    report = tmp_path / "report.txt"
    cfg = _config(
        tmp_path,
        "backtest:\n"
        f"  data_source: {csv_path}\n"
        f"  log_dir: {tmp_path / 'logs'}\n"
        f"  report_path: {report}\n",
    )
    cached = tmp_path / "cache" / "history.csv"
    summary = main.main(["backtest", "--config", cfg, "--save-history", str(cached)])
    assert summary["report_path"] == str(report)
    assert report.read_text(encoding="utf-8").startswith("=== BACKTEST REPORT ===")
    assert summary["bars"] == 220
    assert Path(summary["trade_log"]).exists()
    assert len(load_candles_from_csv(cached)) == 220


def test_backtest_disabled(tmp_path):
    cfg = _config(tmp_path, "backtest:\n  enabled: false\n")
    with pytest.raises(ValueError, match="disabled"):
        main.main(["backtest", "--config", cfg])


def test_live_task_with_fake_source(tmp_path):
    cfg = _config(tmp_path, "live:\n  poll_interval_secs: 0\n")
    summary = main.main(["live", "--fake", "--max-ticks", "2", "--config", cfg])
    assert summary["ticks"] == 2
    assert summary["symbol"] == "BTCUSDT"
