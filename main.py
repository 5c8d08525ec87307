"""统一命令行入口。

通过子命令驱动不同任务：

- `live`：实时纸面循环（模拟余额，不下真实订单）。
- `backtest`：单次回测，打印汇总并写出文本报告。
- `pattern`：对本地 CSV 运行 k 近邻形态匹配，输出最新信号。
- `test`：运行 pytest（默认跳过 live 标记）。

未指定子命令时按配置文件中的 `mode` 运行。
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from rich.console import Console

from algo.risk.manager import RiskManager
from algo.scoring.aggregator import SignalAggregator
from algo.strategy.pattern_matching import PatternMatchingStrategy
from algo.strategy.registry import build_strategy_set
from analysis.reporting import summary_table, trades_table, write_text_report
from engine.backtest_engine import BacktestEngine
from engine.trading_engine import TradingEngine
from market_data.client import BinanceFuturesClient, FakeCandleSource
from market_data.loader import load_candles_from_csv, save_candles_to_csv
from shared.config.config_loader import load_config
from shared.config.schema import MainConfig

console = Console()


@dataclass
class CliArgs:
    """命令行参数结构。

    config: 配置文件路径
    task: 要运行的任务类型 (live/backtest/pattern/test)，None 表示按配置 mode
    """
    config: str
    task: str | None
    max_ticks: int | None = None  # 仅用于 debug，限制运行多少个 tick 就停止
    fake: bool = False            # live 模式下使用本地假数据源
    include_live_tests: bool = False
    save_history: str | None = None  # backtest：把加载的历史 K 线缓存到 CSV


def build_parser() -> argparse.ArgumentParser:
    """构建 CLI 参数解析器。

    Returns
    -------
    argparse.ArgumentParser
        配置好的参数解析器。
    """
    parser = argparse.ArgumentParser(prog="signalforge", description="加权投票合约交易：实时循环与回测")

    def _add_config_arg(p: argparse.ArgumentParser, *, default: Any) -> None:
        p.add_argument(
            "--config",
            default=default,
            help="配置文件路径 (默认: config/config.yml)",
        )

    # 允许 `python main.py --config ... backtest`（全局）与 `python main.py backtest --config ...`（子命令）
    _add_config_arg(parser, default="config/config.yml")

    sub = parser.add_subparsers(dest="task")

    p_live = sub.add_parser("live", help="实时纸面循环")
    _add_config_arg(p_live, default=argparse.SUPPRESS)
    p_live.add_argument(
        "--max-ticks",
        type=int,
        default=None,
        help="跑多少个 tick 后退出（用于 dry-run/测试）",
    )
    p_live.add_argument("--fake", action="store_true", help="使用本地假数据源（离线）")

    p_backtest = sub.add_parser("backtest", help="单次回测")
    _add_config_arg(p_backtest, default=argparse.SUPPRESS)
    p_backtest.add_argument("--save-history", default=None, help="把本次使用的历史 K 线写入该 CSV 路径")

    p_pattern = sub.add_parser("pattern", help="k 近邻形态匹配（本地 CSV）")
    _add_config_arg(p_pattern, default=argparse.SUPPRESS)

    p_test = sub.add_parser("test", help="运行 pytest（默认跳过 live）")
    _add_config_arg(p_test, default=argparse.SUPPRESS)
    p_test.add_argument(
        "--include-live",
        action="store_true",
        help="包含 @pytest.mark.live 测试（可能联网）",
    )

    return parser


def parse_args(argv: list[str] | None = None) -> CliArgs:
    """解析命令行参数。

    Parameters
    ----------
    argv:
        传入的参数列表；为 None 时读取 sys.argv。

    Returns
    -------
    CliArgs
        解析后的参数对象。
    """
    parser = build_parser()
    ns = parser.parse_args(argv)
    config = getattr(ns, "config", "config/config.yml")
    return CliArgs(
        config=str(config),
        task=ns.task,
        max_ticks=getattr(ns, "max_ticks", None),
        fake=bool(getattr(ns, "fake", False)),
        include_live_tests=bool(getattr(ns, "include_live", False)),
        save_history=getattr(ns, "save_history", None),
    )


def build_components(cfg: MainConfig) -> tuple[SignalAggregator, RiskManager]:
    """按配置构建评分器与风控（实时与回测共用同一套构建逻辑）。"""
    slots = build_strategy_set(cfg.scoring)
    aggregator = SignalAggregator.from_config(slots, cfg.scoring)
    risk = RiskManager(cfg.risk, interval=cfg.interval, leverage=cfg.leverage, symbol=cfg.symbol)
    return aggregator, risk


def run_live(cfg: MainConfig, *, max_ticks: int | None = None, fake: bool = False) -> dict:
    aggregator, risk = build_components(cfg)
    source = FakeCandleSource(interval=cfg.interval) if fake else BinanceFuturesClient.from_config(cfg.exchange)

    def _on_status(score: int, price: float, upnl: float) -> None:
        console.print(f"score={score:+d} price={price:.4f} uPnL={upnl:+.2f}", style="dim")

    engine = TradingEngine(
        source=source,
        aggregator=aggregator,
        risk=risk,
        symbol=cfg.symbol,
        interval=cfg.interval,
        leverage=cfg.leverage,
        balance=cfg.initial_balance,
        live_cfg=cfg.live,
        fee_rate=cfg.risk.fee_rate,
        on_log=console.print,
        on_status_update=_on_status,
        max_ticks=max_ticks,
    )
    try:
        summary = engine.run().summary
    except KeyboardInterrupt:
        engine.stop()
        summary = engine.build_summary()
    if engine.trade_history:
        console.print(trades_table(engine.ledger.trades))
    return summary


def run_backtest(cfg: MainConfig, *, save_history: str | None = None) -> dict:
    if not cfg.backtest.enabled:
        raise ValueError("Backtest is disabled in config (backtest.enabled: false)")
    aggregator, risk = build_components(cfg)
    source = None if cfg.backtest.data_source else BinanceFuturesClient.from_config(cfg.exchange)
    engine = BacktestEngine(
        aggregator=aggregator,
        risk=risk,
        symbol=cfg.symbol,
        interval=cfg.interval,
        leverage=cfg.leverage,
        balance=cfg.initial_balance,
        backtest_cfg=cfg.backtest,
        source=source,
        fee_rate=cfg.risk.fee_rate,
    )
    console.rule(f"BACKTEST {cfg.symbol} {cfg.interval} x{cfg.leverage:g}")
    res = engine.run()
    if save_history:
        save_candles_to_csv(engine.history, save_history)
        console.print(f"History cached: {save_history} ({len(engine.history)} candles)")
    result = res.artifacts["result"]
    console.print(summary_table(result, cfg.initial_balance))

    report_path = cfg.backtest.report_path or f"backtest_{cfg.symbol}_{datetime.now():%Y%m%d_%H%M%S}.txt"
    write_text_report(result.log, report_path)
    console.print(f"Report saved: {report_path}")
    summary = dict(res.summary)
    summary["report_path"] = report_path
    summary["trade_log"] = result.trade_log_path
    return summary


def run_pattern(cfg: MainConfig) -> dict:
    pcfg = cfg.pattern
    candles = load_candles_from_csv(pcfg.data_source)
    console.print(f"Loaded {len(candles)} candles.")
    if len(candles) < 100:
        raise ValueError("Not enough candles.")

    strategy = PatternMatchingStrategy(
        historical_candles=candles,
        k=pcfg.k,
        threshold=pcfg.threshold,
        vector_len=pcfg.vector_len,
        horizon=pcfg.horizon,
    )
    recent = candles[-min(pcfg.window, len(candles)):]
    signal = strategy.decide(recent)

    last = candles[-1]
    console.print(f"Last candle: {last.ts:%Y-%m-%d %H:%M}")
    console.print(f"Open={last.open}, High={last.high}, Low={last.low}, Close={last.close}")
    console.print(f"Volume={last.volume}, Trades={last.trade_count}")
    console.print(f"PatternMatchingStrategy signal: [bold]{signal.value}[/bold] ({strategy.status_value()})")
    return {"signal": signal.value, "status": strategy.status_value(), "last_ts": last.ts.isoformat()}


def main(argv: list[str] | None = None) -> Any:
    """程序主入口。

    Parameters
    ----------
    argv:
        可选的参数列表；为 None 时读取 sys.argv。

    Returns
    -------
    Any
        对应子命令的返回结果（通常为 summary dict）。
    """
    args = parse_args(argv)

    if args.task == "test":
        import pytest

        pytest_args = ["-q"]
        if not args.include_live_tests:
            pytest_args += ["-m", "not live"]
        return pytest.main(pytest_args)

    cfg = load_config(args.config)
    task = args.task or cfg.mode

    if task == "live":
        return run_live(cfg, max_ticks=args.max_ticks, fake=args.fake)
    if task == "backtest":
        return run_backtest(cfg, save_history=args.save_history)
    if task == "pattern":
        return run_pattern(cfg)

    raise ValueError(f"Unknown task: {task}")


if __name__ == "__main__":
    main()
