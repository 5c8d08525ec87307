import time

import pytest

from algo.risk.manager import RiskManager
from conftest import ScriptedSource, fixed_aggregator, flat_candles, make_candle
from engine.signal_pipeline import REVERSAL_REASON
from engine.trading_engine import TradingEngine
from shared.models.models import ExitDecision, Signal


def _engine(source, agg, clock, **kw):
    logs = []
    engine = TradingEngine(
        source=source,
        aggregator=agg,
        risk=kw.pop("risk", None) or RiskManager(interval="5m", leverage=10, symbol="BTCUSDT"),
        symbol="BTCUSDT",
        interval="5m",
        leverage=10,
        balance=10000.0,
        on_log=logs.append,
        clock=clock,
        sleep=lambda _: None,
        **kw,
    )
    return engine, logs


def test_scenario_b_enters_long_with_full_leverage(clock):
    agg, _, _ = fixed_aggregator(Signal.BUY, weight=9, regime=Signal.BUY)
    engine, logs = _engine(ScriptedSource([(flat_candles(120), True)]), agg, clock)

    assert engine.tick() is True
    assert engine.position.direction is Signal.BUY
    assert engine.position.entry_price == 100.0
    assert engine.position.amount == 1000.0
    assert "[LONG] BTCUSDT Score 9" in logs


def test_scoring_excludes_forming_bar(clock):
    agg, strat, _ = fixed_aggregator()
    seen = []
    strat.analyze = lambda window: seen.append(len(window)) or Signal.HOLD
    engine, _ = _engine(ScriptedSource([(flat_candles(120), True)]), agg, clock)
    engine.tick()
    assert seen == [119]


@pytest.mark.parametrize("response", [([], False), (flat_candles(99), True)])
def test_not_ready_leaves_state_untouched(clock, response):
    agg, strat, _ = fixed_aggregator(Signal.BUY, weight=9, regime=Signal.BUY)
    statuses = []
    engine, logs = _engine(ScriptedSource([response]), agg, clock, on_status_update=lambda *a: statuses.append(a))
    assert engine.tick() is False
    assert engine.ledger.is_flat and engine.balance == 10000.0
    assert strat.calls == 0
    assert statuses == [] and logs == []


def test_iteration_error_is_reported_and_loop_continues(clock):
    agg, _, _ = fixed_aggregator()
    engine, logs = _engine(ScriptedSource([RuntimeError("boom")]), agg, clock, max_ticks=2)
    result = engine.run()
    assert logs == ["[Engine Error] boom", "[Engine Error] boom"]
    assert result.summary["ticks"] == 2


def test_reversal_overrides_stop_loss(clock):
    agg, strat, flt = fixed_aggregator(Signal.BUY, weight=9, regime=Signal.BUY)
    crash = flat_candles(119) + [make_candle(119, 90.0, 90.0, 90.0, 90.0)]
    source = ScriptedSource([(flat_candles(120), True), (crash, True)])
    engine, logs = _engine(source, agg, clock)
    engine.tick()

    strat.signal = Signal.SELL
    flt.signal = Signal.SELL
    engine.tick()
    assert engine.ledger.is_flat
    rec = engine.trade_history[0]
    assert rec.exit_reason == REVERSAL_REASON
    assert rec.exit_price == 90.0
    assert logs[-1].startswith(f"[CLOSED] {REVERSAL_REASON} PnL:$")


def test_stop_loss_exit_and_cooldown(clock):
    agg, _, _ = fixed_aggregator(Signal.BUY, weight=9, regime=Signal.BUY)
    drop = flat_candles(119) + [make_candle(119, 99.0, 99.0, 99.0, 99.0)]
    source = ScriptedSource([(flat_candles(120), True), (drop, True), (flat_candles(120), True)])
    engine, logs = _engine(source, agg, clock)

    engine.tick()
    engine.tick()
    assert engine.ledger.is_flat
    assert engine.trade_history[0].exit_reason == "Stop Loss"
    assert engine.balance < 10000.0

    clock.advance(30)
    engine.tick()
    assert engine.ledger.is_flat

    clock.advance(31)
    engine.tick()
    assert engine.position.direction is Signal.BUY
    assert len(engine.trade_history) == 1


def test_status_update_each_ready_iteration(clock):
    agg, _, _ = fixed_aggregator(Signal.SELL, weight=9, regime=Signal.SELL)
    statuses = []
    engine, _ = _engine(
        ScriptedSource([(flat_candles(120), True)]), agg, clock, on_status_update=lambda *a: statuses.append(a)
    )
    engine.tick()
    engine.tick()
    assert len(statuses) == 2
    score, mark, upnl = statuses[-1]
    assert score == -9 and mark == 100.0
    assert upnl < 0


def test_failing_callback_does_not_break_iteration(clock):
    agg, _, _ = fixed_aggregator(Signal.BUY, weight=9, regime=Signal.BUY)

    def bad_status(*_):
        raise RuntimeError("ui gone")

    engine, _ = _engine(ScriptedSource([(flat_candles(120), True)]), agg, clock, on_status_update=bad_status)
    assert engine.tick() is True
    assert engine.position.direction is Signal.BUY


def test_parameter_setters_refresh_risk(clock):
    agg, _, _ = fixed_aggregator()
    engine, _ = _engine(ScriptedSource([([], False)]), agg, clock)
    assert engine.risk.params.stop_loss_percent == pytest.approx(0.005)

    engine.interval = "1h"
    assert engine.risk.params.stop_loss_percent == pytest.approx(0.015)
    engine.symbol = "ethusdt"
    assert engine.symbol == "ETHUSDT"
    assert engine.risk.params.stop_loss_percent == pytest.approx(0.015 * 1.2)
    engine.leverage = 20
    assert engine.ledger.leverage == 20.0


@pytest.mark.parametrize("field, value", [("symbol", "ETHUSDT"), ("interval", "1h"), ("leverage", 20)])
def test_trading_parameters_locked_while_position_open(clock, field, value):
    agg, _, _ = fixed_aggregator(Signal.BUY, weight=9, regime=Signal.BUY)
    engine, _ = _engine(ScriptedSource([(flat_candles(120), True)]), agg, clock)
    assert engine.tick() is True
    before = (engine.symbol, engine.interval, engine.leverage, engine.risk.params.stop_loss_percent)

    with pytest.raises(ValueError, match=field):
        setattr(engine, field, value)

    assert (engine.symbol, engine.interval, engine.leverage, engine.risk.params.stop_loss_percent) == before
    assert engine.ledger.symbol == "BTCUSDT" and engine.ledger.leverage == 10.0
    assert engine.position.direction is Signal.BUY


class _PartialRisk(RiskManager):
    def evaluate_exit(self, candles, direction, entry_price, mark_price, leverage):
        return ExitDecision.close_partial("Trailing Partial", 0.5)


def test_partial_close_keeps_position_open(clock):
    agg, _, _ = fixed_aggregator(Signal.BUY, weight=9, regime=Signal.BUY)
    engine, logs = _engine(ScriptedSource([(flat_candles(120), True)]), agg, clock, risk=_PartialRisk())
    engine.tick()
    engine.tick()
    assert engine.position.direction is Signal.BUY
    assert engine.position.amount == 500.0
    assert engine.trade_history[0].is_partial
    assert logs[-1].startswith("[PARTIAL] Trailing Partial PnL:$")


def test_start_and_stop_background_thread(clock):
    agg, _, _ = fixed_aggregator()
    engine = TradingEngine(
        source=ScriptedSource([([], False)]),
        aggregator=agg,
        risk=RiskManager(),
        clock=clock,
        sleep=lambda _: time.sleep(0.005),
    )
    engine.start()
    deadline = time.time() + 5
    while engine.ticks == 0 and time.time() < deadline:
        time.sleep(0.005)
    assert engine.is_running
    engine.stop(timeout=5)
    assert not engine.is_running
    assert engine.ticks >= 1
