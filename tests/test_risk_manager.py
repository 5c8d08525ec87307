import pytest

from algo.risk.manager import RiskManager
from shared.config.schema import RiskConfig
from shared.models.models import ExitAction, ExitDecision, Signal


def test_parameters_from_interval_and_symbol_tables():
    rm = RiskManager(interval="5m", leverage=10, symbol="BTCUSDT")
    assert rm.params.stop_loss_percent == pytest.approx(0.005)
    assert rm.params.take_profit_percent == pytest.approx(0.01)

    rm.update_parameters("1h", 10, "solusdt")
    assert rm.params.stop_loss_percent == pytest.approx(0.015 * 1.3)

    rm.update_parameters("4h", 5, "DOGEUSDT")
    assert rm.params.stop_loss_percent == pytest.approx(0.03 * 2.5)


def test_unknown_interval_uses_default_base_vol():
    rm = RiskManager()
    assert rm.base_vol("3m") == pytest.approx(0.008)
    assert rm.estimated_stop_pct("15m", "ETHUSDT") == pytest.approx(0.008 * 1.2)


def test_stop_loss_multiplier_and_reward_ratio_are_configurable():
    rm = RiskManager(RiskConfig(stop_loss_multiplier=2.0, reward_risk_ratio=3.0), interval="5m", symbol="BTCUSDT")
    assert rm.params.stop_loss_percent == pytest.approx(0.01)
    assert rm.params.take_profit_percent == pytest.approx(0.03)


def test_scenario_c_stop_loss_fires_exactly_at_threshold():
    rm = RiskManager(interval="5m", leverage=10, symbol="BTCUSDT")
    rm.on_entry(100.0)
    rm.params.stop_loss_percent = 0.02
    rm.params.take_profit_percent = 0.5

    assert rm.calculate_roe(100.0, 98.0, Signal.BUY, 10) == -0.2
    decision = rm.evaluate_exit(None, Signal.BUY, 100.0, 98.0, 10)
    assert decision.action is ExitAction.CLOSE_ALL
    assert decision.reason == "Stop Loss"

    assert rm.evaluate_exit(None, Signal.BUY, 100.0, 98.5, 10).action is ExitAction.NO_ACTION


def test_take_profit_for_short():
    rm = RiskManager(interval="5m", leverage=10, symbol="BTCUSDT")
    rm.on_entry(100.0)
    decision = rm.evaluate_exit(None, Signal.SELL, 100.0, 98.5, 10)
    assert decision == ExitDecision.close_all("Take Profit")


def test_trailing_partial_then_full_close():
    rm = RiskManager(interval="5m", leverage=10, symbol="BTCUSDT")  # TP ROE 10%，激活 5%
    rm.on_entry(100.0)

    assert rm.evaluate_exit(None, Signal.BUY, 100.0, 100.8, 10).action is ExitAction.NO_ACTION
    partial = rm.evaluate_exit(None, Signal.BUY, 100.0, 100.4, 10)
    assert partial.action is ExitAction.CLOSE_PARTIAL
    assert partial.reason == "Trailing Partial"
    assert 0.0 < partial.amount_ratio < 1.0

    assert rm.params.peak_roe == pytest.approx(0.04)
    assert rm.evaluate_exit(None, Signal.BUY, 100.0, 100.4, 10).action is ExitAction.NO_ACTION

    full = rm.evaluate_exit(None, Signal.BUY, 100.0, 100.2, 10)
    assert full == ExitDecision.close_all("Trailing Stop")


def test_remainder_trails_from_new_peak_after_partial():
    rm = RiskManager(interval="5m", leverage=10, symbol="BTCUSDT")
    rm.on_entry(100.0)
    rm.evaluate_exit(None, Signal.BUY, 100.0, 100.8, 10)
    assert rm.evaluate_exit(None, Signal.BUY, 100.0, 100.4, 10).action is ExitAction.CLOSE_PARTIAL

    # 新峰值 6%，回撤 2% 未超过 40%
    assert rm.evaluate_exit(None, Signal.BUY, 100.0, 100.6, 10).action is ExitAction.NO_ACTION
    assert rm.evaluate_exit(None, Signal.BUY, 100.0, 100.4, 10).action is ExitAction.NO_ACTION
    assert rm.evaluate_exit(None, Signal.BUY, 100.0, 100.3, 10) == ExitDecision.close_all("Trailing Stop")


def test_short_remainder_trails_after_partial():
    rm = RiskManager(interval="5m", leverage=10, symbol="BTCUSDT")
    rm.on_entry(100.0)
    rm.evaluate_exit(None, Signal.SELL, 100.0, 99.2, 10)
    assert rm.evaluate_exit(None, Signal.SELL, 100.0, 99.6, 10).action is ExitAction.CLOSE_PARTIAL
    assert rm.evaluate_exit(None, Signal.SELL, 100.0, 99.6, 10).action is ExitAction.NO_ACTION
    assert rm.evaluate_exit(None, Signal.SELL, 100.0, 99.8, 10).reason == "Trailing Stop"


def test_trailing_state_resets_on_entry():
    rm = RiskManager(interval="5m", leverage=10, symbol="BTCUSDT")
    rm.on_entry(100.0)
    rm.evaluate_exit(None, Signal.BUY, 100.0, 100.8, 10)
    assert rm.params.peak_roe > 0

    rm.on_entry(100.0)
    assert rm.params.peak_roe == 0.0 and not rm.params.partial_taken
    assert rm.evaluate_exit(None, Signal.BUY, 100.0, 100.4, 10).action is ExitAction.NO_ACTION


def test_trailing_not_armed_below_activation():
    rm = RiskManager(interval="5m", leverage=10, symbol="BTCUSDT")
    rm.on_entry(100.0)
    rm.evaluate_exit(None, Signal.BUY, 100.0, 100.3, 10)
    assert rm.evaluate_exit(None, Signal.BUY, 100.0, 100.0, 10).action is ExitAction.NO_ACTION


def test_flat_or_degenerate_inputs_give_no_action():
    rm = RiskManager()
    assert rm.evaluate_exit(None, Signal.HOLD, 100.0, 50.0, 10) == ExitDecision.none()
    assert rm.evaluate_exit(None, Signal.BUY, 0.0, 50.0, 10) == ExitDecision.none()
    assert rm.evaluate_exit(None, Signal.BUY, 100.0, 50.0, 0) == ExitDecision.none()


def test_net_roe_reporting():
    rm = RiskManager()
    assert rm.calculate_net_roe(100.0, 100.0, Signal.BUY, 10) == pytest.approx(-0.01)
    assert rm.calculate_net_roe(100.0, 110.0, Signal.BUY, 10) == pytest.approx(0.9895)
    assert rm.calculate_net_roe(0.0, 100.0, Signal.BUY, 10) == 0.0


@pytest.mark.parametrize("ratio", [0.0, 1.0, 1.5, -0.1])
def test_partial_ratio_must_be_strictly_inside_unit_interval(ratio):
    with pytest.raises(ValueError):
        ExitDecision.close_partial("x", ratio)
