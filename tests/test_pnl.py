import pytest

from shared.models.models import Position, Signal
from shared.utils.pnl import DEFAULT_FEE_RATE, net_roe, realized_pnl, realized_roe, roe, unrealized_pnl


@pytest.mark.parametrize("direction", [Signal.BUY, Signal.SELL])
@pytest.mark.parametrize("entry,amount", [(100.0, 1000.0), (27123.45, 0.37), (0.0123, 81234.0)])
def test_round_trip_at_entry_is_pure_fee_loss(direction, entry, amount):
    pnl = realized_pnl(entry, entry, amount, direction)
    assert pnl == -(entry * amount * DEFAULT_FEE_RATE * 2)


def test_realized_pnl_long_and_short():
    # 多头：+2 × 10 − (1000 + 1020) × 0.0005
    assert realized_pnl(100.0, 102.0, 10.0, Signal.BUY) == pytest.approx(20.0 - 1.01)
    # 空头价格下跌盈利
    assert realized_pnl(100.0, 98.0, 10.0, Signal.SELL) == pytest.approx(20.0 - 0.99)
    assert realized_pnl(100.0, 102.0, 10.0, Signal.SELL) == pytest.approx(-20.0 - 1.01)


def test_realized_pnl_rejects_hold():
    with pytest.raises(ValueError):
        realized_pnl(100.0, 101.0, 1.0, Signal.HOLD)


def test_roe_is_raw_return_times_leverage():
    assert roe(100.0, 98.0, Signal.BUY, 10) == pytest.approx(-0.2)
    assert roe(100.0, 98.0, Signal.SELL, 10) == pytest.approx(0.2)


@pytest.mark.parametrize("entry,leverage", [(0.0, 10.0), (100.0, 0.0)])
def test_roe_zero_inputs_short_circuit(entry, leverage):
    assert roe(entry, 98.0, Signal.BUY, leverage) == 0.0
    assert net_roe(entry, 98.0, Signal.BUY, leverage) == 0.0


def test_net_roe_subtracts_round_trip_fees():
    assert net_roe(100.0, 100.0, Signal.BUY, 10) == pytest.approx(-2 * DEFAULT_FEE_RATE * 10)
    # 平仓费按平仓名义：0.1 − 0.0005 × 10 × (1 + 1.01)
    assert net_roe(100.0, 101.0, Signal.BUY, 10) == pytest.approx(0.1 - 0.01005)


@pytest.mark.parametrize(
    "direction,mark,expected",
    [(Signal.BUY, 110.0, 0.9895), (Signal.SELL, 90.0, 0.9905), (Signal.SELL, 110.0, -1.0105)],
)
def test_net_roe_matches_realized_roe_of_full_close(direction, mark, expected):
    pnl = realized_pnl(100.0, mark, 3.0, direction)
    assert net_roe(100.0, mark, direction, 10) == pytest.approx(expected)
    assert net_roe(100.0, mark, direction, 10) == pytest.approx(realized_roe(pnl, 3.0, 100.0, 10))


def test_realized_roe_against_margin():
    # 保证金 = 10 × 100 / 10 = 100
    assert realized_roe(5.0, 10.0, 100.0, 10.0) == pytest.approx(0.05)
    assert realized_roe(5.0, 0.0, 100.0, 10.0) == 0.0


def test_unrealized_pnl_flat_and_open():
    assert unrealized_pnl(Position(), 123.0) == 0.0
    pos = Position(direction=Signal.BUY, entry_price=100.0, amount=2.0)
    assert unrealized_pnl(pos, 110.0) == realized_pnl(100.0, 110.0, 2.0, Signal.BUY)
