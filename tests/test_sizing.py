from __future__ import annotations

from algo.sizing.full_leverage import FullLeverageSizer
from algo.sizing.volatility_risk import VolatilityRiskSizer


def test_full_leverage_sizer_amount():
    sizer = FullLeverageSizer()
    assert sizer.entry_amount(price=100.0, balance=10000.0, leverage=10) == 1000.0
    assert sizer.entry_amount(price=0.0, balance=10000.0, leverage=10) == 0.0
    assert sizer.entry_amount(price=100.0, balance=-5.0, leverage=10) == 0.0


def test_volatility_risk_sizer_risk_budget():
    sizer = VolatilityRiskSizer(stop_pct=0.01)
    # 10000 × 0.02 / 0.01 = 20000 名义，低于 10 倍杠杆上限
    assert abs(sizer.notional(balance=10000.0, leverage=10) - 20000.0) < 1e-6
    assert abs(sizer.entry_amount(price=200.0, balance=10000.0, leverage=10) - 100.0) < 1e-9


def test_volatility_risk_sizer_capped_by_leverage():
    sizer = VolatilityRiskSizer(stop_pct=0.001)
    assert sizer.notional(balance=1000.0, leverage=5) == 5000.0


def test_volatility_risk_sizer_min_notional_floor():
    sizer = VolatilityRiskSizer(stop_pct=0.05, min_notional=50.0)
    # 100 × 0.02 / 0.05 = 40 < 50
    assert sizer.notional(balance=100.0, leverage=10) == 50.0
    assert sizer.entry_amount(price=0.0, balance=100.0, leverage=10) == 0.0


def test_volatility_risk_sizer_falls_back_to_default_stop():
    sizer = VolatilityRiskSizer(stop_pct=0.0, default_stop_pct=0.02)
    assert abs(sizer.notional(balance=10000.0, leverage=10) - 10000.0) < 1e-6
