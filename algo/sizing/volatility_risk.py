"""回测用波动率风险 sizing。

名义价值 = 余额 × risk_fraction / 预估止损百分比，
上限 余额 × 杠杆，下限 min_notional；数量 = 名义价值 / 价格。
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class VolatilityRiskSizer:
    stop_pct: float
    risk_fraction: float = 0.02
    min_notional: float = 50.0
    default_stop_pct: float = 0.01

    def notional(self, *, balance: float, leverage: float) -> float:
        stop = self.stop_pct if self.stop_pct > 0 else self.default_stop_pct
        safe = balance * self.risk_fraction / stop
        capped = min(safe, balance * leverage)
        return max(capped, self.min_notional)

    def entry_amount(self, *, price: float, balance: float, leverage: float) -> float:
        if price <= 0:
            return 0.0
        return self.notional(balance=balance, leverage=leverage) / price
