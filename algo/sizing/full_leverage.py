"""实时循环的满仓杠杆 sizing：amount = balance × leverage / price。"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FullLeverageSizer:
    def entry_amount(self, *, price: float, balance: float, leverage: float) -> float:
        if price <= 0 or balance <= 0 or leverage <= 0:
            return 0.0
        return balance * leverage / price
