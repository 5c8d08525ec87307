"""Sizer 协议：给定价格、余额、杠杆，返回开仓数量（币数）。"""

from __future__ import annotations

from typing import Protocol


class Sizer(Protocol):
    """开仓数量计算。价格 <= 0 时返回 0。"""

    def entry_amount(self, *, price: float, balance: float, leverage: float) -> float: ...
