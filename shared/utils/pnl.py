"""PnL / ROE 计算。

实时与回测共用这里的函数，任何一侧自行计算 PnL 都视为 bug。
"""

from __future__ import annotations

from shared.models.models import Position, Signal

DEFAULT_FEE_RATE = 0.0005  # 单边 0.05%，开平仓各收一次


def _direction_sign(direction: Signal) -> int:
    if direction is Signal.BUY:
        return 1
    if direction is Signal.SELL:
        return -1
    raise ValueError(f"direction must be BUY or SELL, got {direction}")


def realized_pnl(
    entry_price: float,
    exit_price: float,
    amount: float,
    direction: Signal,
    fee_rate: float = DEFAULT_FEE_RATE,
) -> float:
    """已实现盈亏（扣除开/平两侧手续费）。

    Parameters
    ----------
    entry_price / exit_price:
        开仓价 / 平仓价。
    amount:
        平仓数量（币数，不是名义价值）。
    direction:
        BUY 做多 / SELL 做空。
    fee_rate:
        单边费率，按名义价值收取。

    Returns
    -------
    float
        `价差 × 数量 − (开仓名义 + 平仓名义) × 费率`。
    """
    delta = (exit_price - entry_price) * _direction_sign(direction)
    fees = (entry_price * amount + exit_price * amount) * fee_rate
    return delta * amount - fees


def roe(entry_price: float, mark_price: float, direction: Signal, leverage: float) -> float:
    """按标记价格计算 ROE（小数，-0.2 表示 -20%）。

    入场价或杠杆为 0 时返回 0，不做除法。
    """
    if entry_price == 0 or leverage == 0:
        return 0.0
    raw = (mark_price - entry_price) / entry_price * _direction_sign(direction)
    return raw * leverage


def net_roe(
    entry_price: float,
    mark_price: float,
    direction: Signal,
    leverage: float,
    fee_rate: float = DEFAULT_FEE_RATE,
) -> float:
    """按标记价格全部平仓的净收益率，手续费口径与 realized_pnl 一致。

    开仓费按开仓名义、平仓费按平仓名义计，再除以保证金；数量在比值中约掉。
    """
    if entry_price == 0 or leverage == 0:
        return 0.0
    pnl = realized_pnl(entry_price, mark_price, 1.0, direction, fee_rate)
    return realized_roe(pnl, 1.0, entry_price, leverage)


def realized_roe(pnl: float, amount: float, entry_price: float, leverage: float) -> float:
    """已实现 PnL 相对保证金（名义 / 杠杆）的收益率。"""
    if entry_price == 0 or leverage == 0 or amount == 0:
        return 0.0
    margin = amount * entry_price / leverage
    return pnl / margin


def unrealized_pnl(position: Position, mark_price: float, fee_rate: float = DEFAULT_FEE_RATE) -> float:
    """按当前标记价格全部平仓时的净盈亏；空仓为 0。"""
    if not position.is_open or position.amount <= 0:
        return 0.0
    return realized_pnl(position.entry_price, mark_price, position.amount, position.direction, fee_rate)
