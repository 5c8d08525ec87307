"""策略注册表：字符串 -> Strategy 实现，以及按权重表构建默认策略组合。"""

from __future__ import annotations

import inspect
from typing import Any, Mapping

from algo.strategy.base import Strategy, StrategySlot
from algo.strategy.flow import (
    FairValueGapStrategy,
    OrderBlockStrategy,
    SmartMoneyStrategy,
    VwapReversionStrategy,
    WhaleAggressionStrategy,
)
from algo.strategy.pattern import (
    FractalBreakoutStrategy,
    InsideBarStrategy,
    PatternCandleStrategy,
    RsiDivergenceStrategy,
    VolatilitySqueezeStrategy,
)
from algo.strategy.statistical import (
    DeltaDivergenceStrategy,
    EfficiencyRatioStrategy,
    HurstExponentStrategy,
    VectorPatternStrategy,
    ZScoreStrategy,
)
from algo.strategy.trend import (
    AdxFilterStrategy,
    IchimokuCloudStrategy,
    LinRegStrategy,
    MaCrossStrategy,
    SuperTrendStrategy,
)
from shared.config.schema import ScoringConfig

_REGISTRY: dict[str, type] = {}


def register_strategy(name: str, cls: type) -> None:
    _REGISTRY[name] = cls


def get_strategy_cls(name: str) -> type:
    if name not in _REGISTRY:
        raise ValueError(f"Unknown strategy: {name}")
    return _REGISTRY[name]


def registered_names() -> list[str]:
    return list(_REGISTRY)


def _filter_init_kwargs(cls: type, params: Mapping[str, Any]) -> dict[str, Any]:
    """过滤出 __init__ 支持的参数，避免配置里多字段导致报错。"""
    try:
        sig = inspect.signature(cls.__init__)
    except (TypeError, ValueError):
        return dict(params)

    if any(p.kind == inspect.Parameter.VAR_KEYWORD for p in sig.parameters.values()):
        return dict(params)

    allowed = {name for name in sig.parameters.keys() if name != "self"}
    return {k: v for k, v in params.items() if k in allowed}


def build_strategy(name: str, params: Mapping[str, Any] | None = None) -> Strategy:
    """按注册名构建单个策略实例。"""
    cls = get_strategy_cls(name)
    kwargs = _filter_init_kwargs(cls, params or {})
    return cls(**kwargs)


def build_strategy_set(
    scoring: ScoringConfig | None = None,
    params: Mapping[str, Mapping[str, Any]] | None = None,
) -> list[StrategySlot]:
    """按权重表构建策略组合。

    Parameters
    ----------
    scoring:
        权重表与趋势过滤器名；None 时使用默认配置。
    params:
        可选的按策略名覆盖构造参数。

    Returns
    -------
    list[StrategySlot]
        按权重表顺序排列的方向性策略，最后一个为趋势过滤器。
    """
    scoring = scoring or ScoringConfig()
    params = params or {}
    slots = [
        StrategySlot(strategy=build_strategy(name, params.get(name)), weight=int(weight))
        for name, weight in scoring.tiers.items()
    ]
    regime = build_strategy(scoring.regime_filter, params.get(scoring.regime_filter))
    slots.append(StrategySlot(strategy=regime, weight=0, is_regime_filter=True))
    return slots


# 默认注册
register_strategy("order_block", OrderBlockStrategy)
register_strategy("whale_aggression", WhaleAggressionStrategy)
register_strategy("vector_pattern", VectorPatternStrategy)
register_strategy("volatility_squeeze", VolatilitySqueezeStrategy)
register_strategy("supertrend", SuperTrendStrategy)
register_strategy("ichimoku", IchimokuCloudStrategy)
register_strategy("fair_value_gap", FairValueGapStrategy)
register_strategy("vwap_reversion", VwapReversionStrategy)
register_strategy("smart_money", SmartMoneyStrategy)
register_strategy("delta_divergence", DeltaDivergenceStrategy)
register_strategy("inside_bar", InsideBarStrategy)
register_strategy("fractal_breakout", FractalBreakoutStrategy)
register_strategy("rsi_divergence", RsiDivergenceStrategy)
register_strategy("pattern_candle", PatternCandleStrategy)
register_strategy("ma_cross", MaCrossStrategy)
register_strategy("linreg", LinRegStrategy)
register_strategy("zscore", ZScoreStrategy)
register_strategy("efficiency_ratio", EfficiencyRatioStrategy)
register_strategy("hurst_exponent", HurstExponentStrategy)
register_strategy("adx_filter", AdxFilterStrategy)
