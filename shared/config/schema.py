"""配置架构定义（Pydantic Schema）。

目标：
- 让配置成为“强类型 + 可演进”的边界协议；
- 启动阶段尽早失败，避免 typo/类型错误在实盘或长回测中“隐蔽爆炸”；
- 核心引擎只接收显式参数（symbol/interval/leverage/balance），不读取全局配置。
"""

from __future__ import annotations

from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SUPPORTED_INTERVALS = ("1m", "5m", "15m", "1h", "4h", "1d")

# 策略名 -> 权重。hurst_exponent 只做诊断快照，不参与计分。
DEFAULT_TIERS: Dict[str, int] = {
    "order_block": 3,
    "whale_aggression": 3,
    "vector_pattern": 3,
    "volatility_squeeze": 3,
    "supertrend": 2,
    "ichimoku": 2,
    "fair_value_gap": 2,
    "vwap_reversion": 2,
    "smart_money": 2,
    "delta_divergence": 2,
    "inside_bar": 2,
    "fractal_breakout": 2,
    "rsi_divergence": 2,
    "pattern_candle": 2,
    "ma_cross": 1,
    "linreg": 1,
    "zscore": 1,
    "efficiency_ratio": 1,
    "hurst_exponent": 0,
}

DEFAULT_INTERVAL_BASE_VOL: Dict[str, float] = {
    "1m": 0.003,
    "5m": 0.005,
    "15m": 0.008,
    "1h": 0.015,
    "4h": 0.03,
    "1d": 0.05,
}

DEFAULT_SYMBOL_MULTIPLIERS: Dict[str, float] = {
    "BTCUSDT": 1.0,
    "ETHUSDT": 1.2,
    "BNBUSDT": 1.2,
    "XRPUSDT": 1.2,
    "ADAUSDT": 1.2,
    "SOLUSDT": 1.3,
    "AVAXUSDT": 1.3,
}


class ExchangeConfig(BaseModel):
    """行情源（Binance USDⓈ-M 合约 REST）配置。"""
    name: str = "binance-futures"
    base_url: str = "https://fapi.binance.com"
    timeout_secs: float = 10.0
    page_limit: int = Field(default=1000, gt=0, le=1500)
    page_delay_secs: float = Field(default=0.05, ge=0)
    model_config = ConfigDict(extra="forbid")


class ScoringConfig(BaseModel):
    """加权投票配置。

    说明：
    - `tiers` 给出每个方向性策略的权重（3/2/1，0 表示只做诊断）；
    - `regime_filter` 指定唯一的趋势强度过滤策略，它不计分，只做衰减/否决。
    """
    long_threshold: int = 7
    short_threshold: int = -7
    hold_dampening: float = Field(default=0.5, ge=0, le=1)
    regime_filter: str = "adx_filter"
    tiers: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_TIERS))
    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_thresholds(self) -> "ScoringConfig":
        if self.long_threshold <= 0 or self.short_threshold >= 0:
            raise ValueError("long_threshold must be > 0 and short_threshold < 0")
        if self.regime_filter in self.tiers:
            raise ValueError(f"regime filter '{self.regime_filter}' must not carry a tier weight")
        return self


class RiskConfig(BaseModel):
    """止损/止盈/移动止盈策略参数（都是可调策略，不是协议）。"""
    fee_rate: float = Field(default=0.0005, ge=0)
    interval_base_vol: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_INTERVAL_BASE_VOL))
    default_base_vol: float = Field(default=0.008, gt=0)
    symbol_vol_multipliers: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_SYMBOL_MULTIPLIERS))
    default_symbol_multiplier: float = Field(default=2.5, gt=0)
    stop_loss_multiplier: float = Field(default=1.0, gt=0)
    reward_risk_ratio: float = Field(default=2.0, gt=0)
    trailing_activation_ratio: float = Field(default=0.5, gt=0)
    trailing_giveback_ratio: float = Field(default=0.4, gt=0, lt=1)
    partial_close_ratio: float = Field(default=0.5, gt=0, lt=1)
    model_config = ConfigDict(extra="forbid")


class LiveConfig(BaseModel):
    """实时轮询循环配置。"""
    poll_interval_secs: float = Field(default=1.0, ge=0)
    cooldown_secs: float = Field(default=60.0, ge=0)
    min_bars: int = Field(default=100, gt=1)
    fetch_limit: int = Field(default=1000, gt=1)
    model_config = ConfigDict(extra="forbid")


class BacktestConfig(BaseModel):
    """回测配置。"""
    enabled: bool = True
    lookback_days: int = Field(default=365, gt=0)
    window: int = Field(default=100, gt=1)
    min_history: int = Field(default=200, gt=1)
    cooldown_bars: int = Field(default=12, ge=0)
    risk_fraction: float = Field(default=0.02, gt=0, le=1)
    min_notional: float = Field(default=50.0, ge=0)
    default_stop_pct: float = Field(default=0.01, gt=0)
    data_source: Optional[str] = None
    log_dir: str = "backtest_logs"
    report_path: Optional[str] = None
    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_history(self) -> "BacktestConfig":
        if self.min_history <= self.window:
            raise ValueError("min_history must be greater than window")
        return self


class PatternConfig(BaseModel):
    """k 近邻模式匹配（控制台模式）配置。"""
    data_source: str = "data/futures/BTCUSDT_15m.csv"
    k: int = Field(default=20, gt=0)
    threshold: float = Field(default=0.001, ge=0)
    window: int = Field(default=300, gt=1)
    vector_len: int = Field(default=10, gt=1)
    horizon: int = Field(default=5, gt=0)
    model_config = ConfigDict(extra="forbid")


class MainConfig(BaseModel):
    """应用总配置。"""
    mode: Literal["live", "backtest", "pattern"] = "live"
    symbol: str = "BTCUSDT"
    interval: str = "5m"
    leverage: float = Field(default=10.0, gt=0)
    initial_balance: float = Field(default=10000.0, gt=0)

    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    live: LiveConfig = Field(default_factory=LiveConfig)
    backtest: BacktestConfig = Field(default_factory=BacktestConfig)
    pattern: PatternConfig = Field(default_factory=PatternConfig)

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol must be a non-empty string")
        return v

    @field_validator("interval")
    @classmethod
    def _check_interval(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in SUPPORTED_INTERVALS:
            raise ValueError(f"interval must be one of {', '.join(SUPPORTED_INTERVALS)}")
        return v

    @model_validator(mode="before")
    @classmethod
    def _normalize_mode(cls, data):
        # 兼容旧配置：UI -> live，CONSOLE -> pattern
        if isinstance(data, dict) and isinstance(data.get("mode"), str):
            data = dict(data)
            mode = data["mode"].strip().lower()
            data["mode"] = {"ui": "live", "console": "pattern"}.get(mode, mode)
        return data


AppConfig = MainConfig
