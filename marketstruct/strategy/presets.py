"""Signal rule sets: one config record, three named presets.

Used by the backtest runner and ``load_config`` to pick a rule set by name.
"""

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class SignalConfig:
    """Named switches and thresholds consumed by ``evaluate_signal``.

    Percent fields are percentages (``1.5`` means 1.5 %).
    """

    require_htf_alignment: bool = False
    allow_single_htf_trend: bool = True
    allow_equilibrium_zone: bool = True
    require_cls_candle: bool = False
    cls_wick_min_percent: float = 0.2
    require_ciod: bool = False
    ciod_lookback: int = 10
    require_order_block_retest: bool = True
    order_block_proximity_percent: float = 2.0
    min_risk_reward: float = 1.5
    min_candles: int = 100
    min_stop_percent: float = 0.2
    stop_buffer_percent: float = 0.1
    target_projection: float = 2.0
    max_reward_risk: float = 10.0

    def __post_init__(self) -> None:
        if self.min_candles < 1:
            raise ValueError(f"min_candles must be positive, got {self.min_candles}")
        if self.ciod_lookback < 1:
            raise ValueError(f"ciod_lookback must be positive, got {self.ciod_lookback}")
        for name in (
            "cls_wick_min_percent",
            "order_block_proximity_percent",
            "min_risk_reward",
            "min_stop_percent",
            "stop_buffer_percent",
            "target_projection",
            "max_reward_risk",
        ):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")

    def with_overrides(self, **changes) -> "SignalConfig":
        """Copy of this config with *changes* applied."""
        return replace(self, **changes)


OPTIMIZED = SignalConfig()

STRICT = SignalConfig(
    require_htf_alignment=True,
    allow_single_htf_trend=False,
    allow_equilibrium_zone=False,
    require_cls_candle=True,
    cls_wick_min_percent=0.3,
    require_ciod=True,
    ciod_lookback=5,
    require_order_block_retest=True,
    order_block_proximity_percent=1.0,
    min_risk_reward=2.0,
)

BALANCED = SignalConfig(
    require_htf_alignment=False,
    allow_single_htf_trend=True,
    allow_equilibrium_zone=True,
    require_cls_candle=False,
    cls_wick_min_percent=0.25,
    require_ciod=False,
    ciod_lookback=7,
    require_order_block_retest=True,
    order_block_proximity_percent=1.5,
    min_risk_reward=1.8,
)


PRESET_REGISTRY: dict[str, SignalConfig] = {
    "optimized": OPTIMIZED,
    "balanced": BALANCED,
    "strict": STRICT,
}


def get_preset(name: str) -> SignalConfig:
    """Look up a preset by name (case-insensitive).

    Raises ``KeyError`` if the preset name is not registered.
    """
    key = name.lower()
    if key not in PRESET_REGISTRY:
        raise KeyError(
            f"Unknown preset '{name}'. "
            f"Available: {', '.join(PRESET_REGISTRY.keys())}"
        )
    return PRESET_REGISTRY[key]
