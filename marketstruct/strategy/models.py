"""Strategy data models: typed records for candles, structure and zones."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class SwingKind(Enum):
    """Swing point kind."""

    HIGH = "HIGH"
    LOW = "LOW"


class BreakKind(Enum):
    """Structure event kind."""

    BOS = "BOS"
    CHOCH = "CHOCH"
    SWEEP = "SWEEP"


class Direction(Enum):
    """Direction of a break, zone or trade."""

    BULLISH = "BULLISH"
    BEARISH = "BEARISH"


class Trend(Enum):
    """Prevailing market structure."""

    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    RANGING = "RANGING"

    @property
    def direction(self) -> Optional[Direction]:
        """The matching ``Direction``, or ``None`` when ranging."""
        if self is Trend.RANGING:
            return None
        return Direction(self.value)


class ZoneType(Enum):
    ORDER_BLOCK = "ORDER_BLOCK"
    FAIR_VALUE_GAP = "FAIR_VALUE_GAP"


class PriceZone(Enum):
    """Where a price sits inside a dealing range."""

    PREMIUM = "PREMIUM"
    DISCOUNT = "DISCOUNT"
    EQUILIBRIUM = "EQUILIBRIUM"


class Action(Enum):
    BUY = "BUY"
    SELL = "SELL"
    NO_TRADE = "NO_TRADE"


# ── Candles ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar.  ``timestamp`` is epoch milliseconds."""

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open


# ── Structure ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SwingPoint:
    """A confirmed local extremum.

    ``confirmed_index`` is the first candle index at which the swing is
    known (``index + right``).
    """

    kind: SwingKind
    price: float
    index: int
    timestamp: int
    confirmed_index: int


@dataclass(frozen=True)
class StructureBreak:
    """A BOS / CHOCH / SWEEP event at candle ``index``."""

    kind: BreakKind
    direction: Direction
    index: int
    price: float  # level of the swing that was broken or swept
    timestamp: int
    confirmed: bool
    swing_index: int
    displacement: float = 0.0


# ── Zones ────────────────────────────────────────────────────────────────


@dataclass
class Zone:
    """An order block or fair value gap.

    The only permitted mutation is :meth:`mitigate`, which flips
    ``mitigated`` once and records the candle that did it.
    """

    zone_type: ZoneType
    direction: Direction
    top: float
    bottom: float
    origin_index: int
    timestamp: int
    strength: float = 0.0
    mitigated: bool = False
    mitigation_index: Optional[int] = None

    def mitigate(self, index: int) -> bool:
        """Mark the zone mitigated at *index*.  Returns ``False`` if it already was."""
        if self.mitigated:
            return False
        self.mitigated = True
        self.mitigation_index = index
        return True

    def is_fresh_at(self, index: int) -> bool:
        """``True`` if the zone was not mitigated before candle *index*."""
        return not self.mitigated or self.mitigation_index >= index


@dataclass(frozen=True)
class DealingRange:
    """Snapshot of the range between the latest swing high and swing low."""

    high: float
    low: float
    high_index: int
    low_index: int
    equilibrium: float
    premium_band: tuple[float, float]
    discount_band: tuple[float, float]
    fib_levels: dict[float, float] = field(default_factory=dict)

    @property
    def size(self) -> float:
        return self.high - self.low


@dataclass
class LiquidityLevel:
    """A cluster of swing points at roughly the same price."""

    price: float
    kind: SwingKind
    touch_count: int = 1
    touch_indices: list[int] = field(default_factory=list)
    swept: bool = False
    swept_index: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.touch_count >= 2


@dataclass(frozen=True)
class LiquiditySweep:
    """A wick through a liquidity level that closed back inside."""

    level: float
    kind: SwingKind
    sweep_index: int
    reversal_confirmed: bool


# ── Signals ──────────────────────────────────────────────────────────────


class ReasonCode(Enum):
    """Machine-readable outcome of each evaluation step."""

    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    RANGING_STRUCTURE = "RANGING_STRUCTURE"
    STRUCTURE = "STRUCTURE"
    HTF_MISALIGNED = "HTF_MISALIGNED"
    HTF_CONFLICT = "HTF_CONFLICT"
    HTF_OK = "HTF_OK"
    NO_DEALING_RANGE = "NO_DEALING_RANGE"
    WRONG_PRICE_ZONE = "WRONG_PRICE_ZONE"
    PRICE_ZONE_OK = "PRICE_ZONE_OK"
    NO_CLS_CANDLE = "NO_CLS_CANDLE"
    NO_ENTRY_ZONE = "NO_ENTRY_ZONE"
    ENTRY_TURTLE_SOUP = "ENTRY_TURTLE_SOUP"
    ENTRY_ZONE = "ENTRY_ZONE"
    STOP = "STOP"
    NO_TARGET = "NO_TARGET"
    TARGET = "TARGET"
    RISK_REWARD_TOO_LOW = "RISK_REWARD_TOO_LOW"
    RISK_REWARD_OK = "RISK_REWARD_OK"
    ACCEPTED = "ACCEPTED"


@dataclass(frozen=True)
class SignalNote:
    """One line of the reasoning trail: a code plus human-readable detail."""

    code: ReasonCode
    detail: str


@dataclass(frozen=True)
class TradeSignal:
    """Output of the signal evaluator.

    ``rejection`` is set for every NO_TRADE outcome; ``reasoning`` records
    every step taken, accepted or not.
    """

    action: Action
    price: float
    stop: Optional[float] = None
    targets: tuple[float, ...] = ()
    confidence: float = 0.0
    reasoning: tuple[SignalNote, ...] = ()
    rejection: Optional[ReasonCode] = None
    zone_type: Optional[str] = None
    grade: Optional[str] = None
    timestamp: Optional[int] = None

    @property
    def is_trade(self) -> bool:
        return self.action is not Action.NO_TRADE

    @property
    def target(self) -> Optional[float]:
        """Primary target, if any."""
        return self.targets[0] if self.targets else None

    @property
    def risk_reward(self) -> float:
        if self.stop is None or not self.targets:
            return 0.0
        risk = abs(self.price - self.stop)
        if risk == 0:
            return 0.0
        return abs(self.targets[0] - self.price) / risk
