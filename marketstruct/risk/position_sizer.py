"""Position sizing: pure math, no I/O.

Five interchangeable heuristics each turn a risk budget into a quantity:

    risk_amount = balance × (risk_pct / 100)
    quantity    = risk_amount / |entry − stop|

and differ only in how they choose ``risk_pct``.  ``intelligent_sizing``
blends all five.  Every quantity is capped so that
``quantity × entry ≤ balance × max_leverage``.
"""

from dataclasses import dataclass
from typing import Optional

from marketstruct.risk.limits import AccountState, RiskCheck, SizingConfig, check_risk_gate


ZERO_DISTANCE_EPSILON = 1e-8

GRADE_MULTIPLIERS = {
    "A+": 1.5,
    "A": 1.25,
    "B+": 1.0,
    "B": 0.75,
    "C": 0.5,
    "D": 0.25,
}
DEFAULT_GRADE_MULTIPLIER = 0.75

MOMENTUM_BANDS = (
    (0.9, 1.5),
    (0.7, 1.25),
    (0.5, 1.0),
    (0.3, 0.6),
)
MOMENTUM_FLOOR = 0.3

BLEND_WEIGHTS = {
    "fixed_fractional": 0.2,
    "half_kelly": 0.2,
    "volatility_scaled": 0.15,
    "confidence_graded": 0.3,
    "momentum_scaled": 0.15,
}


@dataclass(frozen=True)
class SizingQuote:
    """Quantity suggested by one sizing heuristic."""

    method: str
    quantity: float
    risk_amount: float
    risk_percentage: float
    capped: bool = False


@dataclass(frozen=True)
class SizingRequest:
    """Inputs for :func:`intelligent_sizing`.  Optional inputs fall back to
    fixed-fractional sizing when missing."""

    entry: Optional[float]
    stop: Optional[float]
    target: Optional[float] = None
    atr: Optional[float] = None
    average_atr: Optional[float] = None
    win_probability: float = 0.55
    grade: str = "B"
    confidence: float = 0.5
    momentum: float = 0.5


@dataclass(frozen=True)
class SizingRecommendation:
    quantity: float
    risk_amount: float
    max_quantity: float
    leverage_capped: bool
    reward_risk: float
    quotes: tuple[SizingQuote, ...]
    risk_check: RiskCheck


@dataclass(frozen=True)
class SizingError:
    """Returned instead of a recommendation when required inputs are missing."""

    message: str


# ── Helpers ──────────────────────────────────────────────────────────────


def _stop_distance(entry: float, stop: float) -> float:
    return max(abs(entry - stop), ZERO_DISTANCE_EPSILON)


def _clamp_risk(risk_pct: float, config: SizingConfig) -> float:
    return min(max(risk_pct, config.min_risk_percentage), config.max_risk_percentage)


def max_quantity(balance: float, entry: float, max_leverage: float) -> float:
    """Largest quantity the leverage cap allows at *entry*."""
    if entry <= 0:
        return 0.0
    return max(0.0, balance * max_leverage / entry)


def _quote(
    method: str,
    balance: float,
    entry: float,
    stop: float,
    risk_pct: float,
    config: SizingConfig,
) -> SizingQuote:
    risk_amount = balance * risk_pct / 100.0
    quantity = risk_amount / _stop_distance(entry, stop)
    cap = max_quantity(balance, entry, config.max_leverage)
    return SizingQuote(
        method=method,
        quantity=min(quantity, cap),
        risk_amount=risk_amount,
        risk_percentage=risk_pct,
        capped=quantity > cap,
    )


def calculate_quantity(
    balance: float,
    risk_pct: float,
    entry: float,
    stop: float,
    max_leverage: float = 10.0,
) -> float:
    """Fixed-fractional quantity, capped by leverage.

    Raises:
        ValueError: If *balance*, *risk_pct*, *entry* or *max_leverage* is
            non-positive.
    """
    if balance <= 0:
        raise ValueError(f"balance must be positive, got {balance}")
    if risk_pct <= 0:
        raise ValueError(f"risk_pct must be positive, got {risk_pct}")
    if entry <= 0:
        raise ValueError(f"entry must be positive, got {entry}")
    if max_leverage <= 0:
        raise ValueError(f"max_leverage must be positive, got {max_leverage}")

    risk_amount = balance * (risk_pct / 100.0)
    quantity = risk_amount / _stop_distance(entry, stop)
    return min(quantity, max_quantity(balance, entry, max_leverage))


# ── Heuristics ───────────────────────────────────────────────────────────


def fixed_fractional(
    balance: float, entry: float, stop: float, config: SizingConfig = SizingConfig(),
) -> SizingQuote:
    return _quote("fixed_fractional", balance, entry, stop, config.risk_percentage, config)


def half_kelly(
    balance: float,
    entry: float,
    stop: float,
    target: float,
    win_probability: float,
    config: SizingConfig = SizingConfig(),
) -> SizingQuote:
    """Half the Kelly fraction, capped at ``max_risk_percentage``.

    A negative edge sizes to zero.
    """
    reward_risk = abs(target - entry) / _stop_distance(entry, stop)
    p, q = win_probability, 1.0 - win_probability
    kelly = (reward_risk * p - q) / reward_risk if reward_risk > 0 else 0.0
    fraction = min(max(kelly, 0.0) * 0.5, config.max_risk_percentage / 100.0)
    return _quote("half_kelly", balance, entry, stop, fraction * 100.0, config)


def volatility_scaled(
    balance: float,
    entry: float,
    stop: float,
    atr: float,
    average_atr: float,
    config: SizingConfig = SizingConfig(),
) -> SizingQuote:
    """Scale risk inversely to ``atr / average_atr``, clamped to the risk band."""
    ratio = atr / average_atr if average_atr > 0 and atr > 0 else 1.0
    risk_pct = _clamp_risk(config.risk_percentage / ratio, config)
    return _quote("volatility_scaled", balance, entry, stop, risk_pct, config)


def confidence_graded(
    balance: float,
    entry: float,
    stop: float,
    grade: str = "B",
    confidence: float = 0.5,
    config: SizingConfig = SizingConfig(),
) -> SizingQuote:
    """Grade multiplier × (0.5 + 0.5 × confidence), clamped to the risk band."""
    multiplier = GRADE_MULTIPLIERS.get(grade, DEFAULT_GRADE_MULTIPLIER)
    effective = multiplier * (0.5 + 0.5 * confidence)
    risk_pct = _clamp_risk(config.risk_percentage * effective, config)
    return _quote("confidence_graded", balance, entry, stop, risk_pct, config)


def momentum_multiplier(momentum: float) -> float:
    for threshold, multiplier in MOMENTUM_BANDS:
        if momentum >= threshold:
            return multiplier
    return MOMENTUM_FLOOR


def momentum_scaled(
    balance: float,
    entry: float,
    stop: float,
    momentum: float = 0.5,
    config: SizingConfig = SizingConfig(),
) -> SizingQuote:
    risk_pct = _clamp_risk(config.risk_percentage * momentum_multiplier(momentum), config)
    return _quote("momentum_scaled", balance, entry, stop, risk_pct, config)


# ── Blend ────────────────────────────────────────────────────────────────


def intelligent_sizing(
    request: SizingRequest,
    account: AccountState,
    config: SizingConfig = SizingConfig(),
) -> SizingRecommendation | SizingError:
    """Blend all five heuristics and run the risk gate.

    Returns ``SizingError`` (not raised) when entry or stop is missing.
    The gate is evaluated on the risk of the blended quantity at the stop.
    """
    if not request.entry or not request.stop:
        return SizingError("entry and stop prices are required")

    balance = account.balance
    entry, stop = request.entry, request.stop

    fixed = fixed_fractional(balance, entry, stop, config)
    quotes = [fixed]
    if request.target:
        quotes.append(half_kelly(balance, entry, stop, request.target, request.win_probability, config))
    if request.atr and request.average_atr:
        quotes.append(volatility_scaled(balance, entry, stop, request.atr, request.average_atr, config))
    quotes.append(confidence_graded(balance, entry, stop, request.grade, request.confidence, config))
    quotes.append(momentum_scaled(balance, entry, stop, request.momentum, config))

    by_method = {q.method: q for q in quotes}
    blended = sum(
        weight * by_method.get(method, fixed).quantity
        for method, weight in BLEND_WEIGHTS.items()
    )

    cap = max_quantity(balance, entry, config.max_leverage)
    quantity = min(max(0.0, blended), cap)
    distance = _stop_distance(entry, stop)
    reward = abs(request.target - entry) if request.target else distance
    risk_amount = quantity * distance

    return SizingRecommendation(
        quantity=quantity,
        risk_amount=risk_amount,
        max_quantity=cap,
        leverage_capped=blended > cap or any(q.capped for q in quotes),
        reward_risk=reward / distance,
        quotes=tuple(quotes),
        risk_check=check_risk_gate(account, risk_amount, config),
    )
