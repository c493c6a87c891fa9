"""
Price Alert Engine - Core Data Models

Defines the data structures shared by the alert and analysis engines:
- Threshold directions and condition states
- AlertCondition with its one-shot trigger transition
- Price samples and read-only sample windows
- Derived statistics and the analysis report
- Trigger events handed to notification channels
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Dict, Any, Iterator, List

from .errors import InvalidParameterError


class Direction(Enum):
    """Which side of the threshold fires the condition."""
    ABOVE = "above"
    BELOW = "below"


class ConditionState(Enum):
    """Condition lifecycle states."""
    ACTIVE = "active"        # Waiting for the price to cross
    TRIGGERED = "triggered"  # Fired once, terminal


class Trend(Enum):
    """Trend classification over a sample window."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    SIDEWAYS = "sideways"
    INSUFFICIENT_DATA = "insufficient_data"


class VolatilityLevel(Enum):
    """Bucketed coefficient of variation."""
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    EXTREME = "extreme"


def validate_threshold(threshold: Any) -> float:
    """Return threshold as a float, rejecting non-finite and non-positive values."""
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise InvalidParameterError(f"Threshold must be a number, got {threshold!r}")
    value = float(threshold)
    if not math.isfinite(value) or value <= 0:
        raise InvalidParameterError(f"Threshold must be a finite positive number, got {threshold!r}")
    return value


def parse_direction(direction: Any) -> Direction:
    """Accept a Direction or its string value ('above' / 'below')."""
    if isinstance(direction, Direction):
        return direction
    if isinstance(direction, str):
        try:
            return Direction(direction.strip().lower())
        except ValueError:
            pass
    raise InvalidParameterError(f"Direction must be 'above' or 'below', got {direction!r}")


def normalize_symbol(symbol: Any) -> str:
    """Lower-case, trimmed symbol id; rejects empty values."""
    if not isinstance(symbol, str) or not symbol.strip():
        raise InvalidParameterError(f"Symbol must be a non-empty string, got {symbol!r}")
    return symbol.strip().lower()


def validate_price(price: Any) -> float:
    """Return price as a float, rejecting non-numeric and non-finite values."""
    if isinstance(price, bool) or not isinstance(price, (int, float)) or not math.isfinite(price):
        raise InvalidParameterError(f"Price must be a finite number, got {price!r}")
    return float(price)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


@dataclass
class AlertCondition:
    """
    A user-defined price threshold for one symbol.

    Conditions move through a single transition:
    - ACTIVE -> TRIGGERED (price crossed the threshold)

    A triggered condition never re-arms; a new condition must be created.
    ``triggered_at`` is set if and only if the state is TRIGGERED.
    """
    symbol: str
    threshold: float
    direction: Direction
    id: str
    state: ConditionState = ConditionState.ACTIVE
    created_at: datetime = field(default_factory=datetime.now)
    triggered_at: Optional[datetime] = None

    def __post_init__(self):
        self.threshold = validate_threshold(self.threshold)
        self.direction = parse_direction(self.direction)
        if (self.state == ConditionState.TRIGGERED) != (self.triggered_at is not None):
            raise InvalidParameterError(
                f"Condition {self.id}: triggered_at must be set exactly when state is triggered"
            )

    @property
    def is_active(self) -> bool:
        """Whether the condition can still fire."""
        return self.state == ConditionState.ACTIVE

    def matches(self, price: float) -> bool:
        """Crossing rule with inclusive bounds."""
        if self.direction == Direction.ABOVE:
            return price >= self.threshold
        return price <= self.threshold

    def trigger(self, at: datetime) -> bool:
        """
        Move ACTIVE -> TRIGGERED.

        Returns:
            True if the transition happened, False if already triggered
        """
        if self.state != ConditionState.ACTIVE:
            return False
        self.triggered_at = at
        self.state = ConditionState.TRIGGERED
        return True

    def describe(self, price: float) -> str:
        """Human-readable alert message for a price."""
        return (
            f"PRICE ALERT: {self.symbol.upper()} is now ${price:,.2f}, "
            f"{self.direction.value} your threshold of ${self.threshold:,.2f}"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted snapshot format."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "threshold": self.threshold,
            "direction": self.direction.value,
            "state": self.state.value,
            "createdAt": self.created_at.isoformat(),
            "triggeredAt": self.triggered_at.isoformat() if self.triggered_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AlertCondition":
        """Create from the persisted snapshot format."""
        try:
            state = ConditionState(data["state"])
        except ValueError:
            raise InvalidParameterError(f"Unknown condition state {data['state']!r}")
        return cls(
            id=str(data["id"]),
            symbol=normalize_symbol(data["symbol"]),
            threshold=data["threshold"],
            direction=parse_direction(data["direction"]),
            state=state,
            created_at=datetime.fromisoformat(data["createdAt"]),
            triggered_at=_parse_timestamp(data.get("triggeredAt")),
        )


@dataclass(frozen=True)
class Sample:
    """One observed price."""
    price: float
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"price": self.price, "timestamp": self.timestamp.isoformat()}


@dataclass(frozen=True)
class SampleWindow:
    """Read-only view of the most recent samples for a symbol, oldest first."""
    symbol: str
    samples: Tuple[Sample, ...] = ()

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self.samples)

    @property
    def prices(self) -> List[float]:
        return [s.price for s in self.samples]

    @property
    def latest(self) -> Optional[Sample]:
        return self.samples[-1] if self.samples else None

    def tail(self, count: int) -> "SampleWindow":
        """The last ``count`` samples as a new window."""
        if count <= 0:
            return SampleWindow(self.symbol)
        return SampleWindow(self.symbol, self.samples[-count:])


@dataclass(frozen=True)
class PriceChange:
    """Price movement between a reference sample and the latest sample."""
    old_price: float
    new_price: float
    delta: float
    percent: float
    window_label: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "old_price": self.old_price,
            "new_price": self.new_price,
            "delta": self.delta,
            "percent": self.percent,
            "window_label": self.window_label,
        }


@dataclass(frozen=True)
class Volatility:
    """Dispersion of prices over a window."""
    stddev: float
    coefficient_of_variation: float  # stddev / mean * 100
    level: VolatilityLevel

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stddev": self.stddev,
            "coefficient_of_variation": self.coefficient_of_variation,
            "level": self.level.value,
        }


@dataclass
class AnalysisReport:
    """
    On-demand statistics for a symbol.

    Every statistic is optional on its own; None means there was not
    enough history (or the sub-computation failed), never zero.
    """
    symbol: str
    current_price: Optional[float]
    moving_average: Optional[float] = None
    change_24h: Optional[PriceChange] = None
    change_7d: Optional[PriceChange] = None
    trend: Trend = Trend.INSUFFICIENT_DATA
    volatility: Optional[Volatility] = None
    generated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "symbol": self.symbol,
            "current_price": self.current_price,
            "moving_average": self.moving_average,
            "change_24h": self.change_24h.to_dict() if self.change_24h else None,
            "change_7d": self.change_7d.to_dict() if self.change_7d else None,
            "trend": self.trend.value,
            "volatility": self.volatility.to_dict() if self.volatility else None,
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass(frozen=True)
class TriggerEvent:
    """Emitted once for each condition that fired."""
    condition: AlertCondition
    price_at_trigger: float
    timestamp: datetime

    @property
    def message(self) -> str:
        return self.condition.describe(self.price_at_trigger)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "condition": self.condition.to_dict(),
            "price_at_trigger": self.price_at_trigger,
            "timestamp": self.timestamp.isoformat(),
        }
