"""
Price Alert Engine - Alert Registry

Owns every AlertCondition:
- Validated creation with collision-free identifiers
- Removal and lookup
- Snapshots of active and all conditions
- Round trip to the persisted snapshot format
"""

import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import AlertLimitError, InvalidParameterError
from .models import AlertCondition, ConditionState, normalize_symbol, parse_direction, validate_threshold


logger = logging.getLogger(__name__)


def new_condition_id() -> str:
    """Random UUID4; safe under concurrent creation."""
    return str(uuid.uuid4())


class AlertRegistry:
    """
    Collection of alert conditions in insertion order.

    Reads return list copies, so callers never observe a collection that
    is being modified. Conditions for the same symbol and threshold are
    independent; nothing is deduplicated.
    """

    def __init__(
        self,
        max_active_alerts: Optional[int] = None,
        id_factory: Callable[[], str] = new_condition_id,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the registry.

        Args:
            max_active_alerts: Upper bound on ACTIVE conditions (None = unbounded)
            id_factory: Produces unique condition identifiers
            clock: Source of creation timestamps
        """
        self.max_active_alerts = max_active_alerts
        self._id_factory = id_factory
        self._clock = clock
        self._conditions: Dict[str, AlertCondition] = {}
        self._lock = threading.RLock()

    def add(self, symbol: str, threshold: float, direction: Any) -> str:
        """
        Create a new ACTIVE condition.

        Args:
            symbol: Symbol identifier (stored lower case)
            threshold: Finite positive price
            direction: Direction or 'above' / 'below'

        Returns:
            Identifier of the new condition

        Raises:
            InvalidParameterError: bad symbol, threshold or direction
            AlertLimitError: max_active_alerts reached
        """
        symbol = normalize_symbol(symbol)
        threshold = validate_threshold(threshold)
        direction = parse_direction(direction)

        with self._lock:
            if self.max_active_alerts is not None:
                active_count = sum(1 for c in self._conditions.values() if c.is_active)
                if active_count >= self.max_active_alerts:
                    raise AlertLimitError(
                        f"Cannot add alert: {active_count} active alerts (limit {self.max_active_alerts})"
                    )
            condition_id = self._id_factory()
            if condition_id in self._conditions:
                raise InvalidParameterError(f"Duplicate condition id {condition_id}")
            condition = AlertCondition(
                id=condition_id,
                symbol=symbol,
                threshold=threshold,
                direction=direction,
                created_at=self._clock(),
            )
            self._conditions[condition_id] = condition

        logger.info(
            f"Alert added: {condition.symbol.upper()} {direction.value} ${threshold:,.2f} ({condition_id})"
        )
        return condition_id

    def remove(self, condition_id: str) -> bool:
        """
        Remove a condition.

        Returns:
            True if a condition with that id existed and was removed
        """
        with self._lock:
            removed = self._conditions.pop(condition_id, None)
        if removed is None:
            return False
        logger.info(f"Alert removed: {condition_id}")
        return True

    def mark_triggered(self, condition: AlertCondition, at: datetime) -> bool:
        """
        Apply the ACTIVE -> TRIGGERED transition under the registry lock.

        Snapshots taken concurrently see the condition either untouched or
        fully triggered.

        Returns:
            True if this call performed the transition
        """
        with self._lock:
            if self._conditions.get(condition.id) is not condition:
                return False
            return condition.trigger(at)

    def get(self, condition_id: str) -> Optional[AlertCondition]:
        with self._lock:
            return self._conditions.get(condition_id)

    def active(self, symbol: Optional[str] = None) -> List[AlertCondition]:
        """ACTIVE conditions, optionally for one symbol."""
        with self._lock:
            return [
                c for c in self._conditions.values()
                if c.state == ConditionState.ACTIVE
                and (symbol is None or c.symbol == symbol)
            ]

    def all(self) -> List[AlertCondition]:
        with self._lock:
            return list(self._conditions.values())

    def for_symbol(self, symbol: str) -> List[AlertCondition]:
        with self._lock:
            return [c for c in self._conditions.values() if c.symbol == symbol]

    def symbols(self) -> List[str]:
        """Symbols referenced by at least one condition."""
        with self._lock:
            return sorted({c.symbol for c in self._conditions.values()})

    # === Persistence ===

    def snapshot(self) -> List[Dict[str, Any]]:
        """All conditions in the persisted snapshot format."""
        with self._lock:
            return [c.to_dict() for c in self._conditions.values()]

    def restore(self, records: Iterable[Dict[str, Any]]) -> int:
        """
        Replace the registry contents from persisted records.

        Returns:
            Number of conditions loaded
        """
        conditions = [AlertCondition.from_dict(r) for r in records]
        with self._lock:
            self._conditions = {c.id: c for c in conditions}
        logger.info(f"Loaded {len(conditions)} alerts")
        return len(conditions)

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]], **kwargs) -> "AlertRegistry":
        registry = cls(**kwargs)
        registry.restore(records)
        return registry

    def __len__(self) -> int:
        with self._lock:
            return len(self._conditions)

    def __contains__(self, condition_id: object) -> bool:
        with self._lock:
            return condition_id in self._conditions
