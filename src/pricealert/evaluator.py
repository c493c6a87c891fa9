"""
Price Alert Engine - Alert Evaluator

Applies each new price sample to the conditions of its symbol:
- Inclusive threshold-crossing rule
- One-shot ACTIVE -> TRIGGERED transition
- Per-symbol serialization of concurrent evaluations
- Trigger events published to subscribers
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List

from .models import AlertCondition, TriggerEvent, normalize_symbol, validate_price
from .registry import AlertRegistry


logger = logging.getLogger(__name__)


class AlertEvaluator:
    """
    Evaluates prices against the registry's ACTIVE conditions.

    Calls for the same symbol are serialized so every condition fires at
    most once, even when scheduler ticks overlap. Different symbols are
    evaluated in parallel. Subscribers run after the symbol lock has been
    released.
    """

    def __init__(
        self,
        registry: AlertRegistry,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the evaluator.

        Args:
            registry: Owner of the conditions
            clock: Source of trigger timestamps
        """
        self.registry = registry
        self._clock = clock
        self._symbol_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._subscribers: List[Callable[[TriggerEvent], None]] = []

    def subscribe(self, handler: Callable[[TriggerEvent], None]) -> None:
        """
        Subscribe to trigger events.

        Args:
            handler: Callback receiving one TriggerEvent per fired condition
        """
        self._subscribers.append(handler)

    def unsubscribe(self, handler: Callable[[TriggerEvent], None]) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)

    def _lock_for(self, symbol: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._symbol_locks.get(symbol)
            if lock is None:
                lock = self._symbol_locks[symbol] = threading.Lock()
            return lock

    def _notify_subscribers(self, event: TriggerEvent) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                logger.exception(f"Trigger subscriber failed for alert {event.condition.id}")

    def evaluate(self, symbol: str, price: float) -> List[AlertCondition]:
        """
        Check a price against every ACTIVE condition of a symbol.

        An ABOVE condition fires when price >= threshold, a BELOW condition
        when price <= threshold. Triggered conditions are skipped.

        Args:
            symbol: Symbol the price belongs to
            price: Observed price

        Returns:
            Newly triggered conditions, in registry order
        """
        price = validate_price(price)
        symbol = normalize_symbol(symbol)
        triggered: List[AlertCondition] = []
        with self._lock_for(symbol):
            now = self._clock()
            for condition in self.registry.active(symbol):
                if condition.matches(price) and self.registry.mark_triggered(condition, now):
                    triggered.append(condition)

        for condition in triggered:
            logger.info(condition.describe(price))
            self._notify_subscribers(
                TriggerEvent(condition=condition, price_at_trigger=price, timestamp=now)
            )

        return triggered
