"""
Price Alert Engine - Main Orchestrator

The PriceAlertSystem coordinates all components:
- SampleStore for price history
- AlertRegistry and AlertEvaluator for threshold alerts
- StatisticsEngine for on-demand analysis
- NotificationHub for multi-channel notifications
- ConditionRepository for persisting alerts across restarts

This is the main entry point for using the price alert engine.
"""

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from .config import NotificationConfig, SystemConfig
from .errors import DataUnavailableError, InvalidParameterError
from .evaluator import AlertEvaluator
from .models import AlertCondition, AnalysisReport, Direction, TriggerEvent, normalize_symbol, validate_price
from .notifications import (
    BaseNotificationChannel,
    CallbackNotificationChannel,
    ConsoleNotificationChannel,
    DiscordNotificationChannel,
    EmailNotificationChannel,
    LogNotificationChannel,
    NotificationHub,
    SlackNotificationChannel,
    WebhookNotificationChannel,
)
from .registry import AlertRegistry
from .repository import (
    ConditionRepository,
    InMemoryConditionRepository,
    JSONConditionRepository,
    SQLiteConditionRepository,
)
from .samples import InMemorySampleStore, SampleStore, SQLiteSampleStore
from .statistics import StatisticsEngine, format_report
from .symbols import format_symbol


logger = logging.getLogger(__name__)


class PriceAlertSystem:
    """
    Main orchestrator for the price alert engine.

    Coordinates:
    - Recording sampled prices
    - Evaluating and triggering threshold alerts
    - Notification dispatch to multiple channels
    - Alert persistence and price analysis

    Usage:
        system = PriceAlertSystem()
        system.add_alert("bitcoin", 70000, "above")
        system.record_price("bitcoin", 71250.0)
    """

    def __init__(
        self,
        config: Optional[SystemConfig] = None,
        sample_store: Optional[SampleStore] = None,
        repository: Optional[ConditionRepository] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the system.

        Args:
            config: System configuration
            sample_store: Price history backend (built from config if omitted)
            repository: Alert snapshot backend (built from config if omitted)
            clock: Source of timestamps for samples and triggers
        """
        self.config = config or SystemConfig()
        self._clock = clock
        self._persist_lock = threading.Lock()

        problems = self.config.validate()
        for problem in problems:
            logger.warning(f"Configuration problem: {problem}")

        if sample_store is not None:
            self._store = sample_store
        elif self.config.use_memory_db:
            self._store = InMemorySampleStore(self.config.max_samples)
        else:
            self._store = SQLiteSampleStore(self.config.db_path, self.config.max_samples)

        if repository is not None:
            self._repository = repository
        elif self.config.alerts_path:
            self._repository = JSONConditionRepository(self.config.alerts_path)
        elif self.config.use_memory_db:
            self._repository = InMemoryConditionRepository()
        else:
            self._repository = SQLiteConditionRepository(self.config.db_path)

        self._registry = AlertRegistry(
            max_active_alerts=self.config.max_active_alerts,
            clock=clock,
        )
        self._registry.restore(self._repository.load())

        self._evaluator = AlertEvaluator(self._registry, clock=clock)
        self._statistics = StatisticsEngine(self._store, clock=clock)

        self._notification_hub = NotificationHub()
        self._setup_default_channels()
        self._evaluator.subscribe(self._on_trigger)

        logger.info("PriceAlertSystem initialized")

    def _setup_default_channels(self) -> None:
        """Set up notification channels based on config."""
        notifications = self.config.notifications
        hub = self._notification_hub

        if notifications.log:
            hub.register_channel(LogNotificationChannel(name="log"))
        if notifications.console:
            hub.register_channel(ConsoleNotificationChannel(name="console"))
        if notifications.webhook_url:
            hub.register_channel(WebhookNotificationChannel(
                name="webhook",
                webhook_url=notifications.webhook_url,
                timeout=notifications.webhook_timeout,
            ))
        if notifications.discord_webhook_url:
            hub.register_channel(DiscordNotificationChannel(
                notifications.discord_webhook_url,
                timeout=notifications.webhook_timeout,
            ))
        if notifications.slack_webhook_url:
            hub.register_channel(SlackNotificationChannel(
                notifications.slack_webhook_url,
                timeout=notifications.webhook_timeout,
            ))
        if notifications.email_enabled and notifications.email_user and notifications.email_password:
            hub.register_channel(EmailNotificationChannel(
                username=notifications.email_user,
                password=notifications.email_password,
                recipient=notifications.email_recipient,
                smtp_host=notifications.smtp_host,
                smtp_port=notifications.smtp_port,
            ))

    def _on_trigger(self, event: TriggerEvent) -> None:
        self._notification_hub.dispatch(event)

    def _persist(self) -> None:
        # Snapshot and save together so a stale snapshot never overwrites a newer one
        with self._persist_lock:
            self._repository.save(self._registry.snapshot())

    # === Alert Management ===

    def add_alert(self, symbol: str, threshold: float, direction: Any) -> str:
        """
        Create and persist a new alert.

        Args:
            symbol: Symbol id (e.g. 'bitcoin')
            threshold: Price threshold
            direction: 'above' / 'below' or a Direction

        Returns:
            ID of the new alert
        """
        condition_id = self._registry.add(symbol, threshold, direction)
        self._persist()
        return condition_id

    def remove_alert(self, condition_id: str) -> bool:
        removed = self._registry.remove(condition_id)
        if removed:
            self._persist()
        return removed

    def get_alert(self, condition_id: str) -> Optional[AlertCondition]:
        return self._registry.get(condition_id)

    def active_alerts(self, symbol: Optional[str] = None) -> List[AlertCondition]:
        return self._registry.active(normalize_symbol(symbol) if symbol else None)

    def all_alerts(self) -> List[AlertCondition]:
        return self._registry.all()

    # === Price Processing ===

    def record_price(
        self,
        symbol: str,
        price: float,
        timestamp: Optional[datetime] = None,
    ) -> List[AlertCondition]:
        """
        Store a sampled price and evaluate the symbol's alerts.

        This is the main method for processing market data. Store
        failures propagate to the caller.

        Args:
            symbol: Symbol id
            price: Sampled price
            timestamp: Sample time (defaults to now)

        Returns:
            Alerts triggered by this price
        """
        symbol = normalize_symbol(symbol)
        price = validate_price(price)
        self._store.append(symbol, price, timestamp or self._clock())
        triggered = self._evaluator.evaluate(symbol, price)
        if triggered:
            logger.info(f"{len(triggered)} alerts triggered for {format_symbol(symbol)}")
            self._persist()
        return triggered

    def process_prices(self, prices: Dict[str, float]) -> Dict[str, List[AlertCondition]]:
        """
        Record one sampling tick for several symbols.

        Args:
            prices: Mapping of symbol id to price

        Returns:
            Dict mapping symbols to their triggered alerts
        """
        return {symbol: self.record_price(symbol, price) for symbol, price in prices.items()}

    def backfill(self, symbol: str, df: pd.DataFrame) -> int:
        """
        Load historical prices without evaluating alerts.

        The frame needs a 'price' or 'Close' column and either a
        DatetimeIndex or a 'timestamp' column. Rows are stored in time order.

        Returns:
            Number of samples stored
        """
        symbol = normalize_symbol(symbol)
        if "price" in df.columns:
            prices = df["price"]
        elif "Close" in df.columns:
            prices = df["Close"]
        else:
            raise InvalidParameterError("Backfill data needs a 'price' or 'Close' column")

        if "timestamp" in df.columns:
            timestamps = pd.to_datetime(df["timestamp"])
        elif isinstance(df.index, pd.DatetimeIndex):
            timestamps = df.index.to_series()
        else:
            raise InvalidParameterError("Backfill data needs a DatetimeIndex or a 'timestamp' column")

        history = pd.DataFrame({
            "price": pd.to_numeric(prices, errors="coerce").to_numpy(),
            "timestamp": pd.DatetimeIndex(timestamps).to_numpy(),
        }).dropna().sort_values("timestamp", kind="stable")

        for row in history.itertuples(index=False):
            self._store.append(symbol, float(row.price), pd.Timestamp(row.timestamp).to_pydatetime())

        logger.info(f"Backfilled {len(history)} samples for {format_symbol(symbol)}")
        return len(history)

    # === Analysis ===

    def analyze(self, symbol: str, required: bool = False) -> Optional[AnalysisReport]:
        """
        Build the analysis report for a symbol.

        Args:
            symbol: Symbol id
            required: Raise DataUnavailableError instead of returning None

        Returns:
            AnalysisReport, or None when there is no history
        """
        symbol = normalize_symbol(symbol)
        analysis = self.config.analysis
        report = self._statistics.report(
            symbol,
            moving_average_periods=analysis.moving_average_periods,
            trend_periods=analysis.trend_periods,
            volatility_periods=analysis.volatility_periods,
            short_change_hours=analysis.short_change_hours,
            long_change_hours=analysis.long_change_hours,
        )
        if report is None and required:
            raise DataUnavailableError(symbol)
        return report

    def format_analysis(self, symbol: str) -> str:
        symbol = normalize_symbol(symbol)
        return format_report(self.analyze(symbol), title=format_symbol(symbol))

    # === Notification Management ===

    def add_notification_channel(self, channel: BaseNotificationChannel) -> None:
        self._notification_hub.register_channel(channel)

    def remove_notification_channel(self, name: str) -> bool:
        return self._notification_hub.unregister_channel(name)

    def add_callback_handler(
        self,
        name: str,
        callback: Callable[[TriggerEvent, str], None],
        directions: Optional[List[Direction]] = None,
    ) -> None:
        """
        Add a callback function as a notification handler.

        Args:
            name: Handler name
            callback: Function(event, message) to call
            directions: Optional filter for condition directions
        """
        self._notification_hub.register_channel(
            CallbackNotificationChannel(name=name, callback=callback, directions=directions)
        )

    def get_notification_stats(self) -> dict:
        return self._notification_hub.get_stats()

    # === Properties ===

    @property
    def registry(self) -> AlertRegistry:
        return self._registry

    @property
    def evaluator(self) -> AlertEvaluator:
        return self._evaluator

    @property
    def statistics(self) -> StatisticsEngine:
        return self._statistics

    @property
    def notification_hub(self) -> NotificationHub:
        return self._notification_hub

    @property
    def sample_store(self) -> SampleStore:
        return self._store

    @property
    def repository(self) -> ConditionRepository:
        return self._repository


def create_system(
    db_path: str = "data/alerts.db",
    alerts_path: Optional[str] = None,
    max_active_alerts: Optional[int] = 50,
    enable_console: bool = True,
    use_memory_db: bool = False,
) -> PriceAlertSystem:
    """
    Factory function to create a configured PriceAlertSystem.

    Webhook and email channels are read from the environment.

    Args:
        db_path: Path to SQLite database
        alerts_path: Optional JSON file for the alert snapshot
        max_active_alerts: Limit on active alerts
        enable_console: Whether to enable console notifications
        use_memory_db: Keep everything in memory

    Returns:
        Configured PriceAlertSystem
    """
    config = SystemConfig(
        db_path=db_path,
        alerts_path=alerts_path,
        max_active_alerts=max_active_alerts,
        use_memory_db=use_memory_db,
        notifications=NotificationConfig.from_env(console=enable_console),
    )
    return PriceAlertSystem(config)
