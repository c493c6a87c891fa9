"""
Price Alert Engine Package

Threshold alerts and rolling statistics for sampled price feeds:
1. Alerts - one-shot conditions that fire when a price crosses a threshold
2. Analysis - moving average, percent change, trend and volatility
3. Notifications - console, log, email, webhook, Discord and Slack channels

Usage:
    from src.pricealert import PriceAlertSystem, create_system

    # Quick start
    system = create_system(use_memory_db=True)
    system.add_alert("bitcoin", 70000, "above")
    triggered = system.record_price("bitcoin", 71250.0)

    # Custom configuration
    from src.pricealert import SystemConfig, AnalysisConfig
    config = SystemConfig(
        max_active_alerts=100,
        analysis=AnalysisConfig(trend_periods=20),
    )
    system = PriceAlertSystem(config)
"""

from .errors import (
    PriceAlertError,
    InvalidParameterError,
    AlertLimitError,
    StoreUnavailableError,
    DataUnavailableError,
)
from .models import (
    Direction,
    ConditionState,
    AlertCondition,
    Sample,
    SampleWindow,
    PriceChange,
    Trend,
    Volatility,
    VolatilityLevel,
    AnalysisReport,
    TriggerEvent,
)
from .samples import SampleStore, InMemorySampleStore, SQLiteSampleStore
from .registry import AlertRegistry
from .evaluator import AlertEvaluator
from .statistics import StatisticsEngine, format_report
from .repository import (
    ConditionRepository,
    InMemoryConditionRepository,
    JSONConditionRepository,
    SQLiteConditionRepository,
)
from .notifications import (
    NotificationHub,
    NotificationChannel,
    LogNotificationChannel,
    ConsoleNotificationChannel,
    WebhookNotificationChannel,
    DiscordNotificationChannel,
    SlackNotificationChannel,
    EmailNotificationChannel,
    CallbackNotificationChannel,
)
from .config import AnalysisConfig, NotificationConfig, SystemConfig, load_config
from .alert_system import PriceAlertSystem, create_system

__all__ = [
    # Errors
    "PriceAlertError",
    "InvalidParameterError",
    "AlertLimitError",
    "StoreUnavailableError",
    "DataUnavailableError",
    # Models
    "Direction",
    "ConditionState",
    "AlertCondition",
    "Sample",
    "SampleWindow",
    "PriceChange",
    "Trend",
    "Volatility",
    "VolatilityLevel",
    "AnalysisReport",
    "TriggerEvent",
    # Samples
    "SampleStore",
    "InMemorySampleStore",
    "SQLiteSampleStore",
    # Alerts
    "AlertRegistry",
    "AlertEvaluator",
    # Analysis
    "StatisticsEngine",
    "format_report",
    # Repository
    "ConditionRepository",
    "InMemoryConditionRepository",
    "JSONConditionRepository",
    "SQLiteConditionRepository",
    # Notifications
    "NotificationHub",
    "NotificationChannel",
    "LogNotificationChannel",
    "ConsoleNotificationChannel",
    "WebhookNotificationChannel",
    "DiscordNotificationChannel",
    "SlackNotificationChannel",
    "EmailNotificationChannel",
    "CallbackNotificationChannel",
    # Config
    "AnalysisConfig",
    "NotificationConfig",
    "SystemConfig",
    "load_config",
    # Main System
    "PriceAlertSystem",
    "create_system",
]
