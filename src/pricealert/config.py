"""
Price Alert Engine - Configuration

Dataclass settings for the alert system, loadable from a JSON file whose
values are deep-merged over the defaults.
"""

import json
import logging
import os
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from .symbols import DEFAULT_SYMBOLS, is_supported


logger = logging.getLogger(__name__)


@dataclass
class AnalysisConfig:
    """Window sizes used by the analysis report."""
    moving_average_periods: int = 20
    trend_periods: int = 10
    volatility_periods: int = 20
    short_change_hours: float = 24
    long_change_hours: float = 168  # 7 days


@dataclass
class NotificationConfig:
    """Which notification channels to enable."""
    console: bool = True
    log: bool = True

    webhook_url: Optional[str] = None
    discord_webhook_url: Optional[str] = None
    slack_webhook_url: Optional[str] = None
    webhook_timeout: float = 10.0

    email_enabled: bool = False
    email_user: Optional[str] = None
    email_password: Optional[str] = None
    email_recipient: Optional[str] = None
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None, **overrides) -> "NotificationConfig":
        """Build from WEBHOOK_URL, DISCORD_WEBHOOK_URL, SLACK_WEBHOOK_URL and EMAIL_* variables."""
        env = os.environ if environ is None else environ
        config = cls(
            webhook_url=env.get("WEBHOOK_URL") or None,
            discord_webhook_url=env.get("DISCORD_WEBHOOK_URL") or None,
            slack_webhook_url=env.get("SLACK_WEBHOOK_URL") or None,
            email_user=env.get("EMAIL_USER") or None,
            email_password=env.get("EMAIL_PASS") or None,
            email_recipient=env.get("ALERT_EMAIL") or None,
        )
        config.email_enabled = bool(config.email_user and config.email_password)
        for key, value in overrides.items():
            setattr(config, key, value)
        return config


@dataclass
class SystemConfig:
    """Configuration for the price alert system."""
    # Storage
    db_path: str = "data/alerts.db"
    use_memory_db: bool = False  # In-memory stores for testing
    alerts_path: Optional[str] = None  # JSON snapshot instead of SQLite

    # Retention and limits
    max_samples: int = 1000
    max_active_alerts: Optional[int] = 50

    # Monitoring
    symbols: List[str] = field(default_factory=lambda: list(DEFAULT_SYMBOLS))

    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)

    def validate(self) -> List[str]:
        """
        Check the settings.

        Returns:
            Human-readable problems (empty when valid)
        """
        errors = []
        if self.max_active_alerts is not None and self.max_active_alerts < 1:
            errors.append("Max active alerts must be at least 1")
        if self.max_samples < 2:
            errors.append("Max samples must be at least 2")
        for name in ("moving_average_periods", "trend_periods", "volatility_periods"):
            if getattr(self.analysis, name) < 1:
                errors.append(f"Analysis {name} must be at least 1")
        if self.analysis.moving_average_periods > self.max_samples:
            errors.append("Moving average periods cannot exceed max samples")
        if self.notifications.email_enabled:
            if not self.notifications.email_user:
                errors.append("Email user is required when email notifications are enabled")
            if not self.notifications.email_password:
                errors.append("Email password is required when email notifications are enabled")
        for symbol in self.symbols:
            if not is_supported(symbol):
                errors.append(f"Unsupported symbol: {symbol}")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SystemConfig":
        """Create from a (possibly partial) dictionary; unknown keys are ignored."""
        merged = deep_merge(cls().to_dict(), data)
        analysis = _build(AnalysisConfig, merged.pop("analysis"))
        notifications = _build(NotificationConfig, merged.pop("notifications"))
        config = _build(cls, merged)
        config.analysis = analysis
        config.notifications = notifications
        return config


def _build(cls, data: Dict[str, Any]):
    names = {f.name for f in fields(cls)}
    unknown = set(data) - names
    if unknown:
        logger.warning(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**{k: v for k, v in data.items() if k in names})


def deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``source`` over ``target`` without mutating either."""
    result = dict(target)
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(path: str = "config.json") -> SystemConfig:
    """
    Load configuration from a JSON file.

    A missing file yields the defaults.
    """
    config_path = Path(path)
    if not config_path.exists():
        logger.info(f"No config file at {config_path}, using defaults")
        return SystemConfig()
    with config_path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    return SystemConfig.from_dict(data)


def save_config(config: SystemConfig, path: str = "config.json") -> None:
    config_path = Path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, indent=2)
