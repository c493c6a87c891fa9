"""
Unit tests for the Price Alert System Orchestrator

Tests for the main PriceAlertSystem class that coordinates
all components of the alert engine.
"""

import threading
import time
import pytest
from datetime import datetime, timedelta
import pandas as pd
import numpy as np

from src.pricealert.alert_system import PriceAlertSystem, create_system
from src.pricealert.config import AnalysisConfig, NotificationConfig, SystemConfig
from src.pricealert.errors import AlertLimitError, DataUnavailableError, InvalidParameterError
from src.pricealert.models import ConditionState, Direction, Trend
from src.pricealert.notifications import LogNotificationChannel
from src.pricealert.repository import InMemoryConditionRepository
from src.pricealert.samples import InMemorySampleStore


NOW = datetime(2024, 6, 8, 12, 0)


class SlowRepository(InMemoryConditionRepository):
    """Delays the save after ``slow_next`` is set, signalling ``entered`` first."""

    def __init__(self):
        super().__init__()
        self.slow_next = False
        self.entered = threading.Event()

    def save(self, records):
        if self.slow_next:
            self.slow_next = False
            self.entered.set()
            time.sleep(0.3)
        super().save(records)


def quiet_config(**kwargs):
    return SystemConfig(
        use_memory_db=True,
        notifications=NotificationConfig(console=False, log=False),
        **kwargs,
    )


@pytest.fixture
def system():
    """Create system with in-memory stores and no default channels."""
    return PriceAlertSystem(quiet_config(), clock=lambda: NOW)


class TestPriceAlertSystemSetup:
    """Tests for PriceAlertSystem initialization."""

    def test_default_components(self, system):
        assert system.registry is not None
        assert system.evaluator is not None
        assert system.statistics is not None
        assert isinstance(system.sample_store, InMemorySampleStore)
        assert isinstance(system.repository, InMemoryConditionRepository)

    def test_notification_channels_setup(self):
        config = SystemConfig(use_memory_db=True)
        system = PriceAlertSystem(config)

        assert system.notification_hub.channel_names == ["log", "console"]

    def test_optional_channels_from_config(self):
        config = SystemConfig(
            use_memory_db=True,
            notifications=NotificationConfig(
                console=False,
                discord_webhook_url="https://discord.example/hook",
                slack_webhook_url="https://slack.example/hook",
                email_enabled=True,
                email_user="me@example.com",
                email_password="secret",
            ),
        )
        system = PriceAlertSystem(config)

        assert system.notification_hub.channel_names == ["log", "discord", "slack", "email"]

    def test_sqlite_by_default(self, tmp_path):
        config = SystemConfig(
            db_path=str(tmp_path / "alerts.db"),
            notifications=NotificationConfig(console=False, log=False),
        )
        system = PriceAlertSystem(config)

        system.add_alert("bitcoin", 100, "above")

        assert len(PriceAlertSystem(config).all_alerts()) == 1


class TestAlertManagement:
    """Tests for adding and removing alerts."""

    def test_add_alert_persists(self, system):
        condition_id = system.add_alert("bitcoin", 70000, "above")

        assert system.get_alert(condition_id).state == ConditionState.ACTIVE
        assert system.repository.load()[0]["id"] == condition_id

    def test_remove_alert(self, system):
        condition_id = system.add_alert("bitcoin", 70000, "above")

        assert system.remove_alert(condition_id) is True
        assert system.remove_alert(condition_id) is False
        assert system.repository.load() == []

    def test_active_alerts_by_symbol(self, system):
        system.add_alert("bitcoin", 70000, "above")
        eth = system.add_alert("ethereum", 3000, "below")

        assert [c.id for c in system.active_alerts("Ethereum")] == [eth]
        assert len(system.active_alerts()) == 2

    def test_limit_from_config(self):
        system = PriceAlertSystem(quiet_config(max_active_alerts=1))
        system.add_alert("bitcoin", 1, "above")

        with pytest.raises(AlertLimitError):
            system.add_alert("bitcoin", 2, "above")

    def test_invalid_alert_is_not_persisted(self, system):
        with pytest.raises(InvalidParameterError):
            system.add_alert("bitcoin", -5, "above")
        assert system.repository.load() == []


class TestRecordPrice:
    """Tests for the sample-and-evaluate path."""

    def test_trigger_dispatches_and_persists(self, system):
        received = []
        system.add_callback_handler("test", lambda event, message: received.append(message))
        condition_id = system.add_alert("bitcoin", 70000, "above")

        assert system.record_price("bitcoin", 69999.99) == []
        triggered = system.record_price("bitcoin", 71250.0)

        assert [c.id for c in triggered] == [condition_id]
        assert len(received) == 1
        assert "BITCOIN" in received[0]
        saved = system.repository.load()[0]
        assert saved["state"] == "triggered"
        assert saved["triggeredAt"] == NOW.isoformat()

    def test_price_is_recorded(self, system):
        system.record_price("Bitcoin", 100.0)

        samples = system.sample_store.recent("bitcoin", 10)
        assert [s.price for s in samples] == [100.0]
        assert samples[0].timestamp == NOW

    def test_invalid_price_is_rejected(self, system):
        with pytest.raises(InvalidParameterError):
            system.record_price("bitcoin", float("nan"))
        assert system.sample_store.recent("bitcoin", 10) == []

    def test_callback_direction_filter(self, system):
        received = []
        system.add_callback_handler(
            "below_only",
            lambda event, message: received.append(event),
            directions=[Direction.BELOW],
        )
        system.add_alert("bitcoin", 100, "above")
        system.add_alert("bitcoin", 100, "below")

        system.record_price("bitcoin", 100)

        assert [e.condition.direction for e in received] == [Direction.BELOW]
        assert system.get_notification_stats()["by_direction"] == {"above": 1, "below": 1}

    def test_process_prices(self, system):
        system.add_alert("bitcoin", 50000, "below")
        system.add_alert("ethereum", 4000, "above")

        results = system.process_prices({"bitcoin": 49000.0, "ethereum": 3500.0})

        assert len(results["bitcoin"]) == 1
        assert results["ethereum"] == []

    def test_remove_notification_channel(self, system):
        system.add_notification_channel(LogNotificationChannel(name="audit"))

        assert system.remove_notification_channel("audit") is True
        assert "audit" not in system.notification_hub.channel_names


class TestPersistenceAcrossRestarts:
    """Alerts survive a restart through the JSON snapshot."""

    def test_json_snapshot(self, tmp_path):
        config = SystemConfig(
            use_memory_db=True,
            alerts_path=str(tmp_path / "alerts.json"),
            notifications=NotificationConfig(console=False, log=False),
        )
        first = PriceAlertSystem(config, clock=lambda: NOW)
        keep = first.add_alert("bitcoin", 100, "above")
        fired = first.add_alert("ethereum", 10, "below")
        first.record_price("ethereum", 5)

        second = PriceAlertSystem(config)

        assert second.get_alert(keep).is_active
        assert second.get_alert(fired).state == ConditionState.TRIGGERED
        assert second.get_alert(fired).triggered_at == NOW
        assert second.record_price("ethereum", 1) == []

    def test_injected_repository(self):
        repository = InMemoryConditionRepository()
        PriceAlertSystem(quiet_config(), repository=repository).add_alert("solana", 150, "above")

        restored = PriceAlertSystem(quiet_config(), repository=repository)

        assert [c.symbol for c in restored.all_alerts()] == ["solana"]

    def test_concurrent_saves_keep_latest_snapshot(self):
        repository = SlowRepository()
        system = PriceAlertSystem(quiet_config(), repository=repository, clock=lambda: NOW)
        btc = system.add_alert("bitcoin", 100, "above")
        eth = system.add_alert("ethereum", 100, "above")

        repository.slow_next = True
        worker = threading.Thread(target=system.record_price, args=("bitcoin", 150))
        worker.start()
        assert repository.entered.wait(timeout=5)

        system.record_price("ethereum", 150)
        worker.join()

        persisted = {r["id"]: r["state"] for r in repository.load()}
        assert persisted[btc] == "triggered"
        assert persisted[eth] == "triggered"


class TestBackfill:
    """Tests for loading historical prices from a DataFrame."""

    def test_datetime_index(self, system):
        dates = pd.date_range(end=NOW, periods=30, freq=pd.Timedelta(hours=1))
        df = pd.DataFrame({"Close": np.linspace(100, 129, 30)}, index=dates)

        assert system.backfill("bitcoin", df) == 30

        samples = system.sample_store.recent("bitcoin", 100)
        assert samples[0].price == pytest.approx(100.0)
        assert samples[-1].timestamp == NOW

    def test_timestamp_column_is_sorted(self, system):
        df = pd.DataFrame({
            "timestamp": [NOW, NOW - timedelta(hours=2), NOW - timedelta(hours=1)],
            "price": [3.0, 1.0, 2.0],
        })

        system.backfill("bitcoin", df)

        assert [s.price for s in system.sample_store.recent("bitcoin", 10)] == [1.0, 2.0, 3.0]

    def test_does_not_trigger_alerts(self, system):
        system.add_alert("bitcoin", 50, "above")
        df = pd.DataFrame({"price": [100.0]}, index=pd.DatetimeIndex([NOW]))

        system.backfill("bitcoin", df)

        assert len(system.active_alerts()) == 1

    def test_missing_columns(self, system):
        with pytest.raises(InvalidParameterError):
            system.backfill("bitcoin", pd.DataFrame({"value": [1.0]}))


class TestAnalysis:
    """Tests for on-demand analysis."""

    def test_analyze_after_backfill(self, system):
        dates = pd.date_range(end=NOW, periods=30, freq=pd.Timedelta(hours=1))
        system.backfill("bitcoin", pd.DataFrame({"price": np.arange(100.0, 130.0)}, index=dates))

        report = system.analyze("bitcoin")

        assert report.current_price == 129.0
        assert report.moving_average == pytest.approx(119.5)
        assert report.trend == Trend.BULLISH
        assert report.change_24h.old_price == 105.0

    def test_analysis_windows_from_config(self):
        system = PriceAlertSystem(
            quiet_config(analysis=AnalysisConfig(moving_average_periods=2)),
            clock=lambda: NOW,
        )
        system.record_price("bitcoin", 10.0, NOW - timedelta(hours=1))
        system.record_price("bitcoin", 20.0, NOW)

        assert system.analyze("bitcoin").moving_average == pytest.approx(15.0)

    def test_no_history(self, system):
        assert system.analyze("bitcoin") is None
        assert system.format_analysis("bitcoin") == "Analysis not available"

    def test_required_raises(self, system):
        with pytest.raises(DataUnavailableError) as exc_info:
            system.analyze("bitcoin", required=True)
        assert exc_info.value.symbol == "bitcoin"

    def test_statistics_accept_any_symbol_case(self, system):
        system.record_price("BTC", 100.0)

        assert system.statistics.report("BTC").current_price == 100.0
        assert system.analyze("Btc").symbol == "btc"

    def test_format_analysis_title(self, system):
        system.record_price("bitcoin", 100.0)

        text = system.format_analysis("bitcoin")

        assert "Analysis Report for Bitcoin (BTC)" in text
        assert "Current Price: $100.00" in text


class TestCreateSystem:
    """Tests for the create_system factory."""

    def test_factory(self, monkeypatch):
        monkeypatch.delenv("WEBHOOK_URL", raising=False)
        monkeypatch.setenv("SLACK_WEBHOOK_URL", "https://slack.example/hook")

        system = create_system(use_memory_db=True, enable_console=False, max_active_alerts=3)

        assert system.config.max_active_alerts == 3
        assert "console" not in system.notification_hub.channel_names
        assert "slack" in system.notification_hub.channel_names
