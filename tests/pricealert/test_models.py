"""
Unit tests for Price Alert Engine Models

Test cases:
- MD-01: AlertCondition validation at construction
- MD-02: Inclusive crossing rule
- MD-03: One-shot trigger transition
- MD-04: Snapshot serialization/deserialization
- MD-05: Sample windows
"""

import math
import pytest
from datetime import datetime

from src.pricealert.errors import InvalidParameterError
from src.pricealert.models import (
    AlertCondition,
    AnalysisReport,
    ConditionState,
    Direction,
    PriceChange,
    Sample,
    SampleWindow,
    Trend,
    TriggerEvent,
    normalize_symbol,
    parse_direction,
    validate_price,
    validate_threshold,
)


def make_condition(**overrides) -> AlertCondition:
    values = dict(
        id="cond-1",
        symbol="bitcoin",
        threshold=100.0,
        direction=Direction.ABOVE,
        created_at=datetime(2024, 3, 1, 9, 0),
    )
    values.update(overrides)
    return AlertCondition(**values)


class TestValidation:
    """MD-01: Validation helpers and construction checks."""

    def test_threshold_accepts_positive_numbers(self):
        assert validate_threshold(100) == 100.0
        assert validate_threshold(0.0001) == 0.0001

    @pytest.mark.parametrize("bad", [0, -5, math.inf, -math.inf, math.nan, "100", None, True])
    def test_threshold_rejects_invalid(self, bad):
        with pytest.raises(InvalidParameterError):
            validate_threshold(bad)

    def test_invalid_parameter_is_value_error(self):
        with pytest.raises(ValueError):
            validate_threshold(-1)

    def test_direction_parsing(self):
        assert parse_direction("above") == Direction.ABOVE
        assert parse_direction(" BELOW ") == Direction.BELOW
        assert parse_direction(Direction.ABOVE) == Direction.ABOVE

    @pytest.mark.parametrize("bad", ["sideways", "", None, 1])
    def test_direction_rejects_invalid(self, bad):
        with pytest.raises(InvalidParameterError):
            parse_direction(bad)

    def test_symbol_normalized(self):
        assert normalize_symbol("  Bitcoin ") == "bitcoin"
        with pytest.raises(InvalidParameterError):
            normalize_symbol("   ")

    def test_price_validation(self):
        assert validate_price(5) == 5.0
        with pytest.raises(InvalidParameterError):
            validate_price(math.nan)

    def test_condition_rejects_bad_threshold(self):
        with pytest.raises(InvalidParameterError):
            make_condition(threshold=-1)

    def test_condition_accepts_direction_string(self):
        condition = make_condition(direction="below")
        assert condition.direction == Direction.BELOW

    def test_triggered_requires_timestamp(self):
        with pytest.raises(InvalidParameterError):
            make_condition(state=ConditionState.TRIGGERED)

    def test_active_rejects_timestamp(self):
        with pytest.raises(InvalidParameterError):
            make_condition(triggered_at=datetime(2024, 3, 1, 10, 0))


class TestCrossingRule:
    """MD-02: Inclusive crossing rule."""

    def test_above(self):
        condition = make_condition(direction=Direction.ABOVE)
        assert condition.matches(100.0)
        assert condition.matches(100.01)
        assert not condition.matches(99.99)

    def test_below(self):
        condition = make_condition(direction=Direction.BELOW)
        assert condition.matches(100.0)
        assert condition.matches(50.0)
        assert not condition.matches(100.01)


class TestTrigger:
    """MD-03: One-shot trigger transition."""

    def test_trigger_sets_state_and_time(self):
        condition = make_condition()
        at = datetime(2024, 3, 2, 12, 0)

        assert condition.trigger(at) is True
        assert condition.state == ConditionState.TRIGGERED
        assert condition.triggered_at == at
        assert not condition.is_active

    def test_second_trigger_is_noop(self):
        condition = make_condition()
        first = datetime(2024, 3, 2, 12, 0)
        condition.trigger(first)

        assert condition.trigger(datetime(2024, 3, 3, 12, 0)) is False
        assert condition.triggered_at == first

    def test_describe(self):
        condition = make_condition(symbol="ethereum", threshold=3000)
        message = condition.describe(3050.5)

        assert "ETHEREUM" in message
        assert "$3,050.50" in message
        assert "above" in message
        assert "$3,000.00" in message


class TestSerialization:
    """MD-04: Snapshot serialization/deserialization."""

    def test_to_dict_uses_snapshot_field_names(self):
        data = make_condition().to_dict()

        assert set(data) == {
            "id", "symbol", "threshold", "direction", "state", "createdAt", "triggeredAt",
        }
        assert data["direction"] == "above"
        assert data["state"] == "active"
        assert data["triggeredAt"] is None

    def test_round_trip_triggered(self):
        condition = make_condition(direction=Direction.BELOW)
        condition.trigger(datetime(2024, 3, 2, 12, 30, 15))

        restored = AlertCondition.from_dict(condition.to_dict())

        assert restored == condition

    def test_from_dict_rejects_unknown_state(self):
        data = make_condition().to_dict()
        data["state"] = "paused"

        with pytest.raises(InvalidParameterError):
            AlertCondition.from_dict(data)

    def test_from_dict_normalizes_symbol(self):
        data = make_condition().to_dict()
        data["symbol"] = " BTC "

        restored = AlertCondition.from_dict(data)

        assert restored.symbol == "btc"
        assert restored.matches(150.0)

    def test_from_dict_rejects_empty_symbol(self):
        data = make_condition().to_dict()
        data["symbol"] = ""

        with pytest.raises(InvalidParameterError):
            AlertCondition.from_dict(data)

    def test_from_dict_rejects_inconsistent_snapshot(self):
        data = make_condition().to_dict()
        data["state"] = "triggered"

        with pytest.raises(InvalidParameterError):
            AlertCondition.from_dict(data)

    def test_trigger_event_to_dict(self):
        condition = make_condition()
        at = datetime(2024, 3, 2, 12, 0)
        condition.trigger(at)
        event = TriggerEvent(condition=condition, price_at_trigger=101.0, timestamp=at)

        data = event.to_dict()

        assert data["price_at_trigger"] == 101.0
        assert data["condition"]["state"] == "triggered"
        assert "BITCOIN" in event.message

    def test_report_to_dict_keeps_missing_fields_none(self):
        report = AnalysisReport(
            symbol="bitcoin",
            current_price=100.0,
            change_24h=PriceChange(100.0, 110.0, 10.0, 10.0, "24h"),
        )
        data = report.to_dict()

        assert data["moving_average"] is None
        assert data["volatility"] is None
        assert data["trend"] == Trend.INSUFFICIENT_DATA.value
        assert data["change_24h"]["percent"] == 10.0


class TestSampleWindow:
    """MD-05: Sample windows."""

    def test_empty_window(self):
        window = SampleWindow("bitcoin")
        assert len(window) == 0
        assert window.latest is None
        assert window.prices == []

    def test_prices_and_tail(self):
        samples = tuple(
            Sample(price=float(p), timestamp=datetime(2024, 1, 1, p)) for p in range(1, 6)
        )
        window = SampleWindow("bitcoin", samples)

        assert window.prices == [1.0, 2.0, 3.0, 4.0, 5.0]
        assert window.latest.price == 5.0
        assert window.tail(2).prices == [4.0, 5.0]
        assert len(window.tail(0)) == 0

    def test_sample_is_immutable(self):
        sample = Sample(price=1.0, timestamp=datetime(2024, 1, 1))
        with pytest.raises(AttributeError):
            sample.price = 2.0
