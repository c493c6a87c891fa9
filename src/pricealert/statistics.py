"""
Price Alert Engine - Statistics Engine

Rolling statistics over the retained sample history of a symbol:
- Moving average
- Percent change against the sample closest to a look-back time
- Trend classification from consecutive price moves
- Volatility (population standard deviation and coefficient of variation)
- Composed analysis report

Insufficient history yields None (or Trend.INSUFFICIENT_DATA); it is an
expected state during warm-up, not an error.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

import numpy as np

from .errors import InvalidParameterError, StoreUnavailableError
from .models import (
    AnalysisReport,
    PriceChange,
    SampleWindow,
    Trend,
    Volatility,
    VolatilityLevel,
    normalize_symbol,
)
from .samples import SampleStore


logger = logging.getLogger(__name__)

# Samples scanned when looking for a percent-change reference point
CHANGE_LOOKBACK_SAMPLES = 1000

BULLISH_RATIO = 0.6
BEARISH_RATIO = 0.4


def volatility_level(coefficient: float) -> VolatilityLevel:
    """Bucket a coefficient of variation (percent)."""
    if coefficient < 5:
        return VolatilityLevel.LOW
    if coefficient < 15:
        return VolatilityLevel.MODERATE
    if coefficient < 30:
        return VolatilityLevel.HIGH
    return VolatilityLevel.EXTREME


def _require_periods(periods: int, minimum: int = 1) -> None:
    if isinstance(periods, bool) or not isinstance(periods, int) or periods < minimum:
        raise InvalidParameterError(f"Periods must be an integer >= {minimum}, got {periods!r}")


class StatisticsEngine:
    """
    Stateless statistics over a SampleStore.

    Every call reads a fresh window from the store, so results always
    reflect one consistent snapshot of the history.
    """

    def __init__(
        self,
        store: SampleStore,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the engine.

        Args:
            store: Source of price history
            clock: Reference "now" for look-back windows
        """
        self.store = store
        self._clock = clock

    def window(self, symbol: str, size: int) -> SampleWindow:
        """Most recent ``size`` samples for a symbol."""
        symbol = normalize_symbol(symbol)
        return SampleWindow(symbol, tuple(self.store.recent(symbol, size)))

    def moving_average(self, symbol: str, periods: int = 20) -> Optional[float]:
        """
        Arithmetic mean of the last ``periods`` prices.

        Returns:
            Mean price, or None with fewer than ``periods`` samples
        """
        _require_periods(periods)
        window = self.window(symbol, periods)
        if len(window) < periods:
            logger.debug(f"Moving average unavailable for {symbol}: {len(window)}/{periods} samples")
            return None
        return float(np.mean(window.prices))

    def percent_change(self, symbol: str, hours: float = 24) -> Optional[PriceChange]:
        """
        Change from the sample closest to ``now - hours`` to the latest sample.

        Equidistant candidates resolve to the earlier sample.

        Returns:
            PriceChange, or None with fewer than 2 samples
        """
        if isinstance(hours, bool) or not isinstance(hours, (int, float)) or hours < 0:
            raise InvalidParameterError(f"Hours must be a non-negative number, got {hours!r}")

        window = self.window(symbol, CHANGE_LOOKBACK_SAMPLES)
        if len(window) < 2:
            logger.debug(f"Price change unavailable for {symbol}: {len(window)} samples")
            return None

        target = self._clock() - timedelta(hours=hours)
        distances = np.array(
            [abs((s.timestamp - target).total_seconds()) for s in window.samples]
        )
        # argmin returns the first minimum, i.e. the earlier sample on ties
        reference = window.samples[int(np.argmin(distances))]
        current = window.latest

        if reference.price == 0:
            logger.debug(f"Price change undefined for {symbol}: reference price is zero")
            return None

        delta = current.price - reference.price
        return PriceChange(
            old_price=reference.price,
            new_price=current.price,
            delta=delta,
            percent=delta / reference.price * 100,
            window_label=f"{hours:g}h",
        )

    def trend(self, symbol: str, periods: int = 10) -> Trend:
        """
        Classify the direction of recent price moves.

        Consecutive pairs that rise count up, those that fall count down,
        equal pairs count as neither. The up ratio is taken over the
        transitions in the window (periods - 1 once the window is full).
        """
        _require_periods(periods)
        window = self.window(symbol, periods)
        if len(window) < 3:
            return Trend.INSUFFICIENT_DATA

        moves = np.diff(np.asarray(window.prices, dtype=float))
        up_ratio = np.count_nonzero(moves > 0) / len(moves)

        if up_ratio > BULLISH_RATIO:
            return Trend.BULLISH
        if up_ratio < BEARISH_RATIO:
            return Trend.BEARISH
        return Trend.SIDEWAYS

    def volatility(self, symbol: str, periods: int = 20) -> Optional[Volatility]:
        """
        Population standard deviation and coefficient of variation.

        Returns:
            Volatility, or None with fewer than 2 samples
        """
        _require_periods(periods)
        window = self.window(symbol, periods)
        if len(window) < 2:
            logger.debug(f"Volatility unavailable for {symbol}: {len(window)} samples")
            return None

        prices = np.asarray(window.prices, dtype=float)
        mean = float(np.mean(prices))
        stddev = float(np.std(prices))
        coefficient = stddev / mean * 100 if mean else 0.0

        return Volatility(
            stddev=stddev,
            coefficient_of_variation=coefficient,
            level=volatility_level(coefficient),
        )

    def report(
        self,
        symbol: str,
        moving_average_periods: int = 20,
        trend_periods: int = 10,
        volatility_periods: int = 20,
        short_change_hours: float = 24,
        long_change_hours: float = 168,
    ) -> Optional[AnalysisReport]:
        """
        Compose every statistic for a symbol.

        Each statistic is computed on its own; a store failure in one
        leaves that field empty without failing the others.

        Returns:
            AnalysisReport, or None when the symbol has no history at all

        Raises:
            StoreUnavailableError: the store failed while probing for history
        """
        symbol = normalize_symbol(symbol)
        latest = self.store.recent(symbol, 1)
        if not latest:
            logger.debug(f"No price history for {symbol}")
            return None

        report = AnalysisReport(
            symbol=symbol,
            current_price=latest[-1].price,
            generated_at=self._clock(),
        )

        def attempt(name, compute, default=None):
            try:
                return compute()
            except StoreUnavailableError as e:
                logger.error(f"Could not compute {name} for {symbol}: {e}")
                return default

        report.moving_average = attempt(
            "moving average", lambda: self.moving_average(symbol, moving_average_periods)
        )
        report.change_24h = attempt(
            "short-window change", lambda: self.percent_change(symbol, short_change_hours)
        )
        report.change_7d = attempt(
            "long-window change", lambda: self.percent_change(symbol, long_change_hours)
        )
        report.trend = attempt(
            "trend", lambda: self.trend(symbol, trend_periods), Trend.INSUFFICIENT_DATA
        )
        report.volatility = attempt(
            "volatility", lambda: self.volatility(symbol, volatility_periods)
        )
        return report


TREND_LABELS = {
    Trend.BULLISH: "Bullish",
    Trend.BEARISH: "Bearish",
    Trend.SIDEWAYS: "Sideways",
    Trend.INSUFFICIENT_DATA: "Insufficient data",
}


def _format_change(label: str, change: PriceChange) -> str:
    arrow = "+" if change.percent >= 0 else ""
    return f"{label} Change: {arrow}{change.percent:.2f}% (${change.delta:,.2f})"


def format_report(report: Optional[AnalysisReport], title: Optional[str] = None) -> str:
    """Render a report as plain text."""
    if report is None:
        return "Analysis not available"

    name = title or report.symbol.upper()
    lines = [
        f"Analysis Report for {name}",
        "=" * 40,
    ]
    if report.current_price is not None:
        lines.append(f"Current Price: ${report.current_price:,.2f}")
    if report.moving_average is not None:
        lines.append(f"Moving Average: ${report.moving_average:,.2f}")
    if report.change_24h is not None:
        lines.append(_format_change(report.change_24h.window_label, report.change_24h))
    if report.change_7d is not None:
        lines.append(_format_change(report.change_7d.window_label, report.change_7d))
    lines.append(f"Trend: {TREND_LABELS[report.trend]}")
    if report.volatility is not None:
        vol = report.volatility
        lines.append(
            f"Volatility: {vol.level.value} ({vol.coefficient_of_variation:.2f}%)"
        )
    lines.append(f"Generated: {report.generated_at.strftime('%Y-%m-%d %H:%M:%S')}")
    return "\n".join(lines)
