"""Rolling statistics, forecast and spike rule over daily totals."""

from __future__ import annotations

import statistics
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence, Tuple

WINDOW_DAYS = 7
SPIKE_SIGMAS = 2.0


@dataclass(frozen=True)
class RollingStats:
    date: date
    total: int
    moving_average_7: float
    trend: float
    volatility: float


@dataclass(frozen=True)
class Forecast:
    predicted_next: int
    confidence: str
    based_on: date
    moving_average_7: float
    trend: float
    volatility: float

    def to_dict(self) -> dict:
        return {
            "predicted_next": self.predicted_next,
            "confidence": self.confidence,
            "based_on": self.based_on.isoformat(),
            "moving_average_7": self.moving_average_7,
            "trend": self.trend,
            "volatility": self.volatility,
        }


@dataclass(frozen=True)
class Spike:
    date: date
    value: int
    threshold: float
    reason: str


def rolling_stats(daily_totals: Sequence[Tuple[date, int]]) -> Optional[RollingStats]:
    """
    Statistics for the latest day over the 7 most recent daily totals.

    Args:
        daily_totals: (date, total) pairs in ascending date order

    Returns:
        None when fewer than 7 days are present
    """
    if len(daily_totals) < WINDOW_DAYS:
        return None

    window = [total for _, total in daily_totals[-WINDOW_DAYS:]]
    current_date, current_total = daily_totals[-1]

    average = statistics.fmean(window)
    trend = (current_total - average) / max(average, 1)
    volatility = statistics.pstdev(window)

    return RollingStats(
        date=current_date,
        total=current_total,
        moving_average_7=average,
        trend=trend,
        volatility=volatility,
    )


def confidence_label(moving_average_7: float, volatility: float) -> str:
    """Bucket volatility relative to the average into high/medium/low."""
    if volatility < 0.3 * moving_average_7:
        return "high"
    if volatility < 0.6 * moving_average_7:
        return "medium"
    return "low"


def forecast(
    based_on: date, moving_average_7: float, trend: float, volatility: float
) -> Forecast:
    """Next-24h estimate: the average pushed along by today's trend."""
    predicted = round(max(moving_average_7 * (1 + trend), 0))
    return Forecast(
        predicted_next=int(predicted),
        confidence=confidence_label(moving_average_7, volatility),
        based_on=based_on,
        moving_average_7=moving_average_7,
        trend=trend,
        volatility=volatility,
    )


def detect_spike(stats: RollingStats) -> Optional[Spike]:
    """Flag the day when its total exceeds the two-sigma band."""
    threshold = stats.moving_average_7 + SPIKE_SIGMAS * stats.volatility
    if stats.total <= threshold:
        return None
    return Spike(
        date=stats.date,
        value=stats.total,
        threshold=threshold,
        reason=(
            f"Daily total {stats.total} above 7-day average "
            f"{stats.moving_average_7:.1f} + 2 x stddev {stats.volatility:.1f}"
        ),
    )
