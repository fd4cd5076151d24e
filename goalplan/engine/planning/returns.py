"""Return model and time/compounding helpers used by every engine."""

from __future__ import annotations

import math

from goalplan.engine.planning.models import AssetClassStats

__all__ = [
    "MONTHS_PER_YEAR",
    "avg_positive_return",
    "years_to_months",
    "horizon_key",
    "in_last_twelve_months",
    "monthly_rate",
    "monthly_volatility",
    "corpus_at_time",
    "corpus_with_step_up",
    "interpolate",
    "round_to_thousand",
]

MONTHS_PER_YEAR = 12


def avg_positive_return(stats: AssetClassStats) -> float:
    """Average return of the positive years, as a fraction.

    Solves ``avg = p * shortfall + (1 - p) * avg_positive`` for
    ``avg_positive``.

    Args:
      stats: Statistics of the asset class (percent units).

    Returns:
      Average positive-year return as a decimal fraction.
    """

    p = stats.prob_negative_year_pct / 100.0
    avg = stats.avg_return_pct / 100.0
    shortfall = stats.expected_shortfall_pct / 100.0
    if p >= 1.0:
        return shortfall
    if p == 0.0:
        return avg
    return (avg - p * shortfall) / (1.0 - p)


def years_to_months(years: float) -> int:
    return int(round(years * MONTHS_PER_YEAR))


def horizon_key(years: float) -> str:
    """Map a horizon to the statistics bucket (``3Y``, ``5Y`` or ``10Y``)."""

    if years <= 3:
        return "3Y"
    if years <= 5:
        return "5Y"
    return "10Y"


def in_last_twelve_months(current_month: float, total_months: float) -> bool:
    return current_month >= total_months - MONTHS_PER_YEAR


def monthly_rate(annual_rate: float) -> float:
    return annual_rate / MONTHS_PER_YEAR


def monthly_volatility(annual_volatility: float) -> float:
    return annual_volatility / math.sqrt(MONTHS_PER_YEAR)


def corpus_at_time(corpus: float, contribution: float, rate: float, months: int) -> float:
    """Future value of ``corpus`` plus an ordinary annuity of ``contribution``.

    Args:
      corpus: Initial lump sum.
      contribution: Monthly contribution added at month end.
      rate: Monthly rate.
      months: Number of months.

    Returns:
      Projected corpus; growth is linear when ``rate`` is zero.
    """

    if rate == 0.0:
        return corpus + contribution * months
    growth = (1.0 + rate) ** months
    return corpus * growth + contribution * (growth - 1.0) / rate


def corpus_with_step_up(
    corpus: float,
    contribution: float,
    rate: float,
    months: int,
    step_up_pct: float,
) -> float:
    """Future value when the contribution grows by ``step_up_pct`` every 12 months."""

    step = step_up_pct / 100.0
    total = corpus * (1.0 + rate) ** months
    current = contribution
    remaining = months
    while remaining > 0:
        chunk = min(MONTHS_PER_YEAR, remaining)
        if rate == 0.0:
            year_value = current * chunk
        else:
            year_value = current * ((1.0 + rate) ** chunk - 1.0) / rate
        remaining -= chunk
        total += year_value * (1.0 + rate) ** remaining
        current *= 1.0 + step
    return total


def interpolate(x: float, x1: float, y1: float, x2: float, y2: float) -> float:
    if x2 == x1:
        return y1
    return y1 + (x - x1) * (y2 - y1) / (x2 - x1)


def round_to_thousand(value: float) -> float:
    return float(round(value / 1000.0) * 1000)
