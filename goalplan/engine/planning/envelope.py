"""Deterministic envelope engine.

The envelope projects a corpus and a monthly contribution under two
compounding rates: the stated average return (``mean``) and a pessimistic
rate built from the negative-year probability and expected shortfall
(``lower``). Confidence is interpolated piecewise from where a target sits
relative to those bounds. Inverse problems (contribution or corpus needed
for a target or a confidence level) are solved in closed form when possible
and by bisection otherwise.
"""

from __future__ import annotations

import math
from collections.abc import Mapping

from goalplan.engine.planning.allocation import weighted_metrics, weighted_stats
from goalplan.engine.planning.models import AssetClassStats, AssetClassUniverse, Bounds
from goalplan.engine.planning.returns import (
    avg_positive_return,
    corpus_at_time,
    corpus_with_step_up,
    horizon_key,
    interpolate,
    monthly_rate,
    years_to_months,
)

__all__ = [
    "DEFAULT_CONFIDENCE_THRESHOLD",
    "MAX_BISECTION_STEPS",
    "lower_annual_rate",
    "calculate_bounds",
    "calculate_portfolio_bounds",
    "calculate_confidence",
    "calculate_confidence_from_remaining",
    "required_sip",
    "min_sip_for_confidence",
    "min_corpus_for_confidence",
    "present_value_of_target",
]

DEFAULT_CONFIDENCE_THRESHOLD = 90.0
MAX_BISECTION_STEPS = 50
SIP_SEARCH_TOLERANCE = 100.0
CORPUS_SEARCH_TOLERANCE = 1000.0


def lower_annual_rate(stats: AssetClassStats) -> float:
    """Pessimistic annual rate ``p * shortfall + (1 - p) * avg_positive``."""

    p = stats.prob_negative_year_pct / 100.0
    shortfall = stats.expected_shortfall_pct / 100.0
    return p * shortfall + (1.0 - p) * avg_positive_return(stats)


def _project(corpus: float, contribution: float, rate: float, months: int, step_up_pct: float) -> float:
    if step_up_pct > 0:
        return corpus_with_step_up(corpus, contribution, rate, months, step_up_pct)
    return corpus_at_time(corpus, contribution, rate, months)


def calculate_bounds(
    corpus: float,
    contribution: float,
    stats: AssetClassStats,
    horizon_years: float,
    step_up_pct: float = 0.0,
) -> Bounds:
    """Project ``corpus`` and ``contribution`` for one set of statistics.

    Args:
      corpus: Initial lump sum.
      contribution: Monthly contribution.
      stats: Statistics (possibly synthetic, from :func:`weighted_stats`).
      horizon_years: Projection horizon.
      step_up_pct: Annual contribution step-up in percent.

    Returns:
      :class:`Bounds` with ``lower`` clamped to ``mean``.
    """

    months = years_to_months(horizon_years)
    mean_rate = monthly_rate(stats.avg_return_pct / 100.0)
    lower_rate = monthly_rate(lower_annual_rate(stats))
    mean = _project(corpus, contribution, mean_rate, months, step_up_pct)
    lower = _project(corpus, contribution, lower_rate, months, step_up_pct)
    return Bounds(lower=min(lower, mean), mean=mean)


def calculate_portfolio_bounds(
    corpus: float,
    contribution: float,
    allocation: Mapping[str, float],
    universe: AssetClassUniverse,
    horizon_years: float,
    step_up_pct: float = 0.0,
) -> Bounds:
    """Bounds for a multi-class allocation using weighted synthetic statistics."""

    stats = weighted_stats(allocation, universe, horizon_key(horizon_years))
    return calculate_bounds(corpus, contribution, stats, horizon_years, step_up_pct)


def calculate_confidence(target: float, bounds: Bounds) -> float:
    """Piecewise-linear confidence that the projection reaches ``target``.

    100 at or below ``lower``, 100 to 90 between ``lower`` and ``mean``, 90 to
    0 between ``mean`` and ``1.5 * mean``, 0 beyond. The result never increases
    with ``target``, so the bisections below search a monotone predicate.
    """

    if target <= bounds.lower or math.isclose(target, bounds.lower, rel_tol=1e-12):
        return 100.0
    if target <= bounds.mean:
        return interpolate(target, bounds.lower, 100.0, bounds.mean, 90.0)
    ceiling = 1.5 * bounds.mean
    if target <= ceiling:
        return interpolate(target, bounds.mean, 90.0, ceiling, 0.0)
    return 0.0


def calculate_confidence_from_remaining(remaining_lower: float, target: float) -> float:
    """Confidence from the net worth left after withdrawing ``target``.

    A non-negative remainder scores 90 to 100 depending on the buffer (100 at
    10% of target or more); a shortfall up to 10% of target scores 50 down to
    0; anything worse scores 0.
    """

    if target <= 0:
        return 100.0 if remaining_lower >= 0 else 0.0
    if remaining_lower >= 0:
        buffer_pct = remaining_lower / target * 100.0
        if buffer_pct >= 10.0:
            return 100.0
        return 90.0 + buffer_pct
    if remaining_lower >= -0.1 * target:
        shortfall_pct = abs(remaining_lower / target) * 100.0
        return 50.0 - shortfall_pct * 5.0
    return 0.0


def required_sip(
    target: float,
    corpus: float,
    stats: AssetClassStats,
    horizon_years: float,
    step_up_pct: float = 0.0,
) -> float:
    """Monthly contribution needed for the lower bound to reach ``target``.

    Without step-up the shortfall is divided by the annuity factor; with
    step-up the contribution is found by bisection.
    """

    months = years_to_months(horizon_years)
    rate = monthly_rate(lower_annual_rate(stats))

    if step_up_pct > 0:
        if corpus_with_step_up(corpus, 0.0, rate, months, step_up_pct) >= target:
            return 0.0
        lo, hi = 0.0, max(target, 0.0)
        for _ in range(MAX_BISECTION_STEPS):
            if hi - lo <= 0.01:
                break
            mid = (lo + hi) / 2.0
            if corpus_with_step_up(corpus, mid, rate, months, step_up_pct) >= target:
                hi = mid
            else:
                lo = mid
        return (lo + hi) / 2.0

    shortfall = target - corpus * (1.0 + rate) ** months
    if shortfall <= 0:
        return 0.0
    if months <= 0:
        return shortfall
    if rate == 0.0:
        return shortfall / months
    annuity = ((1.0 + rate) ** months - 1.0) / rate
    return shortfall / annuity


def min_sip_for_confidence(
    target: float,
    corpus: float,
    stats: AssetClassStats,
    horizon_years: float,
    step_up_pct: float = 0.0,
    threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
) -> float:
    """Smallest contribution, rounded up to 1000, reaching ``threshold`` confidence."""

    def _confidence(contribution: float) -> float:
        bounds = calculate_bounds(corpus, contribution, stats, horizon_years, step_up_pct)
        return calculate_confidence(target, bounds)

    if _confidence(0.0) >= threshold:
        return 0.0
    lo, hi = 0.0, max(target, 1.0)
    for _ in range(MAX_BISECTION_STEPS):
        if hi - lo <= SIP_SEARCH_TOLERANCE:
            break
        mid = (lo + hi) / 2.0
        if _confidence(mid) >= threshold:
            hi = mid
        else:
            lo = mid
    return math.ceil(hi / 1000.0) * 1000.0


def min_corpus_for_confidence(
    target: float,
    contribution: float,
    stats: AssetClassStats,
    horizon_years: float,
    step_up_pct: float = 0.0,
    threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    reference_corpus: float = 0.0,
) -> float:
    """Smallest corpus reaching ``threshold`` confidence with ``contribution``."""

    def _confidence(corpus: float) -> float:
        bounds = calculate_bounds(corpus, contribution, stats, horizon_years, step_up_pct)
        return calculate_confidence(target, bounds)

    if _confidence(0.0) >= threshold:
        return 0.0
    lo, hi = 0.0, max(2.0 * reference_corpus, target, 1.0)
    # Negative pessimistic rates can need more than the target itself.
    for _ in range(MAX_BISECTION_STEPS):
        if _confidence(hi) >= threshold:
            break
        lo, hi = hi, hi * 2.0
    for _ in range(MAX_BISECTION_STEPS):
        if hi - lo <= CORPUS_SEARCH_TOLERANCE:
            break
        mid = (lo + hi) / 2.0
        if _confidence(mid) >= threshold:
            hi = mid
        else:
            lo = mid
    return float(round(hi))


def present_value_of_target(
    target: float,
    allocation: Mapping[str, float],
    universe: AssetClassUniverse,
    horizon_years: float,
) -> float:
    """Discount ``target`` to today at the allocation's weighted mean return."""

    months = years_to_months(horizon_years)
    if months <= 0:
        return target
    components = [
        name for name in allocation if universe.has_data(name, horizon_key(horizon_years))
    ]
    if not components or sum(allocation[name] for name in components) <= 0:
        return target
    expected, _ = weighted_metrics(allocation, universe, horizon_key(horizon_years))
    return max(0.0, target / (1.0 + expected / 12.0) ** months)
