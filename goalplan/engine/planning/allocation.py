"""Sharpe-weighted portfolio allocator and maturity glide path."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence

from goalplan.engine.planning.models import (
    BASIC,
    BOND,
    CASH,
    AssetClassStats,
    AssetClassUniverse,
    Goal,
)
from goalplan.engine.planning.returns import horizon_key, in_last_twelve_months

__all__ = [
    "GLIDE_BOND_TARGET_PCT",
    "MIN_WEIGHT_PCT",
    "volatility_proxy",
    "optimize_sharpe_ratio",
    "glide_path",
    "optimal_allocation",
    "weighted_metrics",
    "weighted_stats",
]

GLIDE_BOND_TARGET_PCT = 80.0
MIN_WEIGHT_PCT = 5.0


def volatility_proxy(stats: AssetClassStats) -> float:
    """Annual volatility approximated from shortfall and negative-year odds."""

    p = stats.prob_negative_year_pct / 100.0
    denominator = (1.0 - p) or 0.01
    return abs(stats.expected_shortfall_pct) / 100.0 * math.sqrt(p / denominator)


def optimize_sharpe_ratio(
    allowed: Sequence[str],
    universe: AssetClassUniverse,
    horizon: str,
) -> dict[str, int]:
    """Weight allowed classes by Sharpe ratio into integer percentages.

    Args:
      allowed: Asset classes the customer may hold.
      universe: Statistics per class and horizon bucket.
      horizon: Horizon bucket used to read statistics.

    Returns:
      Mapping ordered by descending Sharpe ratio whose values sum to 100, or an
      empty mapping when no allowed class has data.
    """

    candidates: list[tuple[str, float]] = []
    for asset_class in allowed:
        if asset_class == CASH:
            continue
        stats = universe.stats_for(asset_class, horizon)
        if stats is None:
            continue
        volatility = volatility_proxy(stats)
        expected = stats.avg_return_pct / 100.0
        sharpe = expected / volatility if volatility > 0 else 0.0
        candidates.append((asset_class, sharpe))
    if not candidates:
        return {}
    candidates.sort(key=lambda item: item[1], reverse=True)

    total_sharpe = sum(sharpe for _, sharpe in candidates)
    if total_sharpe == 0:
        base, remainder = divmod(100, len(candidates))
        return {
            name: base + (1 if idx < remainder else 0)
            for idx, (name, _) in enumerate(candidates)
        }

    raw = [max(MIN_WEIGHT_PCT, sharpe / total_sharpe * 100.0) for _, sharpe in candidates]
    raw_total = sum(raw)
    normalised = [value / raw_total * 100.0 for value in raw]
    rounded = [int(round(value)) for value in normalised]
    delta = 100 - sum(rounded)
    if delta:
        largest = max(range(len(normalised)), key=lambda idx: normalised[idx])
        rounded[largest] = max(0, rounded[largest] + delta)
    return {name: pct for (name, _), pct in zip(candidates, rounded, strict=True)}


def glide_path(
    allocation: Mapping[str, float],
    current_month: float,
    total_months: float,
    allowed: Sequence[str],
) -> dict[str, float]:
    """Shift an allocation towards bonds during the final 12 months.

    Args:
      allocation: Allocation in percent.
      current_month: Months elapsed since today.
      total_months: Months until the goal is due.
      allowed: Asset classes the customer may hold; bonds must be allowed.

    Returns:
      A new allocation; unchanged outside the final year.
    """

    result = dict(allocation)
    if not in_last_twelve_months(current_month, total_months):
        return result
    if not result or BOND not in allowed:
        return result

    if BOND in result:
        increase = GLIDE_BOND_TARGET_PCT - result[BOND]
        non_bond_total = sum(pct for name, pct in result.items() if name != BOND)
        if increase <= 0 or non_bond_total == 0:
            return result
        result[BOND] = GLIDE_BOND_TARGET_PCT
        for name, pct in list(result.items()):
            if name == BOND:
                continue
            result[name] = max(0.0, pct - pct / non_bond_total * increase)
        total = sum(result.values())
        return {name: float(round(pct / total * 100.0)) for name, pct in result.items()}

    shrink = (100.0 - GLIDE_BOND_TARGET_PCT) / 100.0
    shifted = {name: float(round(pct * shrink)) for name, pct in result.items()}
    shifted[BOND] = GLIDE_BOND_TARGET_PCT
    return shifted


def optimal_allocation(
    goal: Goal,
    tier: str,
    allowed: Sequence[str],
    universe: AssetClassUniverse,
    current_month: float = 0,
) -> dict[str, float]:
    """Allocation for a goal tier at ``current_month``; only basic tiers glide."""

    allocation: dict[str, float] = {
        name: float(pct)
        for name, pct in optimize_sharpe_ratio(allowed, universe, horizon_key(goal.horizon_years)).items()
    }
    if tier == BASIC:
        allocation = glide_path(allocation, current_month, goal.horizon_years * 12, allowed)
    return allocation


def _weighted_components(
    allocation: Mapping[str, float],
    universe: AssetClassUniverse,
    horizon: str,
) -> list[tuple[float, AssetClassStats]]:
    components: list[tuple[float, AssetClassStats]] = []
    for asset_class, pct in allocation.items():
        if asset_class == CASH:
            continue
        stats = universe.stats_for(asset_class, horizon)
        if stats is None:
            continue
        components.append((pct / 100.0, stats))
    return components


def weighted_metrics(
    allocation: Mapping[str, float],
    universe: AssetClassUniverse,
    horizon: str,
) -> tuple[float, float]:
    """Weighted expected return and volatility proxy, as fractions.

    Weights are renormalised over the non-cash classes with data.
    """

    components = _weighted_components(allocation, universe, horizon)
    total_weight = sum(weight for weight, _ in components)
    if total_weight <= 0:
        return 0.0, 0.0
    expected = sum(weight * stats.avg_return_pct / 100.0 for weight, stats in components)
    volatility = sum(weight * volatility_proxy(stats) for weight, stats in components)
    return expected / total_weight, volatility / total_weight


def weighted_stats(
    allocation: Mapping[str, float],
    universe: AssetClassUniverse,
    horizon: str,
) -> AssetClassStats:
    """Percentage-weighted synthetic statistics of an allocation.

    Cash and classes without data are skipped and the remaining weights are
    renormalised. Volatility is weighted only when every component defines it.
    """

    components = _weighted_components(allocation, universe, horizon)
    total_weight = sum(weight for weight, _ in components)
    if total_weight <= 0:
        return AssetClassStats(0.0, 0.0, 0.0, 0.0, None)

    def _avg(attr: str) -> float:
        return sum(weight * getattr(stats, attr) for weight, stats in components) / total_weight

    volatility: float | None = None
    if all(stats.volatility_pct is not None for _, stats in components):
        volatility = _avg("volatility_pct")
    return AssetClassStats(
        avg_return_pct=_avg("avg_return_pct"),
        prob_negative_year_pct=_avg("prob_negative_year_pct"),
        expected_shortfall_pct=_avg("expected_shortfall_pct"),
        max_drawdown_pct=_avg("max_drawdown_pct"),
        volatility_pct=volatility,
    )
