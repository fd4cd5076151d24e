"""Corpus rebalancing across asset classes and across goals."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from goalplan.engine.planning.models import CASH, Goal

__all__ = [
    "rebalance_to_allocation",
    "rebalance_across_goals",
    "remix_goal_corpus",
    "rebalance_by_contribution",
]


def rebalance_to_allocation(
    holdings: Mapping[str, float],
    allocation: Mapping[str, float],
) -> dict[str, float]:
    """Move the total of ``holdings`` into the ``allocation`` percentages.

    Args:
      holdings: Current amount per asset class.
      allocation: Target allocation in percent.

    Returns:
      Amount per asset class with the same total as ``holdings``; classes
      held today but absent from ``allocation`` end at zero.
    """

    total = float(sum(holdings.values()))
    if total == 0 or not allocation:
        return dict(holdings)

    target: dict[str, float] = {name: 0.0 for name in holdings}
    for asset_class, pct in allocation.items():
        target[asset_class] = total * pct / 100.0
    allocated = sum(target.values())
    if allocated == 0:
        return dict(holdings)
    # Percentages may not add to exactly 100 after rounding.
    scale = total / allocated
    return {name: amount * scale for name, amount in target.items()}


def rebalance_across_goals(
    holdings: Mapping[str, float],
    goals: Sequence[Goal],
    requirements: Mapping[str, float],
) -> dict[str, dict[str, float]]:
    """Hand out corpus goal by goal in basic-tier priority order.

    Each goal draws from the asset classes in holding order until its
    requirement is covered; exhausted classes are skipped. Nothing beyond the
    held amounts is ever assigned.

    Args:
      holdings: Available amount per asset class.
      goals: Goals competing for the corpus.
      requirements: Corpus requirement per goal id.

    Returns:
      ``goal_id -> asset_class -> amount``; goals with no requirement get an
      empty mapping.
    """

    remaining = {name: float(amount) for name, amount in holdings.items()}
    result: dict[str, dict[str, float]] = {}
    for goal in sorted(goals, key=lambda item: item.basic.priority):
        requirement = float(requirements.get(goal.goal_id, 0.0))
        allocation: dict[str, float] = {}
        if requirement <= 0:
            result[goal.goal_id] = allocation
            continue
        needed = requirement
        for asset_class, available in remaining.items():
            if needed <= 0:
                break
            if available <= 0:
                continue
            take = min(available, needed)
            allocation[asset_class] = take
            remaining[asset_class] = available - take
            needed -= take
        result[goal.goal_id] = allocation
    return result


def _invested(allocation: Mapping[str, float]) -> dict[str, float]:
    return {name: pct for name, pct in allocation.items() if name != CASH and pct > 0}


def remix_goal_corpus(
    corpus_by_goal: Mapping[str, Mapping[str, float]],
    allocations: Mapping[str, Mapping[str, float]],
) -> dict[str, dict[str, float]]:
    """Re-mix every goal's corpus into that goal's own allocation.

    Each goal keeps the total it already holds; only the asset-class mix
    changes. Cash sleeves are not targeted.
    """

    remixed: dict[str, dict[str, float]] = {}
    for goal_id, corpus in corpus_by_goal.items():
        target = _invested(allocations.get(goal_id, {}))
        moved = rebalance_to_allocation(corpus, target)
        remixed[goal_id] = {name: amount for name, amount in moved.items() if amount > 0}
    return remixed


def rebalance_by_contribution(
    total_corpus: float,
    weights: Mapping[str, float],
    allocations: Mapping[str, Mapping[str, float]],
) -> dict[str, dict[str, float]]:
    """Pool ``total_corpus`` and share it between goals in proportion to ``weights``.

    Args:
      total_corpus: Corpus to distribute.
      weights: Monthly contribution (or any non-negative weight) per goal id.
      allocations: Target allocation in percent per goal id.

    Returns:
      ``goal_id -> asset_class -> amount``. Goals with zero weight, or with no
      invested sleeve in their allocation, receive an empty mapping.
    """

    positive = {goal_id: max(0.0, float(weight)) for goal_id, weight in weights.items()}
    weight_total = sum(positive.values())
    result: dict[str, dict[str, float]] = {goal_id: {} for goal_id in weights}
    if total_corpus <= 0 or weight_total <= 0:
        return result
    for goal_id, weight in positive.items():
        share = total_corpus * weight / weight_total
        target = _invested(allocations.get(goal_id, {}))
        pct_total = sum(target.values())
        if share <= 0 or pct_total <= 0:
            continue
        result[goal_id] = {name: share * pct / pct_total for name, pct in target.items()}
    return result
