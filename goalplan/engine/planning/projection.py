"""Deterministic month-by-month net-worth projection of a plan."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from goalplan.engine.planning.allocation import optimal_allocation
from goalplan.engine.planning.models import (
    BASIC,
    CASH,
    AssetClassUniverse,
    Goal,
    GoalTierState,
    NetworthPoint,
    NetworthProjection,
)
from goalplan.engine.planning.returns import MONTHS_PER_YEAR, horizon_key, years_to_months

__all__ = ["cumulative_contribution", "project_networth", "networth_before_withdrawal"]


def cumulative_contribution(initial: float, step_up_pct: float, month: int) -> float:
    """Total contributed after ``month`` months with yearly step-ups."""

    step = 1.0 + step_up_pct / 100.0
    return float(sum(initial * step ** ((m - 1) // MONTHS_PER_YEAR) for m in range(1, month + 1)))


def _merge_goal_resources(
    goal: Goal,
    states: Mapping[str, GoalTierState],
) -> tuple[dict[str, float], float]:
    corpus: dict[str, float] = {}
    contribution = 0.0
    for key in (f"{goal.goal_id}_basic", f"{goal.goal_id}_ambitious"):
        state = states.get(key)
        if state is None:
            continue
        contribution += state.contribution
        if state.tier != BASIC:
            continue
        for asset_class, amount in state.corpus.items():
            corpus[asset_class] = corpus.get(asset_class, 0.0) + float(amount)
    return corpus, contribution


def project_networth(
    goals: Sequence[Goal],
    states: Mapping[str, GoalTierState],
    universe: AssetClassUniverse,
    allowed: Sequence[str],
    *,
    step_up_pct: float = 0.0,
    tier: str = BASIC,
) -> NetworthProjection:
    """Project every goal's corpus at mean returns until the last due month.

    Goals are processed in horizon order. Each month every held class in the
    tier allocation grows at its average monthly return, contributions are
    added by allocation percentage and, at a goal's due month, its tier target
    is withdrawn pro rata. A shortfall stays on the books as a negative goal
    balance.

    Args:
      goals: Planned goals.
      states: Goal tier states keyed by :attr:`GoalTierState.key`.
      universe: Statistics per class and bucket.
      allowed: Asset classes the customer may hold.
      step_up_pct: Annual contribution step-up in percent.
      tier: Tier whose allocation and targets drive the projection.

    Returns:
      :class:`NetworthProjection` with a month-0 point and one point per month.
    """

    ordered = sorted(goals, key=lambda goal: goal.horizon_years)
    due = {goal.goal_id: years_to_months(goal.horizon_years) for goal in ordered}
    holdings: dict[str, dict[str, float]] = {}
    contributions: dict[str, float] = {}
    for goal in ordered:
        holdings[goal.goal_id], contributions[goal.goal_id] = _merge_goal_resources(goal, states)

    initial_sip = float(sum(contributions.values()))
    initial_corpus = {goal_id: float(sum(by_class.values())) for goal_id, by_class in holdings.items()}
    points: list[NetworthPoint] = [
        NetworthPoint(
            month=0,
            total_networth=float(sum(initial_corpus.values())),
            corpus_by_goal=initial_corpus,
            cumulative_contribution=0.0,
        )
    ]
    finals: dict[str, float] = {}
    max_months = max(due.values(), default=0)
    for month in range(1, max_months + 1):
        events: list[str] = []
        total = 0.0
        by_goal: dict[str, float] = {}
        for goal in ordered:
            goal_id = goal.goal_id
            if month > due[goal_id]:
                by_goal[goal_id] = finals[goal_id]
                total += finals[goal_id]
                continue
            allocation = optimal_allocation(goal, tier, allowed, universe, current_month=month - 1)
            horizon = horizon_key(goal.horizon_years)
            goal_holdings = holdings[goal_id]
            for asset_class, amount in goal_holdings.items():
                if asset_class == CASH or asset_class not in allocation or amount <= 0:
                    continue
                stats = universe.stats_for(asset_class, horizon)
                if stats is None:
                    continue
                goal_holdings[asset_class] = amount * (1.0 + stats.avg_return_pct / 100.0 / MONTHS_PER_YEAR)
            for asset_class, pct in allocation.items():
                if asset_class == CASH:
                    continue
                goal_holdings[asset_class] = goal_holdings.get(asset_class, 0.0) + contributions[goal_id] * pct / 100.0
            goal_corpus = float(sum(goal_holdings.values()))

            if month == due[goal_id]:
                target = goal.tier(tier).target_amount
                remaining = goal_corpus - target
                ratio = remaining / goal_corpus if goal_corpus > 0 and remaining >= 0 else 0.0
                for asset_class in goal_holdings:
                    goal_holdings[asset_class] *= ratio
                finals[goal_id] = remaining
                goal_corpus = remaining
                events.append(f"goal_due:{goal_id}")
            by_goal[goal_id] = goal_corpus
            total += goal_corpus

        if step_up_pct > 0 and month % MONTHS_PER_YEAR == 0:
            for goal_id in contributions:
                contributions[goal_id] *= 1.0 + step_up_pct / 100.0
            events.append(f"step_up:{month}")
        points.append(
            NetworthPoint(
                month=month,
                total_networth=total,
                corpus_by_goal=by_goal,
                cumulative_contribution=cumulative_contribution(initial_sip, step_up_pct, month),
                events=tuple(events),
            )
        )

    metadata = {
        "initial_total_corpus": float(sum(initial_corpus.values())),
        "total_monthly_contribution": initial_sip,
        "step_up_pct": step_up_pct,
        "tier": tier,
        "goals": [
            {
                "goal_id": goal.goal_id,
                "due_month": due[goal.goal_id],
                "target_amount": goal.tier(tier).target_amount,
            }
            for goal in ordered
        ],
    }
    return NetworthProjection(points=tuple(points), metadata=metadata)


def networth_before_withdrawal(projection: NetworthProjection, goal: Goal, tier: str = BASIC) -> float:
    """Projected net worth at ``goal``'s due month before its target is withdrawn."""

    due_month = years_to_months(goal.horizon_years)
    point = projection.point_at(due_month)
    if point is None:
        return float(projection.points[-1].total_networth) if projection.points else 0.0
    if due_month == 0:
        return point.total_networth
    return point.total_networth + goal.tier(tier).target_amount
