"""Rounded outputs of a plan: contribution plan, schedule, status and corpus."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from goalplan.engine.planning.models import (
    BASIC,
    CASH,
    TIERS,
    ContributionPlan,
    ContributionPlanEntry,
    Goal,
    GoalTierState,
    NetworthPoint,
    NetworthProjection,
    ScheduleSnapshot,
)
from goalplan.engine.planning.returns import MONTHS_PER_YEAR, round_to_thousand, years_to_months

__all__ = [
    "CAN_BE_MET",
    "AT_RISK",
    "CANNOT_BE_MET",
    "STATUS_CONFIDENCE_CAN_BE_MET",
    "STATUS_CONFIDENCE_AT_RISK_MIN",
    "MAX_LOWER_TOLERANCE",
    "SCHEDULE_INTERVAL_MONTHS",
    "determine_status",
    "build_contribution_plan",
    "build_contribution_schedule",
    "round_corpus_allocation",
    "round_projection",
]

CAN_BE_MET = "can_be_met"
AT_RISK = "at_risk"
CANNOT_BE_MET = "cannot_be_met"
STATUS_CONFIDENCE_CAN_BE_MET = 90
STATUS_CONFIDENCE_AT_RISK_MIN = 50
MAX_LOWER_TOLERANCE = 500_000.0
SCHEDULE_INTERVAL_MONTHS = 3
ROUNDING_STEP = 1000.0


def determine_status(confidence_pct: int, lower: float, target: float) -> str:
    """Map a rounded confidence and a lower bound to a feasibility status.

    ``can_be_met`` needs confidence of at least 90 and a lower bound within
    ``min(10% of target, 500000)`` of the target; a high confidence with a
    lower bound short of that tolerance is ``at_risk``.
    """

    tolerance = min(0.1 * target, MAX_LOWER_TOLERANCE)
    if confidence_pct >= STATUS_CONFIDENCE_CAN_BE_MET:
        return CAN_BE_MET if lower >= target - tolerance else AT_RISK
    if confidence_pct >= STATUS_CONFIDENCE_AT_RISK_MIN:
        return AT_RISK
    return CANNOT_BE_MET


def _ordered_states(
    goals: Sequence[Goal],
    states: Mapping[str, GoalTierState],
) -> list[tuple[Goal, GoalTierState]]:
    ordered: list[tuple[Goal, GoalTierState]] = []
    for goal in sorted(goals, key=lambda item: item.basic.priority):
        for tier in TIERS:
            state = states.get(f"{goal.goal_id}_{tier}")
            if state is not None:
                ordered.append((goal, state))
    return ordered


def _cap_rounded_amounts(amounts: dict[str, float], ceiling: float) -> dict[str, float]:
    """Trim the largest amounts in steps of 1000 until the sum fits ``ceiling``."""

    capped = dict(amounts)
    while capped and sum(capped.values()) > ceiling + 1e-9:
        largest = max(capped, key=lambda key: capped[key])
        if capped[largest] <= 0:
            break
        capped[largest] = max(0.0, capped[largest] - ROUNDING_STEP)
    return capped


def _percent(amount: float, available: float) -> int:
    if available <= 0:
        return 0
    return int(min(100, max(0, round(amount / available * 100.0))))


def _per_asset_class(
    entries: Sequence[ContributionPlanEntry],
    allocations: Mapping[str, Mapping[str, float]],
    available: float,
) -> dict[str, int]:
    totals: dict[str, float] = {}
    for entry in entries:
        for asset_class, pct in allocations.get(entry.key, {}).items():
            if asset_class == CASH:
                continue
            totals[asset_class] = totals.get(asset_class, 0.0) + entry.amount * pct / 100.0
    return {
        asset_class: _percent(round_to_thousand(amount), available)
        for asset_class, amount in totals.items()
    }


def build_contribution_plan(
    goals: Sequence[Goal],
    states: Mapping[str, GoalTierState],
    available: float,
) -> ContributionPlan:
    """Round every tier's contribution and express it against ``available``.

    Amounts are rounded to 1000; if rounding pushes the sum above
    ``available`` the largest amounts are trimmed by 1000 until it fits.

    Args:
      goals: Planned goals.
      states: Goal tier states keyed by :attr:`GoalTierState.key`.
      available: Available monthly contribution.

    Returns:
      :class:`ContributionPlan` ordered by basic priority then tier.
    """

    ordered = _ordered_states(goals, states)
    rounded = {state.key: round_to_thousand(state.contribution) for _, state in ordered}
    rounded = _cap_rounded_amounts(rounded, available)
    entries = tuple(
        ContributionPlanEntry(
            goal_id=state.goal_id,
            tier=state.tier,
            amount=rounded[state.key],
            percentage=_percent(rounded[state.key], available),
        )
        for _, state in ordered
    )
    allocations = {state.key: dict(state.allocation) for _, state in ordered}
    return ContributionPlan(
        total_available=round_to_thousand(available),
        entries=entries,
        per_asset_class=_per_asset_class(entries, allocations, available),
        per_goal_asset_allocation=allocations,
    )


def build_contribution_schedule(
    plan: ContributionPlan,
    goals: Sequence[Goal],
    step_up_pct: float = 0.0,
) -> tuple[ScheduleSnapshot, ...]:
    """Quarterly snapshots of the contribution split until the last goal is due.

    Entries of a goal disappear from the first snapshot at or after its due
    month (``goal_completion``). Yearly snapshots report ``step_up`` when a
    step-up applies and nothing else changed.
    """

    due = {goal.goal_id: years_to_months(goal.horizon_years) for goal in goals}
    max_months = max(due.values(), default=0)
    available = plan.total_available
    snapshots: list[ScheduleSnapshot] = []
    month = 0
    while True:
        active = [entry for entry in plan.entries if due.get(entry.goal_id, 0) > month]
        if month == 0:
            reason = "initial"
        elif any(month - SCHEDULE_INTERVAL_MONTHS < due_month <= month for due_month in due.values()):
            reason = "goal_completion"
        elif step_up_pct > 0 and month % MONTHS_PER_YEAR == 0:
            reason = "step_up"
        else:
            reason = "unchanged"
        growth = (1.0 + step_up_pct / 100.0) ** (month // MONTHS_PER_YEAR)
        snapshots.append(
            ScheduleSnapshot(
                month=month,
                change_reason=reason,
                total_monthly=round_to_thousand(sum(entry.amount for entry in active) * growth),
                percentages={entry.key: entry.percentage for entry in active},
                per_asset_class=_per_asset_class(active, plan.per_goal_asset_allocation, available),
            )
        )
        month += SCHEDULE_INTERVAL_MONTHS
        if month > max_months:
            break
    return tuple(snapshots)


def round_corpus_allocation(
    states: Mapping[str, GoalTierState],
    total_corpus: float,
) -> dict[str, dict[str, float]]:
    """``goal_id -> asset_class -> amount`` rounded to 1000 and capped at ``total_corpus``.

    Only basic states carry corpus; ambitious states reuse their goal's corpus
    for projection and are ignored here.
    """

    result: dict[str, dict[str, float]] = {}
    for state in states.values():
        if state.tier != BASIC:
            continue
        result[state.goal_id] = {
            asset_class: round_to_thousand(amount)
            for asset_class, amount in state.corpus.items()
            if round_to_thousand(amount) > 0
        }

    def _total() -> float:
        return sum(sum(by_class.values()) for by_class in result.values())

    while _total() > total_corpus + 1e-9:
        goal_id, asset_class = max(
            ((g, c) for g, by_class in result.items() for c in by_class),
            key=lambda item: result[item[0]][item[1]],
        )
        result[goal_id][asset_class] = max(0.0, result[goal_id][asset_class] - ROUNDING_STEP)
        if result[goal_id][asset_class] == 0:
            del result[goal_id][asset_class]
    return result


def round_projection(projection: NetworthProjection) -> NetworthProjection:
    """Copy of ``projection`` with every money value rounded to 1000."""

    points = tuple(
        NetworthPoint(
            month=point.month,
            total_networth=round_to_thousand(point.total_networth),
            corpus_by_goal={goal_id: round_to_thousand(value) for goal_id, value in point.corpus_by_goal.items()},
            cumulative_contribution=round_to_thousand(point.cumulative_contribution),
            events=point.events,
        )
        for point in projection.points
    )
    return NetworthProjection(points=points, metadata=projection.metadata)
