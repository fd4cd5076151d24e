from __future__ import annotations

import pytest

from goalplan.engine.planning.models import AssetClassUniverse, Goal, GoalTierState
from goalplan.engine.planning.projection import (
    cumulative_contribution,
    networth_before_withdrawal,
    project_networth,
)


def _sample_universe() -> AssetClassUniverse:
    """Bond-only universe with a 12% average return."""

    bucket = {
        "avg_return_pct": 12.0,
        "prob_negative_year_pct": 0.0,
        "expected_shortfall_pct": 0.0,
        "max_drawdown_pct": 0.0,
    }
    return AssetClassUniverse.from_mapping({"bond": {"3Y": bucket, "5Y": bucket, "10Y": bucket}})


def _goal(goal_id: str, horizon_years: float, target: float) -> Goal:
    return Goal.from_mapping(
        {
            "goal_id": goal_id,
            "horizon_years": horizon_years,
            "tiers": {
                "basic": {"target_amount": target, "priority": 1},
                "ambitious": {"target_amount": target * 2, "priority": 2},
            },
        }
    )


def test_cumulative_contribution_steps_up_yearly() -> None:
    assert cumulative_contribution(100.0, 0.0, 6) == pytest.approx(600.0)
    assert cumulative_contribution(100.0, 10.0, 13) == pytest.approx(1200.0 + 110.0)


def test_project_networth_grows_and_withdraws_at_due_month() -> None:
    goal = _goal("car", 1, 500.0)
    states = {"car_basic": GoalTierState(goal_id="car", tier="basic", corpus={"bond": 1_000.0})}
    projection = project_networth([goal], states, _sample_universe(), ["bond"])

    assert len(projection.points) == 13
    assert projection.points[0].total_networth == pytest.approx(1_000.0)
    grown = 1_000.0 * 1.01**12
    assert projection.points[12].total_networth == pytest.approx(grown - 500.0)
    assert projection.points[12].events == ("goal_due:car",)
    assert networth_before_withdrawal(projection, goal) == pytest.approx(grown)


def test_project_networth_keeps_shortfall_on_the_books() -> None:
    near = _goal("near", 1, 5_000.0)
    far = _goal("far", 2, 100.0)
    states = {
        "near_basic": GoalTierState(goal_id="near", tier="basic", corpus={"bond": 1_000.0}),
        "far_basic": GoalTierState(goal_id="far", tier="basic", corpus={"bond": 1_000.0}, contribution=10.0),
    }
    projection = project_networth([far, near], states, _sample_universe(), ["bond"], step_up_pct=10.0)

    shortfall = 1_000.0 * 1.01**12 - 5_000.0
    assert projection.points[12].corpus_by_goal["near"] == pytest.approx(shortfall)
    assert projection.points[18].corpus_by_goal["near"] == pytest.approx(shortfall)
    assert "step_up:12" in projection.points[12].events
    assert projection.metadata["goals"][0]["goal_id"] == "near"
    frame = projection.to_frame()
    assert len(frame) == 25


def test_networth_before_withdrawal_for_immediate_goal() -> None:
    goal = _goal("now", 0, 100.0)
    states = {"now_basic": GoalTierState(goal_id="now", tier="basic", corpus={"bond": 300.0})}
    projection = project_networth([goal], states, _sample_universe(), ["bond"])
    assert len(projection.points) == 1
    assert networth_before_withdrawal(projection, goal) == pytest.approx(300.0)
