from __future__ import annotations

import pytest

from goalplan.engine.planning.models import Goal
from goalplan.engine.planning.rebalancer import (
    rebalance_across_goals,
    rebalance_by_contribution,
    rebalance_to_allocation,
    remix_goal_corpus,
)


def _goal(goal_id: str, priority: int) -> Goal:
    return Goal.from_mapping(
        {
            "goal_id": goal_id,
            "horizon_years": 5,
            "tiers": {
                "basic": {"target_amount": 1_000_000, "priority": priority},
                "ambitious": {"target_amount": 2_000_000, "priority": priority + 10},
            },
        }
    )


def test_rebalance_to_allocation_preserves_total() -> None:
    holdings = {"gold": 300.0, "largeCap": 700.0}
    rebalanced = rebalance_to_allocation(holdings, {"largeCap": 60.0, "bond": 40.0})
    assert rebalanced == pytest.approx({"gold": 0.0, "largeCap": 600.0, "bond": 400.0})
    assert sum(rebalanced.values()) == pytest.approx(1000.0)


def test_rebalance_to_allocation_scales_rounded_percentages() -> None:
    rebalanced = rebalance_to_allocation({"largeCap": 990.0}, {"largeCap": 66.0, "bond": 33.0})
    assert sum(rebalanced.values()) == pytest.approx(990.0)
    assert rebalanced["largeCap"] == pytest.approx(2 * rebalanced["bond"])


def test_rebalance_to_allocation_keeps_empty_inputs() -> None:
    assert rebalance_to_allocation({"bond": 0.0}, {"largeCap": 100.0}) == {"bond": 0.0}
    assert rebalance_to_allocation({"bond": 10.0}, {}) == {"bond": 10.0}


def test_rebalance_across_goals_follows_priority() -> None:
    holdings = {"largeCap": 1_000.0, "bond": 500.0}
    goals = [_goal("late", 2), _goal("first", 1)]
    result = rebalance_across_goals(holdings, goals, {"first": 1_200.0, "late": 1_000.0})
    assert result["first"] == {"largeCap": 1_000.0, "bond": 200.0}
    assert result["late"] == {"bond": 300.0}


def test_rebalance_across_goals_never_exceeds_holdings() -> None:
    holdings = {"largeCap": 100.0}
    goals = [_goal("a", 1), _goal("b", 2), _goal("c", 3)]
    result = rebalance_across_goals(holdings, goals, {"a": 50.0, "b": 0.0, "c": 500.0})
    assert result == {"a": {"largeCap": 50.0}, "b": {}, "c": {"largeCap": 50.0}}
    assert sum(sum(by_class.values()) for by_class in result.values()) <= 100.0


def test_remix_goal_corpus_keeps_each_goal_total() -> None:
    corpus = {"retire": {"bond": 3_000.0}, "edu": {"bond": 1_000.0}}
    allocations = {
        "retire": {"largeCap": 70.0, "bond": 30.0},
        "edu": {"bond": 80.0, "cash": 20.0},
    }
    remixed = remix_goal_corpus(corpus, allocations)
    assert remixed["retire"] == pytest.approx({"largeCap": 2_100.0, "bond": 900.0})
    assert remixed["edu"] == pytest.approx({"bond": 1_000.0})


def test_remix_goal_corpus_leaves_goal_without_allocation() -> None:
    remixed = remix_goal_corpus({"car": {"bond": 500.0}}, {})
    assert remixed == {"car": {"bond": 500.0}}


def test_rebalance_by_contribution_pools_corpus() -> None:
    allocations = {
        "retire": {"largeCap": 50.0, "bond": 50.0},
        "edu": {"bond": 90.0, "cash": 10.0},
    }
    result = rebalance_by_contribution(4_000.0, {"retire": 30_000.0, "edu": 10_000.0}, allocations)
    assert result["retire"] == pytest.approx({"largeCap": 1_500.0, "bond": 1_500.0})
    assert result["edu"] == pytest.approx({"bond": 1_000.0})


def test_rebalance_by_contribution_skips_unweighted_goals() -> None:
    allocations = {"retire": {"largeCap": 100.0}, "edu": {"bond": 100.0}}
    result = rebalance_by_contribution(4_000.0, {"retire": 5_000.0, "edu": 0.0}, allocations)
    assert result == {"retire": {"largeCap": 4_000.0}, "edu": {}}
    assert rebalance_by_contribution(0.0, {"retire": 5_000.0}, allocations) == {"retire": {}}
    assert rebalance_by_contribution(4_000.0, {"retire": 0.0}, allocations) == {"retire": {}}
