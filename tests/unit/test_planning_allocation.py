from __future__ import annotations

import pytest

from goalplan.engine.planning.allocation import (
    glide_path,
    optimal_allocation,
    optimize_sharpe_ratio,
    weighted_metrics,
    weighted_stats,
)
from goalplan.engine.planning.models import AMBITIOUS, BASIC, AssetClassUniverse, Goal


def _sample_universe() -> AssetClassUniverse:
    """Universe with two equity classes and a riskless bond."""

    def _bucket(avg: float, p: float, es: float, mdd: float, vol: float | None) -> dict[str, float | None]:
        return {
            "avg_return_pct": avg,
            "prob_negative_year_pct": p,
            "expected_shortfall_pct": es,
            "max_drawdown_pct": mdd,
            "volatility_pct": vol,
        }

    return AssetClassUniverse.from_mapping(
        {
            "asset_classes": {
                "largeCap": {
                    "3Y": _bucket(12.0, 22.0, -18.0, -35.0, 20.0),
                    "5Y": _bucket(11.5, 20.0, -17.0, -32.0, 18.0),
                },
                "midCap": {"5Y": _bucket(14.0, 24.0, -22.0, -42.0, None)},
                "bond": {
                    "3Y": _bucket(6.5, 0.0, 0.0, 0.0, 5.0),
                    "5Y": _bucket(6.8, 0.0, 0.0, 0.0, 5.0),
                },
            }
        }
    )


def _goal(horizon_years: float) -> Goal:
    return Goal.from_mapping(
        {
            "goal_id": "g",
            "horizon_years": horizon_years,
            "tiers": {
                "basic": {"target_amount": 1_000_000, "priority": 1},
                "ambitious": {"target_amount": 1_500_000, "priority": 2},
            },
        }
    )


def test_optimize_sharpe_ratio_floors_riskless_class() -> None:
    allocation = optimize_sharpe_ratio(["largeCap", "bond"], _sample_universe(), "5Y")
    assert allocation == {"largeCap": 95, "bond": 5}


def test_optimize_sharpe_ratio_orders_by_sharpe_and_sums_to_100() -> None:
    allocation = optimize_sharpe_ratio(["bond", "midCap", "largeCap", "cash"], _sample_universe(), "5Y")
    assert list(allocation) == ["largeCap", "midCap", "bond"]
    assert allocation == {"largeCap": 52, "midCap": 43, "bond": 5}
    assert sum(allocation.values()) == 100


def test_optimize_sharpe_ratio_without_data_is_empty() -> None:
    assert optimize_sharpe_ratio(["midCap"], _sample_universe(), "10Y") == {}
    assert optimize_sharpe_ratio(["cash"], _sample_universe(), "5Y") == {}


def test_glide_path_outside_final_year_is_unchanged() -> None:
    allocation = {"largeCap": 95.0, "bond": 5.0}
    assert glide_path(allocation, 10, 60, ["largeCap", "bond"]) == allocation


def test_glide_path_moves_to_bonds_in_final_year() -> None:
    shifted = glide_path({"largeCap": 95.0, "bond": 5.0}, 50, 60, ["largeCap", "bond"])
    assert shifted == {"largeCap": 20.0, "bond": 80.0}


def test_glide_path_adds_bond_when_missing() -> None:
    shifted = glide_path({"largeCap": 100.0}, 55, 60, ["largeCap", "bond"])
    assert shifted == {"largeCap": 20.0, "bond": 80.0}


def test_glide_path_requires_bond_to_be_allowed() -> None:
    allocation = {"largeCap": 100.0}
    assert glide_path(allocation, 55, 60, ["largeCap"]) == allocation


def test_glide_path_keeps_heavier_bond_sleeve() -> None:
    allocation = {"largeCap": 10.0, "bond": 90.0}
    assert glide_path(allocation, 55, 60, ["largeCap", "bond"]) == allocation


def test_optimal_allocation_glides_basic_tier_only() -> None:
    universe = _sample_universe()
    goal = _goal(1)
    allowed = ["largeCap", "bond"]
    assert optimal_allocation(goal, BASIC, allowed, universe) == {"largeCap": 20.0, "bond": 80.0}
    assert optimal_allocation(goal, AMBITIOUS, allowed, universe) == {"largeCap": 95.0, "bond": 5.0}


def test_weighted_metrics_skips_cash() -> None:
    expected, volatility = weighted_metrics({"largeCap": 50.0, "cash": 50.0}, _sample_universe(), "5Y")
    assert expected == pytest.approx(0.115)
    assert volatility == pytest.approx(0.085)


def test_weighted_stats_volatility_requires_every_component() -> None:
    universe = _sample_universe()
    complete = weighted_stats({"largeCap": 50.0, "bond": 50.0}, universe, "5Y")
    partial = weighted_stats({"largeCap": 50.0, "midCap": 50.0}, universe, "5Y")
    assert complete.volatility_pct == pytest.approx(11.5)
    assert complete.avg_return_pct == pytest.approx(9.15)
    assert partial.volatility_pct is None
    assert weighted_stats({}, universe, "5Y").avg_return_pct == 0.0
