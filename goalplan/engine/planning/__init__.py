"""Goal-based financial planning engine."""

from .artifacts import PlanArtifacts, result_to_payload, write_plan_artifacts
from .config import load_asset_universe_from_yaml, load_goals_from_yaml, load_profile_from_yaml
from .errors import InvalidPlanningInput, MissingStatistic, PlanningError
from .models import (
    AMBITIOUS,
    BASIC,
    AssetClassStats,
    AssetClassUniverse,
    Bounds,
    ContributionInput,
    ContributionPlan,
    CustomerHoldings,
    FeasibilityRow,
    Goal,
    GoalTier,
    GoalTierState,
    NetworthProjection,
    PlanningResult,
)
from .planner import plan, plan_method1, plan_method2, plan_method3

__all__ = [
    "AMBITIOUS",
    "BASIC",
    "AssetClassStats",
    "AssetClassUniverse",
    "Bounds",
    "ContributionInput",
    "ContributionPlan",
    "CustomerHoldings",
    "FeasibilityRow",
    "Goal",
    "GoalTier",
    "GoalTierState",
    "InvalidPlanningInput",
    "MissingStatistic",
    "NetworthProjection",
    "PlanArtifacts",
    "PlanningError",
    "PlanningResult",
    "load_asset_universe_from_yaml",
    "load_goals_from_yaml",
    "load_profile_from_yaml",
    "plan",
    "plan_method1",
    "plan_method2",
    "plan_method3",
    "result_to_payload",
    "write_plan_artifacts",
]
