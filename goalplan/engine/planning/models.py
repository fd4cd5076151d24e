"""Data model shared by the planning engines.

Every record is immutable. Planning phases build new instances with
:func:`dataclasses.replace` instead of mutating shared state, so a single
planning call owns all of its records and nothing leaks between calls.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import pandas as pd

__all__ = [
    "BASIC",
    "AMBITIOUS",
    "CASH",
    "BOND",
    "TIERS",
    "HORIZON_KEYS",
    "AssetClassStats",
    "AssetClassUniverse",
    "GoalTier",
    "Goal",
    "CustomerHoldings",
    "ContributionInput",
    "Bounds",
    "GoalTierState",
    "FeasibilityRow",
    "ContributionPlanEntry",
    "ContributionPlan",
    "ScheduleSnapshot",
    "NetworthPoint",
    "NetworthProjection",
    "PlanningResult",
]

BASIC = "basic"
AMBITIOUS = "ambitious"
TIERS: tuple[str, str] = (BASIC, AMBITIOUS)
CASH = "cash"
BOND = "bond"
HORIZON_KEYS: tuple[str, str, str] = ("3Y", "5Y", "10Y")


def _frozen(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class AssetClassStats:
    """Historical statistics of an asset class for one horizon bucket.

    Attributes:
      avg_return_pct: Average annual return in percent.
      prob_negative_year_pct: Probability of a negative year in percent.
      expected_shortfall_pct: Average loss in negative years (non-positive).
      max_drawdown_pct: Worst peak-to-trough loss (non-positive).
      volatility_pct: Annualised volatility; required by lognormal simulation.
    """

    avg_return_pct: float
    prob_negative_year_pct: float
    expected_shortfall_pct: float
    max_drawdown_pct: float
    volatility_pct: float | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> AssetClassStats:
        """Create statistics from a configuration mapping.

        Args:
          payload: Mapping with the percent-denominated statistic fields.

        Returns:
          A populated :class:`AssetClassStats` instance.
        """

        volatility = payload.get("volatility_pct")
        return cls(
            avg_return_pct=float(payload["avg_return_pct"]),  # type: ignore[arg-type]
            prob_negative_year_pct=float(payload["prob_negative_year_pct"]),  # type: ignore[arg-type]
            expected_shortfall_pct=float(payload["expected_shortfall_pct"]),  # type: ignore[arg-type]
            max_drawdown_pct=float(payload.get("max_drawdown_pct", 0.0)),  # type: ignore[arg-type]
            volatility_pct=None if volatility is None else float(volatility),  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class AssetClassUniverse:
    """Statistics keyed by asset class and horizon bucket (``3Y``/``5Y``/``10Y``)."""

    stats: Mapping[str, Mapping[str, AssetClassStats]]

    def __post_init__(self) -> None:
        frozen = {name: _frozen(buckets) for name, buckets in self.stats.items()}
        object.__setattr__(self, "stats", MappingProxyType(frozen))

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> AssetClassUniverse:
        """Build the universe from ``{asset_class: {bucket: {...}}}``."""

        section = payload.get("asset_classes", payload)
        if not isinstance(section, Mapping):
            raise TypeError("asset class payload must be a mapping")
        stats: dict[str, dict[str, AssetClassStats]] = {}
        for name, buckets in section.items():
            if not isinstance(buckets, Mapping):
                raise TypeError(f"asset class '{name}' must map horizon buckets to statistics")
            stats[str(name)] = {
                str(key): AssetClassStats.from_mapping(value)
                for key, value in buckets.items()
                if isinstance(value, Mapping)
            }
        return cls(stats=stats)

    @property
    def asset_classes(self) -> tuple[str, ...]:
        return tuple(self.stats)

    def stats_for(self, asset_class: str, horizon_key: str) -> AssetClassStats | None:
        return self.stats.get(asset_class, {}).get(horizon_key)

    def has_data(self, asset_class: str, horizon_key: str) -> bool:
        return self.stats_for(asset_class, horizon_key) is not None


@dataclass(frozen=True)
class GoalTier:
    """Target amount and priority for one tier of a goal.

    Attributes:
      target_amount: Amount the tier must reach at the goal horizon.
      priority: Positive rank, 1 being the most important.
    """

    target_amount: float
    priority: int

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> GoalTier:
        return cls(
            target_amount=float(payload["target_amount"]),  # type: ignore[arg-type]
            priority=int(payload["priority"]),  # type: ignore[call-overload]
        )


@dataclass(frozen=True)
class Goal:
    """A household goal with basic and ambitious tiers.

    Attributes:
      goal_id: Stable identifier used in every output keyed by goal.
      goal_name: Human readable label.
      horizon_years: Years until the goal is due (fractional years allowed).
      basic: Minimum acceptable tier.
      ambitious: Stretch tier.
    """

    goal_id: str
    goal_name: str
    horizon_years: float
    basic: GoalTier
    ambitious: GoalTier

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> Goal:
        """Create a goal from a mapping with a ``tiers`` section."""

        tiers = payload.get("tiers", payload)
        if not isinstance(tiers, Mapping):
            raise TypeError("goal tiers must be a mapping")
        goal_id = str(payload["goal_id"])
        return cls(
            goal_id=goal_id,
            goal_name=str(payload.get("goal_name", goal_id)),
            horizon_years=float(payload["horizon_years"]),  # type: ignore[arg-type]
            basic=GoalTier.from_mapping(tiers[BASIC]),
            ambitious=GoalTier.from_mapping(tiers[AMBITIOUS]),
        )

    def tier(self, name: str) -> GoalTier:
        if name == BASIC:
            return self.basic
        if name == AMBITIOUS:
            return self.ambitious
        raise KeyError(name)


@dataclass(frozen=True)
class CustomerHoldings:
    """Current corpus per asset class and the classes the customer may use.

    Attributes:
      by_asset_class: Amount currently held in each asset class.
      allowed_asset_classes: Classes the planner may allocate into.
    """

    by_asset_class: Mapping[str, float]
    allowed_asset_classes: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "by_asset_class",
            _frozen({k: float(v) for k, v in self.by_asset_class.items()}),
        )
        object.__setattr__(self, "allowed_asset_classes", tuple(self.allowed_asset_classes))

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> CustomerHoldings:
        amounts = payload.get("by_asset_class", {})
        allowed = payload.get("allowed_asset_classes", [])
        if not isinstance(amounts, Mapping) or not isinstance(allowed, Sequence):
            raise TypeError("corpus must define by_asset_class and allowed_asset_classes")
        return cls(
            by_asset_class={str(k): float(v) for k, v in amounts.items()},  # type: ignore[arg-type]
            allowed_asset_classes=tuple(str(item) for item in allowed),
        )

    @property
    def total(self) -> float:
        return float(sum(self.by_asset_class.values()))


@dataclass(frozen=True)
class ContributionInput:
    """Monthly contribution parameters.

    Attributes:
      monthly_amount: Baseline monthly contribution.
      stretch_pct: One-off increase the customer can stretch to, in percent.
      annual_step_up_pct: Yearly growth applied to contributions, in percent.
    """

    monthly_amount: float
    stretch_pct: float = 0.0
    annual_step_up_pct: float = 0.0

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> ContributionInput:
        return cls(
            monthly_amount=float(payload.get("monthly_amount", 0.0)),  # type: ignore[arg-type]
            stretch_pct=float(payload.get("stretch_pct", 0.0)),  # type: ignore[arg-type]
            annual_step_up_pct=float(payload.get("annual_step_up_pct", 0.0)),  # type: ignore[arg-type]
        )

    @property
    def available(self) -> float:
        stretched = self.monthly_amount * (1.0 + self.stretch_pct / 100.0)
        return max(self.monthly_amount, stretched)


@dataclass(frozen=True)
class Bounds:
    """Lower and mean projected corpus; ``lower`` never exceeds ``mean``."""

    lower: float
    mean: float

    def __post_init__(self) -> None:
        if self.lower > self.mean:
            object.__setattr__(self, "lower", float(self.mean))


@dataclass(frozen=True)
class GoalTierState:
    """Resources and outcome of one goal tier after a planning phase.

    Attributes:
      goal_id: Goal identifier.
      tier: ``basic`` or ``ambitious``.
      corpus: Corpus assigned to the tier, per asset class.
      contribution: Monthly contribution assigned to the tier.
      allocation: Target asset allocation in integer percentages.
      bounds: Projected bounds at the goal horizon.
      confidence: Confidence percent (unrounded).
    """

    goal_id: str
    tier: str
    corpus: Mapping[str, float] = field(default_factory=dict)
    contribution: float = 0.0
    allocation: Mapping[str, float] = field(default_factory=dict)
    bounds: Bounds = field(default_factory=lambda: Bounds(0.0, 0.0))
    confidence: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "corpus", _frozen(self.corpus))
        object.__setattr__(self, "allocation", _frozen(self.allocation))

    @property
    def key(self) -> str:
        return f"{self.goal_id}_{self.tier}"

    @property
    def corpus_total(self) -> float:
        return float(sum(self.corpus.values()))


@dataclass(frozen=True)
class FeasibilityRow:
    """Feasibility verdict for one goal tier.

    Attributes:
      goal_id: Goal identifier.
      goal_name: Goal label.
      tier: Tier name.
      status: ``can_be_met``, ``at_risk`` or ``cannot_be_met``.
      confidence_pct: Integer confidence in ``[0, 100]``.
      target_amount: Tier target.
      goal_bounds: Per-goal projected bounds.
      portfolio_bounds: Portfolio net-worth bounds at the goal due month.
      lower_deviation: ``goal_bounds.lower - target``.
      mean_deviation: ``goal_bounds.mean - target``.
    """

    goal_id: str
    goal_name: str
    tier: str
    status: str
    confidence_pct: int
    target_amount: float
    goal_bounds: Bounds
    portfolio_bounds: Bounds
    lower_deviation: float
    mean_deviation: float


@dataclass(frozen=True)
class ContributionPlanEntry:
    """Monthly contribution assigned to a goal tier."""

    goal_id: str
    tier: str
    amount: float
    percentage: int

    @property
    def key(self) -> str:
        return f"{self.goal_id}_{self.tier}"


@dataclass(frozen=True)
class ContributionPlan:
    """Split of the available monthly contribution.

    Attributes:
      total_available: Available contribution after stretch.
      entries: One entry per goal tier with a state.
      per_asset_class: Percent of the available contribution per asset class.
      per_goal_asset_allocation: Allocation used by each entry, keyed by entry key.
    """

    total_available: float
    entries: tuple[ContributionPlanEntry, ...]
    per_asset_class: Mapping[str, int]
    per_goal_asset_allocation: Mapping[str, Mapping[str, float]]

    @property
    def total_allocated(self) -> float:
        return float(sum(entry.amount for entry in self.entries))


@dataclass(frozen=True)
class ScheduleSnapshot:
    """Contribution percentages in force from ``month`` onwards."""

    month: int
    change_reason: str
    total_monthly: float
    percentages: Mapping[str, int]
    per_asset_class: Mapping[str, int]


@dataclass(frozen=True)
class NetworthPoint:
    """Projected portfolio state at the end of a month."""

    month: int
    total_networth: float
    corpus_by_goal: Mapping[str, float]
    cumulative_contribution: float
    events: tuple[str, ...] = ()


@dataclass(frozen=True)
class NetworthProjection:
    """Month-by-month deterministic projection of the whole portfolio."""

    points: tuple[NetworthPoint, ...]
    metadata: Mapping[str, Any]

    def point_at(self, month: int) -> NetworthPoint | None:
        for point in self.points:
            if point.month == month:
                return point
        return None

    def to_frame(self) -> pd.DataFrame:
        rows = [
            {
                "month": point.month,
                "total_networth": point.total_networth,
                "cumulative_contribution": point.cumulative_contribution,
                "events": ";".join(point.events),
                **{f"goal_{goal_id}": value for goal_id, value in point.corpus_by_goal.items()},
            }
            for point in self.points
        ]
        return pd.DataFrame(rows)


@dataclass(frozen=True)
class PlanningResult:
    """Outcome of a planning method.

    Attributes:
      method: Planning method number (1, 2 or 3).
      feasibility_table: Verdict per goal tier.
      contribution_plan: Rounded contribution split.
      contribution_schedule: Quarterly snapshots of the contribution split.
      corpus_allocation: ``goal_id -> asset_class -> amount`` rounded to 1000.
      projection: Deterministic net-worth projection.
      iterations: Iterations used by the basic-tier loop.
      converged: Whether the loop reached the tolerance.
    """

    method: int
    feasibility_table: tuple[FeasibilityRow, ...]
    contribution_plan: ContributionPlan
    contribution_schedule: tuple[ScheduleSnapshot, ...]
    corpus_allocation: Mapping[str, Mapping[str, float]]
    projection: NetworthProjection
    iterations: int
    converged: bool

    def row(self, goal_id: str, tier: str = BASIC) -> FeasibilityRow | None:
        for row in self.feasibility_table:
            if row.goal_id == goal_id and row.tier == tier:
                return row
        return None

    def to_frames(self) -> dict[str, pd.DataFrame]:
        """Return tabular views of the result for reporting."""

        feasibility = pd.DataFrame(
            [
                {
                    "goal_id": row.goal_id,
                    "goal_name": row.goal_name,
                    "tier": row.tier,
                    "status": row.status,
                    "confidence_pct": row.confidence_pct,
                    "target_amount": row.target_amount,
                    "goal_lower": row.goal_bounds.lower,
                    "goal_mean": row.goal_bounds.mean,
                    "portfolio_lower": row.portfolio_bounds.lower,
                    "portfolio_mean": row.portfolio_bounds.mean,
                    "lower_deviation": row.lower_deviation,
                    "mean_deviation": row.mean_deviation,
                }
                for row in self.feasibility_table
            ]
        )
        contributions = pd.DataFrame(
            [
                {
                    "goal_id": entry.goal_id,
                    "tier": entry.tier,
                    "amount": entry.amount,
                    "percentage": entry.percentage,
                }
                for entry in self.contribution_plan.entries
            ],
            columns=["goal_id", "tier", "amount", "percentage"],
        )
        corpus = pd.DataFrame(
            [
                {"goal_id": goal_id, "asset_class": asset_class, "amount": amount}
                for goal_id, by_class in self.corpus_allocation.items()
                for asset_class, amount in by_class.items()
            ],
            columns=["goal_id", "asset_class", "amount"],
        )
        schedule = pd.DataFrame(
            [
                {
                    "month": snapshot.month,
                    "change_reason": snapshot.change_reason,
                    "total_monthly": snapshot.total_monthly,
                    **{f"pct_{key}": value for key, value in snapshot.percentages.items()},
                }
                for snapshot in self.contribution_schedule
            ]
        )
        return {
            "feasibility": feasibility,
            "contributions": contributions,
            "corpus": corpus,
            "schedule": schedule,
            "projection": self.projection.to_frame(),
        }
