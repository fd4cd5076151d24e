"""Exceptions raised by the planning engine."""

from __future__ import annotations

__all__ = ["PlanningError", "MissingStatistic", "InvalidPlanningInput"]


class PlanningError(ValueError):
    """Base class for input contract violations detected by the planner."""


class MissingStatistic(PlanningError):
    """Raised when an asset class lacks a statistic required by a projection.

    Attributes:
      asset_class: Asset class missing the statistic.
      statistic: Name of the missing field.
      horizon_key: Horizon bucket inspected, when known.
    """

    def __init__(
        self,
        asset_class: str,
        statistic: str = "volatility_pct",
        horizon_key: str | None = None,
    ) -> None:
        self.asset_class = asset_class
        self.statistic = statistic
        self.horizon_key = horizon_key
        where = f" ({horizon_key})" if horizon_key else ""
        super().__init__(
            f"{statistic} is required for asset class '{asset_class}'{where} "
            "to run lognormal Monte Carlo simulation"
        )


class InvalidPlanningInput(PlanningError):
    """Raised when goals, holdings or contribution inputs are malformed."""
