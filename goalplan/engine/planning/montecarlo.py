"""Monte Carlo engine for goal projections.

Paths are simulated month by month, vectorised across paths with NumPy.
Every entry point receives an explicit :class:`numpy.random.Generator`; the
engine never touches a global random state, so seeding the generator makes a
run fully reproducible. Normal draws use the Box-Muller transform on the
generator's uniform stream.

Two return models are available:

* the probability model draws a negative month with the monthly-equivalent
  negative-year probability and applies either the shortfall or the average
  positive return (used to validate the envelope);
* the lognormal model draws ``log(1 + r) ~ N(log(1 + mu / 12), sigma / sqrt(12))``
  per asset class and is the model used for planning. It requires
  ``volatility_pct`` on every allocated class.

Inverse searches draw their shocks once and reuse them at every bisection
step, so the searched quantity is a deterministic, monotone function of the
search variable.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

import numpy as np

from goalplan.engine.logging import setup_logger
from goalplan.engine.planning.allocation import optimal_allocation, weighted_stats
from goalplan.engine.planning.errors import MissingStatistic
from goalplan.engine.planning.models import (
    BASIC,
    CASH,
    AssetClassStats,
    AssetClassUniverse,
    Bounds,
    Goal,
    GoalTierState,
)
from goalplan.engine.planning.returns import (
    MONTHS_PER_YEAR,
    avg_positive_return,
    horizon_key,
    in_last_twelve_months,
    monthly_rate,
    monthly_volatility,
    years_to_months,
)

__all__ = [
    "LITE_PATHS",
    "DEFAULT_PATHS",
    "LOWER_BOUND_Z",
    "SimulationOutcome",
    "EnvelopeValidation",
    "box_muller",
    "ensure_volatility",
    "simulate_probability_paths",
    "simulate_lognormal_paths",
    "simulate_lognormal",
    "bounds_from_paths",
    "confidence_from_paths",
    "required_sip_mc",
    "min_sip_for_confidence_mc",
    "min_corpus_for_confidence_mc",
    "run_multi_goal_lite",
    "validate_envelope",
]

LOG = setup_logger(__name__)

LITE_PATHS = 75
DEFAULT_PATHS = 1000
LOWER_BOUND_Z = 1.65
MAX_BISECTION_STEPS = 50
SIP_SEARCH_TOLERANCE = 100.0
SCALE_SEARCH_TOLERANCE = 0.01
MAX_CORPUS_SCALE = 2.0


@dataclass(frozen=True)
class SimulationOutcome:
    """Final corpus per path together with the derived bounds.

    Attributes:
      finals: Final corpus of each simulated path.
      bounds: Bounds computed with :func:`bounds_from_paths`.
    """

    finals: np.ndarray
    bounds: Bounds

    def confidence(self, target: float) -> int:
        return confidence_from_paths(self.finals, target)


@dataclass(frozen=True)
class EnvelopeValidation:
    """Agreement between simulated outcomes and an envelope.

    Attributes:
      containment_pct: Percent of paths ending at or above the envelope lower bound.
      lower_tail_aligned: Simulated ``mean - 1.65 * std`` (as in
        :func:`bounds_from_paths`) within 15% of the envelope lower bound.
      mean_aligned: Average final corpus within 10% of the envelope mean.
      is_valid: ``containment_pct >= 70`` and both alignments hold.
      average_final: Average final corpus across paths.
    """

    containment_pct: float
    lower_tail_aligned: bool
    mean_aligned: bool
    is_valid: bool
    average_final: float


def box_muller(rng: np.random.Generator, size: int | tuple[int, ...]) -> np.ndarray:
    """Standard normal draws built from two uniform streams."""

    u1 = 1.0 - rng.random(size)  # (0, 1] keeps the logarithm finite
    u2 = rng.random(size)
    return np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)


def ensure_volatility(
    allocation: Mapping[str, float],
    universe: AssetClassUniverse,
    horizon: str,
) -> None:
    """Raise :class:`MissingStatistic` for allocated classes lacking volatility.

    Cash and classes without statistics for ``horizon`` are not simulated and
    therefore not checked.
    """

    for asset_class in allocation:
        if asset_class == CASH:
            continue
        stats = universe.stats_for(asset_class, horizon)
        if stats is None:
            continue
        if stats.volatility_pct is None:
            raise MissingStatistic(asset_class, horizon_key=horizon)


def _lognormal_returns(stats: Sequence[AssetClassStats], shocks: np.ndarray) -> np.ndarray:
    mu = np.array([s.avg_return_pct / 100.0 for s in stats])
    sigma = np.array([(s.volatility_pct or 0.0) / 100.0 for s in stats])
    drift = np.log1p(monthly_rate(mu))
    return np.expm1(drift + monthly_volatility(sigma) * shocks)


def _growing_classes(
    allocation: Mapping[str, float],
    universe: AssetClassUniverse,
    horizon: str,
) -> list[tuple[str, AssetClassStats]]:
    growing: list[tuple[str, AssetClassStats]] = []
    for asset_class in allocation:
        if asset_class == CASH:
            continue
        stats = universe.stats_for(asset_class, horizon)
        if stats is not None:
            growing.append((asset_class, stats))
    return growing


def simulate_probability_paths(
    corpus: float,
    contribution: float,
    stats: AssetClassStats,
    horizon_years: float,
    *,
    rng: np.random.Generator,
    paths: int = LITE_PATHS,
    step_up_pct: float = 0.0,
) -> np.ndarray:
    """Simulate final corpus with the negative-month probability model.

    Args:
      corpus: Initial lump sum.
      contribution: Monthly contribution added after growth.
      stats: Statistics driving the draw (possibly synthetic).
      horizon_years: Projection horizon.
      rng: Random generator owned by the caller.
      paths: Number of paths.
      step_up_pct: Annual contribution step-up in percent.

    Returns:
      Array of final corpus values, one per path.
    """

    months = years_to_months(horizon_years)
    p = min(max(stats.prob_negative_year_pct / 100.0, 0.0), 1.0)
    monthly_p = 1.0 - (1.0 - p) ** (1.0 / MONTHS_PER_YEAR)
    negative = stats.expected_shortfall_pct / 100.0 / MONTHS_PER_YEAR
    positive = avg_positive_return(stats) / MONTHS_PER_YEAR
    draws = rng.random((paths, months)) < monthly_p
    returns = np.where(draws, negative, positive)

    values = np.full(paths, float(corpus))
    sip = float(contribution)
    for month in range(months):
        if step_up_pct > 0 and month > 0 and month % MONTHS_PER_YEAR == 0:
            sip *= 1.0 + step_up_pct / 100.0
        values = values * (1.0 + returns[:, month]) + sip
    return values


def simulate_lognormal_paths(
    corpus: Mapping[str, float],
    contribution: float,
    allocation: Mapping[str, float],
    universe: AssetClassUniverse,
    horizon_years: float,
    *,
    rng: np.random.Generator | None = None,
    paths: int = DEFAULT_PATHS,
    step_up_pct: float = 0.0,
    shocks: np.ndarray | None = None,
) -> np.ndarray:
    """Simulate final corpus per path tracking each asset class separately.

    Each allocated class compounds at its own sampled return, then receives
    its share of the contribution. Held classes outside the allocation are
    carried at face value.

    Args:
      corpus: Initial corpus per asset class.
      contribution: Monthly contribution split by ``allocation``.
      allocation: Allocation in percent.
      universe: Statistics per class and bucket.
      horizon_years: Projection horizon.
      rng: Random generator, required when ``shocks`` is not given.
      paths: Number of paths, ignored when ``shocks`` is given.
      step_up_pct: Contribution step-up applied every 12 months.
      shocks: Pre-drawn normals with shape ``(paths, months, classes)``.

    Returns:
      Array of final corpus values, one per path.

    Raises:
      MissingStatistic: If an allocated class has no ``volatility_pct``.
    """

    horizon = horizon_key(horizon_years)
    ensure_volatility(allocation, universe, horizon)
    growing = _growing_classes(allocation, universe, horizon)
    months = years_to_months(horizon_years)
    if shocks is None:
        if rng is None:
            raise ValueError("rng is required when shocks are not provided")
        shocks = box_muller(rng, (paths, months, len(growing)))
    paths = shocks.shape[0]

    names = [name for name, _ in growing]
    static = float(sum(amount for name, amount in corpus.items() if name not in names))
    values = np.tile(np.array([float(corpus.get(name, 0.0)) for name in names]), (paths, 1))
    if not names:
        return np.full(paths, static)

    returns = _lognormal_returns([stats for _, stats in growing], shocks)
    sip = np.array([contribution * allocation[name] / 100.0 for name in names])
    for month in range(months):
        if step_up_pct > 0 and month > 0 and month % MONTHS_PER_YEAR == 0:
            sip = sip * (1.0 + step_up_pct / 100.0)
        values = values * (1.0 + returns[:, month, :]) + sip
    return values.sum(axis=1) + static


def _draw_shocks(
    allocation: Mapping[str, float],
    universe: AssetClassUniverse,
    horizon_years: float,
    rng: np.random.Generator,
    paths: int,
) -> np.ndarray:
    horizon = horizon_key(horizon_years)
    ensure_volatility(allocation, universe, horizon)
    count = len(_growing_classes(allocation, universe, horizon))
    return box_muller(rng, (paths, years_to_months(horizon_years), count))


def bounds_from_paths(finals: np.ndarray) -> Bounds:
    """``mean`` and ``mean - 1.65 * std`` of the final corpus (population std)."""

    if finals.size == 0:
        return Bounds(lower=0.0, mean=0.0)
    mean = float(np.mean(finals))
    std = float(np.std(finals))
    return Bounds(lower=mean - LOWER_BOUND_Z * std, mean=mean)


def confidence_from_paths(finals: np.ndarray, target: float) -> int:
    """Integer percent of paths whose final corpus reaches ``target``."""

    if finals.size == 0:
        return 0
    return int(round(100.0 * float(np.count_nonzero(finals >= target)) / finals.size))


def simulate_lognormal(
    corpus: Mapping[str, float],
    contribution: float,
    allocation: Mapping[str, float],
    universe: AssetClassUniverse,
    horizon_years: float,
    *,
    rng: np.random.Generator | None = None,
    paths: int = DEFAULT_PATHS,
    step_up_pct: float = 0.0,
    shocks: np.ndarray | None = None,
) -> SimulationOutcome:
    """Run :func:`simulate_lognormal_paths` and summarise the outcome."""

    finals = simulate_lognormal_paths(
        corpus,
        contribution,
        allocation,
        universe,
        horizon_years,
        rng=rng,
        paths=paths,
        step_up_pct=step_up_pct,
        shocks=shocks,
    )
    return SimulationOutcome(finals=finals, bounds=bounds_from_paths(finals))


def _split_contribution_search(predicate: Callable[[float], bool], target: float) -> float:
    lo, hi = 0.0, max(target, 1.0)
    for _ in range(MAX_BISECTION_STEPS):
        if hi - lo <= SIP_SEARCH_TOLERANCE:
            break
        mid = (lo + hi) / 2.0
        if predicate(mid):
            hi = mid
        else:
            lo = mid
    return math.ceil(hi / 1000.0) * 1000.0


def required_sip_mc(
    target: float,
    corpus: Mapping[str, float],
    allocation: Mapping[str, float],
    universe: AssetClassUniverse,
    horizon_years: float,
    *,
    rng: np.random.Generator,
    paths: int = DEFAULT_PATHS,
    step_up_pct: float = 0.0,
) -> float:
    """Contribution (rounded up to 1000) for the simulated lower bound to reach ``target``."""

    if sum(corpus.values()) >= target:
        return 0.0
    shocks = _draw_shocks(allocation, universe, horizon_years, rng, paths)

    def _meets(contribution: float) -> bool:
        outcome = simulate_lognormal(
            corpus,
            contribution,
            allocation,
            universe,
            horizon_years,
            step_up_pct=step_up_pct,
            shocks=shocks,
        )
        return outcome.bounds.lower >= target

    if _meets(0.0):
        return 0.0
    return _split_contribution_search(_meets, target)


def min_sip_for_confidence_mc(
    target: float,
    corpus: Mapping[str, float],
    allocation: Mapping[str, float],
    universe: AssetClassUniverse,
    horizon_years: float,
    *,
    rng: np.random.Generator,
    paths: int = DEFAULT_PATHS,
    step_up_pct: float = 0.0,
    threshold: float = 90.0,
) -> float:
    """Smallest contribution (rounded up to 1000) whose simulated confidence reaches ``threshold``."""

    shocks = _draw_shocks(allocation, universe, horizon_years, rng, paths)

    def _meets(contribution: float) -> bool:
        finals = simulate_lognormal_paths(
            corpus,
            contribution,
            allocation,
            universe,
            horizon_years,
            step_up_pct=step_up_pct,
            shocks=shocks,
        )
        return confidence_from_paths(finals, target) >= threshold

    if _meets(0.0):
        return 0.0
    return _split_contribution_search(_meets, target)


def min_corpus_for_confidence_mc(
    target: float,
    contribution: float,
    allocation: Mapping[str, float],
    universe: AssetClassUniverse,
    horizon_years: float,
    reference_corpus: Mapping[str, float],
    *,
    rng: np.random.Generator,
    paths: int = DEFAULT_PATHS,
    step_up_pct: float = 0.0,
    threshold: float = 90.0,
) -> dict[str, float]:
    """Smallest scaling of ``reference_corpus`` reaching ``threshold`` confidence.

    The reference is scaled uniformly within ``[0, 2]``; each class of the
    result is floored to a whole amount.
    """

    if sum(reference_corpus.values()) <= 0:
        return dict(reference_corpus)
    shocks = _draw_shocks(allocation, universe, horizon_years, rng, paths)

    def _meets(scale: float) -> bool:
        scaled = {name: amount * scale for name, amount in reference_corpus.items()}
        finals = simulate_lognormal_paths(
            scaled,
            contribution,
            allocation,
            universe,
            horizon_years,
            step_up_pct=step_up_pct,
            shocks=shocks,
        )
        return confidence_from_paths(finals, target) >= threshold

    lo, hi = 0.0, MAX_CORPUS_SCALE
    for _ in range(MAX_BISECTION_STEPS):
        if hi - lo <= SCALE_SEARCH_TOLERANCE:
            break
        mid = (lo + hi) / 2.0
        if _meets(mid):
            hi = mid
        else:
            lo = mid
    return {name: float(math.floor(amount * hi)) for name, amount in reference_corpus.items()}


def run_multi_goal_lite(
    goals: Sequence[Goal],
    states: Mapping[str, GoalTierState],
    universe: AssetClassUniverse,
    allowed: Sequence[str],
    *,
    target_goal_id: str,
    tier: str,
    step_up_pct: float,
    rng: np.random.Generator,
    paths: int = LITE_PATHS,
) -> np.ndarray:
    """Distribution of total net worth at a goal's due month.

    All goals are simulated together on the same paths. Each goal's corpus
    grows per class at lognormal returns under its tier allocation (basic
    allocations glide during the final year) and receives its contributions.
    At a goal's due month its tier target is withdrawn pro rata across its
    classes; an unfunded remainder stays as a negative contribution to net
    worth for the following months.

    Args:
      goals: All planned goals.
      states: Goal tier states keyed by :attr:`GoalTierState.key`.
      universe: Statistics per class and bucket.
      allowed: Asset classes the customer may hold.
      target_goal_id: Goal whose due month is observed.
      tier: Tier whose targets are withdrawn and whose allocations are used.
      step_up_pct: Annual contribution step-up in percent.
      rng: Random generator owned by the caller.
      paths: Number of paths.

    Returns:
      Net worth per path at the due month, before the target goal's withdrawal.
    """

    ordered = sorted(goals, key=lambda goal: goal.horizon_years)
    if target_goal_id not in {goal.goal_id for goal in ordered}:
        raise KeyError(target_goal_id)
    due = {goal.goal_id: years_to_months(goal.horizon_years) for goal in ordered}
    max_months = max(due.values())

    corpus: dict[str, dict[str, np.ndarray]] = {}
    sip: dict[str, float] = {}
    for goal in ordered:
        merged: dict[str, np.ndarray] = {}
        contribution = 0.0
        for name in (f"{goal.goal_id}_basic", f"{goal.goal_id}_ambitious"):
            state = states.get(name)
            if state is None:
                continue
            contribution += state.contribution
            if state.tier != BASIC:
                continue
            for asset_class, amount in state.corpus.items():
                merged.setdefault(asset_class, np.zeros(paths))
                merged[asset_class] = merged[asset_class] + float(amount)
        corpus[goal.goal_id] = merged
        sip[goal.goal_id] = contribution

    finals: dict[str, np.ndarray] = {}
    networth: np.ndarray | None = None
    allocation_cache: dict[tuple[str, bool], dict[str, float]] = {}
    for month in range(1, max_months + 1):
        total = np.zeros(paths)
        pre_withdrawal: np.ndarray | None = None
        post_withdrawal: np.ndarray | None = None
        for goal in ordered:
            goal_id = goal.goal_id
            if month > due[goal_id]:
                total += finals[goal_id]
                continue
            gliding = in_last_twelve_months(month - 1, goal.horizon_years * MONTHS_PER_YEAR)
            cache_key = (goal_id, gliding)
            if cache_key not in allocation_cache:
                allocation_cache[cache_key] = optimal_allocation(
                    goal, tier, allowed, universe, current_month=month - 1
                )
            allocation = allocation_cache[cache_key]
            horizon = horizon_key(goal.horizon_years)
            holdings = corpus[goal_id]

            for asset_class, values in holdings.items():
                if asset_class == CASH or asset_class not in allocation:
                    continue
                stats = universe.stats_for(asset_class, horizon)
                if stats is None or stats.volatility_pct is None:
                    continue
                shock = box_muller(rng, paths)
                holdings[asset_class] = values * (1.0 + _lognormal_returns([stats], shock[:, None])[:, 0])
            for asset_class, pct in allocation.items():
                if asset_class == CASH:
                    continue
                holdings.setdefault(asset_class, np.zeros(paths))
                holdings[asset_class] = holdings[asset_class] + sip[goal_id] * pct / 100.0

            goal_corpus = np.zeros(paths)
            for values in holdings.values():
                goal_corpus = goal_corpus + values

            if month == due[goal_id]:
                target = goal.tier(tier).target_amount
                remaining = goal_corpus - target
                funded = (goal_corpus > 0) & (remaining >= 0)
                ratio = np.where(funded, remaining / np.where(goal_corpus > 0, goal_corpus, 1.0), 0.0)
                for asset_class in holdings:
                    holdings[asset_class] = holdings[asset_class] * ratio
                if goal_id == target_goal_id:
                    pre_withdrawal = goal_corpus
                    post_withdrawal = remaining
                finals[goal_id] = remaining
                goal_corpus = remaining
            total += goal_corpus

        if pre_withdrawal is not None and post_withdrawal is not None:
            networth = total - post_withdrawal + pre_withdrawal
        if step_up_pct > 0 and month % MONTHS_PER_YEAR == 0:
            for goal_id in sip:
                sip[goal_id] *= 1.0 + step_up_pct / 100.0

    if networth is None:
        # Goals due at month 0 never enter the loop.
        networth = np.full(
            paths, float(sum(state.corpus_total for state in states.values() if state.tier == BASIC))
        )
    LOG.debug("multi-goal lite run target=%s tier=%s paths=%d", target_goal_id, tier, paths)
    return networth


def validate_envelope(
    corpus: float,
    contribution: float,
    allocation: Mapping[str, float],
    universe: AssetClassUniverse,
    horizon_years: float,
    bounds: Bounds,
    *,
    rng: np.random.Generator,
    paths: int = LITE_PATHS,
    step_up_pct: float = 0.0,
) -> EnvelopeValidation:
    """Check that stochastic outcomes agree with a deterministic envelope.

    Args:
      corpus: Initial lump sum.
      contribution: Monthly contribution.
      allocation: Allocation whose weighted statistics drive the simulation.
      universe: Statistics per class and bucket.
      horizon_years: Projection horizon.
      bounds: Envelope bounds being validated.
      rng: Random generator owned by the caller.
      paths: Number of paths.
      step_up_pct: Annual contribution step-up in percent.

    Returns:
      :class:`EnvelopeValidation` summarising containment and alignment.
    """

    stats = weighted_stats(allocation, universe, horizon_key(horizon_years))
    finals = simulate_probability_paths(
        corpus,
        contribution,
        stats,
        horizon_years,
        rng=rng,
        paths=paths,
        step_up_pct=step_up_pct,
    )
    if finals.size == 0:
        return EnvelopeValidation(0.0, False, False, False, 0.0)

    containment = 100.0 * float(np.count_nonzero(finals >= bounds.lower)) / finals.size
    simulated = bounds_from_paths(finals)

    def _aligned(observed: float, expected: float, tolerance: float) -> bool:
        if expected == 0:
            return observed == 0
        return abs(observed - expected) / abs(expected) < tolerance

    lower_aligned = _aligned(simulated.lower, bounds.lower, 0.15)
    mean_aligned = _aligned(simulated.mean, bounds.mean, 0.1)
    return EnvelopeValidation(
        containment_pct=containment,
        lower_tail_aligned=lower_aligned,
        mean_aligned=mean_aligned,
        is_valid=containment >= 70.0 and lower_aligned and mean_aligned,
        average_final=simulated.mean,
    )
