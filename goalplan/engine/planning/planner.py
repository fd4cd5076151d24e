"""Goal planner orchestrating the three planning methods.

A planning call walks through the same phases for every method::

    collect -> size basic -> allocate basic -> (converged? else rebalance corpus -> size basic)
            -> reclaim surplus -> allocate ambitious -> project -> emit

Phases are pure functions over immutable :class:`GoalTierState` records; the
only state carried between them is what they return. The methods differ in
how they size and where the corpus sits:

* Method 1 sizes with the envelope engine and leaves the corpus in the asset
  classes the customer holds today.
* Method 2 sizes with the lognormal Monte Carlo engine. Each goal keeps the
  corpus it was given and re-mixes it into its own allocation between
  iterations.
* Method 3 also sizes with Monte Carlo but starts from zero long-term corpus;
  between iterations the whole long-term corpus is pooled and shared between
  goals in proportion to their allocated contribution.

Goals due in less than three years are funded from the corpus only, sized to
their basic target; they never receive a contribution.
"""

from __future__ import annotations

import math
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import numpy as np

from goalplan.engine.logging import setup_logger
from goalplan.engine.planning.allocation import optimal_allocation
from goalplan.engine.planning.convergence import converge
from goalplan.engine.planning.envelope import (
    calculate_confidence_from_remaining,
    present_value_of_target,
)
from goalplan.engine.planning.errors import InvalidPlanningInput, MissingStatistic
from goalplan.engine.planning.models import (
    AMBITIOUS,
    BASIC,
    BOND,
    CASH,
    TIERS,
    AssetClassUniverse,
    Bounds,
    ContributionInput,
    CustomerHoldings,
    FeasibilityRow,
    Goal,
    GoalTierState,
    NetworthProjection,
    PlanningResult,
)
from goalplan.engine.planning.montecarlo import (
    DEFAULT_PATHS,
    LITE_PATHS,
    bounds_from_paths,
    confidence_from_paths,
    run_multi_goal_lite,
)
from goalplan.engine.planning.projection import networth_before_withdrawal, project_networth
from goalplan.engine.planning.rebalancer import (
    rebalance_across_goals,
    rebalance_by_contribution,
    rebalance_to_allocation,
    remix_goal_corpus,
)
from goalplan.engine.planning.returns import horizon_key, round_to_thousand
from goalplan.engine.planning.sizing import EnvelopeSizer, MonteCarloSizer, Sizer
from goalplan.engine.planning.summary import (
    build_contribution_plan,
    build_contribution_schedule,
    determine_status,
    round_corpus_allocation,
    round_projection,
)
from goalplan.engine.utils.rand import generator_from_seed, spawn_seed_sequences

__all__ = [
    "SIP_TOLERANCE",
    "DEFAULT_MAX_ITERATIONS",
    "SHORT_TERM_HORIZON_YEARS",
    "CONFIDENCE_CAN_BE_MET",
    "CONFIDENCE_AT_RISK_MIN",
    "METHODS",
    "plan_method1",
    "plan_method2",
    "plan_method3",
    "plan",
]

LOG = setup_logger(__name__)

SIP_TOLERANCE = 1000.0
DEFAULT_MAX_ITERATIONS = 20
SHORT_TERM_HORIZON_YEARS = 3
CONFIDENCE_CAN_BE_MET = 90.0
CONFIDENCE_AT_RISK_MIN = 50.0
METHODS: dict[int, str] = {
    1: "current allocation",
    2: "rebalance then recompute",
    3: "iterative zero-start",
}
PORTFOLIO_SEED_KEY = "portfolio"


@dataclass(frozen=True)
class PlanningContext:
    """Inputs shared by every phase of one planning call.

    Attributes:
      method: Planning method number.
      goals: All goals ordered by basic priority.
      short_term: Goals due in less than three years, by basic priority.
      long_term: Remaining goals, by basic priority.
      holdings: Customer holdings.
      universe: Asset class statistics.
      contribution: Contribution parameters.
      sizer: Sizing strategy for the method.
      basic_allocations: Month-0 basic allocation per goal id.
      ambitious_allocations: Ambitious allocation per goal id.
    """

    method: int
    goals: tuple[Goal, ...]
    short_term: tuple[Goal, ...]
    long_term: tuple[Goal, ...]
    holdings: CustomerHoldings
    universe: AssetClassUniverse
    contribution: ContributionInput
    sizer: Sizer
    basic_allocations: Mapping[str, Mapping[str, float]]
    ambitious_allocations: Mapping[str, Mapping[str, float]]

    @property
    def available(self) -> float:
        return self.contribution.available

    @property
    def step_up_pct(self) -> float:
        return self.contribution.annual_step_up_pct

    @property
    def allowed(self) -> tuple[str, ...]:
        return self.holdings.allowed_asset_classes


@dataclass(frozen=True)
class BasicPass:
    """Long-term basic states produced by one iteration of the sizing loop.

    Attributes:
      states: Basic state per goal id.
      required: Contribution each goal required in this iteration.
    """

    states: Mapping[str, GoalTierState]
    required: Mapping[str, float]


def _validate_inputs(
    method: int,
    goals: Sequence[Goal],
    contribution: ContributionInput,
    max_iterations: int,
    paths: int,
) -> None:
    if method not in METHODS:
        raise InvalidPlanningInput(f"unknown planning method {method}")
    if not goals:
        raise InvalidPlanningInput("at least one goal is required")
    goal_ids = [goal.goal_id for goal in goals]
    if len(set(goal_ids)) != len(goal_ids):
        raise InvalidPlanningInput("goal ids must be unique")
    for goal in goals:
        if goal.horizon_years < 0:
            raise InvalidPlanningInput(f"goal '{goal.goal_id}' has a negative horizon")
        for tier in TIERS:
            requested = goal.tier(tier)
            if requested.target_amount < 0:
                raise InvalidPlanningInput(f"goal '{goal.goal_id}' {tier} target must be >= 0")
            if requested.priority < 1:
                raise InvalidPlanningInput(f"goal '{goal.goal_id}' {tier} priority must be >= 1")
    if contribution.monthly_amount < 0:
        raise InvalidPlanningInput("monthly contribution must be >= 0")
    if not 0 <= contribution.stretch_pct <= 100:
        raise InvalidPlanningInput("stretch percentage must be within [0, 100]")
    if contribution.annual_step_up_pct < 0:
        raise InvalidPlanningInput("annual step-up must be >= 0")
    if max_iterations < 1:
        raise InvalidPlanningInput("max_iterations must be >= 1")
    if paths < 1:
        raise InvalidPlanningInput("monte carlo paths must be >= 1")


def _require_volatility(
    goals: Sequence[Goal],
    allowed: Sequence[str],
    universe: AssetClassUniverse,
    allocations: Sequence[Mapping[str, Mapping[str, float]]],
) -> None:
    """Fail fast when a class a goal may be allocated to has no volatility.

    Covers the month-0 allocations of both tiers and the bond sleeve the
    glide path can introduce.
    """

    for goal in goals:
        horizon = horizon_key(goal.horizon_years)
        names: list[str] = []
        for by_goal in allocations:
            names.extend(by_goal.get(goal.goal_id, {}))
        if BOND in allowed:
            names.append(BOND)
        for name in dict.fromkeys(names):
            if name == CASH:
                continue
            stats = universe.stats_for(name, horizon)
            if stats is not None and stats.volatility_pct is None:
                raise MissingStatistic(name, horizon_key=horizon)


def _has_volatility(ctx: PlanningContext) -> bool:
    for goal in ctx.goals:
        horizon = horizon_key(goal.horizon_years)
        for by_goal in (ctx.basic_allocations, ctx.ambitious_allocations):
            for name in by_goal.get(goal.goal_id, {}):
                stats = ctx.universe.stats_for(name, horizon)
                if name != CASH and stats is not None and stats.volatility_pct is None:
                    return False
    return True


def _non_cash(allocation: Mapping[str, float]) -> dict[str, float]:
    return {name: pct for name, pct in allocation.items() if name != CASH and pct > 0}


def _split_by_allocation(amount: float, allocation: Mapping[str, float]) -> dict[str, float]:
    weights = _non_cash(allocation)
    total = sum(weights.values())
    if amount <= 0 or total <= 0:
        return {}
    return {name: amount * pct / total for name, pct in weights.items()}


def _pv_requirements(ctx: PlanningContext, goals: Sequence[Goal], total: float) -> dict[str, float]:
    """Share ``total`` between ``goals`` by the present value of their basic targets."""

    if not goals:
        return {}
    if len(goals) == 1:
        return {goals[0].goal_id: total}
    present_values = {
        goal.goal_id: present_value_of_target(
            goal.basic.target_amount,
            ctx.basic_allocations[goal.goal_id],
            ctx.universe,
            goal.horizon_years,
        )
        for goal in goals
    }
    pv_total = sum(present_values.values())
    if pv_total <= 0:
        return {goal.goal_id: total / len(goals) for goal in goals}
    return {goal_id: pv / pv_total * total for goal_id, pv in present_values.items()}


def _evaluate(
    ctx: PlanningContext,
    goal: Goal,
    tier: str,
    corpus: Mapping[str, float],
    contribution: float,
    *,
    extra_contribution: float = 0.0,
) -> GoalTierState:
    """Build the state of a goal tier from its resources.

    ``extra_contribution`` is contribution already committed to the goal's
    other tier; it takes part in the projection but is not stored on the state.
    """

    allocation = (
        ctx.basic_allocations[goal.goal_id] if tier == BASIC else ctx.ambitious_allocations[goal.goal_id]
    )
    key = f"{goal.goal_id}_{tier}"
    bounds, confidence = ctx.sizer.evaluate(
        goal,
        key,
        goal.tier(tier).target_amount,
        corpus,
        contribution + extra_contribution,
        allocation,
    )
    return GoalTierState(
        goal_id=goal.goal_id,
        tier=tier,
        corpus=corpus,
        contribution=contribution,
        allocation=allocation,
        bounds=bounds,
        confidence=confidence,
    )


def _short_term_states(ctx: PlanningContext) -> dict[str, GoalTierState]:
    """Fund short-term goals from the corpus in priority order, without contribution."""

    requirements = {goal.goal_id: goal.basic.target_amount for goal in ctx.short_term}
    assigned = rebalance_across_goals(ctx.holdings.by_asset_class, ctx.short_term, requirements)
    states: dict[str, GoalTierState] = {}
    for goal in ctx.short_term:
        corpus = assigned.get(goal.goal_id, {})
        if ctx.method == 3:
            target = _non_cash(ctx.basic_allocations[goal.goal_id])
            corpus = {name: amount for name, amount in rebalance_to_allocation(corpus, target).items() if amount > 0}
        states[goal.goal_id] = _evaluate(ctx, goal, BASIC, corpus, 0.0)
    return states


def _remaining_holdings(
    holdings: CustomerHoldings,
    short_states: Mapping[str, GoalTierState],
) -> dict[str, float]:
    """Corpus left for long-term goals once short-term goals took their share.

    Short-term corpus is normally taken from held classes. Under Method 3 it
    is rebalanced and may not match the holdings class by class; the total is
    then removed pro rata.
    """

    remaining = dict(holdings.by_asset_class)
    used_by_class: dict[str, float] = {}
    for state in short_states.values():
        for name, amount in state.corpus.items():
            used_by_class[name] = used_by_class.get(name, 0.0) + amount
    if any(amount > remaining.get(name, 0.0) + 1e-6 for name, amount in used_by_class.items()):
        total = holdings.total
        used = sum(used_by_class.values())
        scale = max(0.0, (total - used) / total) if total > 0 else 0.0
        return {name: amount * scale for name, amount in remaining.items()}
    for name, amount in used_by_class.items():
        remaining[name] = max(0.0, remaining[name] - amount)
    return remaining


def _initial_long_term_corpus(
    ctx: PlanningContext,
    remaining: Mapping[str, float],
) -> dict[str, dict[str, float]]:
    if ctx.method == 3:
        return {goal.goal_id: {} for goal in ctx.long_term}
    requirements = _pv_requirements(ctx, ctx.long_term, float(sum(remaining.values())))
    return rebalance_across_goals(remaining, ctx.long_term, requirements)


def _rebalance_long_term_corpus(
    ctx: PlanningContext,
    previous: BasicPass,
    available_corpus: float,
) -> dict[str, dict[str, float]]:
    """Corpus for the next iteration of the basic loop.

    Method 2 re-mixes each goal's own corpus into its allocation. Method 3
    pools the whole long-term corpus and shares it by allocated contribution,
    falling back to present-value shares while no contribution is allocated.
    """

    corpus = {goal_id: state.corpus for goal_id, state in previous.states.items()}
    if ctx.method == 2:
        return remix_goal_corpus(corpus, ctx.basic_allocations)
    if ctx.method != 3:
        return {goal_id: dict(by_class) for goal_id, by_class in corpus.items()}
    weights = {goal.goal_id: previous.states[goal.goal_id].contribution for goal in ctx.long_term}
    if sum(weights.values()) <= 0:
        weights = _pv_requirements(ctx, ctx.long_term, 1.0)
    allocations = {goal.goal_id: ctx.basic_allocations[goal.goal_id] for goal in ctx.long_term}
    return rebalance_by_contribution(available_corpus, weights, allocations)


def _allocate_contributions(ctx: PlanningContext, required: Mapping[str, float]) -> dict[str, float]:
    """Fund required contributions, greedily by priority when they do not all fit."""

    available = ctx.available
    if sum(required.values()) <= available:
        allocated = dict(required)
        if ctx.method == 1 and len(ctx.long_term) == 1:
            goal_id = ctx.long_term[0].goal_id
            gap = available - allocated[goal_id]
            if 0 < gap < min(0.01 * available, 100.0):
                allocated[goal_id] = available
        return allocated
    allocated = {}
    remaining = available
    for goal in ctx.long_term:
        take = min(required[goal.goal_id], max(0.0, remaining))
        allocated[goal.goal_id] = take
        remaining -= take
    return allocated


def _size_basic(ctx: PlanningContext, corpus_by_goal: Mapping[str, Mapping[str, float]]) -> BasicPass:
    required = {
        goal.goal_id: ctx.sizer.required_contribution(
            goal,
            f"{goal.goal_id}_{BASIC}",
            goal.basic.target_amount,
            corpus_by_goal.get(goal.goal_id, {}),
            ctx.basic_allocations[goal.goal_id],
        )
        for goal in ctx.long_term
    }
    allocated = _allocate_contributions(ctx, required)
    states = {
        goal.goal_id: _evaluate(ctx, goal, BASIC, corpus_by_goal.get(goal.goal_id, {}), allocated[goal.goal_id])
        for goal in ctx.long_term
    }
    return BasicPass(states=states, required=required)


def _contribution_distance(previous: BasicPass, current: BasicPass) -> float:
    if not previous.required:
        # The seed pass was never sized.
        return math.inf
    return max(
        (
            abs(current.states[goal_id].contribution - previous.states[goal_id].contribution)
            for goal_id in current.states
        ),
        default=0.0,
    )


def _reclaim_contribution(ctx: PlanningContext, basic: BasicPass) -> BasicPass:
    """Trim basic contributions above the 90% minimum and hand the excess to underfunded goals."""

    states = dict(basic.states)
    freed = 0.0
    for goal in ctx.long_term:
        state = states[goal.goal_id]
        if state.confidence < CONFIDENCE_CAN_BE_MET or state.contribution <= 0:
            continue
        minimum = ctx.sizer.minimum_contribution(
            goal,
            state.key,
            goal.basic.target_amount,
            state.corpus,
            state.allocation,
            CONFIDENCE_CAN_BE_MET,
        )
        trimmed = min(state.contribution, max(minimum, 0.0))
        if trimmed < state.contribution:
            freed += state.contribution - trimmed
            states[goal.goal_id] = _evaluate(ctx, goal, BASIC, state.corpus, trimmed)

    for goal in ctx.long_term:
        if freed <= 0:
            break
        state = states[goal.goal_id]
        shortfall = basic.required[goal.goal_id] - state.contribution
        if shortfall <= 0 or state.confidence >= CONFIDENCE_CAN_BE_MET:
            continue
        extra = min(shortfall, freed)
        freed -= extra
        states[goal.goal_id] = _evaluate(ctx, goal, BASIC, state.corpus, state.contribution + extra)
    return BasicPass(states=states, required=basic.required)


def _reclaim_corpus(ctx: PlanningContext, basic: BasicPass) -> BasicPass:
    """Move corpus beyond the 90% minimum of funded goals to goals below 90%.

    Released amounts keep their asset class. Each needy goal receives a
    present-value share, taken first from the classes of its allocation and
    then from whatever surplus is left.
    """

    states = basic.states
    needy = [goal for goal in ctx.long_term if states[goal.goal_id].confidence < CONFIDENCE_CAN_BE_MET]
    if not needy:
        return basic

    corpus = {goal_id: dict(state.corpus) for goal_id, state in states.items()}
    surplus: dict[str, float] = {}
    for goal in ctx.long_term:
        state = states[goal.goal_id]
        if state.confidence <= CONFIDENCE_CAN_BE_MET or state.corpus_total <= 0:
            continue
        minimum = ctx.sizer.minimum_corpus(
            goal,
            state.key,
            goal.basic.target_amount,
            state.corpus,
            state.contribution,
            state.allocation,
            CONFIDENCE_CAN_BE_MET,
        )
        for name, amount in state.corpus.items():
            keep = min(amount, max(0.0, minimum.get(name, 0.0)))
            if keep < amount:
                surplus[name] = surplus.get(name, 0.0) + amount - keep
                corpus[goal.goal_id][name] = keep
    surplus_total = sum(surplus.values())
    if surplus_total <= 0:
        return basic

    shares = _pv_requirements(ctx, needy, 1.0)
    for goal in needy:
        wanted = _split_by_allocation(shares[goal.goal_id] * surplus_total, ctx.basic_allocations[goal.goal_id])
        for name, amount in wanted.items():
            give = min(amount, surplus.get(name, 0.0))
            if give <= 0:
                continue
            corpus[goal.goal_id][name] = corpus[goal.goal_id].get(name, 0.0) + give
            surplus[name] -= give
    for name, amount in surplus.items():
        if amount <= 0:
            continue
        for goal in needy:
            corpus[goal.goal_id][name] = corpus[goal.goal_id].get(name, 0.0) + amount * shares[goal.goal_id]

    LOG.info("reclaimed corpus %.0f for %d goals below target confidence", surplus_total, len(needy))
    recomputed = {
        goal.goal_id: _evaluate(
            ctx,
            goal,
            BASIC,
            {name: amount for name, amount in corpus[goal.goal_id].items() if amount > 0},
            states[goal.goal_id].contribution,
        )
        for goal in ctx.long_term
    }
    return BasicPass(states=recomputed, required=basic.required)


def _split_by_inverse_priority(
    goals: Sequence[Goal],
    needs: Mapping[str, float],
    surplus: float,
) -> dict[str, float]:
    """Share ``surplus`` in proportion to ``1 / priority``, capped at each goal's need.

    Whatever a capped goal cannot absorb is shared again between the others.
    """

    allocated = {goal.goal_id: 0.0 for goal in goals}
    remaining = surplus
    active = [goal for goal in goals if needs.get(goal.goal_id, 0.0) > 0]
    while remaining > 1e-6 and active:
        weights = {goal.goal_id: 1.0 / goal.ambitious.priority for goal in active}
        weight_total = sum(weights.values())
        distributed = 0.0
        for goal in active:
            room = needs[goal.goal_id] - allocated[goal.goal_id]
            give = min(room, remaining * weights[goal.goal_id] / weight_total)
            allocated[goal.goal_id] += give
            distributed += give
        remaining -= distributed
        active = [goal for goal in active if needs[goal.goal_id] - allocated[goal.goal_id] > 1e-6]
        if distributed <= 1e-6:
            break
    return allocated


def _plan_ambitious(ctx: PlanningContext, basic_states: Mapping[str, GoalTierState]) -> dict[str, GoalTierState]:
    """Fund ambitious tiers of goals whose basic tier reached 90% confidence.

    An ambitious tier is projected on the goal's corpus together with both
    tiers' contributions. Tiers whose basic mean already covers the ambitious
    target receive nothing.
    """

    committed = sum(state.contribution for state in basic_states.values())
    surplus = max(0.0, ctx.available - committed)
    candidates = sorted(
        (goal for goal in ctx.long_term if basic_states[goal.goal_id].confidence >= CONFIDENCE_CAN_BE_MET),
        key=lambda goal: goal.ambitious.priority,
    )
    eligible = [
        goal
        for goal in candidates
        if basic_states[goal.goal_id].bounds.mean < goal.ambitious.target_amount
    ]
    needs: dict[str, float] = {}
    for goal in eligible:
        basic = basic_states[goal.goal_id]
        minimum_total = ctx.sizer.minimum_contribution(
            goal,
            f"{goal.goal_id}_{AMBITIOUS}",
            goal.ambitious.target_amount,
            basic.corpus,
            ctx.ambitious_allocations[goal.goal_id],
            CONFIDENCE_CAN_BE_MET,
        )
        needs[goal.goal_id] = max(0.0, minimum_total - basic.contribution)
    amounts = _split_by_inverse_priority(eligible, needs, surplus)

    return {
        goal.goal_id: _evaluate(
            ctx,
            goal,
            AMBITIOUS,
            basic_states[goal.goal_id].corpus,
            amounts.get(goal.goal_id, 0.0),
            extra_contribution=basic_states[goal.goal_id].contribution,
        )
        for goal in candidates
    }


def _feasibility_rows(
    ctx: PlanningContext,
    states: Mapping[str, GoalTierState],
    projections: Mapping[str, NetworthProjection],
    rng: np.random.Generator,
) -> tuple[FeasibilityRow, ...]:
    """Per-goal and portfolio-level verdicts for every goal tier with a state.

    Single-goal plans reuse the goal's own confidence. Multi-goal plans use
    the multi-goal Monte Carlo net-worth distribution when volatility data is
    available and otherwise fall back to the projected remaining net worth.
    """

    single_goal = len(ctx.goals) == 1
    simulate_portfolio = not single_goal and _has_volatility(ctx)
    rows: list[FeasibilityRow] = []
    for goal in sorted(ctx.goals, key=lambda item: item.horizon_years):
        for tier in TIERS:
            state = states.get(f"{goal.goal_id}_{tier}")
            if state is None:
                continue
            target = goal.tier(tier).target_amount
            networth = networth_before_withdrawal(projections[tier], goal, tier)
            if single_goal:
                confidence = state.confidence
                portfolio = Bounds(lower=min(state.bounds.lower, networth), mean=networth)
                status_lower = state.bounds.lower
            elif simulate_portfolio:
                finals = run_multi_goal_lite(
                    ctx.goals,
                    states,
                    ctx.universe,
                    ctx.allowed,
                    target_goal_id=goal.goal_id,
                    tier=tier,
                    step_up_pct=ctx.step_up_pct,
                    rng=rng,
                    paths=LITE_PATHS,
                )
                portfolio = bounds_from_paths(finals)
                confidence = float(confidence_from_paths(finals, target))
                status_lower = portfolio.lower
            else:
                spread = state.bounds.mean - state.bounds.lower
                portfolio = Bounds(lower=networth - spread, mean=networth)
                confidence = calculate_confidence_from_remaining(portfolio.lower - target, target)
                status_lower = portfolio.lower

            confidence_pct = int(min(100, max(0, round(confidence))))
            rows.append(
                FeasibilityRow(
                    goal_id=goal.goal_id,
                    goal_name=goal.goal_name,
                    tier=tier,
                    status=determine_status(confidence_pct, status_lower, target),
                    confidence_pct=confidence_pct,
                    target_amount=round_to_thousand(target),
                    goal_bounds=Bounds(
                        lower=round_to_thousand(state.bounds.lower),
                        mean=round_to_thousand(state.bounds.mean),
                    ),
                    portfolio_bounds=Bounds(
                        lower=round_to_thousand(portfolio.lower),
                        mean=round_to_thousand(portfolio.mean),
                    ),
                    lower_deviation=round_to_thousand(state.bounds.lower - target),
                    mean_deviation=round_to_thousand(state.bounds.mean - target),
                )
            )
    return tuple(rows)


def _run(
    method: int,
    goals: Sequence[Goal],
    holdings: CustomerHoldings,
    universe: AssetClassUniverse,
    contribution: ContributionInput,
    *,
    max_iterations: int,
    monte_carlo_paths: int,
    seed: int | np.random.Generator | None,
) -> PlanningResult:
    started = time.perf_counter()
    _validate_inputs(method, goals, contribution, max_iterations, monte_carlo_paths)
    ordered = tuple(sorted(goals, key=lambda goal: goal.basic.priority))
    allowed = holdings.allowed_asset_classes
    basic_allocations = {
        goal.goal_id: optimal_allocation(goal, BASIC, allowed, universe, current_month=0) for goal in ordered
    }
    ambitious_allocations = {
        goal.goal_id: optimal_allocation(goal, AMBITIOUS, allowed, universe, current_month=0) for goal in ordered
    }

    rng = generator_from_seed(seed)
    keys = [f"{goal.goal_id}_{tier}" for goal in ordered for tier in TIERS] + [PORTFOLIO_SEED_KEY]
    seeds = dict(zip(keys, spawn_seed_sequences(rng, len(keys)), strict=True))
    sizer: Sizer
    if method == 1:
        sizer = EnvelopeSizer(universe=universe, step_up_pct=contribution.annual_step_up_pct)
    else:
        _require_volatility(ordered, allowed, universe, (basic_allocations, ambitious_allocations))
        sizer = MonteCarloSizer(
            universe=universe,
            seeds=seeds,
            step_up_pct=contribution.annual_step_up_pct,
            paths=monte_carlo_paths,
        )

    ctx = PlanningContext(
        method=method,
        goals=ordered,
        short_term=tuple(goal for goal in ordered if goal.horizon_years < SHORT_TERM_HORIZON_YEARS),
        long_term=tuple(goal for goal in ordered if goal.horizon_years >= SHORT_TERM_HORIZON_YEARS),
        holdings=holdings,
        universe=universe,
        contribution=contribution,
        sizer=sizer,
        basic_allocations=basic_allocations,
        ambitious_allocations=ambitious_allocations,
    )
    LOG.info(
        "plan method=%d (%s) goals=%d short_term=%d available=%.0f corpus=%.0f",
        method,
        METHODS[method],
        len(ordered),
        len(ctx.short_term),
        ctx.available,
        holdings.total,
    )

    short_states = _short_term_states(ctx)
    remaining = _remaining_holdings(holdings, short_states)
    long_corpus_total = float(sum(remaining.values()))

    iterations, converged = 0, True
    basic = BasicPass(states={}, required={})
    if ctx.long_term:
        initial_corpus = _initial_long_term_corpus(ctx, remaining)
        seed_pass = BasicPass(
            states={
                goal.goal_id: GoalTierState(
                    goal_id=goal.goal_id,
                    tier=BASIC,
                    corpus=initial_corpus.get(goal.goal_id, {}),
                    allocation=basic_allocations[goal.goal_id],
                )
                for goal in ctx.long_term
            },
            required={},
        )

        def _step(previous: BasicPass, iteration: int) -> BasicPass:
            if iteration > 1:
                return _size_basic(ctx, _rebalance_long_term_corpus(ctx, previous, long_corpus_total))
            return _size_basic(ctx, {goal_id: state.corpus for goal_id, state in previous.states.items()})

        outcome = converge(
            seed_pass,
            _step,
            _contribution_distance,
            tolerance=SIP_TOLERANCE,
            max_iterations=max_iterations,
        )
        iterations, converged = outcome.iterations, outcome.converged
        basic = _reclaim_contribution(ctx, outcome.state)
        basic = _reclaim_corpus(ctx, basic)

    ambitious = _plan_ambitious(ctx, basic.states)
    states: dict[str, GoalTierState] = {}
    for state in (*short_states.values(), *basic.states.values(), *ambitious.values()):
        states[state.key] = state

    projections = {
        tier: project_networth(ordered, states, universe, allowed, step_up_pct=ctx.step_up_pct, tier=tier)
        for tier in TIERS
    }
    rows = _feasibility_rows(ctx, states, projections, np.random.default_rng(seeds[PORTFOLIO_SEED_KEY]))
    contribution_plan = build_contribution_plan(ordered, states, ctx.available)
    result = PlanningResult(
        method=method,
        feasibility_table=rows,
        contribution_plan=contribution_plan,
        contribution_schedule=build_contribution_schedule(contribution_plan, ordered, ctx.step_up_pct),
        corpus_allocation=round_corpus_allocation(states, holdings.total),
        projection=round_projection(projections[BASIC]),
        iterations=iterations,
        converged=converged,
    )
    elapsed_ms = (time.perf_counter() - started) * 1000.0
    LOG.info(
        "plan method=%d iterations=%d converged=%s rows=%d",
        method,
        iterations,
        converged,
        len(rows),
        extra={"process_time_ms": elapsed_ms, "iterations": iterations, "converged": converged},
    )
    return result


def plan_method1(
    goals: Sequence[Goal],
    holdings: CustomerHoldings,
    universe: AssetClassUniverse,
    contribution: ContributionInput,
    *,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    seed: int | np.random.Generator | None = None,
) -> PlanningResult:
    """Plan with envelope sizing and the corpus left in its current asset classes.

    Args:
      goals: Goals to plan.
      holdings: Customer holdings and allowed asset classes.
      universe: Asset class statistics.
      contribution: Monthly contribution parameters.
      max_iterations: Cap on the basic-tier loop.
      seed: Seed or generator for the portfolio-level Monte Carlo check.

    Returns:
      :class:`PlanningResult` with rounded outputs.
    """

    return _run(
        1,
        goals,
        holdings,
        universe,
        contribution,
        max_iterations=max_iterations,
        monte_carlo_paths=LITE_PATHS,
        seed=seed,
    )


def plan_method2(
    goals: Sequence[Goal],
    holdings: CustomerHoldings,
    universe: AssetClassUniverse,
    contribution: ContributionInput,
    *,
    monte_carlo_paths: int = DEFAULT_PATHS,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    seed: int | np.random.Generator | None = None,
) -> PlanningResult:
    """Plan with Monte Carlo sizing, rebalancing the corpus between iterations.

    Raises:
      MissingStatistic: If a class the goals may use has no ``volatility_pct``.
    """

    return _run(
        2,
        goals,
        holdings,
        universe,
        contribution,
        max_iterations=max_iterations,
        monte_carlo_paths=monte_carlo_paths,
        seed=seed,
    )


def plan_method3(
    goals: Sequence[Goal],
    holdings: CustomerHoldings,
    universe: AssetClassUniverse,
    contribution: ContributionInput,
    *,
    monte_carlo_paths: int = DEFAULT_PATHS,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    seed: int | np.random.Generator | None = None,
) -> PlanningResult:
    """Plan with Monte Carlo sizing starting from zero long-term corpus.

    Raises:
      MissingStatistic: If a class the goals may use has no ``volatility_pct``.
    """

    return _run(
        3,
        goals,
        holdings,
        universe,
        contribution,
        max_iterations=max_iterations,
        monte_carlo_paths=monte_carlo_paths,
        seed=seed,
    )


def plan(
    method: int,
    goals: Sequence[Goal],
    holdings: CustomerHoldings,
    universe: AssetClassUniverse,
    contribution: ContributionInput,
    *,
    monte_carlo_paths: int = DEFAULT_PATHS,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    seed: int | np.random.Generator | None = None,
) -> PlanningResult:
    """Dispatch to :func:`plan_method1`, :func:`plan_method2` or :func:`plan_method3`."""

    if method == 1:
        return plan_method1(goals, holdings, universe, contribution, max_iterations=max_iterations, seed=seed)
    if method == 2:
        return plan_method2(
            goals,
            holdings,
            universe,
            contribution,
            monte_carlo_paths=monte_carlo_paths,
            max_iterations=max_iterations,
            seed=seed,
        )
    if method == 3:
        return plan_method3(
            goals,
            holdings,
            universe,
            contribution,
            monte_carlo_paths=monte_carlo_paths,
            max_iterations=max_iterations,
            seed=seed,
        )
    raise InvalidPlanningInput(f"unknown planning method {method}")
