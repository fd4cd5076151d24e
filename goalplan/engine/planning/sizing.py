"""Sizing strategies shared by the planning methods.

A sizer answers four questions for a goal tier: how much contribution its
target requires, what bounds and confidence a given set of resources yields,
and the smallest contribution or corpus reaching the confidence threshold.
Method 1 answers them with the envelope engine, Methods 2 and 3 with the
lognormal Monte Carlo engine.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

import numpy as np

from goalplan.engine.planning import envelope, montecarlo
from goalplan.engine.planning.allocation import weighted_stats
from goalplan.engine.planning.models import AssetClassStats, AssetClassUniverse, Bounds, Goal
from goalplan.engine.planning.returns import horizon_key

__all__ = ["Sizer", "EnvelopeSizer", "MonteCarloSizer"]


class Sizer(Protocol):
    """Interface implemented by :class:`EnvelopeSizer` and :class:`MonteCarloSizer`."""

    def required_contribution(
        self,
        goal: Goal,
        key: str,
        target: float,
        corpus: Mapping[str, float],
        allocation: Mapping[str, float],
    ) -> float: ...

    def evaluate(
        self,
        goal: Goal,
        key: str,
        target: float,
        corpus: Mapping[str, float],
        contribution: float,
        allocation: Mapping[str, float],
    ) -> tuple[Bounds, float]: ...

    def minimum_contribution(
        self,
        goal: Goal,
        key: str,
        target: float,
        corpus: Mapping[str, float],
        allocation: Mapping[str, float],
        threshold: float,
    ) -> float: ...

    def minimum_corpus(
        self,
        goal: Goal,
        key: str,
        target: float,
        corpus: Mapping[str, float],
        contribution: float,
        allocation: Mapping[str, float],
        threshold: float,
    ) -> dict[str, float]: ...


@dataclass(frozen=True)
class EnvelopeSizer:
    """Closed-form sizing on the allocation's weighted statistics."""

    universe: AssetClassUniverse
    step_up_pct: float = 0.0

    def _stats(self, goal: Goal, allocation: Mapping[str, float]) -> AssetClassStats:
        return weighted_stats(allocation, self.universe, horizon_key(goal.horizon_years))

    def required_contribution(
        self,
        goal: Goal,
        key: str,
        target: float,
        corpus: Mapping[str, float],
        allocation: Mapping[str, float],
    ) -> float:
        return envelope.required_sip(
            target,
            sum(corpus.values()),
            self._stats(goal, allocation),
            goal.horizon_years,
            self.step_up_pct,
        )

    def evaluate(
        self,
        goal: Goal,
        key: str,
        target: float,
        corpus: Mapping[str, float],
        contribution: float,
        allocation: Mapping[str, float],
    ) -> tuple[Bounds, float]:
        bounds = envelope.calculate_bounds(
            sum(corpus.values()),
            contribution,
            self._stats(goal, allocation),
            goal.horizon_years,
            self.step_up_pct,
        )
        return bounds, envelope.calculate_confidence(target, bounds)

    def minimum_contribution(
        self,
        goal: Goal,
        key: str,
        target: float,
        corpus: Mapping[str, float],
        allocation: Mapping[str, float],
        threshold: float,
    ) -> float:
        return envelope.min_sip_for_confidence(
            target,
            sum(corpus.values()),
            self._stats(goal, allocation),
            goal.horizon_years,
            self.step_up_pct,
            threshold,
        )

    def minimum_corpus(
        self,
        goal: Goal,
        key: str,
        target: float,
        corpus: Mapping[str, float],
        contribution: float,
        allocation: Mapping[str, float],
        threshold: float,
    ) -> dict[str, float]:
        total = float(sum(corpus.values()))
        if total <= 0:
            return dict(corpus)
        needed = envelope.min_corpus_for_confidence(
            target,
            contribution,
            self._stats(goal, allocation),
            goal.horizon_years,
            self.step_up_pct,
            threshold,
            reference_corpus=total,
        )
        scale = needed / total
        return {name: amount * scale for name, amount in corpus.items()}


@dataclass(frozen=True)
class MonteCarloSizer:
    """Lognormal Monte Carlo sizing with one seed sequence per goal tier.

    Every call for the same ``key`` rebuilds its generator from the same seed
    sequence, so repeated evaluations of a goal tier share their random shocks
    and only the resources change between planner iterations.
    """

    universe: AssetClassUniverse
    seeds: Mapping[str, np.random.SeedSequence]
    step_up_pct: float = 0.0
    paths: int = montecarlo.DEFAULT_PATHS

    def _rng(self, key: str) -> np.random.Generator:
        return np.random.default_rng(self.seeds[key])

    def required_contribution(
        self,
        goal: Goal,
        key: str,
        target: float,
        corpus: Mapping[str, float],
        allocation: Mapping[str, float],
    ) -> float:
        return montecarlo.required_sip_mc(
            target,
            corpus,
            allocation,
            self.universe,
            goal.horizon_years,
            rng=self._rng(key),
            paths=self.paths,
            step_up_pct=self.step_up_pct,
        )

    def evaluate(
        self,
        goal: Goal,
        key: str,
        target: float,
        corpus: Mapping[str, float],
        contribution: float,
        allocation: Mapping[str, float],
    ) -> tuple[Bounds, float]:
        outcome = montecarlo.simulate_lognormal(
            corpus,
            contribution,
            allocation,
            self.universe,
            goal.horizon_years,
            rng=self._rng(key),
            paths=self.paths,
            step_up_pct=self.step_up_pct,
        )
        return outcome.bounds, float(outcome.confidence(target))

    def minimum_contribution(
        self,
        goal: Goal,
        key: str,
        target: float,
        corpus: Mapping[str, float],
        allocation: Mapping[str, float],
        threshold: float,
    ) -> float:
        return montecarlo.min_sip_for_confidence_mc(
            target,
            corpus,
            allocation,
            self.universe,
            goal.horizon_years,
            rng=self._rng(key),
            paths=self.paths,
            step_up_pct=self.step_up_pct,
            threshold=threshold,
        )

    def minimum_corpus(
        self,
        goal: Goal,
        key: str,
        target: float,
        corpus: Mapping[str, float],
        contribution: float,
        allocation: Mapping[str, float],
        threshold: float,
    ) -> dict[str, float]:
        return montecarlo.min_corpus_for_confidence_mc(
            target,
            contribution,
            allocation,
            self.universe,
            goal.horizon_years,
            corpus,
            rng=self._rng(key),
            paths=self.paths,
            step_up_pct=self.step_up_pct,
            threshold=threshold,
        )
