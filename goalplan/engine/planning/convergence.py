"""Fixed-point iteration combinator used by the planner loops."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from goalplan.engine.logging import setup_logger

__all__ = ["ConvergenceResult", "converge"]

LOG = setup_logger(__name__)

StateT = TypeVar("StateT")


@dataclass(frozen=True)
class ConvergenceResult(Generic[StateT]):
    """Last state reached by :func:`converge`.

    Attributes:
      state: Final state (best effort when not converged).
      iterations: Number of steps executed.
      converged: ``True`` when the last step moved less than the tolerance.
    """

    state: StateT
    iterations: int
    converged: bool


def converge(
    state: StateT,
    step_fn: Callable[[StateT, int], StateT],
    distance_fn: Callable[[StateT, StateT], float],
    *,
    tolerance: float,
    max_iterations: int,
) -> ConvergenceResult[StateT]:
    """Apply ``step_fn`` until two consecutive states are within ``tolerance``.

    Args:
      state: Initial state.
      step_fn: Pure function receiving the current state and the 1-based
        iteration number and returning the next state.
      distance_fn: Distance between two consecutive states.
      tolerance: Convergence is reached when the distance is strictly below it.
      max_iterations: Upper bound on the number of steps.

    Returns:
      :class:`ConvergenceResult` with the last state. Exhausting
      ``max_iterations`` is not an error; a warning is logged instead.
    """

    if max_iterations < 1:
        raise ValueError("max_iterations must be >= 1")
    current = state
    for iteration in range(1, max_iterations + 1):
        following = step_fn(current, iteration)
        distance = distance_fn(current, following)
        current = following
        if distance < tolerance:
            LOG.debug("converged after %d iterations (distance=%.2f)", iteration, distance)
            return ConvergenceResult(state=current, iterations=iteration, converged=True)
    LOG.warning(
        "no convergence after %d iterations; returning last state",
        max_iterations,
        extra={"iterations": max_iterations, "converged": False},
    )
    return ConvergenceResult(state=current, iterations=max_iterations, converged=False)
