from __future__ import annotations

import logging

import pytest

from goalplan.engine.planning.convergence import converge


def test_converge_stops_when_steps_shrink() -> None:
    result = converge(
        100.0,
        lambda value, _: value / 2.0,
        lambda before, after: abs(before - after),
        tolerance=1.0,
        max_iterations=20,
    )
    assert result.converged
    assert result.iterations == 7
    assert result.state == pytest.approx(100.0 / 2**7)


def test_converge_passes_iteration_number() -> None:
    seen: list[int] = []

    def _step(value: int, iteration: int) -> int:
        seen.append(iteration)
        return value

    result = converge(0, _step, lambda *_: 0.0, tolerance=1.0, max_iterations=5)
    assert seen == [1]
    assert result.iterations == 1


def test_converge_returns_last_state_and_warns(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        result = converge(0, lambda value, _: value + 10, lambda a, b: abs(b - a), tolerance=1.0, max_iterations=3)
    assert not result.converged
    assert result.iterations == 3
    assert result.state == 30
    assert any("no convergence" in record.getMessage() for record in caplog.records)


def test_converge_rejects_zero_iterations() -> None:
    with pytest.raises(ValueError):
        converge(0, lambda value, _: value, lambda *_: 0.0, tolerance=1.0, max_iterations=0)
