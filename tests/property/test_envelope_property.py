from __future__ import annotations

import pytest

try:
    from hypothesis import given
    from hypothesis import strategies as st
except ModuleNotFoundError:  # pragma: no cover - dipendenza opzionale
    pytest.skip("Richiede la libreria hypothesis", allow_module_level=True)

from goalplan.engine.planning.envelope import (
    calculate_bounds,
    calculate_confidence,
    calculate_confidence_from_remaining,
)
from goalplan.engine.planning.models import AssetClassStats, Bounds

_AMOUNTS = st.floats(min_value=0.0, max_value=10_000_000.0, allow_nan=False, allow_infinity=False)


@st.composite
def _stats(draw: st.DrawFn) -> AssetClassStats:
    return AssetClassStats(
        avg_return_pct=draw(st.floats(min_value=-5.0, max_value=25.0)),
        prob_negative_year_pct=draw(st.floats(min_value=0.0, max_value=60.0)),
        expected_shortfall_pct=draw(st.floats(min_value=-40.0, max_value=0.0)),
        max_drawdown_pct=-50.0,
        volatility_pct=None,
    )


@given(
    corpus=_AMOUNTS,
    contribution=st.floats(min_value=0.0, max_value=200_000.0),
    stats=_stats(),
    horizon=st.integers(min_value=0, max_value=30),
    step_up=st.floats(min_value=0.0, max_value=20.0),
)
def test_bounds_lower_never_exceeds_mean(
    corpus: float, contribution: float, stats: AssetClassStats, horizon: int, step_up: float
) -> None:
    bounds = calculate_bounds(corpus, contribution, stats, horizon, step_up)
    assert bounds.lower <= bounds.mean


@given(
    lower=_AMOUNTS,
    spread=_AMOUNTS,
    target=st.floats(min_value=0.0, max_value=50_000_000.0),
)
def test_confidence_is_a_percentage(lower: float, spread: float, target: float) -> None:
    confidence = calculate_confidence(target, Bounds(lower=lower, mean=lower + spread))
    assert 0.0 <= confidence <= 100.0


@given(
    mean=st.floats(min_value=1.0, max_value=10_000_000.0),
    first=st.floats(min_value=0.0, max_value=1.0),
    second=st.floats(min_value=0.0, max_value=1.0),
)
def test_confidence_decreases_above_mean(mean: float, first: float, second: float) -> None:
    bounds = Bounds(lower=mean * 0.8, mean=mean)
    near, far = sorted((mean * (1.0 + first), mean * (1.0 + second)))
    assert calculate_confidence(near, bounds) >= calculate_confidence(far, bounds)


@given(
    target=st.floats(min_value=1.0, max_value=10_000_000.0),
    first=st.floats(min_value=-1.0, max_value=1.0),
    second=st.floats(min_value=-1.0, max_value=1.0),
)
def test_remaining_confidence_is_monotone(target: float, first: float, second: float) -> None:
    low, high = sorted((first * target, second * target))
    assert calculate_confidence_from_remaining(low, target) <= calculate_confidence_from_remaining(high, target)


@given(
    lower=_AMOUNTS,
    spread=_AMOUNTS,
    first=st.floats(min_value=0.0, max_value=30_000_000.0),
    second=st.floats(min_value=0.0, max_value=30_000_000.0),
)
def test_confidence_never_increases_with_target(
    lower: float, spread: float, first: float, second: float
) -> None:
    bounds = Bounds(lower=lower, mean=lower + spread)
    near, far = sorted((first, second))
    assert calculate_confidence(near, bounds) >= calculate_confidence(far, bounds) - 1e-9
