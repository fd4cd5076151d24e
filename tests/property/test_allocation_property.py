from __future__ import annotations

import pytest

try:
    from hypothesis import given
    from hypothesis import strategies as st
except ModuleNotFoundError:  # pragma: no cover - dipendenza opzionale
    pytest.skip("Richiede la libreria hypothesis", allow_module_level=True)

from goalplan.engine.planning.allocation import glide_path, optimize_sharpe_ratio
from goalplan.engine.planning.models import AssetClassUniverse

_NAMES = ("largeCap", "midCap", "smallCap", "bond", "gold")


@st.composite
def _universe(draw: st.DrawFn) -> AssetClassUniverse:
    chosen = draw(st.lists(st.sampled_from(_NAMES), min_size=1, max_size=len(_NAMES), unique=True))
    payload = {
        name: {
            "5Y": {
                "avg_return_pct": draw(st.floats(min_value=0.0, max_value=25.0)),
                "prob_negative_year_pct": draw(st.floats(min_value=0.0, max_value=50.0)),
                "expected_shortfall_pct": draw(st.floats(min_value=-40.0, max_value=-1.0)),
                "max_drawdown_pct": -40.0,
            }
        }
        for name in chosen
    }
    return AssetClassUniverse.from_mapping(payload)


@given(universe=_universe())
def test_sharpe_allocation_sums_to_100(universe: AssetClassUniverse) -> None:
    allocation = optimize_sharpe_ratio(list(universe.asset_classes), universe, "5Y")
    assert sum(allocation.values()) == 100
    assert all(pct >= 0 for pct in allocation.values())
    assert set(allocation) == set(universe.asset_classes)


@given(
    equity=st.integers(min_value=1, max_value=99),
    month=st.integers(min_value=0, max_value=59),
)
def test_glide_path_keeps_a_full_allocation(equity: int, month: int) -> None:
    allocation = {"largeCap": float(equity), "bond": float(100 - equity)}
    shifted = glide_path(allocation, month, 60, ["largeCap", "bond"])
    assert sum(shifted.values()) == pytest.approx(100.0, abs=1.0)
    assert shifted["bond"] >= allocation["bond"] or month < 48
