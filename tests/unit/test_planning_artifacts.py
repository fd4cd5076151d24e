from __future__ import annotations

import json
from pathlib import Path

import pandas as pd
import pytest

from goalplan.engine.planning import (
    AssetClassUniverse,
    ContributionInput,
    CustomerHoldings,
    Goal,
    PlanningResult,
    plan_method1,
    result_to_payload,
    write_plan_artifacts,
)
from goalplan.engine.utils.io import sha256_file


def _sample_result() -> PlanningResult:
    """Single-goal Method 1 plan used by the artefact tests."""

    bucket = {
        "avg_return_pct": 10.0,
        "prob_negative_year_pct": 15.0,
        "expected_shortfall_pct": -12.0,
        "max_drawdown_pct": -25.0,
        "volatility_pct": 14.0,
    }
    universe = AssetClassUniverse.from_mapping({"largeCap": {"5Y": bucket}})
    goal = Goal.from_mapping(
        {
            "goal_id": "house",
            "goal_name": "House",
            "horizon_years": 4,
            "tiers": {
                "basic": {"target_amount": 1_000_000, "priority": 1},
                "ambitious": {"target_amount": 1_500_000, "priority": 2},
            },
        }
    )
    holdings = CustomerHoldings(by_asset_class={"largeCap": 200_000.0}, allowed_asset_classes=("largeCap",))
    return plan_method1([goal], holdings, universe, ContributionInput(monthly_amount=20_000.0), seed=4)


def test_result_to_payload_is_json_serialisable() -> None:
    payload = result_to_payload(_sample_result())
    encoded = json.dumps(payload)
    assert '"method": 1' in encoded
    assert payload["feasibility"][0]["goal_id"] == "house"
    assert payload["projection_metadata"]["tier"] == "basic"


def test_write_plan_artifacts_exports_files(tmp_path: Path) -> None:
    result = _sample_result()
    artifacts = write_plan_artifacts(result, tmp_path / "out")

    assert artifacts.root == tmp_path / "out"
    feasibility = pd.read_csv(artifacts.feasibility_csv)
    assert list(feasibility["goal_id"]) == ["house"] * len(result.feasibility_table)
    projection = pd.read_csv(artifacts.projection_csv)
    assert len(projection) == 49
    assert artifacts.report_pdf.read_bytes().startswith(b"%PDF")

    checksums = json.loads(artifacts.checksums_json.read_text(encoding="utf-8"))
    assert checksums["result.json"] == sha256_file(artifacts.result_json)
    assert "networth.pdf" in checksums


def test_write_plan_artifacts_defaults_to_run_directory(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    artifacts = write_plan_artifacts(_sample_result(), label="first run")
    assert artifacts.root.parent == Path("artifacts") / "plans"
    assert artifacts.root.name.endswith("_first run")
    assert artifacts.result_json.exists()
