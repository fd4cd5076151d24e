"""Validation command tests covering schema and CLI integration."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from goalplan.cli.main import main as cli_main
from goalplan.engine.validate import ValidationSummary, validate_configs


def _write_yaml(path: Path, payload: dict[str, object]) -> Path:
    """Serialize ``payload`` to ``path`` using UTF-8 encoding."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(payload, sort_keys=True), encoding="utf-8")
    return path


def _bucket(avg: float, p: float, es: float, vol: float | None = 10.0) -> dict[str, float | None]:
    return {
        "avg_return_pct": avg,
        "prob_negative_year_pct": p,
        "expected_shortfall_pct": es,
        "max_drawdown_pct": es * 2,
        "volatility_pct": vol,
    }


def _seed_valid_configs(root: Path) -> tuple[Path, Path, Path]:
    """Create sample configuration files returning their respective paths."""

    asset_classes = {
        "asset_classes": {
            "largeCap": {key: _bucket(11.5, 20.0, -17.0, 18.0) for key in ("3Y", "5Y", "10Y")},
            "bond": {key: _bucket(6.8, 0.0, 0.0, 5.0) for key in ("3Y", "5Y", "10Y")},
        }
    }
    goals = {
        "goals": [
            {
                "goal_id": "retirement",
                "goal_name": "Retirement",
                "horizon_years": 10,
                "tiers": {
                    "basic": {"target_amount": 5_000_000, "priority": 1},
                    "ambitious": {"target_amount": 8_000_000, "priority": 2},
                },
            },
            {
                "goal_id": "car",
                "horizon_years": 1,
                "tiers": {
                    "basic": {"target_amount": 500_000, "priority": 2},
                    "ambitious": {"target_amount": 600_000, "priority": 3},
                },
            },
        ]
    }
    profile = {
        "corpus": {
            "by_asset_class": {"largeCap": 1_500_000, "bond": 800_000},
            "allowed_asset_classes": ["largeCap", "bond"],
        },
        "contribution": {"monthly_amount": 50_000, "stretch_pct": 20, "annual_step_up_pct": 10},
    }
    asset_path = _write_yaml(root / "asset_classes.yml", asset_classes)
    goals_path = _write_yaml(root / "goals.yml", goals)
    profile_path = _write_yaml(root / "profile.yml", profile)
    return asset_path, goals_path, profile_path


def test_validate_configs_reports_success(tmp_path: Path) -> None:
    """The validator returns a populated summary without errors for valid inputs."""

    asset_path, goals_path, profile_path = _seed_valid_configs(tmp_path)
    summary = validate_configs(
        asset_classes_path=asset_path,
        goals_path=goals_path,
        profile_path=profile_path,
    )
    assert isinstance(summary, ValidationSummary)
    assert not summary.errors
    assert summary.warnings == []
    assert set(summary.configs) == {"asset_classes", "goals", "profile"}
    assert summary.configs["goals"]["goals"][1]["goal_name"] == "car"
    assert summary.configs["profile"]["contribution"]["stretch_pct"] == 20.0


def test_validate_configs_reports_schema_errors(tmp_path: Path) -> None:
    """Invalid goals and statistics surface human readable error messages."""

    _, _, profile_path = _seed_valid_configs(tmp_path)
    tier = {"target_amount": 1_000, "priority": 1}
    goals_path = _write_yaml(
        tmp_path / "goals_invalid.yml",
        {
            "goals": [
                {"goal_id": "a", "horizon_years": 5, "tiers": {"basic": tier, "ambitious": tier}},
                {"goal_id": "a", "horizon_years": 6, "tiers": {"basic": tier, "ambitious": tier}},
                {
                    "goal_id": "b",
                    "horizon_years": 6,
                    "tiers": {"basic": {"target_amount": -1, "priority": 0}, "ambitious": tier},
                },
            ]
        },
    )
    broken_stats = _write_yaml(
        tmp_path / "asset_invalid.yml",
        {"asset_classes": {"bond": {"7Y": _bucket(6.0, 0.0, 0.0), "5Y": _bucket(6.0, 120.0, 0.0)}}},
    )
    summary = validate_configs(
        asset_classes_path=broken_stats,
        goals_path=goals_path,
        profile_path=profile_path,
    )
    assert any("is duplicated" in error for error in summary.errors)
    assert any("tiers.basic.target_amount" in error for error in summary.errors)
    assert any("tiers.basic.priority" in error for error in summary.errors)
    assert any("asset_classes.bond.7Y" in error for error in summary.errors)
    assert any("prob_negative_year_pct" in error for error in summary.errors)
    assert "asset_classes" not in summary.configs


def test_validate_configs_rejects_invalid_contribution(tmp_path: Path) -> None:
    asset_path, goals_path, _ = _seed_valid_configs(tmp_path)
    profile_path = _write_yaml(
        tmp_path / "profile_invalid.yml",
        {
            "corpus": {"by_asset_class": {}, "allowed_asset_classes": ["bond"]},
            "contribution": {"monthly_amount": -5, "stretch_pct": 150},
        },
    )
    summary = validate_configs(
        asset_classes_path=asset_path,
        goals_path=goals_path,
        profile_path=profile_path,
    )
    assert any("monthly_amount" in error for error in summary.errors)
    assert any("stretch_pct" in error for error in summary.errors)
    assert "profile" not in summary.configs


def test_validate_configs_reports_missing_files(tmp_path: Path) -> None:
    summary = validate_configs(
        asset_classes_path=tmp_path / "missing.yml",
        goals_path=tmp_path / "missing_goals.yml",
        profile_path=tmp_path / "missing_profile.yml",
    )
    assert len(summary.errors) == 3
    assert all("missing file" in error for error in summary.errors)


def test_validate_configs_cross_checks_warn(tmp_path: Path) -> None:
    """Cross-document inconsistencies are reported as warnings."""

    _, goals_path, _ = _seed_valid_configs(tmp_path)
    asset_path = _write_yaml(
        tmp_path / "asset_no_vol.yml",
        {"asset_classes": {"largeCap": {key: _bucket(11.0, 20.0, -15.0, None) for key in ("3Y", "10Y")}}},
    )
    profile_path = _write_yaml(
        tmp_path / "profile_warn.yml",
        {
            "corpus": {
                "by_asset_class": {"gold": 10_000},
                "allowed_asset_classes": ["largeCap", "midCap"],
            },
            "contribution": {"monthly_amount": 1_000},
        },
    )
    summary = validate_configs(
        asset_classes_path=asset_path,
        goals_path=goals_path,
        profile_path=profile_path,
    )
    assert not summary.errors
    assert any("no statistics for 'midCap'" in warning for warning in summary.warnings)
    assert any("'gold' is held but not allowed" in warning for warning in summary.warnings)
    assert any("methods 2 and 3 will fail" in warning for warning in summary.warnings)


def test_validate_configs_warns_on_missing_bucket(tmp_path: Path) -> None:
    _, goals_path, profile_path = _seed_valid_configs(tmp_path)
    asset_path = _write_yaml(
        tmp_path / "asset_10y.yml",
        {
            "asset_classes": {
                "largeCap": {"10Y": _bucket(11.0, 20.0, -15.0)},
                "bond": {"10Y": _bucket(7.0, 0.0, 0.0)},
            }
        },
    )
    summary = validate_configs(
        asset_classes_path=asset_path,
        goals_path=goals_path,
        profile_path=profile_path,
    )
    assert any("goals.car: no allowed asset class has 3Y statistics" in w for w in summary.warnings)


def test_cli_validate_verbose_prints_payload(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """The CLI outputs verbose payloads and success status when validation passes."""

    asset_path, goals_path, profile_path = _seed_valid_configs(tmp_path / "configs")
    cli_main(
        [
            "validate",
            "--asset-classes",
            str(asset_path),
            "--goals",
            str(goals_path),
            "--profile",
            str(profile_path),
            "--verbose",
        ]
    )
    captured = capsys.readouterr()
    assert "[goalplan] validate status=ok" in captured.out
    assert "allowed_asset_classes" in captured.out


def test_cli_validate_exits_on_errors(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_main(
            [
                "validate",
                "--asset-classes",
                str(tmp_path / "none.yml"),
                "--goals",
                str(tmp_path / "none.yml"),
                "--profile",
                str(tmp_path / "none.yml"),
            ]
        )
    assert excinfo.value.code == 1
    assert "[goalplan] validate error" in capsys.readouterr().out
