"""Validation utilities for goalplan configuration files.

The validator checks the three YAML documents consumed by the CLI (asset
class statistics, goals and the customer profile) and records human readable
diagnostics. Sections that pass validation are returned in normalised form
so that ``goalplan validate --verbose`` can echo what the planner will see.
"""

from __future__ import annotations

# ruff: noqa: ANN401
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from goalplan.engine.planning.config import (
    DEFAULT_ASSET_CLASSES_PATH,
    DEFAULT_GOALS_PATH,
    DEFAULT_PROFILE_PATH,
)
from goalplan.engine.planning.models import AMBITIOUS, BASIC, CASH, HORIZON_KEYS
from goalplan.engine.planning.returns import horizon_key
from goalplan.engine.utils.io import read_yaml

__all__ = ["ValidationSummary", "validate_configs"]

STATISTIC_FIELDS = (
    "avg_return_pct",
    "prob_negative_year_pct",
    "expected_shortfall_pct",
    "max_drawdown_pct",
)


@dataclass(slots=True)
class ValidationSummary:
    """Aggregate structure returning validation diagnostics and parsed configs.

    Attributes:
      errors: Collection of error messages detected during schema validation.
      warnings: Soft diagnostics that highlight potential configuration issues.
      configs: Mapping between config label and the normalised payload obtained
        after validation.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    configs: dict[str, dict[str, Any]] = field(default_factory=dict)


def _is_number(value: Any) -> bool:
    """Return ``True`` if ``value`` is a real number (excluding booleans)."""

    return isinstance(value, int | float) and not isinstance(value, bool)


def _is_string(value: Any) -> bool:
    """Return ``True`` if ``value`` is a non-empty string."""

    return isinstance(value, str) and value.strip() != ""


def _as_float(
    value: Any,
    *,
    path: str,
    errors: list[str],
    minimum: float | None = None,
    maximum: float | None = None,
) -> float | None:
    """Validate ``value`` as float returning the coerced number when valid."""

    if not _is_number(value):
        errors.append(f"{path} must be a number")
        return None
    number = float(value)
    if minimum is not None and number < minimum:
        errors.append(f"{path} must be >= {minimum}")
        return None
    if maximum is not None and number > maximum:
        errors.append(f"{path} must be <= {maximum}")
        return None
    return number


def _as_int(
    value: Any,
    *,
    path: str,
    errors: list[str],
    minimum: int | None = None,
    maximum: int | None = None,
) -> int | None:
    """Validate ``value`` as integer returning the coerced number when valid."""

    if not isinstance(value, int) or isinstance(value, bool):
        errors.append(f"{path} must be an integer")
        return None
    if minimum is not None and value < minimum:
        errors.append(f"{path} must be >= {minimum}")
        return None
    if maximum is not None and value > maximum:
        errors.append(f"{path} must be <= {maximum}")
        return None
    return value


def _as_string(value: Any, *, path: str, errors: list[str]) -> str | None:
    """Validate ``value`` as string returning the stripped text when valid."""

    if not _is_string(value):
        errors.append(f"{path} must be a non-empty string")
        return None
    return value.strip()


def _normalise_str_list(
    value: Any,
    *,
    path: str,
    errors: list[str],
) -> list[str]:
    """Return a list of strings ensuring each entry is valid."""

    if value is None:
        return []
    if not isinstance(value, list):
        errors.append(f"{path} must be a list")
        return []
    items: list[str] = []
    for idx, entry in enumerate(value):
        text = _as_string(entry, path=f"{path}[{idx}]", errors=errors)
        if text is not None:
            items.append(text)
    return items


def _validate_statistics(value: Any, *, path: str, errors: list[str]) -> dict[str, Any] | None:
    """Validate one horizon bucket of asset class statistics."""

    if not isinstance(value, dict):
        errors.append(f"{path} must be a mapping")
        return None
    stats: dict[str, Any] = {}
    for key in STATISTIC_FIELDS:
        minimum, maximum = (0.0, 100.0) if key == "prob_negative_year_pct" else (None, None)
        number = _as_float(value.get(key), path=f"{path}.{key}", errors=errors, minimum=minimum, maximum=maximum)
        if number is None:
            return None
        stats[key] = number
    volatility = value.get("volatility_pct")
    if volatility is not None:
        number = _as_float(volatility, path=f"{path}.volatility_pct", errors=errors, minimum=0.0)
        if number is None:
            return None
    stats["volatility_pct"] = None if volatility is None else float(volatility)
    return stats


def _validate_asset_classes_config(
    payload: dict[str, Any],
    *,
    summary: ValidationSummary,
) -> dict[str, Any] | None:
    """Validate asset class YAML payload."""

    errors = summary.errors
    section = payload.get("asset_classes")
    if not isinstance(section, dict) or not section:
        errors.append("asset_classes.asset_classes must be a non-empty mapping")
        return None
    classes: dict[str, Any] = {}
    for name, buckets in section.items():
        path = f"asset_classes.{name}"
        if not isinstance(buckets, dict):
            errors.append(f"{path} must be a mapping")
            continue
        parsed: dict[str, Any] = {}
        for bucket, value in buckets.items():
            if bucket not in HORIZON_KEYS:
                errors.append(f"{path}.{bucket} is not a horizon bucket ({', '.join(HORIZON_KEYS)})")
                continue
            stats = _validate_statistics(value, path=f"{path}.{bucket}", errors=errors)
            if stats is not None:
                parsed[bucket] = stats
        if parsed:
            classes[str(name)] = parsed
    return {"asset_classes": classes}


def _validate_tier(value: Any, *, path: str, errors: list[str]) -> dict[str, Any] | None:
    if not isinstance(value, dict):
        errors.append(f"{path} must be a mapping")
        return None
    target = _as_float(value.get("target_amount"), path=f"{path}.target_amount", errors=errors, minimum=0.0)
    priority = _as_int(value.get("priority"), path=f"{path}.priority", errors=errors, minimum=1)
    if target is None or priority is None:
        return None
    return {"target_amount": target, "priority": priority}


def _validate_goals(payload: Any, *, errors: list[str]) -> list[dict[str, Any]] | None:
    """Validate the list of goals."""

    if not isinstance(payload, list):
        errors.append("goals.goals must be a list")
        return None
    goals: list[dict[str, Any]] = []
    seen: set[str] = set()
    for idx, entry in enumerate(payload):
        path = f"goals.goals[{idx}]"
        if not isinstance(entry, dict):
            errors.append(f"{path} must be a mapping")
            continue
        goal_id = _as_string(entry.get("goal_id"), path=f"{path}.goal_id", errors=errors)
        name = entry.get("goal_name", goal_id)
        horizon = _as_float(entry.get("horizon_years"), path=f"{path}.horizon_years", errors=errors, minimum=0.0)
        tiers = entry.get("tiers")
        if not isinstance(tiers, dict):
            errors.append(f"{path}.tiers must be a mapping")
            continue
        basic = _validate_tier(tiers.get(BASIC), path=f"{path}.tiers.{BASIC}", errors=errors)
        ambitious = _validate_tier(tiers.get(AMBITIOUS), path=f"{path}.tiers.{AMBITIOUS}", errors=errors)
        if None in {goal_id, horizon} or basic is None or ambitious is None:
            continue
        if goal_id in seen:
            errors.append(f"{path}.goal_id '{goal_id}' is duplicated")
            continue
        seen.add(goal_id)
        goals.append(
            {
                "goal_id": goal_id,
                "goal_name": str(name),
                "horizon_years": horizon,
                "tiers": {BASIC: basic, AMBITIOUS: ambitious},
            }
        )
    if not goals:
        errors.append("goals.goals must contain at least one entry")
        return None
    return goals


def _validate_goals_config(
    payload: dict[str, Any],
    *,
    summary: ValidationSummary,
) -> dict[str, Any] | None:
    """Validate goals YAML payload."""

    goals = _validate_goals(payload.get("goals"), errors=summary.errors)
    if goals is None:
        return None
    return {"goals": goals}


def _validate_profile_config(
    payload: dict[str, Any],
    *,
    summary: ValidationSummary,
) -> dict[str, Any] | None:
    """Validate the customer profile payload (corpus and contribution)."""

    errors = summary.errors
    corpus = payload.get("corpus")
    contribution = payload.get("contribution")
    if not isinstance(corpus, dict):
        errors.append("profile.corpus must be a mapping")
        return None
    if not isinstance(contribution, dict):
        errors.append("profile.contribution must be a mapping")
        return None

    holdings_raw = corpus.get("by_asset_class", {})
    holdings: dict[str, float] = {}
    if not isinstance(holdings_raw, dict):
        errors.append("profile.corpus.by_asset_class must be a mapping")
    else:
        for name, amount in holdings_raw.items():
            number = _as_float(amount, path=f"profile.corpus.by_asset_class.{name}", errors=errors, minimum=0.0)
            if number is not None:
                holdings[str(name)] = number
    allowed = _normalise_str_list(
        corpus.get("allowed_asset_classes"),
        path="profile.corpus.allowed_asset_classes",
        errors=errors,
    )
    monthly = _as_float(
        contribution.get("monthly_amount"),
        path="profile.contribution.monthly_amount",
        errors=errors,
        minimum=0.0,
    )
    stretch = _as_float(
        contribution.get("stretch_pct", 0.0),
        path="profile.contribution.stretch_pct",
        errors=errors,
        minimum=0.0,
        maximum=100.0,
    )
    step_up = _as_float(
        contribution.get("annual_step_up_pct", 0.0),
        path="profile.contribution.annual_step_up_pct",
        errors=errors,
        minimum=0.0,
    )
    if None in {monthly, stretch, step_up}:
        return None
    return {
        "corpus": {"by_asset_class": holdings, "allowed_asset_classes": allowed},
        "contribution": {
            "monthly_amount": monthly,
            "stretch_pct": stretch,
            "annual_step_up_pct": step_up,
        },
    }


def _load_payload(
    label: str,
    path: Path,
    *,
    summary: ValidationSummary,
) -> dict[str, Any] | None:
    """Load YAML payload handling missing files and empty documents."""

    if not path.exists():
        summary.errors.append(f"{label}: missing file at {path}")
        return None
    payload = read_yaml(path)
    if payload is None:
        summary.errors.append(f"{label}: file at {path} is empty")
        return None
    if not isinstance(payload, dict):
        summary.errors.append(f"{label}: expected a mapping at {path}")
        return None
    return payload


def _cross_check(summary: ValidationSummary) -> None:
    """Warnings that need more than one document."""

    classes = summary.configs.get("asset_classes", {}).get("asset_classes", {})
    goals = summary.configs.get("goals", {}).get("goals", [])
    profile = summary.configs.get("profile")

    for goal in goals:
        tiers = goal["tiers"]
        if tiers[AMBITIOUS]["target_amount"] < tiers[BASIC]["target_amount"]:
            summary.warnings.append(
                f"goals.{goal['goal_id']}: ambitious target is below the basic target"
            )

    if not profile or not classes:
        return
    allowed = profile["corpus"]["allowed_asset_classes"]
    for name in allowed:
        if name != CASH and name not in classes:
            summary.warnings.append(f"profile.allowed_asset_classes: no statistics for '{name}'")
    for name in profile["corpus"]["by_asset_class"]:
        if name not in allowed:
            summary.warnings.append(f"profile.corpus: '{name}' is held but not allowed")
    for goal in goals:
        bucket = horizon_key(goal["horizon_years"])
        usable = [name for name in allowed if bucket in classes.get(name, {})]
        if not usable:
            summary.warnings.append(
                f"goals.{goal['goal_id']}: no allowed asset class has {bucket} statistics"
            )
        missing = [name for name in usable if classes[name][bucket]["volatility_pct"] is None]
        if missing:
            summary.warnings.append(
                f"goals.{goal['goal_id']}: volatility_pct missing for {', '.join(missing)} ({bucket});"
                " methods 2 and 3 will fail"
            )


def validate_configs(
    *,
    asset_classes_path: Path | str = DEFAULT_ASSET_CLASSES_PATH,
    goals_path: Path | str = DEFAULT_GOALS_PATH,
    profile_path: Path | str = DEFAULT_PROFILE_PATH,
) -> ValidationSummary:
    """Validate goalplan YAML configuration files and return diagnostics."""

    summary = ValidationSummary()
    sections = (
        ("asset_classes", Path(asset_classes_path), _validate_asset_classes_config),
        ("goals", Path(goals_path), _validate_goals_config),
        ("profile", Path(profile_path), _validate_profile_config),
    )
    for label, path, validator in sections:
        payload = _load_payload(label, path, summary=summary)
        if payload is None:
            continue
        error_count = len(summary.errors)
        parsed = validator(payload, summary=summary)
        if parsed is not None and len(summary.errors) == error_count:
            summary.configs[label] = parsed

    _cross_check(summary)
    return summary
