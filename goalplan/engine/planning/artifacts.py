"""CSV, JSON and PDF artefacts for a planning result."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from goalplan.engine.infra.paths import DEFAULT_REPORT_ROOT, run_dir
from goalplan.engine.logging import setup_logger
from goalplan.engine.planning.models import PlanningResult
from goalplan.engine.utils.io import compute_checksums, ensure_dir, safe_path_segment, write_json

__all__ = ["PlanArtifacts", "result_to_payload", "write_plan_artifacts"]

LOG = setup_logger(__name__)


@dataclass(frozen=True)
class PlanArtifacts:
    """Paths to the exported plan artefacts.

    Attributes:
      root: Directory holding every artefact.
      feasibility_csv: Feasibility table.
      contributions_csv: Rounded contribution plan.
      corpus_csv: Rounded corpus allocation.
      schedule_csv: Quarterly contribution schedule.
      projection_csv: Month-by-month net-worth projection.
      result_json: Full result as JSON.
      report_pdf: Net-worth chart.
      checksums_json: SHA-256 manifest of the files above.
    """

    root: Path
    feasibility_csv: Path
    contributions_csv: Path
    corpus_csv: Path
    schedule_csv: Path
    projection_csv: Path
    result_json: Path
    report_pdf: Path
    checksums_json: Path


def _plain(mapping: Mapping[str, Any]) -> dict[str, Any]:
    return {str(key): value for key, value in mapping.items()}


def result_to_payload(result: PlanningResult) -> dict[str, Any]:
    """Convert ``result`` into JSON-serialisable primitives."""

    plan = result.contribution_plan
    return {
        "method": result.method,
        "iterations": result.iterations,
        "converged": result.converged,
        "feasibility": [
            {
                "goal_id": row.goal_id,
                "goal_name": row.goal_name,
                "tier": row.tier,
                "status": row.status,
                "confidence_pct": row.confidence_pct,
                "target_amount": row.target_amount,
                "goal_bounds": {"lower": row.goal_bounds.lower, "mean": row.goal_bounds.mean},
                "portfolio_bounds": {
                    "lower": row.portfolio_bounds.lower,
                    "mean": row.portfolio_bounds.mean,
                },
                "lower_deviation": row.lower_deviation,
                "mean_deviation": row.mean_deviation,
            }
            for row in result.feasibility_table
        ],
        "contribution_plan": {
            "total_available": plan.total_available,
            "total_allocated": plan.total_allocated,
            "entries": [
                {
                    "goal_id": entry.goal_id,
                    "tier": entry.tier,
                    "amount": entry.amount,
                    "percentage": entry.percentage,
                }
                for entry in plan.entries
            ],
            "per_asset_class": _plain(plan.per_asset_class),
            "per_goal_asset_allocation": {
                key: _plain(allocation) for key, allocation in plan.per_goal_asset_allocation.items()
            },
        },
        "contribution_schedule": [
            {
                "month": snapshot.month,
                "change_reason": snapshot.change_reason,
                "total_monthly": snapshot.total_monthly,
                "percentages": _plain(snapshot.percentages),
                "per_asset_class": _plain(snapshot.per_asset_class),
            }
            for snapshot in result.contribution_schedule
        ],
        "corpus_allocation": {
            goal_id: _plain(by_class) for goal_id, by_class in result.corpus_allocation.items()
        },
        "projection_metadata": _plain(result.projection.metadata),
    }


def _render_networth_pdf(result: PlanningResult, path: Path) -> Path:
    """Render the projected net worth with goal due months marked.

    Args:
      result: Planning result whose projection is plotted.
      path: Destination PDF path.

    Returns:
      The ``path`` argument for convenience.
    """

    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    frame = result.projection.to_frame()
    fig, ax = plt.subplots(figsize=(9, 4.5))
    if frame.empty:
        ax.text(0.5, 0.5, "No projection available", ha="center", va="center")
        ax.set_axis_off()
    else:
        ax.plot(frame["month"], frame["total_networth"], color="#2E86AB", label="Net worth")
        ax.plot(
            frame["month"],
            frame["cumulative_contribution"],
            color="#7A7A7A",
            linestyle=":",
            label="Cumulative contribution",
        )
        for goal in result.projection.metadata.get("goals", []):
            ax.axvline(goal["due_month"], color="#D7263D", linestyle="--", linewidth=0.8)
            ax.annotate(
                str(goal["goal_id"]),
                xy=(goal["due_month"], ax.get_ylim()[1]),
                xytext=(2, -12),
                textcoords="offset points",
                fontsize=8,
                color="#D7263D",
            )
        ax.set_xlabel("Month")
        ax.set_ylabel("Net worth")
        ax.legend(loc="upper left")
    ax.set_title(
        f"Projected net worth (method {result.method}, iterations={result.iterations}, "
        f"converged={'yes' if result.converged else 'no'})"
    )
    fig.tight_layout()
    fig.savefig(path, format="pdf")
    plt.close(fig)
    return path


def write_plan_artifacts(
    result: PlanningResult,
    output_dir: Path | str | None = None,
    *,
    label: str | None = None,
) -> PlanArtifacts:
    """Write CSV/JSON/PDF artefacts for ``result``.

    Args:
      result: Planning result to export.
      output_dir: Destination directory; a timestamped directory under
        ``artifacts/plans`` is created when omitted.
      label: Optional label used in the timestamped directory name.

    Returns:
      :class:`PlanArtifacts` with the exported paths.
    """

    if output_dir is None:
        name = safe_path_segment(label or f"method{result.method}")
        root = run_dir(DEFAULT_REPORT_ROOT, label=name)
    else:
        root = ensure_dir(output_dir)

    frames = result.to_frames()
    feasibility_csv = root / "feasibility.csv"
    contributions_csv = root / "contributions.csv"
    corpus_csv = root / "corpus_allocation.csv"
    schedule_csv = root / "contribution_schedule.csv"
    projection_csv = root / "networth_projection.csv"
    frames["feasibility"].to_csv(feasibility_csv, index=False)
    frames["contributions"].to_csv(contributions_csv, index=False)
    frames["corpus"].to_csv(corpus_csv, index=False)
    frames["schedule"].to_csv(schedule_csv, index=False)
    frames["projection"].to_csv(projection_csv, index=False)
    result_json = write_json(result_to_payload(result), root / "result.json")
    report_pdf = _render_networth_pdf(result, root / "networth.pdf")

    checksums_json = root / "checksums.json"
    checksums = compute_checksums(
        [feasibility_csv, contributions_csv, corpus_csv, schedule_csv, projection_csv, result_json, report_pdf]
    )
    write_json(checksums, checksums_json)
    LOG.info("plan artefacts written to %s (%d files)", root, len(checksums))
    return PlanArtifacts(
        root=root,
        feasibility_csv=feasibility_csv,
        contributions_csv=contributions_csv,
        corpus_csv=corpus_csv,
        schedule_csv=schedule_csv,
        projection_csv=projection_csv,
        result_json=result_json,
        report_pdf=report_pdf,
        checksums_json=checksums_json,
    )
