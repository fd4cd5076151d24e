"""Command-line interface for the goalplan planning engine."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from pathlib import Path

import yaml

from goalplan.engine.logging import configure_cli_logging, record_metrics
from goalplan.engine.planning import (
    BASIC,
    AssetClassUniverse,
    CustomerHoldings,
    Goal,
    PlanningError,
    load_asset_universe_from_yaml,
    load_goals_from_yaml,
    load_profile_from_yaml,
    plan,
    write_plan_artifacts,
)
from goalplan.engine.planning.allocation import optimal_allocation, weighted_stats
from goalplan.engine.planning.config import (
    DEFAULT_ASSET_CLASSES_PATH,
    DEFAULT_GOALS_PATH,
    DEFAULT_PROFILE_PATH,
)
from goalplan.engine.planning.envelope import calculate_bounds, calculate_confidence, present_value_of_target
from goalplan.engine.planning.montecarlo import DEFAULT_PATHS, LITE_PATHS, validate_envelope
from goalplan.engine.planning.planner import DEFAULT_MAX_ITERATIONS, METHODS
from goalplan.engine.planning.returns import horizon_key
from goalplan.engine.utils.rand import PLANNER_STREAM, generator_from_seed, seed_for_stream
from goalplan.engine.validate import validate_configs

DESCRIPTION = "Goal-based financial planning engine"


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--asset-classes",
        type=Path,
        default=DEFAULT_ASSET_CLASSES_PATH,
        help="Path to asset_classes.yml statistics",
    )
    parser.add_argument(
        "--goals",
        type=Path,
        default=DEFAULT_GOALS_PATH,
        help="Path to goals.yml configuration",
    )
    parser.add_argument(
        "--profile",
        type=Path,
        default=DEFAULT_PROFILE_PATH,
        help="Path to profile.yml with corpus and contribution",
    )


def _add_plan_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    plan_parser = subparsers.add_parser("plan", help="Size contributions and corpus for every goal")
    plan_parser.add_argument(
        "--method",
        type=int,
        choices=sorted(METHODS),
        default=1,
        help="1: current allocation, 2: rebalance then recompute, 3: iterative zero-start",
    )
    plan_parser.add_argument(
        "--paths",
        type=int,
        default=DEFAULT_PATHS,
        help="Monte Carlo paths used by methods 2 and 3",
    )
    plan_parser.add_argument(
        "--max-iterations",
        type=int,
        default=DEFAULT_MAX_ITERATIONS,
        help="Cap on the basic-tier sizing loop",
    )
    plan_parser.add_argument("--seed", type=int, help="Random seed (default: audit/seeds.yml)")
    _add_config_arguments(plan_parser)
    plan_parser.add_argument(
        "--output-dir",
        type=Path,
        help="Optional directory for plan artefacts",
    )


def _add_envelope_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Attach the command checking a goal's envelope against simulated paths."""

    envelope = subparsers.add_parser(
        "envelope",
        help="Compare a goal's envelope bounds with probability-model simulations",
    )
    envelope.add_argument("--goal-id", required=True, help="Goal to inspect")
    envelope.add_argument("--paths", type=int, default=LITE_PATHS, help="Simulated paths")
    envelope.add_argument("--seed", type=int, help="Random seed (default: audit/seeds.yml)")
    _add_config_arguments(envelope)


def _add_validate_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Attach the validate command used for configuration schema checks."""

    validate = subparsers.add_parser("validate", help="Validate YAML configuration files")
    _add_config_arguments(validate)
    validate.add_argument(
        "--verbose",
        action="store_true",
        help="Print the parsed configuration payloads on success",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="goalplan", description=DESCRIPTION)
    parser.add_argument(
        "--json-logs",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Mirror logs to artifacts/logs/goalplan.log in JSON format",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)
    _add_validate_subparser(sub)
    _add_plan_subparser(sub)
    _add_envelope_subparser(sub)
    return parser


def _resolve_seed(value: int | None) -> int:
    return seed_for_stream(PLANNER_STREAM) if value is None else int(value)


def _handle_plan(args: argparse.Namespace) -> None:
    universe = load_asset_universe_from_yaml(args.asset_classes)
    goals = load_goals_from_yaml(args.goals)
    if not goals:
        raise SystemExit("No goals configured")
    holdings, contribution = load_profile_from_yaml(args.profile)
    seed = _resolve_seed(args.seed)
    try:
        result = plan(
            args.method,
            goals,
            holdings,
            universe,
            contribution,
            monte_carlo_paths=max(1, int(args.paths)),
            max_iterations=int(args.max_iterations),
            seed=seed,
        )
    except PlanningError as exc:
        raise SystemExit(f"[goalplan] plan error: {exc}") from exc
    output = ""
    if args.output_dir is not None:
        artifacts = write_plan_artifacts(result, args.output_dir)
        output = f" output={artifacts.root}"

    for row in result.feasibility_table:
        print(
            f"[goalplan] plan goal={row.goal_id} tier={row.tier} status={row.status} "
            f"confidence={row.confidence_pct} lower={row.goal_bounds.lower:.0f} "
            f"mean={row.goal_bounds.mean:.0f} target={row.target_amount:.0f}"
        )
    allocated = result.contribution_plan.total_allocated
    print(
        f"[goalplan] plan method={result.method} seed={seed} iterations={result.iterations} "
        f"converged={result.converged} allocated={allocated:.0f}/"
        f"{result.contribution_plan.total_available:.0f}{output}"
    )
    tags = {"method": str(result.method)}
    record_metrics("plan_iterations", float(result.iterations), tags)
    record_metrics("plan_converged", float(result.converged), tags)
    record_metrics(
        "plan_tiers_can_be_met",
        float(sum(row.status == "can_be_met" for row in result.feasibility_table)),
        tags,
    )


def _corpus_share(
    goal: Goal,
    goals: Sequence[Goal],
    holdings: CustomerHoldings,
    universe: AssetClassUniverse,
) -> float:
    """Part of the corpus attributable to ``goal`` by present value of basic targets."""

    present_values = {
        other.goal_id: present_value_of_target(
            other.basic.target_amount,
            optimal_allocation(other, BASIC, holdings.allowed_asset_classes, universe),
            universe,
            other.horizon_years,
        )
        for other in goals
    }
    total = sum(present_values.values())
    if total <= 0:
        return holdings.total / max(1, len(goals))
    return holdings.total * present_values[goal.goal_id] / total


def _handle_envelope(args: argparse.Namespace) -> None:
    universe = load_asset_universe_from_yaml(args.asset_classes)
    goals = {goal.goal_id: goal for goal in load_goals_from_yaml(args.goals)}
    goal = goals.get(args.goal_id)
    if goal is None:
        raise SystemExit(f"Unknown goal id: {args.goal_id}")
    holdings, contribution = load_profile_from_yaml(args.profile)

    allocation = optimal_allocation(goal, BASIC, holdings.allowed_asset_classes, universe)
    corpus = _corpus_share(goal, list(goals.values()), holdings, universe)
    stats = weighted_stats(allocation, universe, horizon_key(goal.horizon_years))
    bounds = calculate_bounds(
        corpus,
        contribution.available,
        stats,
        goal.horizon_years,
        contribution.annual_step_up_pct,
    )
    validation = validate_envelope(
        corpus,
        contribution.available,
        allocation,
        universe,
        goal.horizon_years,
        bounds,
        rng=generator_from_seed(_resolve_seed(args.seed)),
        paths=max(1, int(args.paths)),
        step_up_pct=contribution.annual_step_up_pct,
    )
    confidence = calculate_confidence(goal.basic.target_amount, bounds)
    print(
        f"[goalplan] envelope goal={goal.goal_id} corpus={corpus:.0f} "
        f"lower={bounds.lower:.0f} mean={bounds.mean:.0f} "
        f"confidence={confidence:.1f} containment={validation.containment_pct:.1f} "
        f"average={validation.average_final:.0f} valid={validation.is_valid}"
    )
    record_metrics("envelope_containment_pct", validation.containment_pct, {"goal": goal.goal_id})


def _handle_validate(args: argparse.Namespace) -> None:
    """Validate configuration files and report diagnostics to stdout."""

    summary = validate_configs(
        asset_classes_path=args.asset_classes,
        goals_path=args.goals,
        profile_path=args.profile,
    )
    if args.verbose and summary.configs:
        for label, payload in summary.configs.items():
            rendered = yaml.safe_dump(payload, sort_keys=True)
            print(f"[goalplan] validate {label}\n{rendered}", end="")
    for warning in summary.warnings:
        print(f"[goalplan] validate warning: {warning}")
    if summary.errors:
        for error in summary.errors:
            print(f"[goalplan] validate error: {error}")
        raise SystemExit(1)
    print("[goalplan] validate status=ok")


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_cli_logging(json_logs=bool(args.json_logs))
    if args.cmd == "plan":
        _handle_plan(args)
    elif args.cmd == "envelope":
        _handle_envelope(args)
    elif args.cmd == "validate":
        _handle_validate(args)
    else:
        print(f"[goalplan] command = {args.cmd}")


if __name__ == "__main__":
    main()
