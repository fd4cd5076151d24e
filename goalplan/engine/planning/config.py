"""YAML loaders for planning inputs."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path

from goalplan.engine.planning.models import (
    AssetClassUniverse,
    ContributionInput,
    CustomerHoldings,
    Goal,
)
from goalplan.engine.utils.io import read_yaml

__all__ = [
    "DEFAULT_ASSET_CLASSES_PATH",
    "DEFAULT_GOALS_PATH",
    "DEFAULT_PROFILE_PATH",
    "load_goals",
    "load_asset_universe_from_yaml",
    "load_goals_from_yaml",
    "load_profile_from_yaml",
]

DEFAULT_ASSET_CLASSES_PATH = Path("configs") / "asset_classes.yml"
DEFAULT_GOALS_PATH = Path("configs") / "goals.yml"
DEFAULT_PROFILE_PATH = Path("configs") / "profile.yml"


def load_goals(payload: Sequence[Mapping[str, object]] | None) -> list[Goal]:
    """Convert raw goal mappings into :class:`Goal` instances.

    Args:
      payload: Sequence of goal mappings or ``None``.

    Returns:
      Goals in file order; an empty list when ``payload`` is ``None``.
    """

    if payload is None:
        return []
    return [Goal.from_mapping(entry) for entry in payload]


def load_asset_universe_from_yaml(path: Path | str = DEFAULT_ASSET_CLASSES_PATH) -> AssetClassUniverse:
    """Load asset class statistics from a YAML file.

    Args:
      path: Path to a document with an ``asset_classes`` section.

    Returns:
      :class:`AssetClassUniverse` built from the document.
    """

    data = read_yaml(path)
    if not isinstance(data, Mapping):
        raise TypeError(f"{path} must contain a mapping")
    return AssetClassUniverse.from_mapping(data)


def load_goals_from_yaml(path: Path | str = DEFAULT_GOALS_PATH) -> list[Goal]:
    """Load goals from a YAML file with a top-level ``goals`` list."""

    data = read_yaml(path)
    payload: Sequence[Mapping[str, object]] | None
    if isinstance(data, Mapping) and "goals" in data:
        payload = data["goals"]  # type: ignore[assignment]
    elif isinstance(data, Sequence):
        payload = data  # type: ignore[assignment]
    else:
        payload = None
    return load_goals(payload)


def load_profile_from_yaml(
    path: Path | str = DEFAULT_PROFILE_PATH,
) -> tuple[CustomerHoldings, ContributionInput]:
    """Load customer holdings and contribution parameters.

    Args:
      path: Path to a document with ``corpus`` and ``contribution`` sections.

    Returns:
      Tuple of :class:`CustomerHoldings` and :class:`ContributionInput`;
      missing sections fall back to an empty corpus and no contribution.
    """

    data = read_yaml(path)
    if not isinstance(data, Mapping):
        data = {}
    corpus = data.get("corpus", {})
    contribution = data.get("contribution", {})
    holdings = CustomerHoldings.from_mapping(corpus if isinstance(corpus, Mapping) else {})
    inputs = ContributionInput.from_mapping(contribution if isinstance(contribution, Mapping) else {})
    return holdings, inputs
