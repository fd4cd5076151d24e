"""Gestione centralizzata dei seed casuali per le simulazioni Monte Carlo."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

import numpy as np
import yaml

DEFAULT_STREAM = "global"
DEFAULT_SEED = 42
DEFAULT_SEED_PATH = Path("audit") / "seeds.yml"
PLANNER_STREAM = "planner"

__all__ = [
    "DEFAULT_SEED",
    "DEFAULT_SEED_PATH",
    "DEFAULT_STREAM",
    "PLANNER_STREAM",
    "load_seeds",
    "save_seeds",
    "seed_for_stream",
    "generator_from_seed",
    "spawn_seed_sequences",
]


def load_seeds(seed_path: Path | str = DEFAULT_SEED_PATH) -> dict[str, int]:
    """Carica il dizionario dei seed dal percorso indicato.

    Se il file non esiste viene restituito almeno lo stream ``global`` con il
    seed di default, così che le simulazioni restino riproducibili sin dal
    primo avvio.
    """

    path = Path(seed_path)
    if not path.exists():
        return {DEFAULT_STREAM: DEFAULT_SEED}

    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if isinstance(data, dict) and "seeds" in data and isinstance(data["seeds"], dict):
        seeds_section = data["seeds"]
    elif isinstance(data, dict):
        seeds_section = data
    else:
        raise TypeError("Seed file must contain a mapping of stream -> seed")

    seeds: dict[str, int] = {}
    for key, value in seeds_section.items():
        if value is None:
            continue
        seeds[str(key)] = int(value)

    seeds.setdefault(DEFAULT_STREAM, DEFAULT_SEED)
    return seeds


def save_seeds(
    seeds: Mapping[str, int],
    seed_path: Path | str = DEFAULT_SEED_PATH,
) -> Path:
    """Salva su disco una mappatura ``stream -> seed`` normalizzata."""

    path = Path(seed_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"seeds": {str(k): int(v) for k, v in seeds.items()}}
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle, sort_keys=True)
    return path


def seed_for_stream(
    stream: str = DEFAULT_STREAM,
    *,
    seeds: Mapping[str, int] | None = None,
    seed_path: Path | str = DEFAULT_SEED_PATH,
) -> int:
    """Ricava il seed per ``stream`` usando la mappatura fornita o il file."""

    seeds_dict = dict(seeds) if seeds is not None else load_seeds(seed_path)
    if DEFAULT_STREAM not in seeds_dict:
        seeds_dict[DEFAULT_STREAM] = DEFAULT_SEED
    return int(seeds_dict.get(stream, seeds_dict[DEFAULT_STREAM]))


def generator_from_seed(seed: int | np.random.Generator | None = None) -> np.random.Generator:
    """Restituisce un generatore NumPy indipendente per ogni chiamata.

    ``None`` usa :data:`DEFAULT_SEED`; un generatore già costruito viene
    restituito così com'è e il chiamante ne condivide lo stato.
    """

    if isinstance(seed, np.random.Generator):
        return seed
    resolved_seed = DEFAULT_SEED if seed is None else int(seed)
    return np.random.default_rng(resolved_seed)


def spawn_seed_sequences(rng: np.random.Generator, count: int) -> list[np.random.SeedSequence]:
    """Deriva ``count`` sequenze figlie deterministiche dal generatore padre."""

    if count < 0:
        raise ValueError("count must be >= 0")
    entropy = int(rng.integers(0, 2**63 - 1))
    return np.random.SeedSequence(entropy).spawn(count)
