from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from goalplan.engine.utils import (
    DEFAULT_SEED,
    DEFAULT_STREAM,
    PLANNER_STREAM,
    generator_from_seed,
    load_seeds,
    save_seeds,
    seed_for_stream,
    spawn_seed_sequences,
)


def test_load_seeds_defaults_when_missing(tmp_path: Path) -> None:
    path = tmp_path / "audit" / "seeds.yml"
    seeds = load_seeds(path)
    assert seeds[DEFAULT_STREAM] == DEFAULT_SEED


def test_seed_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "audit" / "seeds.yml"
    save_seeds({"global": 123, PLANNER_STREAM: 456}, path)
    seeds = load_seeds(path)
    assert seed_for_stream(PLANNER_STREAM, seeds=seeds) == 456
    assert seed_for_stream("unknown", seeds=seeds) == 123


def test_load_seeds_rejects_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "seeds.yml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(TypeError):
        load_seeds(path)


def test_repository_seed_file_defines_planner_stream() -> None:
    path = Path(__file__).resolve().parents[2] / "audit" / "seeds.yml"
    assert PLANNER_STREAM in load_seeds(path)


def test_generator_from_seed_respects_int() -> None:
    rng = generator_from_seed(99)
    assert rng.integers(0, 100) == np.random.default_rng(99).integers(0, 100)
    shared = np.random.default_rng(1)
    assert generator_from_seed(shared) is shared
    assert generator_from_seed(None).integers(0, 100) == np.random.default_rng(DEFAULT_SEED).integers(0, 100)


def test_spawn_seed_sequences_is_deterministic() -> None:
    first = spawn_seed_sequences(generator_from_seed(5), 3)
    second = spawn_seed_sequences(generator_from_seed(5), 3)
    assert len(first) == 3
    draws_first = [np.random.default_rng(seq).random() for seq in first]
    draws_second = [np.random.default_rng(seq).random() for seq in second]
    assert draws_first == draws_second
    assert len(set(draws_first)) == 3
    with pytest.raises(ValueError):
        spawn_seed_sequences(generator_from_seed(5), -1)
