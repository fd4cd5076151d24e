"""Utility di I/O per configurazioni e artefatti di pianificazione.

Il modulo raccoglie helper per creare directory, sanitizzare nomi di file,
leggere le configurazioni YAML e serializzare i risultati in JSON con relativo
manifest di checksum.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Iterable
from pathlib import Path

import yaml

__all__ = [
    "ensure_dir",
    "safe_path_segment",
    "read_yaml",
    "write_json",
    "sha256_file",
    "compute_checksums",
]


# Caratteri vietati nei nomi di file sui filesystem più diffusi.
INVALID_FS_CHARS = r'[<>:"/\\|?*\x00-\x1F]'


def ensure_dir(path: Path | str) -> Path:
    """Garantisce l'esistenza del percorso e lo restituisce come :class:`Path`."""

    path_obj = Path(path)
    path_obj.mkdir(parents=True, exist_ok=True)
    return path_obj


def safe_path_segment(name: str) -> str:
    """Restituisce ``name`` ripulito dai caratteri non ammessi dal filesystem."""

    safe = re.sub(INVALID_FS_CHARS, "-", str(name))
    return safe.rstrip(" .")


def read_yaml(path: Path | str) -> object:
    """Legge un file YAML e restituisce l'oggetto Python corrispondente."""

    with Path(path).open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)


def write_json(data: object, path: Path | str, *, indent: int = 2) -> Path:
    """Serializza ``data`` in JSON garantendo un'ultima riga con newline."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=indent, sort_keys=True)
        handle.write("\n")
    return target


def sha256_file(path: Path | str, *, chunk_size: int = 65_536) -> str:
    """Calcola l'hash SHA-256 del file in modo incrementale."""

    digest = hashlib.sha256()
    with Path(path).open("rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def compute_checksums(paths: Iterable[Path | str]) -> dict[str, str]:
    """Restituisce una mappa ``nome file -> checksum`` per i file esistenti."""

    result: dict[str, str] = {}
    for file_path in paths:
        path = Path(file_path)
        if not path.exists():
            # I file mancanti vengono ignorati.
            continue
        result[path.name] = sha256_file(path)
    return result
