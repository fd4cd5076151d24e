"""Fixture condivise dei test goalplan.

I test Monte Carlo a dimensione piena sono marcati ``slow`` e restano
esclusi finché non si passa ``--slow`` a pytest.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

SLOW_MARKER = "slow"


@pytest.fixture(autouse=True)
def _plain_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    """Livello INFO e nessun audit JSON, indipendentemente dall'ambiente."""

    monkeypatch.setenv("GOALPLAN_LOG_LEVEL", "INFO")
    monkeypatch.delenv("GOALPLAN_JSON_LOGS", raising=False)


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--slow",
        action="store_true",
        default=False,
        help="Run planner tests that use the full Monte Carlo path count.",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", f"{SLOW_MARKER}: simulazione Monte Carlo completa, richiede --slow")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Salta i test ``slow`` se l'opzione ``--slow`` manca."""

    if config.getoption("--slow"):
        return
    skip_slow = pytest.mark.skip(reason="simulazione lenta; usare pytest --slow")
    for item in items:
        if SLOW_MARKER in item.keywords:
            item.add_marker(skip_slow)
