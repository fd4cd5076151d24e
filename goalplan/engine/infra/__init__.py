"""Infrastructure helpers shared by the CLI and the artefact writers."""

from __future__ import annotations

from .paths import DEFAULT_ARTIFACT_ROOT, DEFAULT_LOG_ROOT, DEFAULT_REPORT_ROOT, run_dir

__all__ = ["DEFAULT_ARTIFACT_ROOT", "DEFAULT_LOG_ROOT", "DEFAULT_REPORT_ROOT", "run_dir"]
