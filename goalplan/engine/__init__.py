"""Namespace principale del motore goalplan."""

from __future__ import annotations

from . import infra, planning

__all__ = ["infra", "planning"]
