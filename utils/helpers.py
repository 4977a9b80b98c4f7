"""Shared helper utilities for table formatting."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - import only for type checking
    from collections.abc import Sequence

__all__ = [
    "format_gamma",
]


def format_gamma(gamma: Sequence[float], floatfmt: str = ".6g") -> str:
    """Render a direct-effect vector as ``(g1, g2, ...)``."""
    return "(" + ", ".join(format(float(g), floatfmt) for g in gamma) + ")"
