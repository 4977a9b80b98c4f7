# ivsens/sensitivity/__init__.py
"""Union-of-Confidence-Intervals sensitivity analysis.

The orchestrator is :func:`ivsens.sensitivity.uci.uci`, also exposed as ``ivsens.uci``.
"""
from .config import UCIConfig
from .grid import build_grid
from .transform import check_identification, transform, transform_grid
from .union import UnionBounds, union_bounds

__all__ = [
    "UCIConfig",
    "UnionBounds",
    "build_grid",
    "check_identification",
    "transform",
    "transform_grid",
    "union_bounds",
]
