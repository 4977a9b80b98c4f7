"""ivsens: sensitivity analysis for linear instrumental-variable models.

This package implements the Union-of-Confidence-Intervals (UCI) procedure for
IV models whose exclusion restriction holds only approximately: each excluded
instrument may carry a bounded direct effect on the outcome, and the reported
bounds cover every 2SLS confidence interval over a grid of such effects.
"""
from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

__all__ = [
    "IV2SLS",
    "OLS",
    "BaseEstimator",
    "CandidateRegression",
    "ConfigError",
    "EmptyGridError",
    "EstimationError",
    "EstimationResult",
    "InconsistentCoefficientSetError",
    "InstrumentSpecification",
    "InsufficientObservationsError",
    "IVSensError",
    "ModelSpecification",
    "SingularMatrixError",
    "SupportBounds",
    "UCICancelledError",
    "UCIConfig",
    "UnderidentifiedModelError",
    "UnionBounds",
    "bounds_table",
    "build_grid",
    "candidates_table",
    "check_identification",
    "estimate_candidate",
    "transform",
    "transform_grid",
    "uci",
    "union_bounds",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseEstimator": ("ivsens.estimators.base", "BaseEstimator"),
    "EstimationResult": ("ivsens.estimators.base", "EstimationResult"),
    "OLS": ("ivsens.estimators.ols", "OLS"),
    "IV2SLS": ("ivsens.estimators.iv", "IV2SLS"),
    "estimate_candidate": ("ivsens.estimators.iv", "estimate_candidate"),
    "ModelSpecification": ("ivsens.utils.specification", "ModelSpecification"),
    "InstrumentSpecification": ("ivsens.utils.specification", "InstrumentSpecification"),
    "SupportBounds": ("ivsens.utils.specification", "SupportBounds"),
    "CandidateRegression": ("ivsens.utils.specification", "CandidateRegression"),
    "build_grid": ("ivsens.sensitivity.grid", "build_grid"),
    "check_identification": ("ivsens.sensitivity.transform", "check_identification"),
    "transform": ("ivsens.sensitivity.transform", "transform"),
    "transform_grid": ("ivsens.sensitivity.transform", "transform_grid"),
    "UnionBounds": ("ivsens.sensitivity.union", "UnionBounds"),
    "union_bounds": ("ivsens.sensitivity.union", "union_bounds"),
    "UCIConfig": ("ivsens.sensitivity.config", "UCIConfig"),
    "uci": ("ivsens.sensitivity.uci", "uci"),
    "bounds_table": ("ivsens.output.summary", "bounds_table"),
    "candidates_table": ("ivsens.output.summary", "candidates_table"),
    "IVSensError": ("ivsens.exceptions", "IVSensError"),
    "ConfigError": ("ivsens.exceptions", "ConfigError"),
    "UnderidentifiedModelError": ("ivsens.exceptions", "UnderidentifiedModelError"),
    "EstimationError": ("ivsens.exceptions", "EstimationError"),
    "SingularMatrixError": ("ivsens.exceptions", "SingularMatrixError"),
    "InsufficientObservationsError": ("ivsens.exceptions", "InsufficientObservationsError"),
    "InconsistentCoefficientSetError": ("ivsens.exceptions", "InconsistentCoefficientSetError"),
    "EmptyGridError": ("ivsens.exceptions", "EmptyGridError"),
    "UCICancelledError": ("ivsens.exceptions", "UCICancelledError"),
}


def __getattr__(name: str) -> Any:
    """Lazily import public estimators and utilities on first access."""
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = import_module(module_name)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'ivsens' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Ensure dir() exposes lazily imported names."""
    return sorted(set(globals()) | set(__all__))
