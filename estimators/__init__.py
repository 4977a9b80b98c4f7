"""Estimator exports with lazy loading.

Public estimator classes and result containers. Uses lazy imports to avoid
circular dependencies.
"""
from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "IV2SLS",
    "OLS",
    "BaseEstimator",
    "EstimationResult",
    "estimate_candidate",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseEstimator": ("ivsens.estimators.base", "BaseEstimator"),
    "EstimationResult": ("ivsens.estimators.base", "EstimationResult"),
    "OLS": ("ivsens.estimators.ols", "OLS"),
    "IV2SLS": ("ivsens.estimators.iv", "IV2SLS"),
    "estimate_candidate": ("ivsens.estimators.iv", "estimate_candidate"),
}


def __getattr__(name: str) -> Any:
    """Lazily import estimator classes and shared containers."""
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = import_module(module_name)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'ivsens.estimators' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Expose lazily loaded attributes to ``dir()``."""
    return sorted(set(globals()) | set(__all__))
