"""Structural model, instrument, and support-bound specifications.

Specifications are immutable values built programmatically. They describe
*what* to estimate; numeric data is only touched by
:meth:`CandidateRegression.outcome`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from ivsens.exceptions import ConfigError
from ivsens.utils.auto_constant import CONST_NAME

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from numpy.typing import NDArray

__all__ = [
    "CandidateRegression",
    "InstrumentSpecification",
    "ModelSpecification",
    "SupportBounds",
]


def _as_names(value: Iterable[str] | str | None, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        # a bare string is a single name, not a sequence of characters
        value = (value,)
    names = tuple(str(v) for v in value)
    for nm in names:
        if not nm.strip():
            raise ConfigError(f"{field_name} contains an empty variable name.")
    return names


def _check_distinct(names: Sequence[str], what: str) -> None:
    seen: set[str] = set()
    for nm in names:
        if nm in seen:
            raise ConfigError(f"Duplicate variable name '{nm}' in {what}.")
        seen.add(nm)


@dataclass(frozen=True)
class ModelSpecification:
    """Linear structural equation ``dependent ~ exogenous + endogenous``.

    Parameters
    ----------
    dependent : str
        Outcome variable name.
    exogenous : Sequence[str]
        Included exogenous regressors, in output order.
    endogenous : Sequence[str]
        Endogenous regressors, in output order.
    include_intercept : bool, default=True
        Append a ``_cons`` intercept to both stages. A regressor that is
        constant 1 in the data is then rejected; supply it with
        ``include_intercept=False`` instead.

    """

    dependent: str
    exogenous: tuple[str, ...] = ()
    endogenous: tuple[str, ...] = ()
    include_intercept: bool = True

    def __post_init__(self) -> None:
        dep = _as_names(self.dependent, "dependent")
        if len(dep) != 1:
            raise ConfigError("dependent must be a single variable name.")
        object.__setattr__(self, "dependent", dep[0])
        object.__setattr__(self, "exogenous", _as_names(self.exogenous, "exogenous"))
        object.__setattr__(self, "endogenous", _as_names(self.endogenous, "endogenous"))
        object.__setattr__(self, "include_intercept", bool(self.include_intercept))
        if not self.endogenous:
            raise ConfigError("ModelSpecification needs at least one endogenous regressor.")
        _check_distinct(self.variables, "the model specification")
        if CONST_NAME in self.variables:
            raise ConfigError(f"'{CONST_NAME}' is reserved for the intercept.")

    @property
    def regressors(self) -> tuple[str, ...]:
        """Right-hand side names: exogenous first, then endogenous."""
        return self.exogenous + self.endogenous

    @property
    def variables(self) -> tuple[str, ...]:
        return (self.dependent, *self.regressors)

    @property
    def coefficient_names(self) -> tuple[str, ...]:
        """Coefficient labels in result order (intercept last)."""
        return self.regressors + ((CONST_NAME,) if self.include_intercept else ())


@dataclass(frozen=True)
class InstrumentSpecification:
    """Excluded instruments for a set of endogenous regressors.

    Each instrument is one dimension of the direct-effect vector ``gamma``.
    """

    endogenous: tuple[str, ...]
    instruments: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "endogenous", _as_names(self.endogenous, "endogenous"))
        object.__setattr__(self, "instruments", _as_names(self.instruments, "instruments"))
        _check_distinct(self.endogenous, "the instrumented endogenous regressors")
        _check_distinct(self.instruments, "the instruments")

    @property
    def n_instruments(self) -> int:
        return len(self.instruments)

    @property
    def is_identified(self) -> bool:
        return len(self.instruments) >= len(self.endogenous)


@dataclass(frozen=True)
class SupportBounds:
    """Per-instrument support ``[gmin[i], gmax[i]]`` of the direct effect."""

    gmin: tuple[float, ...]
    gmax: tuple[float, ...]

    def __post_init__(self) -> None:
        gmin = _as_floats(self.gmin, "gmin")
        gmax = _as_floats(self.gmax, "gmax")
        if len(gmin) != len(gmax):
            raise ConfigError(
                f"gmin and gmax must have equal length; got {len(gmin)} and {len(gmax)}.",
            )
        if not gmin:
            raise ConfigError("gmin/gmax must contain at least one dimension.")
        for i, (lo, hi) in enumerate(zip(gmin, gmax)):
            if not (math.isfinite(lo) and math.isfinite(hi)):
                raise ConfigError(f"Support bounds must be finite (dimension {i}).")
            if lo > hi:
                raise ConfigError(
                    f"gmin[{i}]={lo:.6g} exceeds gmax[{i}]={hi:.6g}.",
                )
        object.__setattr__(self, "gmin", gmin)
        object.__setattr__(self, "gmax", gmax)

    @property
    def dim(self) -> int:
        return len(self.gmin)

    def grid(self, grid_size: int = 2) -> NDArray[np.float64]:
        """Cartesian grid of gamma vectors; see :func:`ivsens.sensitivity.grid.build_grid`."""
        from ivsens.sensitivity.grid import build_grid

        return build_grid(self.gmin, self.gmax, grid_size)


def _as_floats(values: Any, name: str) -> tuple[float, ...]:
    if values is None:
        raise ConfigError(f"{name} is required.")
    if isinstance(values, (int, float, np.number)):
        values = (values,)
    try:
        return tuple(float(v) for v in np.asarray(values, dtype=np.float64).reshape(-1))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a sequence of numbers.") from exc


@dataclass(frozen=True)
class CandidateRegression:
    """One concrete 2SLS problem for a fixed direct-effect vector ``gamma``.

    The outcome is ``dependent - sum_i gamma_i * instrument_i``; regressors are
    unchanged and the instrument set is ``exogenous`` followed by ``excluded``.
    """

    gamma: tuple[float, ...]
    dependent: str
    adjustments: tuple[tuple[str, float], ...]
    exogenous: tuple[str, ...]
    endogenous: tuple[str, ...]
    excluded: tuple[str, ...]
    include_intercept: bool = True

    @property
    def regressors(self) -> tuple[str, ...]:
        return self.exogenous + self.endogenous

    @property
    def instruments(self) -> tuple[str, ...]:
        return self.exogenous + self.excluded

    @property
    def coefficient_names(self) -> tuple[str, ...]:
        return self.regressors + ((CONST_NAME,) if self.include_intercept else ())

    @property
    def referenced(self) -> tuple[str, ...]:
        """Every dataset column this candidate reads."""
        return (self.dependent, *self.regressors, *self.excluded)

    @property
    def label(self) -> str:
        terms = [f"{g:.6g}*{z}" for z, g in self.adjustments if g != 0.0]
        if not terms:
            return self.dependent
        return f"{self.dependent} - ({' + '.join(terms)})"

    def outcome(self, columns: Mapping[str, NDArray[np.float64]]) -> NDArray[np.float64]:
        """Adjusted outcome vector computed from validated ``columns``."""
        y = np.asarray(columns[self.dependent], dtype=np.float64).copy()
        for z, g in self.adjustments:
            if g != 0.0:
                y -= g * np.asarray(columns[z], dtype=np.float64)
        return y
