"""Turn a base model plus a direct-effect vector into candidate regressions.

All functions here are pure: specifications are never mutated and no data is
read. Candidates come back in the order of the grid rows.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from ivsens.exceptions import ConfigError, UnderidentifiedModelError
from ivsens.utils.specification import (
    CandidateRegression,
    InstrumentSpecification,
    ModelSpecification,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

__all__ = ["check_identification", "transform", "transform_grid"]


def check_identification(
    model: ModelSpecification,
    instruments: InstrumentSpecification,
) -> None:
    """Validate the pairing of ``model`` and ``instruments``.

    Raises
    ------
    UnderidentifiedModelError
        Fewer excluded instruments than endogenous regressors.
    ConfigError
        Endogenous sets differ, or an instrument name collides with the
        dependent variable or a regressor.

    """
    if not isinstance(model, ModelSpecification):
        raise ConfigError("model must be a ModelSpecification.")
    if not isinstance(instruments, InstrumentSpecification):
        raise ConfigError("instruments must be an InstrumentSpecification.")
    if not instruments.is_identified:
        raise UnderidentifiedModelError(
            f"Model is underidentified: {instruments.n_instruments} instrument(s) "
            f"for {len(instruments.endogenous)} endogenous regressor(s).",
        )
    if set(instruments.endogenous) != set(model.endogenous):
        raise ConfigError(
            "Instrumented regressors "
            f"{list(instruments.endogenous)} do not match the model's endogenous "
            f"regressors {list(model.endogenous)}.",
        )
    clash = [z for z in instruments.instruments if z in model.variables]
    if clash:
        raise ConfigError(
            f"Instrument(s) {clash} also appear as dependent variable or regressor.",
        )


def transform(
    model: ModelSpecification,
    instruments: InstrumentSpecification,
    gamma: Sequence[float] | NDArray[np.float64],
) -> CandidateRegression:
    """Candidate regression for one direct-effect vector ``gamma``.

    The outcome becomes ``dependent - sum_i gamma_i * instrument_i``; the
    regressors stay ``exogenous + endogenous`` and the 2SLS instrument set is
    ``exogenous`` followed by the excluded instruments.
    """
    g = tuple(float(v) for v in np.asarray(gamma, dtype=np.float64).reshape(-1))
    if len(g) != instruments.n_instruments:
        raise ConfigError(
            f"gamma has {len(g)} entries but there are "
            f"{instruments.n_instruments} instruments.",
        )
    return CandidateRegression(
        gamma=g,
        dependent=model.dependent,
        adjustments=tuple(zip(instruments.instruments, g)),
        exogenous=model.exogenous,
        endogenous=model.endogenous,
        excluded=instruments.instruments,
        include_intercept=model.include_intercept,
    )


def transform_grid(
    model: ModelSpecification,
    instruments: InstrumentSpecification,
    grid: NDArray[np.float64] | Sequence[Sequence[float]],
) -> list[CandidateRegression]:
    """One candidate per grid row, in grid order.

    Identification is checked once, before any candidate is generated.
    """
    check_identification(model, instruments)
    rows = np.asarray(grid, dtype=np.float64)
    if rows.ndim == 1:
        rows = rows.reshape(-1, 1)
    return [transform(model, instruments, row) for row in rows]
