"""Grid of candidate direct-effect vectors."""

from __future__ import annotations

import itertools
import math
import numbers
from typing import TYPE_CHECKING

import numpy as np

from ivsens.exceptions import ConfigError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

__all__ = ["DEFAULT_GRID_SIZE", "build_grid", "validate_grid_size"]

DEFAULT_GRID_SIZE = 2


def validate_grid_size(grid_size: object) -> int:
    """Return ``grid_size`` as an int, raising ConfigError unless it is an integer >= 1."""
    if isinstance(grid_size, bool) or not isinstance(grid_size, numbers.Integral):
        raise ConfigError(f"grid_size must be an integer >= 1; got {grid_size!r}.")
    if int(grid_size) < 1:
        raise ConfigError(f"grid_size must be >= 1; got {int(grid_size)}.")
    return int(grid_size)


def build_grid(
    gmin: Sequence[float],
    gmax: Sequence[float],
    grid_size: int = DEFAULT_GRID_SIZE,
) -> NDArray[np.float64]:
    """Cartesian product of equally spaced points on each ``[gmin[i], gmax[i]]``.

    Parameters
    ----------
    gmin, gmax : Sequence[float]
        Lower and upper support bound per dimension (equal length ``d``).
    grid_size : int, default=2
        Points per dimension, endpoints included. ``grid_size == 1`` yields
        ``gmin[i]`` only.

    Returns
    -------
    ndarray, shape (grid_size ** d, d)
        One gamma vector per row, first dimension varying slowest.

    """
    lo = np.asarray(gmin, dtype=np.float64).reshape(-1)
    hi = np.asarray(gmax, dtype=np.float64).reshape(-1)
    if lo.shape != hi.shape:
        raise ConfigError(
            f"gmin and gmax must have equal length; got {lo.size} and {hi.size}.",
        )
    size = validate_grid_size(grid_size)
    if lo.size == 0:
        raise ConfigError("gmin/gmax must contain at least one dimension.")
    for i in range(lo.size):
        if not (math.isfinite(lo[i]) and math.isfinite(hi[i])):
            raise ConfigError(f"Support bounds must be finite (dimension {i}).")
        if lo[i] > hi[i]:
            raise ConfigError(f"gmin[{i}]={lo[i]:.6g} exceeds gmax[{i}]={hi[i]:.6g}.")

    if size == 1:
        axes = [np.array([lo[i]]) for i in range(lo.size)]
    else:
        axes = [np.linspace(lo[i], hi[i], size) for i in range(lo.size)]
    points = list(itertools.product(*axes))
    return np.asarray(points, dtype=np.float64).reshape(len(points), lo.size)
