"""Dataset access.

A dataset is either a ``pandas.DataFrame`` or a mapping from column name to a
1-D numeric array. Columns are pulled out once, validated, and handed to the
estimators as float64 arrays; the caller's object is never modified.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd

from ivsens.exceptions import ConfigError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

__all__ = ["extract_columns"]


def _has_column(data: Any, name: str) -> bool:
    if isinstance(data, pd.DataFrame):
        return name in data.columns
    return name in data


def extract_columns(data: Any, names: Sequence[str]) -> dict[str, NDArray[np.float64]]:
    """Return validated float64 copies of the named columns.

    Raises
    ------
    ConfigError
        When ``data`` is not a DataFrame or mapping, a column is missing or
        non-numeric, columns differ in length, or values are NA/NaN/Inf.

    """
    if data is None:
        raise ConfigError("A dataset is required.")
    if not isinstance(data, (pd.DataFrame, Mapping)):
        raise ConfigError(
            f"Dataset must be a pandas DataFrame or a mapping of columns; got {type(data).__name__}.",
        )
    missing = [nm for nm in dict.fromkeys(names) if not _has_column(data, nm)]
    if missing:
        raise ConfigError(f"Dataset is missing column(s): {', '.join(missing)}.")

    out: dict[str, NDArray[np.float64]] = {}
    length: int | None = None
    for nm in dict.fromkeys(names):
        raw = data[nm]
        if isinstance(raw, pd.DataFrame):
            raise ConfigError(f"Column label '{nm}' is not unique in the dataset.")
        if isinstance(raw, pd.Series) and not pd.api.types.is_numeric_dtype(raw.dtype):
            raise ConfigError(f"Column '{nm}' is not numeric (dtype {raw.dtype}).")
        try:
            arr = np.array(raw, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Column '{nm}' is not numeric.") from exc
        if arr.ndim != 1:
            raise ConfigError(f"Column '{nm}' must be one-dimensional.")
        if length is None:
            length = arr.shape[0]
        elif arr.shape[0] != length:
            raise ConfigError(
                f"Column '{nm}' has {arr.shape[0]} rows; expected {length}.",
            )
        n_bad = int(np.sum(~np.isfinite(arr)))
        if n_bad:
            raise ConfigError(
                f"Column '{nm}' contains {n_bad} NA/NaN/Inf value(s); drop or clean rows first.",
            )
        out[nm] = arr
    return out
