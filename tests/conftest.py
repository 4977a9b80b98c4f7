from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from ivsens.sim.montecarlo import simulate_iv_data
from ivsens.utils.specification import InstrumentSpecification, ModelSpecification


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def iv_data() -> pd.DataFrame:
    """y, x (endogenous), w (exogenous), z1, z2 with valid instruments."""
    return simulate_iv_data(n_obs=400, seed=11)


@pytest.fixture
def model() -> ModelSpecification:
    return ModelSpecification("y", exogenous=("w",), endogenous=("x",))


@pytest.fixture
def instruments() -> InstrumentSpecification:
    return InstrumentSpecification(("x",), ("z1", "z2"))


@pytest.fixture
def just_identified() -> InstrumentSpecification:
    return InstrumentSpecification(("x",), ("z1",))
