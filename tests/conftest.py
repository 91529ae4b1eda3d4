"""Shared fixtures: a small hand-built cohort with one clear increase."""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from malignant_shift.io import parse_replicate_columns
from malignant_shift.simulate import replicate_columns

# Malignant replicate counts per patient (early, late); every total is 1000.
# P1-P3 are stable, P4 goes from ~5% to ~50% malignant.
TOY_MALIGNANT = {
    "P1": ([98, 102, 101, 99], [101, 99, 97, 103]),
    "P2": ([118, 122, 121, 119], [121, 119, 117, 123]),
    "P3": ([78, 82, 81, 79], [81, 79, 77, 83]),
    "P4": ([48, 52, 51, 49], [495, 505, 498, 502]),
}


def _toy_counts() -> pd.DataFrame:
    rows = []
    for early, late in TOY_MALIGNANT.values():
        rows.append(early + [1000] * 4 + late + [1000] * 4)
    return pd.DataFrame(
        rows,
        index=pd.Index(list(TOY_MALIGNANT), name="patient"),
        columns=replicate_columns(("T1", "T2"), 4),
        dtype=float,
    )


@pytest.fixture
def toy_counts() -> pd.DataFrame:
    return _toy_counts()


@pytest.fixture
def toy_layout(toy_counts):
    return parse_replicate_columns(list(toy_counts.columns))


@pytest.fixture
def rng():
    return np.random.default_rng(0)
