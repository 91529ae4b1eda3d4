"""
Data-quality diagnostics for replicate count matrices.

Functions
---------
missing_fraction
    Fraction of missing entries per column.
zero_fraction
    Fraction of zero counts per column.
per_column_dispersion
    Mean, variance and variance-to-mean ratio per column.
replicate_cv
    Coefficient of variation across technical replicates.
missingness_summary
    Per-patient missing replicate counts and balance per time point.
"""
from __future__ import annotations

import numpy as np
import pandas as pd

from .constants import KINDS, MALIGNANT, TOTAL
from .io import ReplicateLayout


def missing_fraction(counts_wide: pd.DataFrame) -> pd.Series:
    """Fraction of missing entries in each column."""
    return counts_wide.isna().mean(axis=0)


def zero_fraction(counts_wide: pd.DataFrame) -> pd.Series:
    """Compute the fraction of zero counts per column.

    Missing entries are excluded from the denominator.

    Examples
    --------
    >>> counts = pd.DataFrame({"S1": [0, 10, 0, 5], "S2": [1, 0, np.nan, 0]})
    >>> zero_fraction(counts).round(3)
    S1    0.500
    S2    0.667
    dtype: float64
    """
    return (counts_wide == 0).sum(axis=0) / counts_wide.notna().sum(axis=0)


def per_column_dispersion(counts_wide: pd.DataFrame) -> pd.DataFrame:
    """Compute dispersion statistics for each column.

    The variance-to-mean ratio is 1 for Poisson counts and > 1 when the
    counts are overdispersed.

    Returns
    -------
    pd.DataFrame
        Columns ``mean``, ``var`` and ``var_over_mean``, one row per input
        column.
    """
    means = counts_wide.mean(axis=0)
    vars_ = counts_wide.var(axis=0, ddof=1)
    out = pd.DataFrame(
        {"mean": means, "var": vars_, "var_over_mean": vars_ / means.replace(0, np.nan)}
    )
    return out


def replicate_cv(counts_wide: pd.DataFrame, layout: ReplicateLayout) -> pd.DataFrame:
    """Coefficient of variation across technical replicates.

    Returns
    -------
    pd.DataFrame
        Patients x ``<kind>_<tp>`` CVs; NaN where fewer than two replicates
        are present or the mean is zero.
    """
    out = {}
    for tp in layout.timepoints:
        for kind in KINDS:
            sub = counts_wide[layout.cols(kind, tp)]
            mean = sub.mean(axis=1)
            sd = sub.std(axis=1, ddof=1)
            out[f"{kind}_{tp}"] = sd / mean.replace(0, np.nan)
    return pd.DataFrame(out, index=counts_wide.index)


def missingness_summary(counts_wide: pd.DataFrame, layout: ReplicateLayout) -> pd.DataFrame:
    """Missing replicate counts per patient, kind and time point.

    Adds ``balanced_<tp>`` (equal malignant and total missing counts).
    """
    out = pd.DataFrame(index=counts_wide.index)
    for tp in layout.timepoints:
        n_mal = counts_wide[layout.cols(MALIGNANT, tp)].isna().sum(axis=1)
        n_tot = counts_wide[layout.cols(TOTAL, tp)].isna().sum(axis=1)
        out[f"missing_{MALIGNANT}_{tp}"] = n_mal
        out[f"missing_{TOTAL}_{tp}"] = n_tot
        out[f"balanced_{tp}"] = n_mal == n_tot
    return out
