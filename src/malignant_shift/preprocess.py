"""
Data preprocessing utilities.

This module provides the replicate-level clean-up and aggregation steps that
precede every detection method: clipping malignant counts to the matching
total, collapsing technical replicates by sum or geometric mean, and flagging
patients whose malignant and total replicates are missing in equal numbers.

Functions
---------
clip_malignant_to_total
    Enforce malignant <= total for every replicate pair.
geometric_mean
    Missing-robust geometric mean of positive values.
aggregate_replicates
    Collapse one replicate vector by sum or geometric mean.
is_balanced
    Compare malignant and total missingness for one time point.
aggregate_counts
    Build the per-patient aggregated count table.
"""
from __future__ import annotations

import logging
from typing import Literal

import numpy as np
import pandas as pd
from scipy import stats

from .constants import MALIGNANT, TOTAL
from .io import ReplicateLayout

logger = logging.getLogger(__name__)

Aggregation = Literal["sum", "geomean"]


def clip_malignant_to_total(df: pd.DataFrame, layout: ReplicateLayout) -> pd.DataFrame:
    """Clip malignant replicate counts down to their total counterpart.

    Only pairs where both values are present are touched; a violation
    (malignant > total) is fixed rather than raised.

    Parameters
    ----------
    df : pd.DataFrame
        Cleaned count matrix.
    layout : ReplicateLayout
        Column layout of ``df``.

    Returns
    -------
    pd.DataFrame
        Copy of ``df`` with clipped malignant columns.
    """
    out = df.copy()
    n_clipped = 0
    for tp in layout.timepoints:
        mal_cols = layout.cols(MALIGNANT, tp)
        tot_cols = layout.cols(TOTAL, tp)
        mal = out[mal_cols].to_numpy(dtype=float)
        tot = out[tot_cols].to_numpy(dtype=float)
        over = mal > tot  # False wherever either side is NaN
        n_clipped += int(over.sum())
        out[mal_cols] = np.where(over, tot, mal)
    if n_clipped:
        logger.warning(f"Clipped {n_clipped} malignant replicate counts exceeding total")
    return out


def geometric_mean(values) -> float:
    """Geometric mean of the positive, non-missing entries.

    Returns 0 when every non-missing entry is zero and NaN when every entry
    is missing.

    Examples
    --------
    >>> round(geometric_mean([2, 8]), 6)
    4.0
    >>> geometric_mean([0, 0])
    0.0
    >>> geometric_mean([np.nan, np.nan])
    nan
    """
    x = np.asarray(values, dtype=float)
    x = x[~np.isnan(x)]
    if x.size == 0:
        return np.nan
    pos = x[x > 0]
    if pos.size == 0:
        return 0.0
    return float(stats.gmean(pos))


def aggregate_replicates(values, method: Aggregation = "sum") -> float:
    """Collapse one replicate vector.

    Parameters
    ----------
    values : array-like
        Replicate counts, NaN for missing.
    method : {"sum", "geomean"}, default "sum"
        ``"sum"`` adds the non-missing entries (NaN if all are missing);
        ``"geomean"`` defers to :func:`geometric_mean`.

    Returns
    -------
    float
    """
    if method == "sum":
        x = np.asarray(values, dtype=float)
        if np.isnan(x).all():
            return np.nan
        return float(np.nansum(x))
    if method == "geomean":
        return geometric_mean(values)
    raise ValueError(f"Unknown method='{method}'. Use 'sum' or 'geomean'.")


def is_balanced(malignant, total) -> bool:
    """True iff malignant and total replicates have equal missing counts.

    Positions do not matter, only the number of missing replicates.

    Examples
    --------
    >>> is_balanced([np.nan, 5, np.nan, 5], [9, np.nan, 9, np.nan])
    True
    >>> is_balanced([np.nan, 5, np.nan, 5], [9, np.nan, 9, 9])
    False
    """
    n_mal = int(np.isnan(np.asarray(malignant, dtype=float)).sum())
    n_tot = int(np.isnan(np.asarray(total, dtype=float)).sum())
    return n_mal == n_tot


def aggregate_counts(
    df: pd.DataFrame,
    layout: ReplicateLayout,
    method: Aggregation = "sum",
) -> pd.DataFrame:
    """Aggregate replicates into one count per patient, kind and time point.

    Parameters
    ----------
    df : pd.DataFrame
        Count matrix, already cleaned and clipped.
    layout : ReplicateLayout
        Column layout of ``df``.
    method : {"sum", "geomean"}, default "sum"
        Replicate aggregation.

    Returns
    -------
    pd.DataFrame
        Indexed by patient, with per time point ``tp`` the columns
        ``malignant_<tp>``, ``total_<tp>``, ``normal_<tp>`` and
        ``balanced_<tp>``, plus ``analyzable`` (balanced at both
        time points with an observed total at each).

    Notes
    -----
    Where replicates are missing on the total side only, the aggregated total
    can fall below the aggregated malignant. It is raised to the malignant
    value so that ``normal >= 0`` always holds.
    """
    out = pd.DataFrame(index=df.index)
    for tp in layout.timepoints:
        mal = df[layout.cols(MALIGNANT, tp)].to_numpy(dtype=float)
        tot = df[layout.cols(TOTAL, tp)].to_numpy(dtype=float)

        mal_agg = np.array([aggregate_replicates(r, method) for r in mal])
        tot_agg = np.array([aggregate_replicates(r, method) for r in tot])
        tot_agg = np.where(mal_agg > tot_agg, mal_agg, tot_agg)

        out[f"malignant_{tp}"] = mal_agg
        out[f"total_{tp}"] = tot_agg
        out[f"normal_{tp}"] = tot_agg - mal_agg
        out[f"balanced_{tp}"] = [is_balanced(m, t) for m, t in zip(mal, tot)]

    balanced = out[[f"balanced_{tp}" for tp in layout.timepoints]].all(axis=1)
    observed = out[[f"total_{tp}" for tp in layout.timepoints]].notna().all(axis=1)
    out["analyzable"] = balanced & observed
    logger.info(
        f"Aggregated {len(out)} patients by {method}; "
        f"{int(out['analyzable'].sum())} analyzable"
    )
    return out
