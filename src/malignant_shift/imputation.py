"""
Ratio-based imputation of one-sided missing replicates.

Where a replicate has a malignant count but no total (or the reverse), the
missing side is reconstructed from the present one using the patient's own
malignant/total ratio at that time point. Patients without a single complete
replicate pair fall back to the cohort median ratio. Replicates missing on
both sides stay missing.

Functions
---------
patient_ratio
    Geometric-mean malignant/total ratio over complete replicate pairs.
cohort_ratios
    Median patient ratio per time point.
impute_replicates
    Fill one-sided missing replicate counts.
"""
from __future__ import annotations

import logging
from typing import Dict, Tuple

import numpy as np
import pandas as pd

from .constants import MALIGNANT, TOTAL
from .io import ReplicateLayout
from .preprocess import geometric_mean

logger = logging.getLogger(__name__)


def patient_ratio(malignant, total) -> float:
    """Geometric-mean malignant/total ratio over complete replicate pairs.

    Pairs with a missing side or a zero total are ignored. Returns NaN when
    no pair is usable.

    Examples
    --------
    >>> round(patient_ratio([10, 40, np.nan, 5], [100, 100, 50, np.nan]), 6)
    0.2
    """
    mal = np.asarray(malignant, dtype=float)
    tot = np.asarray(total, dtype=float)
    ok = ~np.isnan(mal) & ~np.isnan(tot) & (tot > 0)
    if not ok.any():
        return np.nan
    return geometric_mean(mal[ok] / tot[ok])


def cohort_ratios(df: pd.DataFrame, layout: ReplicateLayout) -> Dict[str, float]:
    """Median of the finite patient ratios, per time point."""
    out = {}
    for tp in layout.timepoints:
        mal = df[layout.cols(MALIGNANT, tp)].to_numpy(dtype=float)
        tot = df[layout.cols(TOTAL, tp)].to_numpy(dtype=float)
        ratios = np.array([patient_ratio(m, t) for m, t in zip(mal, tot)])
        ratios = ratios[np.isfinite(ratios)]
        out[tp] = float(np.median(ratios)) if ratios.size else np.nan
    return out


def impute_replicates(
    df: pd.DataFrame,
    layout: ReplicateLayout,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Fill one-sided missing replicate counts from the partner count.

    Parameters
    ----------
    df : pd.DataFrame
        Cleaned and clipped count matrix.
    layout : ReplicateLayout
        Column layout of ``df``.

    Returns
    -------
    imputed : pd.DataFrame
        Copy of ``df`` with imputed values filled in.
    was_imputed : pd.DataFrame
        Boolean frame of the same shape marking filled cells.

    Notes
    -----
    For a ratio ``r`` (patient ratio, or the cohort median when the patient
    has none):

    - malignant missing, total present: ``malignant = total * r``
    - total missing, malignant present: ``total = malignant / r``
      (left missing when ``r == 0``)
    """
    imputed = df.astype(float).copy()
    was_imputed = pd.DataFrame(False, index=df.index, columns=df.columns)
    fallback = cohort_ratios(df, layout)
    n_fallback = 0

    for tp in layout.timepoints:
        mal_cols = layout.cols(MALIGNANT, tp)
        tot_cols = layout.cols(TOTAL, tp)
        mal = imputed[mal_cols].to_numpy(dtype=float, copy=True)
        tot = imputed[tot_cols].to_numpy(dtype=float, copy=True)
        mal_imp = np.zeros(mal.shape, dtype=bool)
        tot_imp = np.zeros(tot.shape, dtype=bool)

        for i in range(mal.shape[0]):
            only_tot = np.isnan(mal[i]) & ~np.isnan(tot[i])
            only_mal = ~np.isnan(mal[i]) & np.isnan(tot[i])
            if not (only_tot.any() or only_mal.any()):
                continue

            r = patient_ratio(mal[i], tot[i])
            if not np.isfinite(r):
                r = fallback[tp]
                n_fallback += 1
            if not np.isfinite(r):
                continue

            mal[i, only_tot] = tot[i, only_tot] * r
            if r > 0:
                tot[i, only_mal] = mal[i, only_mal] / r
            else:
                only_mal[:] = False

            mal_imp[i] = only_tot
            tot_imp[i] = only_mal

        imputed[mal_cols] = mal
        imputed[tot_cols] = tot
        was_imputed[mal_cols] = mal_imp
        was_imputed[tot_cols] = tot_imp

    n_imputed = int(was_imputed.to_numpy().sum())
    if n_imputed:
        logger.info(
            f"Imputed {n_imputed} replicate counts "
            f"({n_fallback} patient/time points used the cohort median ratio)"
        )
    return imputed, was_imputed
