"""
Statistical utilities for hypothesis testing and multiple comparison correction.

This module provides the per-patient tests used by the detection methods and
the FDR correction applied over each method's testable patients.

Functions
---------
bh_fdr
    Benjamini-Hochberg FDR adjustment that leaves NaN p-values missing.
empirical_pvalue
    Monte Carlo one-sided p-value comparing two Beta posteriors.
spawn_seeds
    Independent per-patient seed sequences from one root seed.
chi2_2x2
    Chi-squared test of a 2x2 malignant/normal by time point table.
welch_log_ratio_test
    Welch t-test between early and late replicate log ratios.
"""
from __future__ import annotations

import warnings
from typing import List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests

from .constants import DEFAULT_SEED, N_MC_SAMPLES

SeedLike = Union[int, np.random.SeedSequence, np.random.Generator, None]


def bh_fdr(pvals) -> np.ndarray:
    """Benjamini-Hochberg FDR adjustment.

    Only finite p-values take part in the correction; NaN entries stay NaN,
    so untestable patients neither count towards nor receive an adjusted value.

    Parameters
    ----------
    pvals : array-like
        Raw p-values.

    Returns
    -------
    qvals : np.ndarray
        BH-adjusted p-values, same shape as pvals.

    Examples
    --------
    >>> bh_fdr(np.array([0.001, np.nan, 0.01, 0.05, 0.1]))
    array([0.004     ,        nan, 0.02      , 0.06666667, 0.1       ])
    """
    pvals = np.asarray(pvals, dtype=float)
    qvals = np.full(pvals.shape, np.nan, dtype=float)

    ok = np.isfinite(pvals)
    if ok.sum() == 0:
        return qvals

    _, q, _, _ = multipletests(pvals[ok], method="fdr_bh")
    qvals[ok] = q
    return qvals


def empirical_pvalue(
    early: Tuple[float, float],
    late: Tuple[float, float],
    log2rr: float,
    n_samples: int = N_MC_SAMPLES,
    seed: SeedLike = DEFAULT_SEED,
) -> float:
    """Monte Carlo estimate of P(observed direction of change is wrong).

    Draws ``n_samples`` values from Beta(*early) and from Beta(*late). For an
    observed increase (``log2rr > 0``) the p-value is the fraction of draws
    where late does not exceed early; otherwise it is the fraction where early
    does not exceed late.

    Parameters
    ----------
    early, late : tuple of float
        Posterior (shape1, shape2) at the early and late time point.
    log2rr : float
        Observed log2 relative risk late/early; only its sign is used.
    n_samples : int, default 10000
        Draws per posterior.
    seed : int, SeedSequence, Generator or None, default 42
        Source of randomness. A fixed int or SeedSequence makes the result
        bit-reproducible for fixed inputs.

    Returns
    -------
    float
        p-value in [0, 1].

    Notes
    -----
    Both posteriors are sampled from the same generator, early first.
    """
    rng = np.random.default_rng(seed)
    early_sim = rng.beta(early[0], early[1], size=n_samples)
    late_sim = rng.beta(late[0], late[1], size=n_samples)

    if log2rr > 0:
        return float(1.0 - np.mean(late_sim > early_sim))
    return float(1.0 - np.mean(early_sim > late_sim))


def spawn_seeds(seed: int, n: int) -> List[np.random.SeedSequence]:
    """Independent seed sequences, one per patient position.

    Keying streams on the patient's row position keeps each patient's draws
    unchanged by the eligibility of other patients or by evaluation order.
    """
    return np.random.SeedSequence(seed).spawn(n)


def chi2_2x2(
    malignant_early: float,
    normal_early: float,
    malignant_late: float,
    normal_late: float,
    correction: bool = True,
) -> float:
    """Chi-squared p-value for a 2x2 malignant/normal by time point table.

    Returns NaN (test skipped) when any cell is missing or when a row or
    column sums to zero, since expected frequencies are then undefined.

    Examples
    --------
    >>> round(chi2_2x2(100, 900, 500, 500), 6)
    0.0
    >>> chi2_2x2(100, np.nan, 500, 500)
    nan
    """
    table = np.array(
        [[malignant_early, normal_early], [malignant_late, normal_late]], dtype=float
    )
    if np.isnan(table).any():
        return np.nan
    if (table.sum(axis=0) == 0).any() or (table.sum(axis=1) == 0).any():
        return np.nan
    _, pval, _, _ = stats.chi2_contingency(table, correction=correction)
    return float(pval)


def welch_log_ratio_test(
    early: np.ndarray,
    late: np.ndarray,
    min_replicates: int = 2,
) -> Tuple[float, float]:
    """Welch t-test between early and late replicate log ratios.

    Parameters
    ----------
    early, late : np.ndarray
        Per-replicate log2 malignant/total ratios; NaN entries are dropped.
    min_replicates : int, default 2
        Fewest finite values required in each group.

    Returns
    -------
    tuple of float
        ``(t_statistic, pvalue)``; both NaN when a group is too small or both
        groups have zero variance.
    """
    early = np.asarray(early, dtype=float)
    late = np.asarray(late, dtype=float)
    early = early[np.isfinite(early)]
    late = late[np.isfinite(late)]

    if early.size < min_replicates or late.size < min_replicates:
        return np.nan, np.nan

    if np.var(early) == 0 and np.var(late) == 0:
        warnings.warn("Zero replicate variance at both time points; t-test skipped.")
        return np.nan, np.nan

    t_stat, pval = stats.ttest_ind(late, early, equal_var=False)
    return float(t_stat), float(pval)


def significance_calls(
    padj,
    threshold: float,
    index: Optional[pd.Index] = None,
) -> pd.Series:
    """Boolean-or-missing calls: True where padj < threshold, NA where padj is NaN."""
    padj = np.asarray(padj, dtype=float)
    calls = pd.Series(pd.array(padj < threshold, dtype="boolean"), index=index)
    calls[np.isnan(padj)] = pd.NA
    return calls


def log2_ratio(numerator, denominator) -> np.ndarray:
    """Elementwise log2(numerator / denominator); NaN where undefined."""
    num = np.asarray(numerator, dtype=float)
    den = np.asarray(denominator, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.log2(num / den)
    return np.where(np.isfinite(out), out, np.nan)


def neglog10(p) -> np.ndarray:
    p = np.asarray(p, dtype=float)
    return -np.log10(np.clip(p, 1e-300, None))

