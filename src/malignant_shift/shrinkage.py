"""
Empirical Bayes beta-binomial shrinkage of malignant proportions.

A Beta prior is fitted per time point to the raw malignant/total proportions
of all analyzable patients; each patient's counts then update that prior
conjugately. Patients with deep coverage keep their own proportion while
shallow ones are pulled towards the cohort mean.

Functions
---------
fit_beta_prior
    Maximum-likelihood Beta fit to a sample of proportions.
posterior_update
    Conjugate beta-binomial update of one patient's counts.
shrink_proportions
    Add raw proportions, posterior shapes and posterior means to a count table.
empirical_significance
    Monte Carlo p-values and BH correction over analyzable patients.

Classes
-------
BetaPrior
    Fitted prior shape parameters.
PriorEstimationError
    Raised when a prior cannot be estimated.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np
import pandas as pd
from scipy.optimize import minimize
from scipy.special import betaln

from .constants import DEFAULT_SEED, MIN_PRIOR_PROPORTIONS, N_MC_SAMPLES, PRIOR_START
from .io import ReplicateLayout
from .stats import bh_fdr, empirical_pvalue, log2_ratio, significance_calls, spawn_seeds

logger = logging.getLogger(__name__)


class PriorEstimationError(ValueError):
    """Raised when there is insufficient data for prior estimation."""


@dataclass(frozen=True)
class BetaPrior:
    """Beta prior on the malignant proportion of one time point."""

    #: First shape parameter (pseudo-count of malignant reads).
    shape1: float
    #: Second shape parameter (pseudo-count of normal reads).
    shape2: float
    #: Number of proportions the prior was fitted on.
    n_obs: int = 0

    @property
    def mean(self) -> float:
        return self.shape1 / (self.shape1 + self.shape2)

    @property
    def concentration(self) -> float:
        return self.shape1 + self.shape2


def fit_beta_prior(
    proportions,
    start: Tuple[float, float] = PRIOR_START,
    min_proportions: int = MIN_PRIOR_PROPORTIONS,
) -> BetaPrior:
    """Maximum-likelihood Beta fit to a sample of proportions.

    Missing values and proportions of exactly 0 or 1 are dropped, since the
    Beta log-density is unbounded there. A sample without spread has no
    finite maximum and is rejected. The negative log-likelihood is
    minimised over log-shapes with Nelder-Mead starting from ``start``.

    Parameters
    ----------
    proportions : array-like
        Raw malignant/total proportions, one per patient.
    start : tuple of float, default (1.0, 10.0)
        Starting (shape1, shape2).
    min_proportions : int, default 3
        Fewest usable proportions accepted.

    Returns
    -------
    BetaPrior

    Raises
    ------
    PriorEstimationError
        If fewer than ``min_proportions`` usable proportions remain, they are all
        identical, or the optimizer does not converge.

    Examples
    --------
    >>> rng = np.random.default_rng(0)
    >>> prior = fit_beta_prior(rng.beta(2.0, 8.0, size=2000))
    >>> round(prior.mean, 1)
    0.2
    """
    x = np.asarray(proportions, dtype=float)
    x = x[np.isfinite(x) & (x > 0) & (x < 1)]
    n = x.size
    if n < min_proportions:
        raise PriorEstimationError(
            f"Insufficient data for prior estimation: {n} usable proportions "
            f"(need >= {min_proportions})"
        )
    if np.ptp(x) == 0:
        raise PriorEstimationError(
            "Insufficient data for prior estimation: all proportions are identical"
        )

    sum_log_x = float(np.sum(np.log(x)))
    sum_log_1mx = float(np.sum(np.log1p(-x)))

    def neg_log_likelihood(log_shapes: np.ndarray) -> float:
        a, b = np.exp(log_shapes)
        return -((a - 1.0) * sum_log_x + (b - 1.0) * sum_log_1mx - n * betaln(a, b))

    x0 = np.log(np.asarray(start, dtype=float))
    res = minimize(
        neg_log_likelihood,
        x0,
        method="Nelder-Mead",
        options={"maxiter": 10_000, "xatol": 1e-6, "fatol": 1e-9},
    )
    if not res.success or not np.all(np.isfinite(res.x)):
        raise PriorEstimationError(
            f"Insufficient data for prior estimation: Beta fit did not converge ({res.message})"
        )

    a, b = np.exp(res.x)
    return BetaPrior(shape1=float(a), shape2=float(b), n_obs=int(n))


def posterior_update(
    malignant: float,
    normal: float,
    prior: BetaPrior,
) -> Tuple[float, float, float]:
    """Conjugate beta-binomial update.

    Returns
    -------
    tuple of float
        ``(shape1, shape2, mean)`` of the posterior
        Beta(malignant + a, normal + b).

    Examples
    --------
    >>> posterior_update(0, 0, BetaPrior(2.0, 8.0))
    (2.0, 8.0, 0.2)
    """
    shape1 = malignant + prior.shape1
    shape2 = normal + prior.shape2
    return shape1, shape2, shape1 / (shape1 + shape2)


def fit_priors(
    records: pd.DataFrame,
    layout: ReplicateLayout,
    start: Tuple[float, float] = PRIOR_START,
    min_proportions: int = MIN_PRIOR_PROPORTIONS,
) -> Dict[str, BetaPrior]:
    """Fit one Beta prior per time point on analyzable patients.

    ``records`` must already hold ``prior_prop_<tp>`` and ``analyzable``.
    """
    priors = {}
    mask = records["analyzable"].to_numpy(dtype=bool)
    for tp in layout.timepoints:
        props = records.loc[mask, f"prior_prop_{tp}"]
        try:
            priors[tp] = fit_beta_prior(props, start=start, min_proportions=min_proportions)
        except PriorEstimationError as e:
            raise PriorEstimationError(f"Time point {tp}: {e}") from e
        p = priors[tp]
        logger.info(
            f"Beta prior {tp}: shape1={p.shape1:.4g}, shape2={p.shape2:.4g} "
            f"(mean {p.mean:.4f}, n={p.n_obs})"
        )
    return priors


def shrink_proportions(
    counts: pd.DataFrame,
    layout: ReplicateLayout,
    start: Tuple[float, float] = PRIOR_START,
    min_proportions: int = MIN_PRIOR_PROPORTIONS,
) -> Tuple[pd.DataFrame, Dict[str, BetaPrior]]:
    """Add raw proportions, posterior shapes and posterior means.

    Parameters
    ----------
    counts : pd.DataFrame
        Summed counts from :func:`~malignant_shift.preprocess.aggregate_counts`.
    layout : ReplicateLayout
        Column layout, for the time point labels.
    start, min_proportions
        Passed to :func:`fit_beta_prior`.

    Returns
    -------
    records : pd.DataFrame
        ``counts`` plus ``prior_prop_<tp>``, ``shape1_<tp>``, ``shape2_<tp>``,
        ``posterior_<tp>`` and ``log2RR`` (late over early posterior mean).
        Non-analyzable patients carry NaN posteriors.
    priors : dict
        Time point label -> :class:`BetaPrior`.
    """
    records = counts.copy()
    for tp in layout.timepoints:
        records[f"prior_prop_{tp}"] = (
            records[f"malignant_{tp}"] / records[f"total_{tp}"].replace(0, np.nan)
        )

    priors = fit_priors(records, layout, start=start, min_proportions=min_proportions)

    mask = records["analyzable"].to_numpy(dtype=bool)
    for tp in layout.timepoints:
        m = records[f"malignant_{tp}"].to_numpy(dtype=float)
        n = records[f"normal_{tp}"].to_numpy(dtype=float)
        shape1, shape2, post = posterior_update(m, n, priors[tp])
        records[f"shape1_{tp}"] = np.where(mask, shape1, np.nan)
        records[f"shape2_{tp}"] = np.where(mask, shape2, np.nan)
        records[f"posterior_{tp}"] = np.where(mask, post, np.nan)

    records["log2RR"] = log2_ratio(
        records[f"posterior_{layout.late}"], records[f"posterior_{layout.early}"]
    )
    return records, priors


def empirical_significance(
    records: pd.DataFrame,
    layout: ReplicateLayout,
    n_samples: int = N_MC_SAMPLES,
    seed: int = DEFAULT_SEED,
    fdr_threshold: float = 0.05,
) -> pd.DataFrame:
    """Monte Carlo p-values for analyzable patients, then BH correction.

    Each patient draws from its own stream spawned from ``seed`` by row
    position. Adds ``pvalue``, ``padj`` and ``significant`` (boolean, NA for
    non-analyzable patients).
    """
    out = records.copy()
    seeds = spawn_seeds(seed, len(out))
    early, late = layout.early, layout.late

    pvals = np.full(len(out), np.nan)
    for i, (_, row) in enumerate(out.iterrows()):
        if not row["analyzable"] or not np.isfinite(row["log2RR"]):
            continue
        pvals[i] = empirical_pvalue(
            (row[f"shape1_{early}"], row[f"shape2_{early}"]),
            (row[f"shape1_{late}"], row[f"shape2_{late}"]),
            row["log2RR"],
            n_samples=n_samples,
            seed=seeds[i],
        )

    out["pvalue"] = pvals
    out["padj"] = bh_fdr(pvals)
    out["significant"] = significance_calls(out["padj"], fdr_threshold, index=out.index)
    logger.info(
        f"Empirical test: {int(np.isfinite(pvals).sum())} patients tested, "
        f"{int(out['significant'].sum())} significant at FDR < {fdr_threshold}"
    )
    return out
