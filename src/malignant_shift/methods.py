"""
Detection methods for a change in malignant proportion between time points.

Three independent approaches are run on the same cleaned matrix:

1. Beta-binomial shrinkage: summed counts of balanced patients, Beta prior
   per time point, conjugate posterior, Monte Carlo empirical p-value.
2. Ratio imputation: one-sided missing replicates imputed from the patient's
   malignant/total ratio, geometric-mean aggregation, Welch t-test on the
   replicate log ratios.
3. Contingency chi-squared: 2x2 malignant/normal by time point table of the
   summed counts.

Each method BH-corrects over the patients it could test and reports
boolean-or-missing significance calls.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .config import AnalysisConfig
from .constants import MALIGNANT, METHOD_CHI2, METHOD_RATIO, METHOD_SHRINKAGE, METHODS, TOTAL
from .imputation import impute_replicates
from .io import ReplicateLayout
from .preprocess import aggregate_counts
from .shrinkage import BetaPrior, empirical_significance, shrink_proportions
from .stats import bh_fdr, chi2_2x2, log2_ratio, significance_calls, welch_log_ratio_test

logger = logging.getLogger(__name__)


@dataclass
class MethodResult:
    """Results from one detection method."""
    method_name: str
    table: pd.DataFrame  # per patient: effect, pvalue, padj, significant, ...
    runtime_seconds: float = 0.0
    priors: Dict[str, BetaPrior] = field(default_factory=dict)

    @property
    def pvalues(self) -> pd.Series:
        return self.table["pvalue"]

    @property
    def effects(self) -> pd.Series:
        return self.table["log2RR"]

    @property
    def significant(self) -> pd.Series:
        return self.table["significant"]

    @property
    def n_tested(self) -> int:
        return int(self.table["pvalue"].notna().sum())


@dataclass
class ComparisonMetrics:
    """Metrics for comparing a method's calls with known changes."""
    method: str
    n_true_positives: int
    n_false_positives: int
    n_true_negatives: int
    n_false_negatives: int
    n_untested: int
    tpr: float  # True positive rate (power)
    fpr: float  # False positive rate
    precision: float
    runtime: float


def run_beta_binomial_shrinkage(
    df: pd.DataFrame,
    layout: ReplicateLayout,
    config: Optional[AnalysisConfig] = None,
) -> MethodResult:
    """Empirical Bayes beta-binomial shrinkage with Monte Carlo p-values.

    Raises
    ------
    PriorEstimationError
        If either time point's prior cannot be fitted. The whole method is
        aborted; no default prior is substituted.
    """
    config = config or AnalysisConfig()
    start_time = time.time()

    counts = aggregate_counts(df, layout, method="sum")
    records, priors = shrink_proportions(
        counts,
        layout,
        start=config.prior_start,
        min_proportions=config.min_prior_proportions,
    )
    records = empirical_significance(
        records,
        layout,
        n_samples=config.n_samples,
        seed=config.seed,
        fdr_threshold=config.fdr_threshold,
    )

    return MethodResult(
        method_name=METHOD_SHRINKAGE,
        table=records,
        runtime_seconds=time.time() - start_time,
        priors=priors,
    )


def run_ratio_imputation(
    df: pd.DataFrame,
    layout: ReplicateLayout,
    config: Optional[AnalysisConfig] = None,
) -> MethodResult:
    """Ratio imputation, geometric-mean aggregation and Welch t-test.

    The effect is the log2 change of the geometric-mean malignant/total
    ratio. The test compares per-replicate log2((m + pc) / (t + pc)) between
    time points; patients with fewer than ``config.min_replicates`` usable
    replicates at a time point are untestable.
    """
    config = config or AnalysisConfig()
    start_time = time.time()
    pc = config.pseudocount

    imputed, was_imputed = impute_replicates(df, layout)
    table = aggregate_counts(imputed, layout, method="geomean")

    log_ratios = {}
    for tp in layout.timepoints:
        mal = imputed[layout.cols(MALIGNANT, tp)].to_numpy(dtype=float)
        tot = imputed[layout.cols(TOTAL, tp)].to_numpy(dtype=float)
        log_ratios[tp] = log2_ratio(mal + pc, tot + pc)
        table[f"ratio_{tp}"] = table[f"malignant_{tp}"] / table[f"total_{tp}"].replace(0, np.nan)
        table[f"n_imputed_{tp}"] = was_imputed[
            layout.cols(MALIGNANT, tp) + layout.cols(TOTAL, tp)
        ].sum(axis=1)

    table["log2RR"] = log2_ratio(
        (table[f"malignant_{layout.late}"] + pc) / (table[f"total_{layout.late}"] + pc),
        (table[f"malignant_{layout.early}"] + pc) / (table[f"total_{layout.early}"] + pc),
    )

    tstats = np.full(len(table), np.nan)
    pvals = np.full(len(table), np.nan)
    for i in range(len(table)):
        tstats[i], pvals[i] = welch_log_ratio_test(
            log_ratios[layout.early][i],
            log_ratios[layout.late][i],
            min_replicates=config.min_replicates,
        )

    table["t_stat"] = tstats
    table["pvalue"] = pvals
    table["padj"] = bh_fdr(pvals)
    table["significant"] = significance_calls(table["padj"], config.fdr_threshold, index=table.index)
    _log_calls(METHOD_RATIO, table, config.fdr_threshold)

    return MethodResult(
        method_name=METHOD_RATIO,
        table=table,
        runtime_seconds=time.time() - start_time,
    )


def run_contingency_chi2(
    df: pd.DataFrame,
    layout: ReplicateLayout,
    config: Optional[AnalysisConfig] = None,
) -> MethodResult:
    """Chi-squared test of the summed 2x2 malignant/normal by time point table.

    Patients with any missing cell are skipped (NaN p-value), not failed.
    The effect is the log2 relative risk of the raw proportions.
    """
    config = config or AnalysisConfig()
    start_time = time.time()
    early, late = layout.early, layout.late

    table = aggregate_counts(df, layout, method="sum")
    pvals = np.array(
        [
            chi2_2x2(
                r[f"malignant_{early}"], r[f"normal_{early}"],
                r[f"malignant_{late}"], r[f"normal_{late}"],
            )
            for _, r in table.iterrows()
        ],
        dtype=float,
    )

    table["log2RR"] = log2_ratio(
        table[f"malignant_{late}"] / table[f"total_{late}"],
        table[f"malignant_{early}"] / table[f"total_{early}"],
    )
    table["pvalue"] = pvals
    table["padj"] = bh_fdr(pvals)
    table["significant"] = significance_calls(table["padj"], config.fdr_threshold, index=table.index)
    _log_calls(METHOD_CHI2, table, config.fdr_threshold)

    return MethodResult(
        method_name=METHOD_CHI2,
        table=table,
        runtime_seconds=time.time() - start_time,
    )


def run_methods(
    df: pd.DataFrame,
    layout: ReplicateLayout,
    config: Optional[AnalysisConfig] = None,
    methods: Optional[List[str]] = None,
) -> Dict[str, MethodResult]:
    """Run the selected detection methods (all by default).

    Parameters
    ----------
    df : pd.DataFrame
        Cleaned and clipped count matrix.
    layout : ReplicateLayout
        Column layout of ``df``.
    config : AnalysisConfig, optional
        Run settings; defaults are used if None.
    methods : list of str, optional
        Subset of :data:`~malignant_shift.constants.METHODS`.

    Returns
    -------
    dict
        Method name -> :class:`MethodResult`, in the order of ``methods``.

    Notes
    -----
    A :class:`~malignant_shift.shrinkage.PriorEstimationError` from the
    shrinkage method propagates to the caller.
    """
    config = config or AnalysisConfig()
    if methods is None:
        methods = list(METHODS)

    unknown = [m for m in methods if m not in METHODS]
    if unknown:
        raise ValueError(f"Unknown methods {unknown}. Use any of {list(METHODS)}.")

    runners = {
        METHOD_SHRINKAGE: run_beta_binomial_shrinkage,
        METHOD_RATIO: run_ratio_imputation,
        METHOD_CHI2: run_contingency_chi2,
    }
    results = {}
    for name in methods:
        logger.info(f"Running {name}")
        results[name] = runners[name](df, layout, config)
    return results


def compute_metrics(
    method_result: MethodResult,
    truth: pd.Series,
) -> ComparisonMetrics:
    """Compare a method's calls with known per-patient changes.

    Parameters
    ----------
    method_result : MethodResult
        Results from one method.
    truth : pd.Series
        Boolean per patient, True where the proportion truly changed.

    Returns
    -------
    ComparisonMetrics
        Untested patients are counted separately, not as negatives.
    """
    tp, fp, tn, fn, untested = 0, 0, 0, 0, 0

    for patient, changed in truth.items():
        if patient not in method_result.significant.index:
            untested += 1
            continue
        sig = method_result.significant.loc[patient]
        if pd.isna(sig):
            untested += 1
            continue

        if changed:
            if sig:
                tp += 1
            else:
                fn += 1
        else:
            if sig:
                fp += 1
            else:
                tn += 1

    return ComparisonMetrics(
        method=method_result.method_name,
        n_true_positives=tp,
        n_false_positives=fp,
        n_true_negatives=tn,
        n_false_negatives=fn,
        n_untested=untested,
        tpr=tp / max(tp + fn, 1),
        fpr=fp / max(fp + tn, 1),
        precision=tp / max(tp + fp, 1),
        runtime=method_result.runtime_seconds,
    )


def _log_calls(method_name: str, table: pd.DataFrame, fdr_threshold: float) -> None:
    n_tested = int(table["pvalue"].notna().sum())
    n_sig = int(table["significant"].sum())
    logger.info(
        f"{method_name}: {n_tested}/{len(table)} patients tested, "
        f"{n_sig} significant at FDR < {fdr_threshold}"
    )
