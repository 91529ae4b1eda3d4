"""
malignant-shift: Detection of changes in malignant transcript proportion.

This package compares three methods for calling patients whose proportion of
malignant-transcript reads changes between two time points, from paired
malignant/total RNA-seq counts with technical replicates.

Modules
-------
io
    Loading, cleaning and header parsing of count matrices.
preprocess
    Replicate clipping, aggregation and balance flags.
shrinkage
    Empirical Bayes Beta prior, conjugate posteriors and Monte Carlo p-values.
imputation
    Ratio-based imputation of one-sided missing replicates.
methods
    The three detection methods and their evaluation against known changes.
comparison
    Merging of significance calls across methods.
stats
    FDR correction and per-patient tests.
diagnostics
    Missingness, zero fraction and replicate dispersion summaries.
plots
    Boxplot, dendrogram, scatter, density, volcano and Venn figures.
simulate
    Synthetic cohorts for tests and demonstrations.
pipeline
    End-to-end analysis run.

Example
-------
>>> import malignant_shift as ms
>>> raw = ms.load_expression_matrix("data/expression.tsv")
>>> result = ms.run_analysis(raw)
>>> result.calls.sum()
"""

__version__ = "0.1.0"

# comparison
from .comparison import (
    combine_calls,
    overlap_counts,
    untestable_calls,
)

# config
from .config import AnalysisConfig

# diagnostics
from .diagnostics import (
    missing_fraction,
    missingness_summary,
    per_column_dispersion,
    replicate_cv,
    zero_fraction,
)

# imputation
from .imputation import (
    cohort_ratios,
    impute_replicates,
    patient_ratio,
)

# io
from .io import (
    Paths,
    ReplicateLayout,
    clean_expression_matrix,
    load_expression_matrix,
    parse_replicate_columns,
    write_table,
)

# methods
from .methods import (
    ComparisonMetrics,
    MethodResult,
    compute_metrics,
    run_beta_binomial_shrinkage,
    run_contingency_chi2,
    run_methods,
    run_ratio_imputation,
)

# pipeline
from .pipeline import (
    AnalysisResult,
    run_analysis,
    write_analysis,
)

# preprocess
from .preprocess import (
    aggregate_counts,
    aggregate_replicates,
    clip_malignant_to_total,
    geometric_mean,
    is_balanced,
)

# shrinkage
from .shrinkage import (
    BetaPrior,
    PriorEstimationError,
    empirical_significance,
    fit_beta_prior,
    fit_priors,
    posterior_update,
    shrink_proportions,
)

# simulate
from .simulate import (
    replicate_columns,
    simulate_cohort,
)

# stats
from .stats import (
    bh_fdr,
    chi2_2x2,
    empirical_pvalue,
    spawn_seeds,
    welch_log_ratio_test,
)

__all__ = [
    # comparison
    "combine_calls",
    "overlap_counts",
    "untestable_calls",
    # config
    "AnalysisConfig",
    # diagnostics
    "missing_fraction",
    "missingness_summary",
    "per_column_dispersion",
    "replicate_cv",
    "zero_fraction",
    # imputation
    "cohort_ratios",
    "impute_replicates",
    "patient_ratio",
    # io
    "Paths",
    "ReplicateLayout",
    "clean_expression_matrix",
    "load_expression_matrix",
    "parse_replicate_columns",
    "write_table",
    # methods
    "ComparisonMetrics",
    "MethodResult",
    "compute_metrics",
    "run_beta_binomial_shrinkage",
    "run_contingency_chi2",
    "run_methods",
    "run_ratio_imputation",
    # pipeline
    "AnalysisResult",
    "run_analysis",
    "write_analysis",
    # preprocess
    "aggregate_counts",
    "aggregate_replicates",
    "clip_malignant_to_total",
    "geometric_mean",
    "is_balanced",
    # shrinkage
    "BetaPrior",
    "PriorEstimationError",
    "empirical_significance",
    "fit_beta_prior",
    "fit_priors",
    "posterior_update",
    "shrink_proportions",
    # simulate
    "replicate_columns",
    "simulate_cohort",
    # stats
    "bh_fdr",
    "chi2_2x2",
    "empirical_pvalue",
    "spawn_seeds",
    "welch_log_ratio_test",
]
