from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from .constants import (
    DEFAULT_SEED,
    FDR_THRESHOLD,
    MIN_PRIOR_PROPORTIONS,
    N_MC_SAMPLES,
    N_REPLICATES,
    PRIOR_START,
)


@dataclass(frozen=True)
class AnalysisConfig:
    """Settings for one analysis run.

    Parameters
    ----------
    n_replicates : int, default 4
        Technical replicates per kind and time point.
    n_samples : int, default 10000
        Monte Carlo draws per posterior for the empirical p-value.
    seed : int, default 42
        Root seed; per-patient draw streams are spawned from it.
    fdr_threshold : float, default 0.05
        Adjusted p-value below which a patient is called significant.
    prior_start : tuple of float, default (1.0, 10.0)
        Starting (shape1, shape2) for the Beta prior likelihood search.
    min_prior_proportions : int, default 3
        Fewest valid proportions accepted for a prior fit.
    pseudocount : float, default 1.0
        Added to malignant and total counts before taking replicate log ratios.
    min_replicates : int, default 2
        Fewest replicate ratios per time point for the Welch t-test.
    """

    n_replicates: int = N_REPLICATES
    n_samples: int = N_MC_SAMPLES
    seed: int = DEFAULT_SEED
    fdr_threshold: float = FDR_THRESHOLD
    prior_start: Tuple[float, float] = PRIOR_START
    min_prior_proportions: int = MIN_PRIOR_PROPORTIONS
    pseudocount: float = 1.0
    min_replicates: int = 2

    def __post_init__(self):
        if self.n_replicates < 1:
            raise ValueError(f"n_replicates must be >= 1, got {self.n_replicates}")
        if self.n_samples < 1:
            raise ValueError(f"n_samples must be >= 1, got {self.n_samples}")
        if not 0.0 < self.fdr_threshold < 1.0:
            raise ValueError(f"fdr_threshold must be in (0, 1), got {self.fdr_threshold}")
        if min(self.prior_start) <= 0:
            raise ValueError(f"prior_start shapes must be positive, got {self.prior_start}")
        if self.pseudocount < 0:
            raise ValueError(f"pseudocount must be >= 0, got {self.pseudocount}")
