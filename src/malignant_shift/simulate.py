from __future__ import annotations

from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .constants import DEFAULT_SEED, N_REPLICATES


def replicate_columns(
    timepoints: Sequence[str] = ("T1", "T2"),
    n_replicates: int = N_REPLICATES,
) -> list[str]:
    """Header names in the ``<Kind>_<timepoint>_rep<r>`` convention."""
    return [
        f"{kind}_{tp}_rep{r}"
        for tp in timepoints
        for kind in ("Malignant", "Total")
        for r in range(1, n_replicates + 1)
    ]


def simulate_cohort(
    n_patients: int = 40,
    n_replicates: int = N_REPLICATES,
    baseline_shapes: Tuple[float, float] = (2.0, 18.0),
    fold_changes: Optional[Dict[str, float]] = None,
    depth_mean: float = 1000.0,
    depth_cv: float = 0.3,
    replicate_concentration: float = 2000.0,
    missing_rate: float = 0.0,
    timepoints: Sequence[str] = ("T1", "T2"),
    seed: int = DEFAULT_SEED,
) -> Tuple[pd.DataFrame, pd.Series]:
    """Generate paired malignant/total replicate counts.

    Parameters
    ----------
    n_patients : int
        Number of patients (``P1``..``Pn``).
    n_replicates : int
        Technical replicates per kind and time point.
    baseline_shapes : tuple of float
        Beta shapes of the early malignant proportion across patients.
    fold_changes : dict, optional
        Patient id -> late/early proportion ratio. Patients not listed keep
        their early proportion (fold change 1).
    depth_mean : float
        Mean total count per replicate.
    depth_cv : float
        Log-normal SD of the replicate total counts.
    replicate_concentration : float
        Beta concentration of replicate proportions around the patient's
        proportion; lower values mean noisier replicates.
    missing_rate : float
        Probability of each count being missing, independently.
    timepoints : sequence of str
        Early and late labels used in the headers.
    seed : int
        Random seed.

    Returns
    -------
    counts : pd.DataFrame
        Patients x (2 kinds x 2 time points x ``n_replicates``) matrix.
    truth : pd.Series
        Boolean per patient, True where the fold change differs from 1.
    """
    rng = np.random.default_rng(seed)
    fold_changes = fold_changes or {}
    patients = [f"P{i + 1}" for i in range(n_patients)]

    rows = []
    for pid in patients:
        p_early = rng.beta(*baseline_shapes)
        p_late = float(np.clip(p_early * fold_changes.get(pid, 1.0), 1e-6, 0.99))
        row = []
        for p in (p_early, p_late):
            totals = np.maximum(
                1, np.round(np.exp(np.log(depth_mean) + rng.normal(0, depth_cv, n_replicates)))
            ).astype(int)
            p_rep = rng.beta(
                p * replicate_concentration, (1 - p) * replicate_concentration, n_replicates
            )
            malignant = rng.binomial(totals, p_rep)
            row.extend(malignant.tolist())
            row.extend(totals.tolist())
        rows.append(row)

    counts = pd.DataFrame(
        rows,
        index=pd.Index(patients, name="patient"),
        columns=replicate_columns(timepoints, n_replicates),
        dtype=float,
    )
    if missing_rate > 0:
        counts = counts.mask(rng.random(counts.shape) < missing_rate)

    truth = pd.Series(
        [abs(fold_changes.get(pid, 1.0) - 1.0) > 1e-9 for pid in patients],
        index=counts.index,
        name="changed",
    )
    return counts, truth
