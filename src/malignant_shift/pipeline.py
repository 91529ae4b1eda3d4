"""
End-to-end analysis run: clean, detect with every method, compare.

Functions
---------
run_analysis
    Run the full analysis on a raw count matrix.
write_analysis
    Write the tables of an :class:`AnalysisResult` to a directory.

Classes
-------
AnalysisResult
    Artifacts of one run.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .comparison import combine_calls, untestable_calls
from .config import AnalysisConfig
from .constants import METHOD_SHRINKAGE
from .io import ReplicateLayout, clean_expression_matrix, parse_replicate_columns, write_table
from .methods import MethodResult, run_methods
from .preprocess import clip_malignant_to_total
from .shrinkage import BetaPrior

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Artifacts of one analysis run."""

    #: Column layout parsed from the header.
    layout: ReplicateLayout
    #: Cleaned and clipped replicate matrix every method started from.
    counts: pd.DataFrame
    #: Method name -> per-patient results.
    methods: Dict[str, MethodResult]
    #: Boolean calls, one column per method, missing coerced to False.
    calls: pd.DataFrame
    #: True where a method could not test a patient.
    untestable: pd.DataFrame

    @property
    def records(self) -> pd.DataFrame:
        """Patient records of the beta-binomial shrinkage method."""
        return self.methods[METHOD_SHRINKAGE].table

    @property
    def priors(self) -> Dict[str, BetaPrior]:
        return self.methods[METHOD_SHRINKAGE].priors


def run_analysis(
    raw: pd.DataFrame,
    config: Optional[AnalysisConfig] = None,
    methods: Optional[List[str]] = None,
) -> AnalysisResult:
    """Run the full analysis on a raw count matrix.

    Stages run strictly in order: cleaning, layout parsing, clipping,
    detection methods, comparison.

    Parameters
    ----------
    raw : pd.DataFrame
        Matrix as returned by :func:`~malignant_shift.io.load_expression_matrix`.
    config : AnalysisConfig, optional
        Run settings; defaults are used if None.
    methods : list of str, optional
        Methods to run; all by default.

    Returns
    -------
    AnalysisResult

    Raises
    ------
    PriorEstimationError
        If the shrinkage method is run and a Beta prior cannot be fitted.
    ValueError
        If the header does not describe the expected replicate layout.
    """
    config = config or AnalysisConfig()

    layout = parse_replicate_columns(list(raw.columns), n_replicates=config.n_replicates)
    counts = clean_expression_matrix(raw[layout.all_columns()])
    counts = clip_malignant_to_total(counts, layout)

    results = run_methods(counts, layout, config, methods=methods)

    sig = {name: res.significant for name, res in results.items()}
    calls = combine_calls(sig)
    untestable = untestable_calls(sig)

    logger.info(
        "Significant patients per method: "
        + ", ".join(f"{name}={int(calls[name].sum())}" for name in calls.columns)
    )
    return AnalysisResult(
        layout=layout,
        counts=counts,
        methods=results,
        calls=calls,
        untestable=untestable,
    )


def write_analysis(result: AnalysisResult, outdir: str | Path) -> List[Path]:
    """Write per-method tables, the combined calls and the untestable mask.

    Returns
    -------
    list of Path
        Written files.
    """
    outdir = Path(outdir)
    written = []
    if METHOD_SHRINKAGE in result.methods:
        written.append(write_table(result.records, outdir / "patient_records.tsv"))
    for name, res in result.methods.items():
        written.append(write_table(res.table, outdir / f"{_slug(name)}_results.tsv"))
    written.append(write_table(result.calls, outdir / "significance_calls.tsv"))
    written.append(write_table(result.untestable, outdir / "untestable_calls.tsv"))
    logger.info(f"Wrote {len(written)} tables to {outdir}")
    return written


def _slug(name: str) -> str:
    return re.sub(r"[^0-9a-zA-Z]+", "_", name).strip("_").lower()
