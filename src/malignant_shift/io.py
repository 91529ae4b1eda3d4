"""
Loading, cleaning and writing of paired malignant/total count matrices.

Functions
---------
load_expression_matrix
    Read a tab-separated count matrix from a path or URL.
clean_expression_matrix
    Replace negative and infinite values with missing markers.
parse_replicate_columns
    Recognise the (kind, time point, replicate) structure of the header.
write_table
    Write a result table as TSV.

Classes
-------
Paths
    Input/output locations of one report.
ReplicateLayout
    Column names for every (kind, time point) condition.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .constants import KIND_ALIASES, KINDS, N_REPLICATES, N_TIMEPOINTS, REPLICATE_PATTERN

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Paths:
    data_path: str | Path
    results_path: Path


@dataclass(frozen=True)
class ReplicateLayout:
    """Column names of each (kind, time point) condition.

    ``columns`` maps ``(kind, timepoint)`` to the replicate columns of that
    condition ordered by replicate number. ``timepoints`` holds the early and
    late labels in header order.
    """

    timepoints: Tuple[str, str]
    columns: Dict[Tuple[str, str], Tuple[str, ...]]

    @property
    def early(self) -> str:
        return self.timepoints[0]

    @property
    def late(self) -> str:
        return self.timepoints[1]

    @property
    def n_replicates(self) -> int:
        return len(next(iter(self.columns.values())))

    def cols(self, kind: str, timepoint: str) -> List[str]:
        return list(self.columns[(kind, timepoint)])

    def all_columns(self) -> List[str]:
        out = []
        for tp in self.timepoints:
            for kind in KINDS:
                out.extend(self.columns[(kind, tp)])
        return out


def load_expression_matrix(
    source: str | Path,
    sep: str = "\t",
) -> pd.DataFrame:
    """Read a count matrix from a local path or URL.

    The first column holds patient identifiers, unless the header row is one
    field shorter than the data rows, in which case pandas already uses the
    first field of each row as index. A first column whose header does not
    name a replicate is taken as the identifier even when the ids are
    numeric. Non-numeric entries become NaN.

    Parameters
    ----------
    source : str or Path
        Local file path or URL of the tab-separated matrix.
    sep : str, default "\\t"
        Field delimiter.

    Returns
    -------
    pd.DataFrame
        Float matrix with patients as index (named ``patient``) and the
        measurement columns.
    """
    df = pd.read_csv(source, sep=sep)
    df = _norm_cols(df)

    first = df.columns[0]
    is_id = _parse_header(str(first)) is None or not pd.api.types.is_numeric_dtype(df[first])
    if isinstance(df.index, pd.RangeIndex) and is_id:
        df = df.set_index(first)
    df.index = df.index.astype(str)
    df.index.name = "patient"

    numeric = df.apply(pd.to_numeric, errors="coerce")
    n_coerced = int((numeric.isna() & df.notna()).to_numpy().sum())
    if n_coerced:
        logger.warning(f"{n_coerced} non-numeric entries in {source} read as missing")

    logger.info(f"Loaded {numeric.shape[0]} patients x {numeric.shape[1]} columns from {source}")
    return numeric.astype(float)


def clean_expression_matrix(df: pd.DataFrame) -> pd.DataFrame:
    """Replace negative and infinite entries with NaN.

    Invalid raw values are a data-cleaning matter and never raise.

    Examples
    --------
    >>> df = pd.DataFrame({"a": [1.0, -2.0], "b": [np.inf, 3.0]})
    >>> clean_expression_matrix(df)
         a    b
    0  1.0  NaN
    1  NaN  3.0
    """
    out = df.astype(float).copy()
    invalid = ~np.isfinite(out.to_numpy()) | (out.to_numpy() < 0)
    invalid &= out.notna().to_numpy()
    n_invalid = int(invalid.sum())
    if n_invalid:
        logger.info(f"Replacing {n_invalid} negative or infinite values with NaN")
    return out.mask(invalid)


def parse_replicate_columns(
    columns: List[str],
    n_replicates: int = N_REPLICATES,
) -> ReplicateLayout:
    """Best-effort parser for replicate column headers.

    Each header is split on whitespace, ``_``, ``-`` and ``.``. Expected to
    find:
      kind: malignant/mal/tumor or total/tot
      replicate: rep1 / r1 / R1, or a trailing bare number
      time point: whatever tokens remain (e.g. T1, day7, pre)

    Time points are ordered by first appearance: the first is early, the
    second late.

    Raises
    ------
    ValueError
        If a header cannot be parsed, or the header does not hold exactly
        2 kinds x 2 time points x ``n_replicates`` replicates.

    Examples
    --------
    >>> cols = [f"{k}_{t}_rep{r}" for t in ("T1", "T2")
    ...         for k in ("Malignant", "Total") for r in range(1, 5)]
    >>> layout = parse_replicate_columns(cols)
    >>> layout.timepoints
    ('T1', 'T2')
    >>> layout.cols("malignant", "T2")[:2]
    ['Malignant_T2_rep1', 'Malignant_T2_rep2']
    """
    found: Dict[Tuple[str, str], Dict[int, str]] = {}
    timepoints: List[str] = []
    unparsed = []

    for col in columns:
        parsed = _parse_header(str(col))
        if parsed is None:
            unparsed.append(col)
            continue
        kind, tp, rep = parsed
        if tp not in timepoints:
            timepoints.append(tp)
        reps = found.setdefault((kind, tp), {})
        if rep in reps:
            raise ValueError(f"Duplicate replicate {rep} for {kind}/{tp}: {reps[rep]!r} and {col!r}")
        reps[rep] = str(col)

    if unparsed:
        raise ValueError(f"Could not parse kind/time point/replicate from columns: {unparsed}")

    if len(timepoints) != N_TIMEPOINTS:
        raise ValueError(f"Expected {N_TIMEPOINTS} time points, found {timepoints}")

    layout_cols = {}
    for tp in timepoints:
        for kind in KINDS:
            reps = found.get((kind, tp), {})
            if len(reps) != n_replicates:
                raise ValueError(
                    f"Expected {n_replicates} {kind} replicates at {tp}, found {len(reps)}"
                )
            layout_cols[(kind, tp)] = tuple(reps[r] for r in sorted(reps))

    return ReplicateLayout(timepoints=(timepoints[0], timepoints[1]), columns=layout_cols)


def write_table(df: pd.DataFrame, out_tsv: str | Path, index: bool = True) -> Path:
    out_tsv = Path(out_tsv)
    out_tsv.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out_tsv, sep="\t", index=index)
    return out_tsv


def _parse_header(col: str) -> Optional[Tuple[str, str, int]]:
    toks = _tokenize_header(col)

    kind = None
    rep = None
    rest = []
    for t in toks:
        tl = t.lower()
        if kind is None and tl in KIND_ALIASES:
            kind = KIND_ALIASES[tl]
            continue
        m = re.match(REPLICATE_PATTERN, tl)
        if rep is None and m:
            rep = int(m.group(1))
            continue
        rest.append(t)

    # fallback: trailing bare number is the replicate (e.g. Mal_T1_3)
    if rep is None and len(rest) > 1 and rest[-1].isdigit():
        rep = int(rest.pop())

    if kind is None or rep is None or not rest:
        return None
    return kind, "_".join(rest), rep


def _tokenize_header(col: str) -> list[str]:
    toks = re.split(r"[\s_\-\.]+", col.strip())
    return [t for t in toks if t]


def _norm_col(c: object) -> str:
    # strip whitespace; preserve internal chars
    return str(c).strip()


def _norm_cols(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [_norm_col(c) for c in df.columns]
    return df
