"""
Merging of significance calls from several detection methods.

Functions
---------
combine_calls
    Boolean table of calls, missing coerced to not significant.
untestable_calls
    Boolean table marking patients a method could not test.
overlap_counts
    Sizes of every method-combination region, for Venn diagrams.
"""
from __future__ import annotations

import logging
from itertools import product
from typing import Mapping

import pandas as pd

logger = logging.getLogger(__name__)


def _aligned(calls: Mapping[str, pd.Series]) -> pd.DataFrame:
    if not calls:
        raise ValueError("No significance calls to compare.")
    index = None
    for s in calls.values():
        index = s.index if index is None else index.union(s.index, sort=False)
    return pd.DataFrame(
        {name: pd.Series(s, dtype="boolean").reindex(index) for name, s in calls.items()}
    )


def combine_calls(calls: Mapping[str, pd.Series]) -> pd.DataFrame:
    """Boolean significance table, one column per method.

    Calls are aligned on the union of patient identifiers. Missing calls,
    whether the patient was absent or untestable, are coerced to False. This
    conflates "could not test" with "tested, not significant"; the number of
    coerced calls per method is logged and :func:`untestable_calls` returns
    the mask for reporting.

    Parameters
    ----------
    calls : mapping of str to pd.Series
        Method name -> boolean-or-missing calls indexed by patient.

    Returns
    -------
    pd.DataFrame
        Plain ``bool`` columns in the order of ``calls``.

    Examples
    --------
    >>> a = pd.Series([True, None], index=["p1", "p2"], dtype="boolean")
    >>> b = pd.Series([False, True], index=["p1", "p2"], dtype="boolean")
    >>> combine_calls({"A": a, "B": b})
            A      B
    p1   True  False
    p2  False   True
    """
    table = _aligned(calls)
    n_missing = table.isna().sum()
    for name, n in n_missing.items():
        if n:
            logger.warning(f"{name}: {int(n)} untestable patients counted as not significant")
    return table.fillna(False).astype(bool)


def untestable_calls(calls: Mapping[str, pd.Series]) -> pd.DataFrame:
    """True where a method produced no call for a patient."""
    return _aligned(calls).isna()


def overlap_counts(table: pd.DataFrame) -> pd.Series:
    """Number of patients in every combination of significant methods.

    Parameters
    ----------
    table : pd.DataFrame
        Boolean table from :func:`combine_calls`.

    Returns
    -------
    pd.Series
        Indexed by membership strings such as ``"101"`` (significant in the
        first and third method only), in lexical order, excluding the
        all-zero region. For three methods the order ``100, 010, 110, 001,
        101, 011, 111`` expected by ``matplotlib_venn.venn3`` is obtained
        with :data:`VENN3_ORDER`.
    """
    k = table.shape[1]
    keys = table.astype(int).astype(str).agg("".join, axis=1)
    counts = keys.value_counts()
    regions = ["".join(bits) for bits in product("01", repeat=k)][1:]
    return pd.Series({r: int(counts.get(r, 0)) for r in regions}, name="n_patients")


VENN3_ORDER = ["100", "010", "110", "001", "101", "011", "111"]
