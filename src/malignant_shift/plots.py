"""
Visualization functions for the malignant proportion report.

Functions
---------
replicate_boxplot
    Boxplot of log counts per replicate column.
sample_dendrogram
    Hierarchical clustering of replicate columns by correlation.
proportion_scatter
    Early vs late malignant proportion per patient.
proportion_density
    Density of raw proportions with the fitted Beta prior overlaid.
volcano_plot
    log2 relative risk vs significance for one method.
overlap_venn
    Venn diagram of significant patients across methods.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib_venn import venn2, venn3
from matplotlib_venn.layout import venn2 as venn2_layout
from matplotlib_venn.layout import venn3 as venn3_layout
from scipy import stats
from scipy.cluster.hierarchy import dendrogram, linkage

from .comparison import VENN3_ORDER, overlap_counts
from .io import ReplicateLayout
from .shrinkage import BetaPrior
from .stats import neglog10


def _save(fig, outpath: Optional[str | Path], dpi: int) -> None:
    if outpath is not None:
        outpath = Path(outpath)
        outpath.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(outpath, dpi=dpi, bbox_inches="tight")


def replicate_boxplot(
    counts: pd.DataFrame,
    *,
    pseudocount: float = 1.0,
    title: Optional[str] = None,
    figsize: tuple[float, float] = (10, 4),
    outpath: Optional[str | Path] = None,
    dpi: int = 200,
):
    """Boxplot of log10(count + pseudocount) for every replicate column.

    Parameters
    ----------
    counts : pd.DataFrame
        Cleaned replicate matrix (patients x columns).
    pseudocount : float, default 1.0
        Added before the log transform.
    title : str or None, default None
        Plot title.
    figsize : tuple of float, default (10, 4)
        Figure size.
    outpath : str, Path, or None, default None
        If provided, save the figure to this path.
    dpi : int, default 200
        Resolution for saved figure.

    Returns
    -------
    fig : matplotlib.figure.Figure
    ax : matplotlib.axes.Axes
    """
    long = (
        np.log10(counts + pseudocount)
        .melt(var_name="column", value_name="log10_count")
        .dropna()
    )

    fig, ax = plt.subplots(figsize=figsize)
    sns.boxplot(data=long, x="column", y="log10_count", color="#9ecae1", fliersize=2, ax=ax)
    ax.set_xlabel("")
    ax.set_ylabel(r"$\log_{10}$(count + %g)" % pseudocount)
    ax.tick_params(axis="x", rotation=90)
    if title:
        ax.set_title(title)
    fig.tight_layout()
    _save(fig, outpath, dpi)
    return fig, ax


def sample_dendrogram(
    counts: pd.DataFrame,
    *,
    method: str = "average",
    title: Optional[str] = None,
    figsize: tuple[float, float] = (10, 4),
    outpath: Optional[str | Path] = None,
    dpi: int = 200,
):
    """Cluster replicate columns on 1 - Spearman correlation.

    Correlations use pairwise-complete observations, so missing counts do not
    drop whole patients.

    Returns
    -------
    fig : matplotlib.figure.Figure
    ax : matplotlib.axes.Axes
    """
    corr = counts.corr(method="spearman").fillna(0.0)
    dist = 1.0 - corr.to_numpy()
    # condensed upper triangle
    iu = np.triu_indices_from(dist, k=1)
    Z = linkage(np.clip(dist[iu], 0.0, None), method=method)

    fig, ax = plt.subplots(figsize=figsize)
    dendrogram(Z, labels=list(corr.columns), leaf_rotation=90, ax=ax, color_threshold=None)
    ax.set_ylabel("1 - Spearman correlation")
    if title:
        ax.set_title(title)
    fig.tight_layout()
    _save(fig, outpath, dpi)
    return fig, ax


def proportion_scatter(
    records: pd.DataFrame,
    layout: ReplicateLayout,
    *,
    value: str = "posterior",
    sig_col: str = "significant",
    title: Optional[str] = None,
    figsize: tuple[float, float] = (5, 5),
    outpath: Optional[str | Path] = None,
    dpi: int = 200,
):
    """Early vs late malignant proportion, significant patients highlighted.

    Parameters
    ----------
    records : pd.DataFrame
        Patient records of the shrinkage method.
    layout : ReplicateLayout
        For the time point labels.
    value : {"posterior", "prior_prop"}, default "posterior"
        Plot shrunken or raw proportions.
    sig_col : str, default "significant"
        Boolean-or-missing column used for colouring.

    Returns
    -------
    fig : matplotlib.figure.Figure
    ax : matplotlib.axes.Axes
    """
    x = records[f"{value}_{layout.early}"].to_numpy(dtype=float)
    y = records[f"{value}_{layout.late}"].to_numpy(dtype=float)
    if sig_col in records:
        sig = records[sig_col].fillna(False).to_numpy(dtype=bool)
    else:
        sig = np.zeros(len(x), dtype=bool)

    fig, ax = plt.subplots(figsize=figsize)
    ax.scatter(x[~sig], y[~sig], c="gray", alpha=0.6, s=20, label="NS")
    colors = np.where(y[sig] > x[sig], "firebrick", "steelblue")
    ax.scatter(x[sig], y[sig], c=colors, alpha=0.9, s=36, label="Significant")

    finite = np.concatenate([x[np.isfinite(x)], y[np.isfinite(y)]])
    hi = float(finite.max()) if finite.size else 1.0
    ax.plot([0, hi], [0, hi], color="gray", linestyle="--", linewidth=0.8, alpha=0.6)

    ax.set_xlabel(f"Malignant proportion ({layout.early})")
    ax.set_ylabel(f"Malignant proportion ({layout.late})")
    ax.legend(frameon=False, fontsize=8)
    if title:
        ax.set_title(title)
    fig.tight_layout()
    _save(fig, outpath, dpi)
    return fig, ax


def proportion_density(
    records: pd.DataFrame,
    layout: ReplicateLayout,
    priors: Optional[Dict[str, BetaPrior]] = None,
    *,
    title: Optional[str] = None,
    figsize: tuple[float, float] = (9, 4),
    outpath: Optional[str | Path] = None,
    dpi: int = 200,
):
    """Density of raw proportions per time point with the fitted prior.

    One panel per time point: a KDE of ``prior_prop_<tp>`` over analyzable
    patients and, when ``priors`` is given, the Beta prior density.

    Returns
    -------
    fig : matplotlib.figure.Figure
    axes : np.ndarray of matplotlib.axes.Axes
    """
    fig, axes = plt.subplots(1, len(layout.timepoints), figsize=figsize, sharey=False)
    mask = records["analyzable"].to_numpy(dtype=bool)
    grid = np.linspace(1e-4, 1 - 1e-4, 500)

    for ax, tp in zip(np.atleast_1d(axes), layout.timepoints):
        props = records.loc[mask, f"prior_prop_{tp}"].dropna()
        if props.nunique() > 1:
            sns.kdeplot(x=props, ax=ax, fill=True, color="#9ecae1", clip=(0, 1), label="Observed")
        ax.plot(props, np.zeros(len(props)), "|", color="black", markersize=10)
        if priors is not None and tp in priors:
            p = priors[tp]
            ax.plot(
                grid,
                stats.beta.pdf(grid, p.shape1, p.shape2),
                color="firebrick",
                label=f"Beta({p.shape1:.2g}, {p.shape2:.2g})",
            )
        upper = float(props.max()) if len(props) else 1.0
        ax.set_xlim(0, min(1.0, max(upper * 1.5, 0.05)))
        ax.set_xlabel("Malignant proportion")
        ax.set_title(tp)
        ax.legend(frameon=False, fontsize=8)

    if title:
        fig.suptitle(title)
    fig.tight_layout()
    _save(fig, outpath, dpi)
    return fig, axes


def volcano_plot(
    table: pd.DataFrame,
    *,
    x_col: str = "log2RR",
    q_col: str = "padj",
    q_thresh: float = 0.05,
    title: Optional[str] = None,
    top_n_labels: int = 10,
    outpath: Optional[str | Path] = None,
    dpi: int = 200,
):
    """Create a volcano plot of log2 relative risk vs significance.

    Points are coloured by direction among patients with ``q_col < q_thresh``:
    red for increases, blue for decreases. Untested patients are omitted.

    Returns
    -------
    fig : matplotlib.figure.Figure
    ax : matplotlib.axes.Axes

    Raises
    ------
    ValueError
        If no patient has a finite effect and adjusted p-value.
    """
    sub = table[np.isfinite(table[x_col]) & np.isfinite(table[q_col])]
    if sub.empty:
        raise ValueError("volcano_plot received no tested patients.")

    x = sub[x_col].to_numpy(dtype=float)
    y = neglog10(sub[q_col].to_numpy(dtype=float))
    sig = sub[q_col].to_numpy(dtype=float) < q_thresh
    colors = np.where(~sig, "gray", np.where(x >= 0, "#e34a33", "#3182bd"))

    fig, ax = plt.subplots()
    ax.scatter(x, y, c=colors, s=14, alpha=0.7)
    ax.axhline(-np.log10(q_thresh), color="gray", linestyle="--", linewidth=0.8, alpha=0.6)
    ax.axvline(0, color="gray", linestyle=":", linewidth=0.8, alpha=0.6)

    ax.set_xlabel(r"$\log_2$ relative risk (late / early)")
    ax.set_ylabel(r"$-\log_{10}$ adjusted p-value")
    if title:
        ax.set_title(title)

    if top_n_labels:
        top = sub.assign(_y=y).sort_values("_y", ascending=False).head(int(top_n_labels))
        for pid, r in top.iterrows():
            ax.text(float(r[x_col]), float(r["_y"]), str(pid), fontsize=7)

    ax.margins(0.05)
    fig.tight_layout()
    _save(fig, outpath, dpi)
    return fig, ax


def overlap_venn(
    calls: pd.DataFrame,
    *,
    title: Optional[str] = None,
    figsize: tuple[float, float] = (5, 5),
    outpath: Optional[str | Path] = None,
    dpi: int = 200,
):
    """Venn diagram of significant patients across two or three methods.

    Parameters
    ----------
    calls : pd.DataFrame
        Boolean table from :func:`~malignant_shift.comparison.combine_calls`.

    Returns
    -------
    fig : matplotlib.figure.Figure
    ax : matplotlib.axes.Axes
    """
    k = calls.shape[1]
    if k not in (2, 3):
        raise ValueError(f"overlap_venn supports 2 or 3 methods, got {k}.")

    regions = overlap_counts(calls)
    labels = tuple(calls.columns)

    # area-weighted layouts need at least one non-empty region, else draw equal areas
    empty = regions.sum() == 0

    fig, ax = plt.subplots(figsize=figsize)
    if k == 3:
        venn3(
            subsets=tuple(regions[r] for r in VENN3_ORDER),
            set_labels=labels,
            set_colors=("#4ECDC4", "#FF6B6B", "#FFB347"),
            alpha=0.6,
            ax=ax,
            layout_algorithm=venn3_layout.DefaultLayoutAlgorithm(fixed_subset_sizes=(1,) * 7) if empty else None,
        )
    else:
        venn2(
            subsets=(regions["10"], regions["01"], regions["11"]),
            set_labels=labels,
            set_colors=("#4ECDC4", "#FF6B6B"),
            alpha=0.6,
            ax=ax,
            layout_algorithm=venn2_layout.DefaultLayoutAlgorithm(fixed_subset_sizes=(1, 1, 1)) if empty else None,
        )
    if title:
        ax.set_title(title)
    _save(fig, outpath, dpi)
    return fig, ax
