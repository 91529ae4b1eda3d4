#!/usr/bin/env python3
"""
Malignant proportion report for paired early/late tumour samples.

Runs the three detection methods on one count matrix and writes tables and
figures to RESULTS_PATH.

Input:
- Tab-separated matrix, one row per patient, first column the patient id,
  then malignant and total read counts for 2 time points x 4 replicates
  (e.g. Malignant_T1_rep1 ... Total_T2_rep4). A local path or a URL.

Analysis methods:
1. Beta-Binomial Shrinkage: summed counts, empirical Bayes Beta prior per
   time point, Monte Carlo p-value on the posteriors
2. Ratio Imputation: one-sided gaps imputed from the patient ratio,
   geometric-mean aggregation, Welch t-test on replicate log ratios
3. Contingency Chi2: 2x2 malignant/normal by time point table

Significance criteria:
- All methods: BH-FDR q < FDR_THRESHOLD over the patients each method could test

Usage:
    python scripts/run_report.py [matrix.tsv|URL] [results_dir]
"""

import logging
import sys
from pathlib import Path

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt

# Add src to path
BASE_PATH = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BASE_PATH / 'src'))

import malignant_shift as ms
from malignant_shift import plots
from malignant_shift.constants import METHOD_SHRINKAGE

# =============================================================================
# Configuration
# =============================================================================

DATA_PATH = BASE_PATH / 'data' / 'expression.tsv'
RESULTS_PATH = BASE_PATH / 'results'

# Monte Carlo draws per posterior and root seed for the empirical p-values
N_SAMPLES = 10_000
SEED = 42

FDR_THRESHOLD = 0.05
FIG_DPI = 200


def save_diagnostics(counts, layout, outdir: Path):
    """Write per-column and per-patient data-quality tables."""
    columns = ms.per_column_dispersion(counts)
    columns["missing_fraction"] = ms.missing_fraction(counts)
    columns["zero_fraction"] = ms.zero_fraction(counts)
    ms.write_table(columns, outdir / 'column_diagnostics.tsv')

    patients = ms.missingness_summary(counts, layout).join(ms.replicate_cv(counts, layout))
    ms.write_table(patients, outdir / 'patient_diagnostics.tsv')


def save_figures(result, outdir: Path):
    """Render every report figure to ``outdir``."""
    figs = []

    fig, _ = plots.replicate_boxplot(
        result.counts,
        title="Replicate counts",
        outpath=outdir / 'replicate_boxplot.png',
        dpi=FIG_DPI,
    )
    figs.append(fig)

    fig, _ = plots.sample_dendrogram(
        result.counts,
        title="Replicate clustering",
        outpath=outdir / 'sample_dendrogram.png',
        dpi=FIG_DPI,
    )
    figs.append(fig)

    if METHOD_SHRINKAGE in result.methods:
        fig, _ = plots.proportion_scatter(
            result.records,
            result.layout,
            title="Shrunken malignant proportion",
            outpath=outdir / 'proportion_scatter.png',
            dpi=FIG_DPI,
        )
        figs.append(fig)

        fig, _ = plots.proportion_density(
            result.records,
            result.layout,
            result.priors,
            title="Malignant proportion and fitted prior",
            outpath=outdir / 'proportion_density.png',
            dpi=FIG_DPI,
        )
        figs.append(fig)

    for name, res in result.methods.items():
        if res.n_tested == 0:
            print(f"  Skipping volcano for {name}: no patient tested")
            continue
        fig, _ = plots.volcano_plot(
            res.table,
            q_thresh=FDR_THRESHOLD,
            title=name,
            outpath=outdir / f'volcano_{name.lower().replace(" ", "_").replace("-", "_")}.png',
            dpi=FIG_DPI,
        )
        figs.append(fig)

    if result.calls.shape[1] in (2, 3):
        fig, _ = plots.overlap_venn(
            result.calls,
            title="Significant patients",
            outpath=outdir / 'overlap_venn.png',
            dpi=FIG_DPI,
        )
        figs.append(fig)

    for fig in figs:
        plt.close(fig)
    print(f"  Saved {len(figs)} figures")


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    source = sys.argv[1] if len(sys.argv) > 1 else DATA_PATH
    outdir = Path(sys.argv[2]) if len(sys.argv) > 2 else RESULTS_PATH
    paths = ms.Paths(data_path=source, results_path=outdir)

    config = ms.AnalysisConfig(
        n_samples=N_SAMPLES,
        seed=SEED,
        fdr_threshold=FDR_THRESHOLD,
    )

    print("\n=== Loading ===")
    raw = ms.load_expression_matrix(paths.data_path)

    print("\n=== Running methods ===")
    result = ms.run_analysis(raw, config)

    print("\n=== Writing tables ===")
    written = ms.write_analysis(result, paths.results_path)
    save_diagnostics(result.counts, result.layout, paths.results_path)
    for p in written:
        print(f"  {p}")

    print("\n=== Figures ===")
    save_figures(result, paths.results_path)

    print("\n=== Summary ===")
    for name in result.calls.columns:
        n_sig = int(result.calls[name].sum())
        n_untested = int(result.untestable[name].sum())
        print(f"  {name}: {n_sig} significant, {n_untested} untested")
    print(ms.overlap_counts(result.calls).to_string())


if __name__ == "__main__":
    main()
