"""End-to-end tests: raw matrix in, tables and figures out."""

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from malignant_shift import plots
from malignant_shift.config import AnalysisConfig
from malignant_shift.constants import METHOD_CHI2, METHODS
from malignant_shift.io import load_expression_matrix
from malignant_shift.pipeline import run_analysis, write_analysis
from malignant_shift.shrinkage import PriorEstimationError
from malignant_shift.simulate import simulate_cohort


class TestRunAnalysis:

    def test_toy_cohort(self, toy_counts):
        result = run_analysis(toy_counts)
        assert result.layout.timepoints == ("T1", "T2")
        assert list(result.calls.columns) == list(METHODS)
        assert result.calls.loc["P4"].all()
        assert not result.calls.drop(index="P4").to_numpy().any()
        assert not result.untestable.to_numpy().any()
        assert "posterior_T2" in result.records
        assert set(result.priors) == {"T1", "T2"}

    def test_invalid_values_cleaned_and_clipped(self, toy_counts):
        raw = toy_counts.copy()
        raw.loc["P1", "Total_T1_rep1"] = -5.0
        raw.loc["P2", "Malignant_T2_rep1"] = 5000.0
        result = run_analysis(raw)
        assert np.isnan(result.counts.loc["P1", "Total_T1_rep1"])
        assert result.counts.loc["P2", "Malignant_T2_rep1"] == 1000.0
        # P1 now unbalanced at T1
        assert result.untestable.loc["P1", METHODS[0]]
        assert not result.calls.loc["P1"].any()

    def test_extra_columns_raise(self, toy_counts):
        raw = toy_counts.assign(notes=1.0)
        with pytest.raises(ValueError):
            run_analysis(raw)

    def test_prior_failure_propagates(self, toy_counts):
        with pytest.raises(PriorEstimationError):
            run_analysis(toy_counts.loc[["P1", "P2"]])

    def test_one_sided_gap_runs_all_methods(self, toy_counts):
        raw = toy_counts.copy()
        # one gap on each side keeps P1 balanced
        raw.loc["P1", "Malignant_T2_rep2"] = np.nan
        raw.loc["P1", "Total_T2_rep3"] = np.nan
        result = run_analysis(raw, AnalysisConfig(n_samples=2000))
        assert set(result.methods) == set(METHODS)
        assert result.calls.loc["P4"].all()
        assert not result.untestable.loc["P1"].any()

    def test_subset_without_shrinkage(self, toy_counts):
        result = run_analysis(toy_counts.loc[["P1", "P4"]], methods=[METHOD_CHI2])
        assert list(result.calls.columns) == [METHOD_CHI2]
        assert result.calls.loc["P4", METHOD_CHI2]

    def test_write_analysis(self, tmp_path, toy_counts):
        result = run_analysis(toy_counts, AnalysisConfig(n_samples=2000))
        written = write_analysis(result, tmp_path / "out")
        names = {p.name for p in written}
        assert "patient_records.tsv" in names
        assert "significance_calls.tsv" in names
        assert "untestable_calls.tsv" in names
        assert "beta_binomial_shrinkage_results.tsv" in names
        assert all(p.exists() for p in written)

        calls = pd.read_csv(tmp_path / "out" / "significance_calls.tsv", sep="\t", index_col=0)
        assert calls.loc["P4"].all()

    def test_from_file(self, tmp_path):
        counts, _ = simulate_cohort(n_patients=12, fold_changes={"P1": 5.0}, missing_rate=0.02, seed=9)
        path = tmp_path / "counts.tsv"
        counts.to_csv(path, sep="\t", na_rep="NA")
        result = run_analysis(load_expression_matrix(path), AnalysisConfig(n_samples=2000))
        assert result.calls.shape == (12, 3)


class TestPlots:
    """Smoke tests: every figure renders and saves."""

    @pytest.fixture(scope="class")
    def result(self):
        counts, _ = simulate_cohort(n_patients=20, fold_changes={"P1": 5.0, "P2": 0.2}, seed=2)
        return run_analysis(counts, AnalysisConfig(n_samples=2000))

    def test_replicate_boxplot(self, result, tmp_path):
        out = tmp_path / "box.png"
        fig, _ = plots.replicate_boxplot(result.counts, outpath=out)
        assert out.exists()
        plt.close(fig)

    def test_sample_dendrogram(self, result):
        fig, _ = plots.sample_dendrogram(result.counts)
        plt.close(fig)

    def test_proportion_scatter(self, result):
        fig, _ = plots.proportion_scatter(result.records, result.layout)
        plt.close(fig)

    def test_proportion_density(self, result):
        fig, axes = plots.proportion_density(result.records, result.layout, result.priors)
        assert len(axes) == 2
        plt.close(fig)

    def test_volcano_plot(self, result, tmp_path):
        for name, res in result.methods.items():
            fig, _ = plots.volcano_plot(res.table, title=name, outpath=tmp_path / "v.png")
            plt.close(fig)

    def test_volcano_plot_nothing_tested(self, result):
        empty = result.records.assign(padj=np.nan)
        with pytest.raises(ValueError):
            plots.volcano_plot(empty)

    def test_overlap_venn(self, result, tmp_path):
        fig, _ = plots.overlap_venn(result.calls, outpath=tmp_path / "venn.png")
        plt.close(fig)

    def test_overlap_venn_no_calls(self):
        calls = pd.DataFrame({m: [False, False] for m in METHODS}, index=["a", "b"])
        fig, _ = plots.overlap_venn(calls)
        plt.close(fig)

    def test_overlap_venn_two_methods_no_calls(self, tmp_path):
        calls = pd.DataFrame({m: [False, False] for m in METHODS[:2]}, index=["a", "b"])
        out = tmp_path / "venn.png"
        fig, _ = plots.overlap_venn(calls, outpath=out)
        assert out.exists()
        plt.close(fig)

    def test_overlap_venn_two_methods(self, result):
        fig, _ = plots.overlap_venn(result.calls.iloc[:, :2])
        plt.close(fig)
