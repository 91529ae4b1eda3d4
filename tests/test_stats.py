"""Tests for FDR correction and the per-patient tests."""

import warnings

import numpy as np
import pytest

from malignant_shift.stats import (
    bh_fdr,
    chi2_2x2,
    empirical_pvalue,
    log2_ratio,
    significance_calls,
    spawn_seeds,
    welch_log_ratio_test,
)


class TestBHFDR:

    def test_matches_hand_computation(self):
        q = bh_fdr([0.01, 0.04, 0.03])
        np.testing.assert_allclose(q, [0.03, 0.04, 0.04])

    def test_nan_preserved_and_excluded(self):
        q = bh_fdr([0.001, np.nan, 0.01, 0.05, 0.1])
        assert np.isnan(q[1])
        # four tested p-values, not five
        assert q[0] == pytest.approx(0.004)

    def test_monotone_in_pvalue(self, rng):
        p = rng.uniform(size=50)
        q = bh_fdr(p)
        order = np.argsort(p)
        assert (np.diff(q[order]) >= -1e-12).all()
        assert (q >= p - 1e-12).all()
        assert (q <= 1.0).all()

    def test_all_missing(self):
        assert np.isnan(bh_fdr([np.nan, np.nan])).all()


class TestEmpiricalPvalue:

    def test_identical_posteriors_near_half(self):
        p = empirical_pvalue((50.0, 450.0), (50.0, 450.0), log2rr=0.0, n_samples=20_000)
        assert p == pytest.approx(0.5, abs=0.02)

    @pytest.mark.parametrize("log2rr", [1.0, -1.0])
    def test_identical_posteriors_either_direction(self, log2rr):
        p = empirical_pvalue((50.0, 450.0), (50.0, 450.0), log2rr=log2rr, n_samples=20_000)
        assert p == pytest.approx(0.5, abs=0.02)

    def test_clear_increase(self):
        p = empirical_pvalue((50.0, 950.0), (500.0, 500.0), log2rr=3.3)
        assert p == 0.0

    def test_wrong_direction_is_large(self):
        # observed decrease but the data say increase
        p = empirical_pvalue((50.0, 950.0), (500.0, 500.0), log2rr=-1.0)
        assert p == 1.0

    def test_reproducible_with_fixed_seed(self):
        a = empirical_pvalue((20.0, 80.0), (25.0, 75.0), 0.3, n_samples=5000, seed=11)
        b = empirical_pvalue((20.0, 80.0), (25.0, 75.0), 0.3, n_samples=5000, seed=11)
        assert a == b

    def test_in_unit_interval(self):
        p = empirical_pvalue((3.0, 7.0), (4.0, 6.0), 0.2, n_samples=1000, seed=3)
        assert 0.0 <= p <= 1.0

    def test_spawned_seeds_are_reproducible(self):
        s1 = spawn_seeds(42, 3)
        s2 = spawn_seeds(42, 3)
        a = [empirical_pvalue((20.0, 80.0), (22.0, 78.0), 0.1, 2000, s) for s in s1]
        b = [empirical_pvalue((20.0, 80.0), (22.0, 78.0), 0.1, 2000, s) for s in s2]
        assert a == b


class TestChi2:

    def test_strong_change(self):
        assert chi2_2x2(100, 900, 500, 500) < 1e-10

    def test_no_change(self):
        assert chi2_2x2(100, 900, 100, 900) == pytest.approx(1.0)

    def test_missing_cell_skipped(self):
        assert np.isnan(chi2_2x2(100, np.nan, 500, 500))

    def test_zero_margin_skipped(self):
        assert np.isnan(chi2_2x2(0, 900, 0, 500))


class TestWelch:

    def test_clear_difference(self):
        t, p = welch_log_ratio_test([-3.3, -3.2, -3.35, -3.25], [-1.0, -1.05, -0.95, -1.02])
        assert t > 0
        assert p < 1e-4

    def test_too_few_replicates(self):
        t, p = welch_log_ratio_test([-3.3, np.nan, np.nan, np.nan], [-1.0, -1.1, -0.9, -1.0])
        assert np.isnan(t) and np.isnan(p)

    def test_constant_groups_warn(self):
        with pytest.warns(UserWarning, match="Zero replicate variance"):
            t, p = welch_log_ratio_test([-1.0, -1.0, -1.0], [-2.0, -2.0, -2.0])
        assert np.isnan(p)

    def test_min_replicates_respected(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            _, p = welch_log_ratio_test([-3.3, -3.1], [-1.0, -1.2], min_replicates=3)
        assert np.isnan(p)


class TestHelpers:

    def test_significance_calls(self):
        calls = significance_calls(np.array([0.01, 0.2, np.nan]), 0.05)
        assert calls.dtype == "boolean"
        assert bool(calls.iloc[0])
        assert not bool(calls.iloc[1])
        assert calls.isna().iloc[2]

    def test_log2_ratio_undefined(self):
        out = log2_ratio([1.0, 0.0, 2.0], [2.0, 1.0, 0.0])
        assert out[0] == pytest.approx(-1.0)
        assert np.isnan(out[1])
        assert np.isnan(out[2])

    def test_log2_ratio_scalar(self):
        assert float(log2_ratio(4.0, 1.0)) == pytest.approx(2.0)
