"""Tests for merging significance calls across methods."""

import logging

import pandas as pd
import pytest

from malignant_shift.comparison import VENN3_ORDER, combine_calls, overlap_counts, untestable_calls


@pytest.fixture
def calls():
    return {
        "A": pd.Series([True, pd.NA, False, True], index=["p1", "p2", "p3", "p4"], dtype="boolean"),
        "B": pd.Series([True, True, False], index=["p1", "p2", "p3"], dtype="boolean"),
        "C": pd.Series([False, True, pd.NA, True], index=["p1", "p2", "p3", "p4"], dtype="boolean"),
    }


class TestCombineCalls:

    def test_missing_coerced_to_false(self, calls):
        table = combine_calls(calls)
        assert list(table.columns) == ["A", "B", "C"]
        assert (table.dtypes == bool).all()
        assert not table.loc["p2", "A"]
        assert not table.loc["p3", "C"]
        # absent from B entirely
        assert not table.loc["p4", "B"]

    def test_union_of_patients(self, calls):
        table = combine_calls(calls)
        assert list(table.index) == ["p1", "p2", "p3", "p4"]

    def test_coercion_logged(self, calls, caplog):
        with caplog.at_level(logging.WARNING, logger="malignant_shift.comparison"):
            combine_calls(calls)
        assert "A: 1 untestable" in caplog.text
        assert "B: 1 untestable" in caplog.text

    def test_plain_bool_input(self):
        table = combine_calls({"X": pd.Series([True, False], index=["a", "b"])})
        assert table["X"].tolist() == [True, False]

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            combine_calls({})


class TestUntestable:

    def test_mask(self, calls):
        mask = untestable_calls(calls)
        assert mask.loc["p2", "A"]
        assert mask.loc["p4", "B"]
        assert mask.loc["p3", "C"]
        assert int(mask.to_numpy().sum()) == 3


class TestOverlap:

    def test_three_methods(self, calls):
        table = combine_calls(calls)
        regions = overlap_counts(table)
        assert regions.name == "n_patients"
        assert len(regions) == 7
        assert "000" not in regions.index
        # p1: A,B  p2: B,C  p3: none  p4: A,C
        assert regions["110"] == 1
        assert regions["011"] == 1
        assert regions["101"] == 1
        assert regions["111"] == 0
        assert regions.sum() == 3
        assert set(VENN3_ORDER) == set(regions.index)

    def test_two_methods(self):
        table = pd.DataFrame({"A": [True, True, False], "B": [True, False, False]})
        regions = overlap_counts(table)
        assert list(regions.index) == ["01", "10", "11"]
        assert regions.tolist() == [0, 1, 1]
