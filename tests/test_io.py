"""Tests for loading, cleaning and header parsing."""

import numpy as np
import pandas as pd
import pytest

from malignant_shift.io import (
    clean_expression_matrix,
    load_expression_matrix,
    parse_replicate_columns,
    write_table,
)
from malignant_shift.simulate import replicate_columns


class TestParseReplicateColumns:
    """Header parsing into a replicate layout."""

    def test_standard_headers(self):
        layout = parse_replicate_columns(replicate_columns(("T1", "T2"), 4))
        assert layout.timepoints == ("T1", "T2")
        assert layout.early == "T1"
        assert layout.late == "T2"
        assert layout.n_replicates == 4
        assert layout.cols("total", "T1") == [f"Total_T1_rep{r}" for r in range(1, 5)]

    def test_alias_tokens_and_separators(self):
        cols = []
        for tp in ("day0", "day14"):
            for kind in ("Mal", "Tot"):
                for r in range(1, 5):
                    cols.append(f"{kind}-{tp}.R{r}")
        layout = parse_replicate_columns(cols)
        assert layout.timepoints == ("day0", "day14")
        assert layout.cols("malignant", "day14")[0] == "Mal-day14.R1"

    def test_trailing_bare_number_is_replicate(self):
        cols = [f"{k}_{tp}_{r}" for tp in ("pre", "post") for k in ("tumor", "total") for r in (1, 2, 3, 4)]
        layout = parse_replicate_columns(cols)
        assert layout.timepoints == ("pre", "post")
        assert layout.cols("malignant", "pre") == [f"tumor_pre_{r}" for r in (1, 2, 3, 4)]

    def test_replicates_sorted_by_number(self):
        cols = replicate_columns(("T1", "T2"), 4)[::-1]
        layout = parse_replicate_columns(cols)
        # header order decides early/late
        assert layout.timepoints == ("T2", "T1")
        assert layout.cols("malignant", "T1") == [f"Malignant_T1_rep{r}" for r in range(1, 5)]

    def test_all_columns_covers_header(self):
        cols = replicate_columns(("T1", "T2"), 4)
        layout = parse_replicate_columns(cols)
        assert sorted(layout.all_columns()) == sorted(cols)

    def test_unparseable_column_raises(self):
        cols = replicate_columns(("T1", "T2"), 4) + ["comment"]
        with pytest.raises(ValueError, match="Could not parse"):
            parse_replicate_columns(cols)

    def test_missing_replicate_raises(self):
        cols = replicate_columns(("T1", "T2"), 4)
        cols.remove("Total_T2_rep3")
        with pytest.raises(ValueError, match="Expected 4 total replicates at T2"):
            parse_replicate_columns(cols)

    def test_three_timepoints_raises(self):
        cols = replicate_columns(("T1", "T2", "T3"), 4)
        with pytest.raises(ValueError, match="time points"):
            parse_replicate_columns(cols)

    def test_duplicate_replicate_raises(self):
        cols = replicate_columns(("T1", "T2"), 4) + ["Malignant_T1_r1"]
        with pytest.raises(ValueError, match="Duplicate replicate"):
            parse_replicate_columns(cols)

    def test_custom_replicate_count(self):
        layout = parse_replicate_columns(replicate_columns(("A", "B"), 3), n_replicates=3)
        assert layout.n_replicates == 3


class TestCleaning:
    """Replacement of invalid values."""

    def test_negative_and_infinite_become_missing(self):
        df = pd.DataFrame({"a": [1.0, -2.0, 0.0], "b": [np.inf, 3.0, -np.inf]})
        out = clean_expression_matrix(df)
        assert out["a"].tolist()[0] == 1.0
        assert out["a"].tolist()[2] == 0.0
        assert np.isnan(out.loc[1, "a"])
        assert np.isnan(out.loc[0, "b"])
        assert np.isnan(out.loc[2, "b"])
        assert out.loc[1, "b"] == 3.0

    def test_input_not_modified(self):
        df = pd.DataFrame({"a": [-1.0]})
        clean_expression_matrix(df)
        assert df.loc[0, "a"] == -1.0


class TestLoad:
    """Reading count matrices from disk."""

    def test_identifier_column(self, tmp_path, toy_counts):
        path = tmp_path / "counts.tsv"
        toy_counts.to_csv(path, sep="\t")
        df = load_expression_matrix(path)
        assert list(df.index) == ["P1", "P2", "P3", "P4"]
        assert df.index.name == "patient"
        assert list(df.columns) == list(toy_counts.columns)
        assert df.loc["P4", "Malignant_T2_rep1"] == 495.0

    def test_header_without_identifier_field(self, tmp_path, toy_counts):
        path = tmp_path / "counts.tsv"
        lines = ["\t".join(toy_counts.columns)]
        for pid, row in toy_counts.iterrows():
            lines.append("\t".join([pid] + [str(int(v)) for v in row]))
        path.write_text("\n".join(lines) + "\n")
        df = load_expression_matrix(path)
        assert list(df.index) == ["P1", "P2", "P3", "P4"]
        assert df.shape == toy_counts.shape

    def test_numeric_identifier_column(self, tmp_path, toy_counts):
        path = tmp_path / "counts.tsv"
        numbered = toy_counts.set_axis(pd.Index([1001, 1002, 1003, 1004], name="patient_id"))
        numbered.to_csv(path, sep="\t")
        df = load_expression_matrix(path)
        assert list(df.index) == ["1001", "1002", "1003", "1004"]
        assert list(df.columns) == list(toy_counts.columns)
        layout = parse_replicate_columns(list(df.columns))
        assert layout.n_replicates == 4

    def test_non_numeric_entries_become_missing(self, tmp_path):
        path = tmp_path / "counts.tsv"
        path.write_text("patient\ta\tb\nP1\t1\tNA\nP2\tx\t4\n")
        df = load_expression_matrix(path)
        assert np.isnan(df.loc["P1", "b"])
        assert np.isnan(df.loc["P2", "a"])
        assert df.loc["P2", "b"] == 4.0

    def test_write_table_creates_parent(self, tmp_path, toy_counts):
        out = write_table(toy_counts, tmp_path / "nested" / "out.tsv")
        assert out.exists()
        back = pd.read_csv(out, sep="\t", index_col=0)
        assert back.shape == toy_counts.shape
