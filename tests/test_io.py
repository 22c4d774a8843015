"""Tests for CSV loaders, correlation caching and table persistence."""

import json

import numpy as np
import pandas as pd
import pytest

from linecorr.core.categories import AgreementFlag, EstimatorKind
from linecorr.core.labels import LabelTable
from linecorr.core.records import PairRecord
from linecorr.exceptions import CacheMismatchError
from linecorr.io import persistence
from linecorr.io.loaders import load_expression_csv, load_label_table
from linecorr.io.persistence import (
    compute_cache_key,
    get_correlation_result,
    load_correlation_result,
    read_concordance_table,
    save_correlation_result,
    write_boundaries,
    write_concordance_table,
)
from linecorr.stats.binning import PercentileBoundaries
from linecorr.stats.concordance import build_concordance
from linecorr.stats.correlation import compute_correlation
from linecorr.stats.flatten import flatten_correlation


class TestLoaders:

    def test_expression_round_trip(self, synthetic, synthetic_csv_files):
        matrix, _ = synthetic
        loaded = load_expression_csv(synthetic_csv_files["expression"])

        assert loaded.shape == matrix.shape
        assert list(loaded.sample_ids) == list(matrix.sample_ids)
        assert np.array_equal(np.isnan(loaded.data), np.isnan(matrix.data))
        np.testing.assert_allclose(loaded.data, matrix.data, equal_nan=True)

    def test_features_as_rows(self, tmp_path):
        path = tmp_path / "genes_by_lines.csv"
        pd.DataFrame(
            [[1.0, 2.0], [3.0, np.nan], [5.0, 6.0]],
            index=["G1", "G2", "G3"],
            columns=["CL1", "CL2"],
        ).to_csv(path)

        matrix = load_expression_csv(path, samples_as_rows=False)
        assert list(matrix.sample_ids) == ["CL1", "CL2"]
        assert list(matrix.feature_ids) == ["G1", "G2", "G3"]
        assert np.isnan(matrix.data[1, 1])

    def test_non_numeric_rejected(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text(",G1,G2\nA,1.0,x\nB,2.0,3.0\n")
        with pytest.raises(ValueError, match="Non-numeric"):
            load_expression_csv(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_expression_csv(tmp_path / "nope.csv")

    def test_duplicate_sample_rejected(self, tmp_path):
        path = tmp_path / "dup.csv"
        path.write_text(",G1,G2\nA,1.0,2.0\nA,2.0,3.0\n")
        with pytest.raises(ValueError, match="[Dd]uplicate"):
            load_expression_csv(path)

    def test_label_table(self, synthetic, synthetic_csv_files):
        _, labels = synthetic
        loaded = load_label_table(synthetic_csv_files["labels"])

        assert loaded.schemes == ("tissue", "subtype", "site")
        for sample_id in labels.sample_ids:
            assert loaded.lookup(sample_id) == labels.lookup(sample_id)

    def test_blank_labels_are_missing(self, tmp_path):
        path = tmp_path / "labels.csv"
        path.write_text("id,tissue,subtype,site\nA,lung,,primary\nB, ,x,\n")
        labels = load_label_table(path)

        assert labels.lookup("A") == ("lung", None, "primary")
        assert labels.lookup("B") == (None, "x", None)

    def test_label_columns_selected(self, tmp_path):
        path = tmp_path / "labels.csv"
        path.write_text("name,notes,tissue,subtype,site\nA,foo,lung,x,p\n")

        with pytest.raises(ValueError, match="label columns"):
            load_label_table(path)

        labels = load_label_table(path, columns=["tissue", "subtype", "site"], id_column="name")
        assert labels.lookup("A") == ("lung", "x", "p")

    def test_zero_padded_ids_match_label_table(self, tmp_path):
        expression = tmp_path / "expression.csv"
        expression.write_text(",G1,G2,G3\n001,1.0,2.0,3.0\n002,2.0,4.0,6.5\n010,3.0,1.0,2.0\n")
        labels_path = tmp_path / "labels.csv"
        labels_path.write_text("id,tissue,subtype,site\n001,lung,x,p\n002,lung,y,p\n010,skin,x,m\n")

        matrix = load_expression_csv(expression)
        labels = load_label_table(labels_path)

        assert list(matrix.sample_ids) == ["001", "002", "010"]
        labels.require(matrix.sample_ids)

    def test_zero_padded_ids_features_as_rows(self, tmp_path):
        path = tmp_path / "genes_by_lines.csv"
        path.write_text("gene,001,002\n0042,1.0,2.0\n0043,3.0,4.0\n")

        matrix = load_expression_csv(path, samples_as_rows=False)
        assert list(matrix.sample_ids) == ["001", "002"]
        assert list(matrix.feature_ids) == ["0042", "0043"]

    def test_na_like_text_is_a_label(self, tmp_path):
        path = tmp_path / "labels.csv"
        path.write_text("id,tissue,subtype,site\nA,NA,None,\nB,NA,null,n/a\n")
        labels = load_label_table(path)

        assert labels.lookup("A") == ("NA", "None", None)
        assert labels.lookup("B") == ("NA", "null", "n/a")

    def test_unknown_id_column(self, tmp_path):
        path = tmp_path / "labels.csv"
        path.write_text("id,tissue,subtype,site\nA,lung,x,p\n")
        with pytest.raises(ValueError, match="Identifier column"):
            load_label_table(path, id_column="cell_line")


class TestCorrelationCache:

    def test_cache_key_stable_and_sensitive(self, synthetic, abc_matrix):
        matrix, _ = synthetic
        assert compute_cache_key(matrix) == compute_cache_key(matrix)
        assert compute_cache_key(matrix) != compute_cache_key(abc_matrix)
        assert len(compute_cache_key(matrix)) == 16

    def test_save_and_load(self, tmp_path, synthetic):
        matrix, _ = synthetic
        result = compute_correlation(matrix, EstimatorKind.RANK)
        path = save_correlation_result(result, tmp_path / "corr", cache_key="abc", computation_time=1.5)

        assert path.suffix == ".npz"
        meta = json.loads((tmp_path / "corr.meta.json").read_text())
        assert meta["estimator"] == "spearman"
        assert meta["n_samples"] == matrix.n_samples

        loaded = load_correlation_result(path)
        assert loaded.estimator is EstimatorKind.RANK
        assert loaded.sample_ids.equals(result.sample_ids)
        assert np.array_equal(loaded.coefficients, result.coefficients, equal_nan=True)
        assert np.array_equal(loaded.n_obs, result.n_obs)

    def test_format_version_checked(self, tmp_path, abc_matrix):
        path = save_correlation_result(compute_correlation(abc_matrix), tmp_path / "corr.npz")
        meta_path = tmp_path / "corr.meta.json"
        meta = json.loads(meta_path.read_text())
        meta["format_version"] = 99
        meta_path.write_text(json.dumps(meta))

        with pytest.raises(CacheMismatchError):
            load_correlation_result(path)

    def test_second_call_hits_cache(self, tmp_path, synthetic, monkeypatch):
        matrix, _ = synthetic
        first = get_correlation_result(matrix, "pearson", cache_dir=tmp_path)
        assert len(list(tmp_path.glob("corr_pearson_*.npz"))) == 1

        def fail(*args, **kwargs):
            raise AssertionError("correlation recomputed despite cache")

        monkeypatch.setattr(persistence, "compute_correlation", fail)
        second = get_correlation_result(matrix, "pearson", cache_dir=tmp_path)
        assert np.array_equal(first.coefficients, second.coefficients, equal_nan=True)

    def test_force_recompute(self, tmp_path, abc_matrix, monkeypatch):
        get_correlation_result(abc_matrix, EstimatorKind.LINEAR, cache_dir=tmp_path)

        calls = []
        original = persistence.compute_correlation

        def counting(*args, **kwargs):
            calls.append(args)
            return original(*args, **kwargs)

        monkeypatch.setattr(persistence, "compute_correlation", counting)
        get_correlation_result(abc_matrix, EstimatorKind.LINEAR, cache_dir=tmp_path, force_recompute=True)
        assert len(calls) == 1

    def test_corrupt_cache_recomputed(self, tmp_path, abc_matrix):
        get_correlation_result(abc_matrix, EstimatorKind.LINEAR, cache_dir=tmp_path)
        (archive,) = tmp_path.glob("corr_pearson_*.npz")
        archive.write_bytes(b"not an archive")

        result = get_correlation_result(abc_matrix, EstimatorKind.LINEAR, cache_dir=tmp_path)
        assert result.coefficients[0, 1] == pytest.approx(1.0)

    def test_estimators_cached_separately(self, tmp_path, abc_matrix):
        get_correlation_result(abc_matrix, "pearson", cache_dir=tmp_path)
        get_correlation_result(abc_matrix, "spearman", cache_dir=tmp_path)
        assert len(list(tmp_path.glob("corr_*.npz"))) == 2


class TestTablePersistence:

    def test_concordance_csv_round_trip(self, tmp_path, synthetic):
        matrix, labels = synthetic
        pairs = flatten_correlation(compute_correlation(matrix))
        table = build_concordance(pairs, labels)

        path = write_concordance_table(table, tmp_path / "concordance_pearson.csv")
        loaded = read_concordance_table(path, labels.schemes, "pearson")

        assert len(loaded) == len(table)
        assert loaded.estimator is EstimatorKind.LINEAR
        for original, restored in zip(table, loaded):
            assert (restored.sample_a, restored.sample_b) == (original.sample_a, original.sample_b)
            assert restored.coefficient == pytest.approx(original.coefficient)
            assert restored.quartile_bin is original.quartile_bin
            assert restored.decile_bin is original.decile_bin
            assert restored.labels_a == original.labels_a
            assert restored.agreement == original.agreement
        assert len(loaded.clean()) == len(table.clean())

    def test_csv_keeps_bin_labels(self, tmp_path, abc_matrix, abc_labels):
        table = build_concordance(flatten_correlation(compute_correlation(abc_matrix)), abc_labels)
        path = write_concordance_table(table, tmp_path / "out" / "concordance_pearson.csv")
        text = path.read_text(encoding="utf-8")
        assert "≤25th" in text
        assert ">90th" in text

    def test_na_like_labels_survive_round_trip(self, tmp_path):
        labels = LabelTable.from_frame(pd.DataFrame(
            {"t": ["NA", "NA", None], "u": ["None", "x", "x"], "v": ["p", "p", "p"]},
            index=["A", "B", "C"],
        ))
        pairs = [PairRecord("A", "B", 0.5, 0.1), PairRecord("A", "C", None, None), PairRecord("B", "C", 0.2, 0.3)]
        table = build_concordance(pairs, labels)

        path = write_concordance_table(table, tmp_path / "concordance_pearson.csv")
        loaded = read_concordance_table(path, labels.schemes, "pearson")

        assert loaded[0].labels_a == ("NA", "None", "p")
        assert loaded[0].agreement[0] is AgreementFlag.AGREE
        assert loaded[1].labels_b[0] is None
        assert loaded[1].coefficient is None
        assert loaded[1].quartile_bin is None

    def test_read_missing_columns(self, tmp_path):
        path = tmp_path / "concordance_pearson.csv"
        pd.DataFrame({"sample_a": ["A"], "sample_b": ["B"]}).to_csv(path, index=False)
        with pytest.raises(ValueError, match="missing columns"):
            read_concordance_table(path, ["t", "u", "v"], "pearson")

    def test_write_boundaries(self, tmp_path):
        boundaries = PercentileBoundaries.from_values(np.linspace(-1, 1, 50))
        path = write_boundaries(boundaries, tmp_path / "percentiles.csv")
        frame = pd.read_csv(path)
        assert len(frame) == 101
        assert frame.iloc[-1, -1] == pytest.approx(1.0)
