"""Tests for the all-pairs correlation engine."""

import numpy as np
import pandas as pd
import pytest
from numpy.testing import assert_allclose
from scipy import stats

from linecorr.core.categories import EstimatorKind
from linecorr.core.expression import ExpressionMatrix
from linecorr.stats.correlation import (
    compute_correlation,
    correlation_pvalues,
    rank_transform,
)


def _matrix(data, ids=None):
    data = np.asarray(data, dtype=float)
    if ids is None:
        ids = [f"S{i}" for i in range(data.shape[0])]
    return ExpressionMatrix(
        data=data,
        sample_ids=pd.Index(ids),
        feature_ids=pd.Index([f"F{j}" for j in range(data.shape[1])]),
    )


@pytest.fixture
def matrix_with_missing():
    rng = np.random.default_rng(7)
    data = rng.normal(size=(8, 40))
    data[:, :10] += rng.normal(size=10)  # shared signal on the first features
    missing = rng.random(data.shape) < 0.15
    data[missing] = np.nan
    return _matrix(data)


class TestAbcExample:
    """Three samples: B = 2A, C unrelated."""

    def test_collinear_pair_is_one(self, abc_matrix):
        result = compute_correlation(abc_matrix, EstimatorKind.LINEAR)
        assert result.coefficients[0, 1] == pytest.approx(1.0)
        assert result.p_values[0, 1] == 0.0

    def test_other_pairs_computed_from_data(self, abc_matrix):
        result = compute_correlation(abc_matrix, EstimatorKind.LINEAR)
        expected_r, expected_p = stats.pearsonr([1, 2, 3], [3, 1, 2])
        assert result.coefficients[0, 2] == pytest.approx(expected_r)
        assert result.coefficients[1, 2] == pytest.approx(expected_r)
        assert result.p_values[0, 2] == pytest.approx(expected_p, rel=1e-6)

    def test_all_offdiagonal_pvalues_defined(self, abc_matrix):
        result = compute_correlation(abc_matrix, EstimatorKind.LINEAR)
        iu = np.triu_indices(3, k=1)
        assert np.all(np.isfinite(result.p_values[iu]))
        assert np.all(result.n_obs[iu] == 3)

    def test_diagonal_excluded(self, abc_matrix):
        result = compute_correlation(abc_matrix, EstimatorKind.LINEAR)
        assert np.all(np.isnan(np.diag(result.coefficients)))
        assert np.all(np.isnan(np.diag(result.p_values)))


class TestAgainstScipy:
    """Pairwise results match scipy on the mutually observed features."""

    def test_pearson_complete_data(self):
        rng = np.random.default_rng(0)
        data = rng.normal(size=(6, 25))
        result = compute_correlation(_matrix(data), EstimatorKind.LINEAR)
        for i in range(6):
            for j in range(i + 1, 6):
                r, p = stats.pearsonr(data[i], data[j])
                assert result.coefficients[i, j] == pytest.approx(r, abs=1e-12)
                assert result.p_values[i, j] == pytest.approx(p, rel=1e-6)

    def test_spearman_complete_data(self):
        rng = np.random.default_rng(1)
        data = rng.normal(size=(5, 30))
        data[0, :5] = data[0, 5]  # ties
        result = compute_correlation(_matrix(data), EstimatorKind.RANK)
        for i in range(5):
            for j in range(i + 1, 5):
                rho, _ = stats.spearmanr(data[i], data[j])
                assert result.coefficients[i, j] == pytest.approx(rho, abs=1e-12)

    def test_pearson_pairwise_missing(self, matrix_with_missing):
        data = matrix_with_missing.data
        result = compute_correlation(matrix_with_missing, EstimatorKind.LINEAR)
        n = data.shape[0]
        for i in range(n):
            for j in range(i + 1, n):
                both = ~np.isnan(data[i]) & ~np.isnan(data[j])
                r, p = stats.pearsonr(data[i, both], data[j, both])
                assert result.n_obs[i, j] == both.sum()
                assert result.coefficients[i, j] == pytest.approx(r, abs=1e-10)
                assert result.p_values[i, j] == pytest.approx(p, rel=1e-6)

    def test_spearman_ranks_each_sample_once(self, matrix_with_missing):
        data = matrix_with_missing.data
        ranks = rank_transform(data)
        result = compute_correlation(matrix_with_missing, EstimatorKind.RANK)
        n = data.shape[0]
        for i in range(n):
            for j in range(i + 1, n):
                both = ~np.isnan(ranks[i]) & ~np.isnan(ranks[j])
                r, _ = stats.pearsonr(ranks[i, both], ranks[j, both])
                assert result.coefficients[i, j] == pytest.approx(r, abs=1e-10)


class TestMatrixProperties:

    @pytest.mark.parametrize("estimator", list(EstimatorKind))
    def test_symmetric_and_bounded(self, synthetic, estimator):
        matrix, _ = synthetic
        result = compute_correlation(matrix, estimator)

        assert np.array_equal(result.coefficients, result.coefficients.T, equal_nan=True)
        assert np.array_equal(result.p_values, result.p_values.T, equal_nan=True)

        defined = result.coefficients[~np.isnan(result.coefficients)]
        assert np.all(defined >= -1.0) and np.all(defined <= 1.0)

        p_defined = result.p_values[~np.isnan(result.p_values)]
        assert np.all(p_defined >= 0.0) and np.all(p_defined <= 1.0)

    @pytest.mark.parametrize("estimator", list(EstimatorKind))
    def test_parallel_matches_serial(self, synthetic, estimator):
        matrix, _ = synthetic
        serial = compute_correlation(matrix, estimator, workers=1, block_size=256)
        parallel = compute_correlation(matrix, estimator, workers=4, block_size=5)

        assert_allclose(parallel.coefficients, serial.coefficients, rtol=1e-10, atol=1e-12)
        assert_allclose(parallel.p_values, serial.p_values, rtol=1e-8, atol=1e-14)
        assert np.array_equal(parallel.n_obs, serial.n_obs)

    def test_estimator_accepts_strings(self, abc_matrix):
        assert compute_correlation(abc_matrix, "spearman").estimator is EstimatorKind.RANK
        assert compute_correlation(abc_matrix, "linear").estimator is EstimatorKind.LINEAR

    def test_invalid_workers(self, abc_matrix):
        with pytest.raises(ValueError, match="workers"):
            compute_correlation(abc_matrix, workers=0)

    def test_input_matrix_untouched(self, matrix_with_missing):
        before = matrix_with_missing.data.copy()
        compute_correlation(matrix_with_missing, EstimatorKind.RANK)
        assert np.array_equal(matrix_with_missing.data, before, equal_nan=True)


class TestNullRules:

    def test_no_overlap_is_null(self):
        nan = np.nan
        result = compute_correlation(_matrix([
            [1.0, 2.0, nan, nan],
            [nan, nan, 3.0, 5.0],
        ]))
        assert result.n_obs[0, 1] == 0
        assert np.isnan(result.coefficients[0, 1])
        assert np.isnan(result.p_values[0, 1])

    def test_single_overlap_is_null(self):
        nan = np.nan
        result = compute_correlation(_matrix([
            [1.0, 2.0, nan],
            [nan, 4.0, 3.0],
        ]))
        assert result.n_obs[0, 1] == 1
        assert np.isnan(result.coefficients[0, 1])

    def test_two_overlapping_features_defined_without_pvalue(self):
        nan = np.nan
        result = compute_correlation(_matrix([
            [1.0, 2.0, nan],
            [3.0, 5.0, 7.0],
        ]))
        assert result.coefficients[0, 1] == pytest.approx(1.0)
        assert np.isnan(result.p_values[0, 1])

    def test_constant_sample_is_null(self):
        result = compute_correlation(_matrix([
            [5.0, 5.0, 5.0, 5.0],
            [1.0, 2.0, 3.0, 4.0],
            [4.0, 1.0, 3.0, 2.0],
        ]))
        assert np.all(np.isnan(result.coefficients[0, 1:]))
        assert np.all(np.isnan(result.p_values[0, 1:]))
        assert np.isfinite(result.coefficients[1, 2])
        assert result.n_undefined == 2

    def test_constant_on_overlap_is_null(self):
        nan = np.nan
        result = compute_correlation(_matrix([
            [1.0, 1.0, 1.0, 5.0],
            [2.0, 3.0, 4.0, nan],
        ]))
        assert np.isnan(result.coefficients[0, 1])

    def test_overlap_far_from_sample_mean_is_defined(self):
        nan = np.nan
        a = [0.0] * 50 + [1e5, 1e5 + 0.5, 1e5 + 1.0, 1e5 + 0.2]
        b = [nan] * 50 + [1.0, 2.0, 3.0, 1.5]
        result = compute_correlation(_matrix([a, b]))

        expected, _ = stats.pearsonr(a[50:], b[50:])
        assert result.coefficients[0, 1] == pytest.approx(expected, abs=1e-12)
        assert np.isfinite(result.p_values[0, 1])
        assert result.n_undefined == 0

    def test_offset_overlap_keeps_precision(self):
        rng = np.random.default_rng(11)
        a = np.concatenate([np.zeros(200), 1e6 + rng.normal(size=20)])
        b = np.concatenate([np.full(200, np.nan), rng.normal(size=20)])
        c = np.concatenate([rng.normal(size=200), 5e5 + rng.normal(size=20)])
        data = np.vstack([a, b, c])
        result = compute_correlation(_matrix(data), workers=2, block_size=1)

        for i, j in [(0, 1), (0, 2), (1, 2)]:
            both = ~np.isnan(data[i]) & ~np.isnan(data[j])
            expected, _ = stats.pearsonr(data[i, both], data[j, both])
            assert result.coefficients[i, j] == pytest.approx(expected, abs=1e-10)

    def test_constant_offset_overlap_is_null(self):
        nan = np.nan
        result = compute_correlation(_matrix([
            [0.0, 0.0, 0.0, 0.1, 0.1, 0.1],
            [nan, nan, nan, 1.0, 2.0, 3.0],
        ]))
        assert np.isnan(result.coefficients[0, 1])
        assert result.n_obs[0, 1] == 3

    def test_all_missing_sample_is_null(self):
        nan = np.nan
        result = compute_correlation(_matrix([
            [nan, nan, nan],
            [1.0, 2.0, 3.0],
            [3.0, 1.0, 2.0],
        ]))
        assert np.all(np.isnan(result.coefficients[0]))
        assert result.n_obs[0, 0] == 0


class TestHelpers:

    def test_rank_transform_averages_ties_and_keeps_missing(self):
        ranks = rank_transform(np.array([[10.0, np.nan, 30.0, 10.0]]))
        assert_allclose(ranks, [[1.5, np.nan, 3.0, 1.5]])

    def test_pvalues_match_t_distribution(self):
        r = np.array([0.3, -0.8, 1.0, np.nan])
        n = np.array([10, 5, 4, 10])
        p = correlation_pvalues(r, n)

        t = 0.3 * np.sqrt(8 / (1 - 0.09))
        assert p[0] == pytest.approx(2 * stats.t.sf(t, 8))
        assert p[1] == pytest.approx(2 * stats.t.sf(0.8 * np.sqrt(3 / 0.36), 3))
        assert p[2] == 0.0
        assert np.isnan(p[3])
