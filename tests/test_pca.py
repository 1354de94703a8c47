"""Tests for the PCA provider."""

import numpy as np
import pytest

from pcgse.core.datamatrix import DataMatrix
from pcgse.core.pca import (
    PCAResult,
    compute_pca,
    max_components,
    resolve_pca,
    validate_pc_indexes,
)
from pcgse.exceptions import InvalidIndexError


class TestComputePCA:
    """Tests for compute_pca()."""

    def test_eigenvalues_match_correlation_matrix(self, small_data):
        pca = compute_pca(DataMatrix.from_any(small_data))

        expected = np.sort(np.linalg.eigvalsh(np.corrcoef(small_data, rowvar=False)))[::-1]
        np.testing.assert_allclose(pca.eigenvalues, expected, atol=1e-10)

    def test_eigenvalues_are_score_variances(self, small_data):
        pca = compute_pca(DataMatrix.from_any(small_data))
        np.testing.assert_allclose(pca.scores.var(axis=0, ddof=1), pca.eigenvalues)

    def test_loadings_orthonormal(self, small_data):
        pca = compute_pca(DataMatrix.from_any(small_data))
        np.testing.assert_allclose(pca.loadings.T @ pca.loadings, np.eye(12), atol=1e-10)

    def test_scale_invariance(self, small_data):
        """Correlation-matrix PCA ignores per-variable scale."""
        scaled = small_data * np.arange(1, 13) + 100
        a = compute_pca(DataMatrix.from_any(small_data))
        b = compute_pca(DataMatrix.from_any(scaled))

        np.testing.assert_allclose(a.eigenvalues, b.eigenvalues, atol=1e-10)
        np.testing.assert_allclose(a.loadings, b.loadings, atol=1e-8)

    def test_sign_convention(self, small_data):
        """Largest-magnitude loading of each component is positive."""
        pca = compute_pca(DataMatrix.from_any(small_data))
        pivot = np.argmax(np.abs(pca.loadings), axis=0)
        assert np.all(pca.loadings[pivot, np.arange(pca.n_components)] > 0)

    def test_n_components(self, small_data):
        pca = compute_pca(DataMatrix.from_any(small_data), n_components=3)
        assert pca.scores.shape == (30, 3)
        assert pca.pc_indexes == (1, 2, 3)

    def test_wide_data_rank(self):
        """With n <= p centering leaves n - 1 components with nonzero variance."""
        data = np.random.default_rng(1).standard_normal((8, 20))
        pca = compute_pca(DataMatrix.from_any(data))
        assert pca.n_components == 7
        assert pca.eigenvalues.min() > 1e-8

    def test_precomputed_standardized_reused(self, small_data):
        matrix = DataMatrix.from_any(small_data)
        a = compute_pca(matrix, n_components=4)
        b = compute_pca(matrix, n_components=4, standardized=matrix.standardized())

        np.testing.assert_array_equal(a.scores, b.scores)
        np.testing.assert_array_equal(a.eigenvalues, b.eigenvalues)


class TestValidatePCIndexes:
    """Tests for validate_pc_indexes()."""

    def test_valid(self):
        assert validate_pc_indexes([1, 3], 10, 5) == (1, 3)

    def test_scalar(self):
        assert validate_pc_indexes(2, 10, 5) == (2,)

    @pytest.mark.parametrize("bad", [[0], [6], [-1], [1, 11]])
    def test_out_of_range(self, bad):
        with pytest.raises(InvalidIndexError, match="out of range"):
            validate_pc_indexes(bad, 10, 5)

    def test_bound_is_rank_of_centered_data(self):
        assert validate_pc_indexes([3], 4, 100) == (3,)
        with pytest.raises(InvalidIndexError, match=r"rank at most min\(n - 1, p\)"):
            validate_pc_indexes([4], 4, 100)

    @pytest.mark.parametrize("n, p, expected", [(50, 200, 49), (200, 50, 50), (51, 50, 50), (1, 5, 1)])
    def test_max_components(self, n, p, expected):
        assert max_components(n, p) == expected

    def test_empty(self):
        with pytest.raises(InvalidIndexError, match="at least one"):
            validate_pc_indexes([], 10, 5)

    def test_non_integer(self):
        with pytest.raises(InvalidIndexError, match="integers"):
            validate_pc_indexes([1.5], 10, 5)


class TestResolvePCA:
    """Tests for resolve_pca() and PCAResult.select()."""

    def test_computes_requested_order(self, small_data):
        matrix = DataMatrix.from_any(small_data)
        full = compute_pca(matrix)
        pca = resolve_pca(matrix, [3, 1])

        assert pca.pc_indexes == (3, 1)
        np.testing.assert_allclose(pca.scores[:, 0], full.scores[:, 2])
        np.testing.assert_allclose(pca.eigenvalues, full.eigenvalues[[2, 0]])

    def test_uses_supplied_result(self, small_data):
        matrix = DataMatrix.from_any(small_data)
        rng = np.random.default_rng(3)
        supplied = PCAResult(
            scores=rng.standard_normal((30, 2)),
            loadings=rng.standard_normal((12, 2)),
            eigenvalues=[2.0, 1.0],
        )
        pca = resolve_pca(matrix, [2], supplied)

        np.testing.assert_array_equal(pca.scores[:, 0], supplied.scores[:, 1])
        assert pca.pc_indexes == (2,)

    def test_supplied_result_missing_pc(self, small_data):
        matrix = DataMatrix.from_any(small_data)
        supplied = compute_pca(matrix, n_components=2)
        with pytest.raises(InvalidIndexError, match="PC3"):
            resolve_pca(matrix, [3], supplied)

    def test_supplied_result_shape_mismatch(self, small_data):
        matrix = DataMatrix.from_any(small_data)
        supplied = compute_pca(DataMatrix.from_any(small_data[:20]), n_components=2)
        with pytest.raises(ValueError, match="observations"):
            resolve_pca(matrix, [1], supplied)

    def test_index_validated_before_compute(self, small_data):
        with pytest.raises(InvalidIndexError):
            resolve_pca(DataMatrix.from_any(small_data), [13])

    def test_collinear_component_rejected(self, small_data):
        """Duplicated columns leave trailing components with zero variance."""
        data = np.hstack([small_data[:, :6], small_data[:, :6]])
        matrix = DataMatrix.from_any(data)

        assert resolve_pca(matrix, [6]).eigenvalues[0] > 1e-8
        with pytest.raises(InvalidIndexError, match="zero variance"):
            resolve_pca(matrix, [1, 7])


class TestPCAResult:
    """Tests for PCAResult validation."""

    def test_one_dimensional_inputs(self):
        pca = PCAResult(scores=np.arange(5.0), loadings=np.ones(3), eigenvalues=[1.0])
        assert pca.scores.shape == (5, 1)
        assert pca.loadings.shape == (3, 1)

    def test_inconsistent_shapes(self):
        with pytest.raises(ValueError, match="inconsistent"):
            PCAResult(scores=np.ones((5, 2)), loadings=np.ones((3, 1)), eigenvalues=[1.0])

    def test_arrays_read_only(self, small_data):
        pca = compute_pca(DataMatrix.from_any(small_data))
        with pytest.raises(ValueError):
            pca.scores[0, 0] = 0.0
