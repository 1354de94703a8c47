"""Tests for gene-level statistics."""

import logging

import numpy as np
import pytest
from scipy import stats

from pcgse.core.datamatrix import DataMatrix
from pcgse.core.pca import PCAResult, compute_pca, resolve_pca
from pcgse.exceptions import ZeroVarianceError
from pcgse.stats.gene_statistics import (
    GeneStatistic,
    Transformation,
    compute_gene_statistics,
    correlate_with_scores,
    fisher_z_transform,
)


class TestOptionParsing:
    """Tests for enum parsing of option strings."""

    @pytest.mark.parametrize("value,expected", [
        ("loading", GeneStatistic.LOADING),
        ("cor", GeneStatistic.CORRELATION),
        ("correlation", GeneStatistic.CORRELATION),
        ("z", GeneStatistic.FISHER_Z),
        ("fisher-z", GeneStatistic.FISHER_Z),
        (GeneStatistic.FISHER_Z, GeneStatistic.FISHER_Z),
    ])
    def test_gene_statistic(self, value, expected):
        assert GeneStatistic.parse(value) is expected

    @pytest.mark.parametrize("value,expected", [
        ("none", Transformation.NONE),
        ("abs.value", Transformation.ABS_VALUE),
        ("abs", Transformation.ABS_VALUE),
    ])
    def test_transformation(self, value, expected):
        assert Transformation.parse(value) is expected

    def test_unknown_lists_choices(self):
        with pytest.raises(ValueError, match="loading"):
            GeneStatistic.parse("t")


class TestFisherZ:
    """Tests for fisher_z_transform()."""

    def test_matches_arctanh(self):
        r = np.array([-0.9, -0.3, 0.0, 0.5, 0.99])
        np.testing.assert_allclose(fisher_z_transform(r), np.arctanh(r))

    def test_perfect_correlation_is_capped(self, caplog):
        with caplog.at_level(logging.WARNING, logger="pcgse.stats.gene_statistics"):
            z = fisher_z_transform(np.array([1.0, -1.0, 0.2]))

        assert np.all(np.isfinite(z))
        assert z[0] == pytest.approx(-z[1])
        assert z[0] > 8.0
        assert "Capped 2" in caplog.text

    def test_no_warning_without_capping(self, caplog):
        with caplog.at_level(logging.WARNING, logger="pcgse.stats.gene_statistics"):
            fisher_z_transform(np.array([0.1, 0.2]))
        assert caplog.text == ""


class TestCorrelateWithScores:
    """Tests for correlate_with_scores()."""

    def test_matches_pearson(self, small_data):
        matrix = DataMatrix.from_any(small_data)
        scores = np.random.default_rng(0).standard_normal((30, 2))
        r = correlate_with_scores(matrix.standardized(), scores)

        for j in range(12):
            for k in range(2):
                expected = stats.pearsonr(small_data[:, j], scores[:, k])[0]
                assert r[j, k] == pytest.approx(expected, abs=1e-12)

    def test_constant_scores_raise(self, small_data):
        matrix = DataMatrix.from_any(small_data)
        with pytest.raises(ZeroVarianceError):
            correlate_with_scores(matrix.standardized(), np.ones((30, 1)))


class TestComputeGeneStatistics:
    """Tests for compute_gene_statistics()."""

    def test_loading_statistic(self, small_data):
        matrix = DataMatrix.from_any(small_data)
        pca = resolve_pca(matrix, [1, 2])
        stats_ = compute_gene_statistics(matrix, pca, "loading")
        np.testing.assert_array_equal(stats_, pca.loadings)

    def test_correlation_proportional_to_loading(self, scenario):
        """cor equals loading * sqrt(eigenvalue): same sign and rank order."""
        data, _ = scenario
        matrix = DataMatrix.from_any(data)
        pca = resolve_pca(matrix, [1, 2, 3])

        cor = compute_gene_statistics(matrix, pca, "cor")
        loading = compute_gene_statistics(matrix, pca, "loading")

        np.testing.assert_allclose(cor, loading * np.sqrt(pca.eigenvalues), atol=1e-10)
        np.testing.assert_array_equal(np.sign(cor), np.sign(loading))
        for k in range(3):
            np.testing.assert_array_equal(
                stats.rankdata(cor[:, k]), stats.rankdata(loading[:, k])
            )

    def test_z_is_fisher_of_cor(self, small_data):
        matrix = DataMatrix.from_any(small_data)
        pca = resolve_pca(matrix, [1])
        cor = compute_gene_statistics(matrix, pca, "cor")
        z = compute_gene_statistics(matrix, pca, "z")
        np.testing.assert_allclose(z, np.arctanh(cor))

    def test_abs_value_transformation(self, small_data):
        matrix = DataMatrix.from_any(small_data)
        pca = resolve_pca(matrix, [1, 2])
        raw = compute_gene_statistics(matrix, pca, "z", "none")
        absolute = compute_gene_statistics(matrix, pca, "z", "abs.value")

        np.testing.assert_allclose(absolute, np.abs(raw))
        assert (raw < 0).any()

    def test_supplied_scores_used_for_correlation(self, small_data):
        """cor is computed from the scores, not derived from the loadings."""
        matrix = DataMatrix.from_any(small_data)
        scores = small_data[:, [0]] * 2.0
        supplied = PCAResult(scores=scores, loadings=np.zeros((12, 1)), eigenvalues=[1.0])

        cor = compute_gene_statistics(matrix, supplied, "cor")
        assert cor[0, 0] == pytest.approx(1.0)

    def test_shape(self, scenario):
        data, _ = scenario
        matrix = DataMatrix.from_any(data)
        pca = compute_pca(matrix, n_components=4)
        assert compute_gene_statistics(matrix, pca).shape == (200, 4)
