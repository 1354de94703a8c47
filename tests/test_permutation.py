"""Tests for the permutation null."""

import numpy as np
import pandas as pd
import pytest

from pcgse.core.gene_sets import GeneSetCollection
from pcgse.exceptions import UnsupportedCombinationError, UnsupportedFormatError
from pcgse.stats.gene_statistics import GeneStatistic
from pcgse.stats.permutation import (
    check_permutation_inputs,
    generate_score_permutations,
    permutation_test,
    run_permutation_null,
)
from pcgse.stats.significance import parametric_test


class TestCheckPermutationInputs:
    """Tests for check_permutation_inputs()."""

    def test_loading_rejected(self, scenario):
        _, membership = scenario
        sets = GeneSetCollection.from_matrix(membership, pd.RangeIndex(200))
        with pytest.raises(UnsupportedCombinationError, match="loading"):
            check_permutation_inputs(sets, GeneStatistic.LOADING)

    def test_mapping_rejected(self):
        sets = GeneSetCollection.from_mapping({"a": [0, 1]}, pd.RangeIndex(10))
        with pytest.raises(UnsupportedFormatError, match="matrix"):
            check_permutation_inputs(sets, GeneStatistic.FISHER_Z)

    def test_matrix_with_correlation_accepted(self, scenario):
        _, membership = scenario
        sets = GeneSetCollection.from_matrix(membership, pd.RangeIndex(200))
        check_permutation_inputs(sets, GeneStatistic.CORRELATION)


class TestGenerateScorePermutations:
    """Tests for generate_score_permutations()."""

    def test_each_row_is_permutation(self):
        scores = np.arange(12.0)
        perms = generate_score_permutations(scores, 50, np.random.default_rng(0))

        assert perms.shape == (50, 12)
        for row in perms:
            np.testing.assert_array_equal(np.sort(row), scores)

    def test_rows_differ(self):
        perms = generate_score_permutations(np.arange(30.0), 20, np.random.default_rng(1))
        assert len({tuple(row) for row in perms}) == 20


class TestRunPermutationNull:
    """Tests for run_permutation_null()."""

    def test_pvalue_bounds(self, scenario, build_inputs):
        data, membership = scenario
        inputs = build_inputs(data, membership)

        result = run_permutation_null(inputs, nperm=99, rng=np.random.default_rng(0))

        assert result.p_values.shape == (20, 2)
        assert np.all(result.p_values >= 1 / 100)
        assert np.all(result.p_values <= 1.0)
        np.testing.assert_allclose(result.p_values, (result.n_exceed + 1) / 100)

    def test_observed_matches_parametric_statistics(self, scenario, build_inputs):
        data, membership = scenario
        inputs = build_inputs(data, membership)

        result = run_permutation_null(inputs, nperm=10, rng=np.random.default_rng(0))
        expected, _ = parametric_test(inputs)

        np.testing.assert_allclose(result.observed, expected)

    def test_driven_sets_reach_minimum(self, scenario, build_inputs):
        data, membership = scenario
        inputs = build_inputs(data, membership)
        nperm = 199

        result = run_permutation_null(inputs, nperm=nperm, rng=np.random.default_rng(3))

        assert result.p_values[0, 0] == pytest.approx(1 / (nperm + 1))
        assert result.p_values[1, 1] == pytest.approx(1 / (nperm + 1))
        assert np.median(result.p_values[2:, 0]) > 0.05

    def test_seed_reproducible(self, scenario, build_inputs):
        data, membership = scenario
        inputs = build_inputs(data, membership, gene_set_statistic="rank.sum")

        a = run_permutation_null(inputs, nperm=50, rng=np.random.default_rng(11))
        b = run_permutation_null(inputs, nperm=50, rng=np.random.default_rng(11))

        np.testing.assert_array_equal(a.p_values, b.p_values)
        np.testing.assert_array_equal(a.null_mean, b.null_mean)

    def test_threads_match_sequential(self, scenario, build_inputs):
        data, membership = scenario
        inputs = build_inputs(data, membership)

        sequential = run_permutation_null(
            inputs, nperm=120, rng=np.random.default_rng(5), batch_size=25
        )
        threaded = run_permutation_null(
            inputs, nperm=120, rng=np.random.default_rng(5), batch_size=25, n_jobs=3
        )

        np.testing.assert_array_equal(sequential.n_exceed, threaded.n_exceed)
        np.testing.assert_allclose(sequential.null_mean, threaded.null_mean)

    def test_null_centered_for_noise_sets(self, scenario, build_inputs):
        data, membership = scenario
        inputs = build_inputs(data, membership, pcs=(1,))

        result = run_permutation_null(inputs, nperm=300, rng=np.random.default_rng(2))

        assert np.all(np.abs(result.null_mean[2:, 0]) < 0.5)
        assert np.all(result.null_std[2:, 0] > 0.5)

    @pytest.mark.parametrize("kwargs", [
        {"nperm": 0},
        {"nperm": 2.5},
        {"n_jobs": 0},
        {"batch_size": -1},
    ])
    def test_invalid_counts(self, scenario, build_inputs, kwargs):
        data, membership = scenario
        inputs = build_inputs(data, membership, pcs=(1,))
        with pytest.raises(ValueError, match="positive integer"):
            run_permutation_null(inputs, **kwargs)

    def test_to_dict(self, scenario, build_inputs):
        data, membership = scenario
        inputs = build_inputs(data, membership, pcs=(1,))
        result = run_permutation_null(inputs, nperm=5, rng=np.random.default_rng(0))

        d = result.to_dict()
        assert d["n_permutations"] == 5
        assert len(d["p_values"]) == 20

    def test_permutation_test_contract(self, scenario, build_inputs):
        data, membership = scenario
        inputs = build_inputs(data, membership, gene_statistic="cor")

        statistics, p_values = permutation_test(inputs, nperm=20, rng=np.random.default_rng(0))

        assert statistics.shape == p_values.shape == (20, 2)
