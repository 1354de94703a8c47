"""
Pytest configuration and shared fixtures.

This module provides the synthetic PCA scenario used across the test suites:
200 variables, 50 observations, 20 disjoint gene sets of 10 variables each,
where gene set 1 is driven by a strong latent factor (PC1) and gene set 2 by
a weaker independent factor (PC2).
"""

import numpy as np
import pandas as pd
import pytest


def generate_pc_scenario(
    n_observations: int = 50,
    n_variables: int = 200,
    n_sets: int = 20,
    set_size: int = 10,
    factor_weights: tuple = (4.0, 1.5),
    seed: int = 42,
):
    """
    Generate data where gene set i (i < len(factor_weights)) loads on factor i.

    Args:
        n_observations: Number of observations (rows)
        n_variables: Number of variables (columns)
        n_sets: Number of disjoint, contiguous gene sets
        set_size: Variables per gene set
        factor_weights: Weight of each latent factor on its gene set; ordered
            strongest first so factor i becomes PC i+1
        seed: Random seed for reproducibility

    Returns:
        (data, membership): data (n_observations, n_variables) and boolean
        membership (n_sets, n_variables)
    """
    rng = np.random.default_rng(seed)
    data = rng.standard_normal((n_observations, n_variables))

    for i, weight in enumerate(factor_weights):
        factor = rng.standard_normal(n_observations)
        cols = slice(i * set_size, (i + 1) * set_size)
        data[:, cols] += weight * factor[:, np.newaxis]

    membership = np.zeros((n_sets, n_variables), dtype=bool)
    for i in range(n_sets):
        membership[i, i * set_size:(i + 1) * set_size] = True

    return data, membership


@pytest.fixture
def scenario():
    """The 50 x 200 two-factor scenario with its membership matrix."""
    return generate_pc_scenario()


@pytest.fixture
def scenario_frame(scenario):
    """Scenario as labelled DataFrames (data, gene-set matrix)."""
    data, membership = scenario
    genes = [f"GENE_{j:03d}" for j in range(data.shape[1])]
    samples = [f"SAMPLE_{i:02d}" for i in range(data.shape[0])]
    sets = [f"SET_{i + 1:02d}" for i in range(membership.shape[0])]
    return (
        pd.DataFrame(data, index=samples, columns=genes),
        pd.DataFrame(membership.astype(int), index=sets, columns=genes),
    )


@pytest.fixture
def scenario_mapping(scenario):
    """Scenario gene sets as a {name: positions} mapping."""
    _, membership = scenario
    return {
        f"SET_{i + 1:02d}": np.flatnonzero(row).tolist()
        for i, row in enumerate(membership)
    }


@pytest.fixture
def small_data():
    """Small unstructured matrix (30 observations x 12 variables)."""
    return np.random.default_rng(7).standard_normal((30, 12))


@pytest.fixture
def build_inputs():
    """Factory for TestInputs from raw data and a membership matrix."""
    from pcgse.core.datamatrix import DataMatrix
    from pcgse.core.gene_sets import GeneSetCollection
    from pcgse.core.pca import resolve_pca
    from pcgse.stats.gene_statistics import GeneStatistic, Transformation, compute_gene_statistics
    from pcgse.stats.set_statistics import GeneSetStatistic
    from pcgse.stats.significance import TestInputs

    def _build(data, membership, pcs=(1, 2), gene_statistic="z",
               transformation="none", gene_set_statistic="mean.diff"):
        matrix = DataMatrix.from_any(data)
        sets = GeneSetCollection.from_matrix(membership, matrix.variable_ids)
        standardized = matrix.standardized()
        pca = resolve_pca(matrix, pcs)
        gs = GeneStatistic.parse(gene_statistic)
        tr = Transformation.parse(transformation)
        return TestInputs(
            data=matrix,
            standardized=standardized,
            pca=pca,
            gene_statistics=compute_gene_statistics(matrix, pca, gs, tr, standardized),
            collection=sets,
            gene_statistic=gs,
            transformation=tr,
            gene_set_statistic=GeneSetStatistic.parse(gene_set_statistic),
        )

    return _build
