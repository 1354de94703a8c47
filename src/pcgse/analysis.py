"""
Principal component gene set enrichment (PCGSE).

Single entry point :func:`pcgse` running the full pipeline:

    validate inputs
      -> PCA (computed, or supplied and subset)
      -> gene-level statistics (variables × PCs)
      -> gene-set statistics (gene sets × PCs)
      -> two-sided p-values under the chosen competitive null

All validation happens before PCA or any statistic is computed, so invalid
input never costs a permutation run. No multiple-testing correction is
applied to the returned p-values.

Example:
    >>> from pcgse import pcgse
    >>> result = pcgse(
    ...     data,                               # observations × variables
    ...     gene_sets={"set1": range(10), "set2": range(10, 20)},
    ...     pc_indexes=[1, 2],
    ...     gene_set_test="parametric",
    ... )
    >>> result.p_values.loc["set1", "PC1"]

References:
    Frost, Li & Moore (2015) "Principal component gene set enrichment
    (PCGSE)", BioData Mining 8:25.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Callable

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from pcgse.config import PCGSEConfig
from pcgse.core.datamatrix import DataMatrix
from pcgse.core.gene_sets import GeneSetCollection
from pcgse.core.pca import PCAResult, resolve_pca, validate_pc_indexes
from pcgse.stats.gene_statistics import GeneStatistic, Transformation, compute_gene_statistics
from pcgse.stats.inter_gene_correlation import CorrelationScope
from pcgse.stats.permutation import check_permutation_inputs, permutation_test
from pcgse.stats.set_statistics import GeneSetStatistic, validate_gene_set_sizes
from pcgse.stats.significance import (
    GeneSetTest,
    TestInputs,
    cor_adjusted_test,
    parametric_test,
)

__all__ = ['PCGSEResult', 'pcgse']

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PCGSEResult:
    """Gene-set statistics and p-values for every (gene set, PC) pair.

    Attributes:
        p_values: Two-sided p-values (gene sets × PCs), unadjusted
        statistics: Gene-set statistics, same shape and labels
        gene_statistic: Gene-level statistic used
        transformation: Gene-level transformation used
        gene_set_statistic: Aggregation used
        gene_set_test: Test regime used
        nperm: Permutations per PC (None unless the permutation test ran)
    """

    p_values: pd.DataFrame
    statistics: pd.DataFrame
    gene_statistic: GeneStatistic
    transformation: Transformation
    gene_set_statistic: GeneSetStatistic
    gene_set_test: GeneSetTest
    nperm: int | None = None

    @property
    def shape(self) -> tuple[int, int]:
        return self.p_values.shape

    def to_dict(self) -> dict:
        """Serialize to JSON-compatible dict."""
        return {
            "gene_statistic": self.gene_statistic.value,
            "transformation": self.transformation.value,
            "gene_set_statistic": self.gene_set_statistic.value,
            "gene_set_test": self.gene_set_test.value,
            "nperm": self.nperm,
            "gene_sets": self.p_values.index.tolist(),
            "pcs": self.p_values.columns.tolist(),
            "p_values": self.p_values.to_numpy().tolist(),
            "statistics": self.statistics.to_numpy().tolist(),
        }


TestRunner = Callable[..., "tuple[NDArray[np.float64], NDArray[np.float64]]"]


def _run_parametric(inputs: TestInputs, **_) -> tuple[NDArray, NDArray]:
    return parametric_test(inputs)


def _run_cor_adjusted(inputs: TestInputs, *, correlation_scope, **_) -> tuple[NDArray, NDArray]:
    return cor_adjusted_test(inputs, scope=correlation_scope)


def _run_permutation(inputs: TestInputs, *, nperm, rng, n_jobs, batch_size, **_) -> tuple[NDArray, NDArray]:
    return permutation_test(inputs, nperm=nperm, rng=rng, n_jobs=n_jobs, batch_size=batch_size)


_TEST_RUNNERS: dict[GeneSetTest, TestRunner] = {
    GeneSetTest.PARAMETRIC: _run_parametric,
    GeneSetTest.COR_ADJ_PARAMETRIC: _run_cor_adjusted,
    GeneSetTest.PERMUTATION: _run_permutation,
}


def _pick(value, config_value):
    """Explicit argument wins over the config value."""
    return config_value if value is None else value


def pcgse(
    data: DataMatrix | pd.DataFrame | np.ndarray,
    gene_sets: GeneSetCollection | Mapping | np.ndarray | pd.DataFrame,
    pc_indexes: Sequence[int] | int | None = None,
    pca: PCAResult | None = None,
    gene_statistic: GeneStatistic | str | None = None,
    transformation: Transformation | str | None = None,
    gene_set_statistic: GeneSetStatistic | str | None = None,
    gene_set_test: GeneSetTest | str | None = None,
    nperm: int | None = None,
    *,
    correlation_scope: CorrelationScope | str | None = None,
    rng: np.random.Generator | None = None,
    seed: int | None = None,
    n_jobs: int | None = None,
    batch_size: int | None = None,
    config: PCGSEConfig | None = None,
) -> PCGSEResult:
    """
    Test gene sets for competitive enrichment against principal components.

    Any option left as None takes its value from ``config`` and otherwise
    from the defaults below.

    Args:
        data: Complete matrix, observations × variables (DataFrame columns
            are variable ids)
        gene_sets: Binary membership matrix (gene sets × variables) or a
            mapping ``{name: members}`` of variable positions or ids
        pc_indexes: 1-based PCs to test, each at most min(n - 1, p) (default: [1])
        pca: Precomputed PCA result; computed from ``data`` when omitted
        gene_statistic: "loading", "cor" or "z" (default: "z")
        transformation: "none" or "abs.value" (default: "none")
        gene_set_statistic: "mean.diff" or "rank.sum" (default: "mean.diff")
        gene_set_test: "parametric", "cor.adj.parametric" or "permutation"
            (default: "cor.adj.parametric")
        nperm: Permutations per PC for the permutation test (default: 9999)
        correlation_scope: "all" or "members", variables averaged for the
            inter-gene correlation of cor.adj.parametric (default: "all")
        rng: Random generator for the permutation test
        seed: Seed for a fresh generator when ``rng`` is not given
        n_jobs: Worker threads for the permutation test (default: 1)
        batch_size: Permutations per vectorized batch (default: 1000)
        config: Optional PCGSEConfig supplying defaults

    Returns:
        PCGSEResult with p_values and statistics (gene sets × PCs)

    Raises:
        MissingDataError: Data contains NaN or infinite values
        InvalidIndexError: PC index out of range, or unknown gene-set member
        DegenerateGeneSetError: Empty or universal gene set
        UnsupportedCombinationError: "loading" with the permutation test
        UnsupportedFormatError: Mapping gene sets with the permutation test
        ZeroVarianceError: A variable is constant
        ValueError: Unknown option value
    """
    config = config if config is not None else PCGSEConfig()

    gene_statistic = GeneStatistic.parse(_pick(gene_statistic, config.gene_statistic))
    transformation = Transformation.parse(_pick(transformation, config.transformation))
    gene_set_statistic = GeneSetStatistic.parse(_pick(gene_set_statistic, config.gene_set_statistic))
    gene_set_test = GeneSetTest.parse(_pick(gene_set_test, config.gene_set_test))
    correlation_scope = CorrelationScope.parse(_pick(correlation_scope, config.correlation_scope))
    pc_indexes = _pick(pc_indexes, config.pc_indexes)
    nperm = _pick(nperm, config.nperm)
    n_jobs = _pick(n_jobs, config.n_jobs)
    batch_size = _pick(batch_size, config.batch_size)

    # --- Validation: nothing heavy happens before this block completes ---
    matrix = DataMatrix.from_any(data)
    pc_indexes = validate_pc_indexes(pc_indexes, matrix.n_observations, matrix.n_variables)
    collection = GeneSetCollection.from_any(gene_sets, matrix.variable_ids)
    validate_gene_set_sizes(collection, gene_set_statistic)

    if gene_set_test is GeneSetTest.PERMUTATION:
        check_permutation_inputs(collection, gene_statistic)
        if isinstance(nperm, bool) or not isinstance(nperm, (int, np.integer)) or nperm < 1:
            raise ValueError(f"nperm must be a positive integer, got {nperm!r}")
        if rng is None:
            rng = np.random.default_rng(_pick(seed, config.seed))

    standardized = matrix.standardized()

    logger.info(
        "PCGSE: %d observations x %d variables, %d gene sets, PCs %s, "
        "gene statistic=%s, transformation=%s, set statistic=%s, test=%s",
        matrix.n_observations, matrix.n_variables, collection.n_sets, list(pc_indexes),
        gene_statistic.value, transformation.value, gene_set_statistic.value,
        gene_set_test.value,
    )

    # --- Pipeline ---
    pca_result = resolve_pca(matrix, pc_indexes, pca, standardized=standardized)
    gene_stats = compute_gene_statistics(
        matrix, pca_result, gene_statistic, transformation, standardized=standardized
    )
    inputs = TestInputs(
        data=matrix,
        standardized=standardized,
        pca=pca_result,
        gene_statistics=gene_stats,
        collection=collection,
        gene_statistic=gene_statistic,
        transformation=transformation,
        gene_set_statistic=gene_set_statistic,
    )

    statistics, p_values = _TEST_RUNNERS[gene_set_test](
        inputs,
        correlation_scope=correlation_scope,
        nperm=nperm,
        rng=rng,
        n_jobs=n_jobs,
        batch_size=batch_size,
    )

    columns = pd.Index([f"PC{pc}" for pc in pc_indexes])
    return PCGSEResult(
        p_values=pd.DataFrame(p_values, index=collection.names, columns=columns),
        statistics=pd.DataFrame(statistics, index=collection.names, columns=columns),
        gene_statistic=gene_statistic,
        transformation=transformation,
        gene_set_statistic=gene_set_statistic,
        gene_set_test=gene_set_test,
        nperm=int(nperm) if gene_set_test is GeneSetTest.PERMUTATION else None,
    )
