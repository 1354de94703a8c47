"""
Permutation null for gene-set statistics against principal components.

Tests the competitive gene-set statistic against an empirical null obtained
by permuting the sample labels, which for a fixed PCA is the same as
permuting the elements of the PC score vector. Loadings are not recomputed,
so only correlation-derived gene statistics (cor, z) are supported.

Per-permutation work, vectorized over a batch of B permutations:
    1. Permute the standardized PC score vector (B, n)
    2. Correlate with the standardized data: (B, n) @ (n, p) -> (B, p)
    3. Apply the gene statistic and transformation
    4. Aggregate with the membership matrix: (B, p) x (n_sets, p) -> (B, n_sets)
    5. Count null statistics at least as extreme as the observed ones

Two-sided permutation p-value with the +1 correction:

    p = (#{|T*| >= |T_obs|} + 1) / (nperm + 1)

so p is never 0 and the smallest attainable value is 1 / (nperm + 1).

Cost scales as O(nperm × n × p) for the correlations plus
O(nperm × p × n_sets) for the aggregation. Batches are independent; with
``n_jobs > 1`` they run on a thread pool. Every (PC, batch) pair draws from
its own child of a SeedSequence derived from the injected generator, so a
fixed seed gives identical results for any ``n_jobs``.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from pcgse.core.gene_sets import GeneSetCollection
from pcgse.exceptions import UnsupportedCombinationError, UnsupportedFormatError
from pcgse.stats.gene_statistics import GeneStatistic, gene_statistics_from_correlation
from pcgse.stats.set_statistics import SET_STATISTICS, compute_set_statistics
from pcgse.stats.significance import TestInputs

__all__ = [
    'PermutationNullResult',
    'check_permutation_inputs',
    'generate_score_permutations',
    'run_permutation_null',
    'permutation_test',
]

logger = logging.getLogger(__name__)

# Null statistics within this distance of |observed| count as ties
_TIE_TOLERANCE = 1e-10


@dataclass
class PermutationNullResult:
    """Result of the permutation null for all gene sets and PCs.

    Attributes:
        observed: Observed gene-set statistics (n_sets, k)
        p_values: Two-sided permutation p-values (n_sets, k)
        n_exceed: Count of null statistics with |T*| >= |T_obs| (n_sets, k)
        n_permutations: Permutations per PC
        null_mean: Mean of the null statistics (n_sets, k)
        null_std: Standard deviation of the null statistics (n_sets, k)
    """

    observed: NDArray[np.float64]
    p_values: NDArray[np.float64]
    n_exceed: NDArray[np.int64]
    n_permutations: int
    null_mean: NDArray[np.float64]
    null_std: NDArray[np.float64]

    def to_dict(self) -> dict:
        """Serialize to JSON-compatible dict."""
        return {
            "observed": self.observed.tolist(),
            "p_values": self.p_values.tolist(),
            "n_exceed": self.n_exceed.tolist(),
            "n_permutations": self.n_permutations,
            "null_mean": self.null_mean.tolist(),
            "null_std": self.null_std.tolist(),
        }


def check_permutation_inputs(
    collection: GeneSetCollection,
    gene_statistic: GeneStatistic,
) -> None:
    """
    Reject inputs the permutation regime cannot handle.

    Raises:
        UnsupportedCombinationError: If the gene statistic is ``loading``
        UnsupportedFormatError: If the gene sets were not given in matrix form
    """
    if gene_statistic is GeneStatistic.LOADING:
        raise UnsupportedCombinationError(
            "gene statistic 'loading' cannot be used with the permutation test: "
            "loadings are not recomputed for permuted PC scores; use 'cor' or 'z'"
        )
    if not collection.is_matrix_form:
        raise UnsupportedFormatError(
            "the permutation test requires gene sets as a binary membership matrix "
            "(gene sets x variables), got a mapping"
        )


def generate_score_permutations(
    scores: NDArray[np.float64],
    n_permutations: int,
    rng: np.random.Generator,
) -> NDArray[np.float64]:
    """
    Independently permute a score vector ``n_permutations`` times.

    Args:
        scores: PC score vector (n,)
        n_permutations: Number of rows to generate
        rng: NumPy random generator

    Returns:
        Permuted copies (n_permutations, n)
    """
    tiled = np.tile(np.asarray(scores, dtype=np.float64), (n_permutations, 1))
    return rng.permuted(tiled, axis=1)


def _batch_sizes(nperm: int, batch_size: int) -> list[int]:
    n_full, remainder = divmod(nperm, batch_size)
    return [batch_size] * n_full + ([remainder] if remainder else [])


def _run_batch(
    inputs: TestInputs,
    pc_position: int,
    n_permutations: int,
    seed: np.random.SeedSequence,
    observed_abs: NDArray[np.float64],
) -> tuple[int, NDArray[np.int64], NDArray[np.float64], NDArray[np.float64]]:
    """Null statistics for one batch of permutations of one PC."""
    rng = np.random.default_rng(seed)
    scores = inputs.pca.scores[:, pc_position]
    scores = (scores - scores.mean()) / scores.std(ddof=1)

    n = inputs.standardized.shape[0]
    permuted = generate_score_permutations(scores, n_permutations, rng)
    r = np.clip(permuted @ inputs.standardized / (n - 1), -1.0, 1.0)
    gene_stats = gene_statistics_from_correlation(
        r, inputs.gene_statistic, inputs.transformation
    )
    null = SET_STATISTICS[inputs.gene_set_statistic](
        gene_stats, inputs.collection.membership, 0.0
    )

    n_exceed = np.sum(np.abs(null) >= observed_abs - _TIE_TOLERANCE, axis=0)
    return pc_position, n_exceed.astype(np.int64), null.sum(axis=0), (null ** 2).sum(axis=0)


def run_permutation_null(
    inputs: TestInputs,
    nperm: int = 9999,
    rng: np.random.Generator | None = None,
    n_jobs: int = 1,
    batch_size: int = 1000,
) -> PermutationNullResult:
    """
    Permutation null for every gene set and every PC in ``inputs``.

    Args:
        inputs: Shared test inputs (gene statistic must be cor or z and the
            gene sets must be in matrix form)
        nperm: Number of permutations per PC
        rng: NumPy random generator (default: fresh unseeded generator)
        n_jobs: Worker threads; 1 runs batches sequentially
        batch_size: Permutations evaluated per vectorized batch

    Returns:
        PermutationNullResult with observed statistics and p-values

    Raises:
        ValueError: If nperm, n_jobs or batch_size is not a positive integer
    """
    check_permutation_inputs(inputs.collection, inputs.gene_statistic)
    for name, value in (("nperm", nperm), ("n_jobs", n_jobs), ("batch_size", batch_size)):
        if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 1:
            raise ValueError(f"{name} must be a positive integer, got {value!r}")

    if rng is None:
        rng = np.random.default_rng()

    observed = compute_set_statistics(
        inputs.gene_statistics, inputs.collection, inputs.gene_set_statistic
    )
    n_sets, k = observed.shape
    sizes = _batch_sizes(int(nperm), int(batch_size))

    # One child seed per (PC, batch), fixed before any work is scheduled
    root = np.random.SeedSequence(int(rng.integers(0, 2 ** 63 - 1)))
    children = root.spawn(k * len(sizes))
    tasks = [
        (j, size, children[j * len(sizes) + b])
        for j in range(k)
        for b, size in enumerate(sizes)
    ]

    logger.info(
        "Permutation test: %d permutations x %d PCs, %d gene sets, %d batches, n_jobs=%d",
        nperm, k, n_sets, len(tasks), n_jobs,
    )

    n_exceed = np.zeros((n_sets, k), dtype=np.int64)
    null_sum = np.zeros((n_sets, k))
    null_sumsq = np.zeros((n_sets, k))
    observed_abs = np.abs(observed)

    def _accumulate(result):
        j, exceed, s, ss = result
        n_exceed[:, j] += exceed
        null_sum[:, j] += s
        null_sumsq[:, j] += ss

    if n_jobs == 1:
        for j, size, seed in tasks:
            _accumulate(_run_batch(inputs, j, size, seed, observed_abs[:, j]))
    else:
        with ThreadPoolExecutor(max_workers=n_jobs) as executor:
            futures = [
                executor.submit(_run_batch, inputs, j, size, seed, observed_abs[:, j])
                for j, size, seed in tasks
            ]
            for future in as_completed(futures):
                _accumulate(future.result())

    p_values = (n_exceed + 1.0) / (nperm + 1.0)
    null_mean = null_sum / nperm
    null_var = np.maximum(null_sumsq / nperm - null_mean ** 2, 0.0)
    if nperm > 1:
        null_var *= nperm / (nperm - 1)

    logger.debug("Minimum permutation p-value: %.6f", float(p_values.min()))

    return PermutationNullResult(
        observed=observed,
        p_values=np.clip(p_values, 0.0, 1.0),
        n_exceed=n_exceed,
        n_permutations=int(nperm),
        null_mean=null_mean,
        null_std=np.sqrt(null_var),
    )


def permutation_test(
    inputs: TestInputs,
    nperm: int = 9999,
    rng: np.random.Generator | None = None,
    n_jobs: int = 1,
    batch_size: int = 1000,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Permutation regime with the same ``(statistics, p_values)`` contract as
    the parametric tests.
    """
    result = run_permutation_null(
        inputs, nperm=nperm, rng=rng, n_jobs=n_jobs, batch_size=batch_size
    )
    return result.observed, result.p_values
