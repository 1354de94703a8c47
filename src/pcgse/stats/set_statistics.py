"""
Gene-set statistics: competitive aggregation of gene-level statistics.

For each gene set S and statistic vector x (one PC), variables are split into
members S (size m1) and non-members S' (size m2 = p - m1).

Standardized mean difference (U_D):

    T = (mean(x_S) - mean(x_S')) / sqrt(s2_pooled * (VIF / m1 + 1 / m2))

where s2_pooled is the equal-variance pooled variance on m1 + m2 - 2 df and
VIF = 1 + (m1 - 1) * rho_bar (Camera variance inflation factor; VIF = 1
gives the ordinary two-sample t statistic).

Standardized rank sum (U_W):

    Z = (W - m1 (p + 1) / 2) / sqrt(sigma2)

where W is the sum of member ranks of x among all p variables (average
ranks for ties). sigma2 is the correlation-adjusted Wilcoxon variance of
Wu & Smyth (2012):

    sigma2 = [asin(1) m1 m2 + asin(1/2) m1 m2 (m2 - 1)
              + asin(rho/2) m1 (m1 - 1) m2 (m2 - 1)
              + asin((rho + 1)/2) m1 (m1 - 1) m2] / (2 pi)

which reduces to the familiar m1 m2 (p + 1) / 12 for rho = 0 or m1 = 1,
multiplied by the tie correction 1 - sum(t^3 - t) / (p^3 - p).

All functions operate on a batch of statistic vectors (B, p) against the
full membership matrix (n_sets, p), so the permutation test can evaluate
many permutations with two matrix products.

Degenerate cases:
    Zero pooled variance (or all-tied ranks) gives an undefined statistic;
    it is reported as 0.0 and logged as a warning, never as NaN/Inf.

References:
    Wu & Smyth (2012) "Camera: a competitive gene set test accounting for
    inter-gene correlation", NAR 40(17):e133.
    Frost, Li & Moore (2015) "Principal component gene set enrichment
    (PCGSE)", BioData Mining 8:25.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

import numpy as np
from numpy.typing import NDArray
from scipy import stats as scipy_stats

from pcgse.core.gene_sets import GeneSetCollection
from pcgse.exceptions import DegenerateGeneSetError

__all__ = [
    'GeneSetStatistic',
    'validate_gene_set_sizes',
    'set_means',
    'batch_mean_diff',
    'batch_rank_sum',
    'mean_diff_statistic',
    'rank_sum_statistic',
    'compute_set_statistics',
]

logger = logging.getLogger(__name__)

_EPS = 1e-12


class GeneSetStatistic(Enum):
    """Aggregation of gene-level statistics into one score per gene set.

    - MEAN_DIFF: Standardized difference of member and non-member means.
                 Parametric reference: Student t.
    - RANK_SUM: Standardized Wilcoxon rank sum of members.
                Reference: standard normal.
    """

    MEAN_DIFF = "mean.diff"
    RANK_SUM = "rank.sum"

    @classmethod
    def parse(cls, value: GeneSetStatistic | str) -> GeneSetStatistic:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower().replace("_", ".").replace("-", ".")
            for member in cls:
                if member.value == key:
                    return member
        raise ValueError(f"Unknown GeneSetStatistic '{value}'. Use one of {[m.value for m in cls]}")


def validate_gene_set_sizes(
    collection: GeneSetCollection,
    gene_set_statistic: GeneSetStatistic | str = GeneSetStatistic.MEAN_DIFF,
) -> None:
    """
    Reject gene sets whose competitive comparison is undefined.

    Raises:
        DegenerateGeneSetError: If a set is empty, contains every variable,
            or (for mean.diff) the variables are too few for a pooled
            variance with at least one degree of freedom
    """
    gene_set_statistic = GeneSetStatistic.parse(gene_set_statistic)
    if collection.n_sets == 0:
        raise DegenerateGeneSetError("gene-set collection is empty")

    sizes = collection.sizes
    p = collection.n_variables

    empty = np.flatnonzero(sizes == 0)
    if empty.size:
        names = collection.names[empty].tolist()
        raise DegenerateGeneSetError(f"gene sets with no members: {names[:5]}")

    universal = np.flatnonzero(sizes == p)
    if universal.size:
        names = collection.names[universal].tolist()
        raise DegenerateGeneSetError(
            f"gene sets containing all {p} variables have no complement: {names[:5]}"
        )

    if gene_set_statistic is GeneSetStatistic.MEAN_DIFF and p < 3:
        raise DegenerateGeneSetError(
            f"mean.diff needs at least 3 variables for a pooled variance, got {p}"
        )


def set_means(
    values: NDArray[np.float64],
    membership: NDArray[np.bool_],
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Member and non-member means of each gene set.

    Args:
        values: Statistic vectors (B, p)
        membership: Boolean membership (n_sets, p)

    Returns:
        (mean_in, mean_out), each (B, n_sets)
    """
    values = np.atleast_2d(values)
    m = membership.astype(np.float64)
    m1 = m.sum(axis=1)
    m2 = membership.shape[1] - m1
    sum_in = values @ m.T
    total = values.sum(axis=1, keepdims=True)
    return sum_in / m1, (total - sum_in) / m2


def _warn_degenerate(n_degenerate: int, what: str) -> None:
    if n_degenerate:
        logger.warning(
            "%d gene-set statistics had zero %s; reported as 0.0", n_degenerate, what
        )


def batch_mean_diff(
    values: NDArray[np.float64],
    membership: NDArray[np.bool_],
    rho: float | NDArray[np.float64] = 0.0,
) -> NDArray[np.float64]:
    """
    Standardized mean difference (U_D) for a batch of statistic vectors.

    Args:
        values: Statistic vectors (B, p)
        membership: Boolean membership (n_sets, p)
        rho: Average inter-gene correlation, scalar or per set (n_sets,).
            Zero gives the unadjusted pooled two-sample t statistic.

    Returns:
        Statistics (B, n_sets)
    """
    values = np.atleast_2d(np.asarray(values, dtype=np.float64))
    # Row-centering leaves differences and variances unchanged
    values = values - values.mean(axis=1, keepdims=True)

    m = membership.astype(np.float64)
    m1 = m.sum(axis=1)
    m2 = membership.shape[1] - m1
    df = m1 + m2 - 2

    mean_in, mean_out = set_means(values, membership)
    sumsq_in = (values ** 2) @ m.T
    total_sq = (values ** 2).sum(axis=1, keepdims=True)

    ss_in = sumsq_in - m1 * mean_in ** 2
    ss_out = (total_sq - sumsq_in) - m2 * mean_out ** 2
    s2_pooled = np.maximum(ss_in + ss_out, 0.0) / df

    vif = 1.0 + (m1 - 1.0) * np.asarray(rho, dtype=np.float64)
    se = np.sqrt(s2_pooled * (vif / m1 + 1.0 / m2))

    degenerate = se < _EPS
    _warn_degenerate(int(degenerate.sum()), "pooled variance")
    return np.where(degenerate, 0.0, (mean_in - mean_out) / np.where(degenerate, 1.0, se))


def _tie_correction(values: NDArray[np.float64]) -> NDArray[np.float64]:
    """Per-row factor 1 - sum(t^3 - t) / (p^3 - p) over tie groups."""
    p = values.shape[1]
    factor = np.ones(values.shape[0])
    if p < 2:
        return factor
    ordered = np.sort(values, axis=1)
    has_ties = (ordered[:, 1:] == ordered[:, :-1]).any(axis=1)
    for row in np.flatnonzero(has_ties):
        _, counts = np.unique(ordered[row], return_counts=True)
        counts = counts.astype(np.float64)
        factor[row] = 1.0 - np.sum(counts ** 3 - counts) / (p ** 3 - p)
    return factor


def rank_sum_variance(
    m1: NDArray[np.float64],
    m2: NDArray[np.float64],
    rho: float | NDArray[np.float64] = 0.0,
) -> NDArray[np.float64]:
    """Correlation-adjusted variance of the Wilcoxon rank sum (no ties)."""
    rho = np.asarray(rho, dtype=np.float64)
    sigma2 = (
        np.arcsin(1.0) * m1 * m2
        + np.arcsin(0.5) * m1 * m2 * (m2 - 1)
        + np.arcsin(rho / 2.0) * m1 * (m1 - 1) * m2 * (m2 - 1)
        + np.arcsin((rho + 1.0) / 2.0) * m1 * (m1 - 1) * m2
    )
    return sigma2 / (2.0 * np.pi)


def batch_rank_sum(
    values: NDArray[np.float64],
    membership: NDArray[np.bool_],
    rho: float | NDArray[np.float64] = 0.0,
) -> NDArray[np.float64]:
    """
    Standardized Wilcoxon rank sum (U_W) for a batch of statistic vectors.

    Args:
        values: Statistic vectors (B, p)
        membership: Boolean membership (n_sets, p)
        rho: Average inter-gene correlation, scalar or per set (n_sets,).

    Returns:
        Statistics (B, n_sets), positive when members rank high
    """
    values = np.atleast_2d(np.asarray(values, dtype=np.float64))
    p = values.shape[1]
    ranks = scipy_stats.rankdata(values, axis=1)

    m = membership.astype(np.float64)
    m1 = m.sum(axis=1)
    m2 = p - m1

    w = ranks @ m.T
    mu = m1 * (p + 1) / 2.0
    sigma2 = rank_sum_variance(m1, m2, rho)[np.newaxis, :] * _tie_correction(values)[:, np.newaxis]
    sd = np.sqrt(np.maximum(sigma2, 0.0))

    degenerate = sd < _EPS
    _warn_degenerate(int(degenerate.sum()), "rank-sum variance")
    return np.where(degenerate, 0.0, (w - mu) / np.where(degenerate, 1.0, sd))


def mean_diff_statistic(
    values: NDArray[np.float64],
    membership: NDArray[np.bool_],
    rho: float | NDArray[np.float64] = 0.0,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    U_D for a single statistic vector.

    Returns:
        (statistics, df), each (n_sets,); df = m1 + m2 - 2
    """
    stat = batch_mean_diff(np.asarray(values)[np.newaxis, :], membership, rho)[0]
    df = np.full(membership.shape[0], membership.shape[1] - 2, dtype=np.float64)
    return stat, df


def rank_sum_statistic(
    values: NDArray[np.float64],
    membership: NDArray[np.bool_],
    rho: float | NDArray[np.float64] = 0.0,
) -> NDArray[np.float64]:
    """U_W for a single statistic vector, (n_sets,)."""
    return batch_rank_sum(np.asarray(values)[np.newaxis, :], membership, rho)[0]


BatchStatistic = Callable[
    [NDArray[np.float64], NDArray[np.bool_], "float | NDArray[np.float64]"],
    NDArray[np.float64],
]

SET_STATISTICS: dict[GeneSetStatistic, BatchStatistic] = {
    GeneSetStatistic.MEAN_DIFF: batch_mean_diff,
    GeneSetStatistic.RANK_SUM: batch_rank_sum,
}


def compute_set_statistics(
    gene_statistics: NDArray[np.float64],
    collection: GeneSetCollection,
    gene_set_statistic: GeneSetStatistic | str = GeneSetStatistic.MEAN_DIFF,
    rho: float | NDArray[np.float64] = 0.0,
) -> NDArray[np.float64]:
    """
    Gene-set statistics for every set and every PC column.

    Args:
        gene_statistics: Gene-level statistics (n_variables, k)
        collection: Gene sets over the same variables
        gene_set_statistic: mean.diff or rank.sum
        rho: Average inter-gene correlation (scalar or per set)

    Returns:
        Statistics (n_sets, k)
    """
    gene_set_statistic = GeneSetStatistic.parse(gene_set_statistic)
    gene_statistics = np.asarray(gene_statistics, dtype=np.float64)
    if gene_statistics.ndim == 1:
        gene_statistics = gene_statistics[:, np.newaxis]
    if gene_statistics.shape[0] != collection.n_variables:
        raise ValueError(
            f"gene statistics cover {gene_statistics.shape[0]} variables but the "
            f"gene sets cover {collection.n_variables}"
        )
    fn = SET_STATISTICS[gene_set_statistic]
    # Each PC column is one row of the batch
    return fn(gene_statistics.T, collection.membership, rho).T
