"""
Average inter-gene correlation for the correlation-adjusted test.

The gene-level statistics of correlated variables are not independent, so the
variance of a gene-set mean is inflated by the Camera factor

    VIF = 1 + (m1 - 1) * rho_bar

where rho_bar is the average pairwise correlation among variables. Two
estimates of rho_bar are supported:

- ``"all"``: mean off-diagonal entry of the full variable correlation matrix,
  one value shared by every gene set.
- ``"members"``: mean off-diagonal entry among each set's own members
  (the Camera convention), one value per gene set.

Both are floored at 0: a negative average correlation would deflate the
variance, and the correction only ever widens the null.
"""

from __future__ import annotations

import logging
from enum import Enum

import numpy as np
from numpy.typing import NDArray

from pcgse.core.datamatrix import DataMatrix
from pcgse.core.gene_sets import GeneSetCollection

__all__ = [
    'CorrelationScope',
    'mean_off_diagonal',
    'estimate_inter_gene_correlation',
]

logger = logging.getLogger(__name__)


class CorrelationScope(Enum):
    """Which variables enter the average correlation."""

    ALL = "all"
    MEMBERS = "members"

    @classmethod
    def parse(cls, value: CorrelationScope | str) -> CorrelationScope:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for member in cls:
                if member.value == value.strip().lower():
                    return member
        raise ValueError(f"Unknown CorrelationScope '{value}'. Use one of {[m.value for m in cls]}")


def mean_off_diagonal(corr_matrix: NDArray[np.float64]) -> float:
    """
    Mean off-diagonal entry of a k × k correlation matrix.

    Sum of all entries minus the diagonal, divided by the k*(k-1) off-diagonal
    entries. Returns 0.0 for k < 2.
    """
    k = corr_matrix.shape[0]
    if k < 2:
        return 0.0
    return float((corr_matrix.sum() - np.trace(corr_matrix)) / (k * (k - 1)))


def estimate_inter_gene_correlation(
    data: DataMatrix,
    collection: GeneSetCollection,
    scope: CorrelationScope | str = CorrelationScope.ALL,
    standardized: NDArray[np.float64] | None = None,
) -> NDArray[np.float64]:
    """
    Estimate the average pairwise correlation used in the VIF.

    Uses the raw data matrix (not gene-level statistics) so the estimate does
    not depend on the PC being tested.

    Args:
        data: Input matrix (observations × variables)
        collection: Gene sets over the variables of ``data``
        scope: ``"all"`` or ``"members"``
        standardized: Optional precomputed ``data.standardized()``

    Returns:
        rho_bar per gene set (n_sets,), floored at 0.0. With scope ``"all"``
        every entry holds the same value.
    """
    scope = CorrelationScope.parse(scope)
    if standardized is None:
        standardized = data.standardized()
    n = standardized.shape[0]

    if scope is CorrelationScope.ALL:
        p = standardized.shape[1]
        if p < 2:
            rho = 0.0
        else:
            # sum_ij r_ij = ||sum of standardized columns||^2 / (n - 1)
            column_sum = standardized.sum(axis=1)
            total = float(column_sum @ column_sum) / (n - 1)
            rho = (total - p) / (p * (p - 1))
        logger.info("Average inter-gene correlation over %d variables: %.4f", p, rho)
        return np.full(collection.n_sets, max(rho, 0.0))

    rho = np.zeros(collection.n_sets)
    for i in range(collection.n_sets):
        members = collection.members(i)
        if members.size < 2:
            continue
        block = standardized[:, members]
        rho[i] = mean_off_diagonal(block.T @ block / (n - 1))
    logger.info(
        "Average within-set correlation: median %.4f, range [%.4f, %.4f]",
        float(np.median(rho)), float(rho.min()), float(rho.max()),
    )
    return np.maximum(rho, 0.0)
