"""
Gene-level statistics: per-variable association with each principal component.

Provides:
- Pearson correlation of every variable with PC score vectors (vectorized)
- Fisher's Z-transformation with a deterministic cap at |r| = 1
- Strategy tables for the gene statistic and its transformation

The three gene statistics:

    loading : eigenvector coefficient of the variable
    cor     : Pearson r between the variable and the PC scores
    z       : Fisher z of r, 0.5 * ln((1 + r) / (1 - r))

For a correlation-matrix PCA, r = loading * sqrt(eigenvalue), so ``loading``
and ``cor`` always agree in sign and rank order within a component.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

import numpy as np
from numpy.typing import NDArray

from pcgse.core.datamatrix import DataMatrix
from pcgse.core.pca import PCAResult
from pcgse.exceptions import ZeroVarianceError

__all__ = [
    'GeneStatistic',
    'Transformation',
    'correlate_with_scores',
    'fisher_z_transform',
    'compute_gene_statistics',
    'gene_statistics_from_correlation',
]

logger = logging.getLogger(__name__)

# Largest |r| passed to the Fisher transform; z(1 - 1e-7) ~ 8.4
FISHER_Z_MAX_ABS_R = 1.0 - 1e-7


class GeneStatistic(Enum):
    """Per-variable statistic computed for each PC.

    - LOADING: Raw eigenvector coefficient. Not recomputed under
               permutation, so it cannot be used with the permutation test.
    - CORRELATION: Pearson correlation with the PC scores.
    - FISHER_Z: Variance-stabilized correlation (Fisher z).
    """

    LOADING = "loading"
    CORRELATION = "cor"
    FISHER_Z = "z"

    @classmethod
    def parse(cls, value: GeneStatistic | str) -> GeneStatistic:
        return _parse_option(cls, value, _GENE_STATISTIC_ALIASES)


class Transformation(Enum):
    """Elementwise transformation applied after the gene statistic.

    - NONE: identity, keeps direction of association
    - ABS_VALUE: absolute value, direction-agnostic
    """

    NONE = "none"
    ABS_VALUE = "abs.value"

    @classmethod
    def parse(cls, value: Transformation | str) -> Transformation:
        return _parse_option(cls, value, _TRANSFORMATION_ALIASES)


_GENE_STATISTIC_ALIASES = {
    "correlation": GeneStatistic.CORRELATION,
    "fisher-z": GeneStatistic.FISHER_Z,
    "fisher_z": GeneStatistic.FISHER_Z,
}

_TRANSFORMATION_ALIASES = {
    "abs": Transformation.ABS_VALUE,
    "abs_value": Transformation.ABS_VALUE,
    "identity": Transformation.NONE,
}


def _parse_option(enum_cls: type[Enum], value, aliases: dict) -> Enum:
    """Resolve an enum member from itself, its value, or a known alias."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        key = value.strip().lower()
        if key in aliases:
            return aliases[key]
        for member in enum_cls:
            if member.value == key:
                return member
    valid = [m.value for m in enum_cls]
    raise ValueError(f"Unknown {enum_cls.__name__} '{value}'. Use one of {valid}")


def correlate_with_scores(
    standardized: NDArray[np.float64],
    scores: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Pearson correlation of each variable with each score vector.

    Args:
        standardized: Centered, unit-variance (ddof=1) data (n, p)
        scores: Score matrix (n, k)

    Returns:
        Correlation matrix (p, k)

    Raises:
        ZeroVarianceError: If a score column is constant
    """
    n = standardized.shape[0]
    centered = scores - scores.mean(axis=0)
    std = centered.std(axis=0, ddof=1)
    if np.any(std < 1e-12):
        raise ZeroVarianceError("PC score vector has zero variance; correlation is undefined")
    r = standardized.T @ (centered / std) / (n - 1)
    return np.clip(r, -1.0, 1.0)


def fisher_z_transform(r: NDArray[np.float64] | float) -> NDArray[np.float64]:
    """
    Fisher's Z-transformation: 0.5 * ln((1 + r) / (1 - r)) = arctanh(r).

    Values with |r| = 1 (perfect correlation) are capped at
    ``FISHER_Z_MAX_ABS_R`` so the result is always finite; a warning
    reports how many values were capped.

    Args:
        r: Pearson correlation coefficient(s)

    Returns:
        Fisher Z-transformed value(s)
    """
    r = np.asarray(r, dtype=np.float64)
    n_capped = int(np.sum(np.abs(r) > FISHER_Z_MAX_ABS_R))
    if n_capped:
        logger.warning(
            "Capped %d correlations with |r| >= %.7f before the Fisher z transform",
            n_capped, FISHER_Z_MAX_ABS_R,
        )
        r = np.clip(r, -FISHER_Z_MAX_ABS_R, FISHER_Z_MAX_ABS_R)
    return 0.5 * np.log((1.0 + r) / (1.0 - r))


_TRANSFORMS: dict[Transformation, Callable[[NDArray[np.float64]], NDArray[np.float64]]] = {
    Transformation.NONE: lambda x: x,
    Transformation.ABS_VALUE: np.abs,
}

_FROM_CORRELATION: dict[GeneStatistic, Callable[[NDArray[np.float64]], NDArray[np.float64]]] = {
    GeneStatistic.CORRELATION: lambda r: r,
    GeneStatistic.FISHER_Z: fisher_z_transform,
}


def gene_statistics_from_correlation(
    r: NDArray[np.float64],
    gene_statistic: GeneStatistic,
    transformation: Transformation,
) -> NDArray[np.float64]:
    """
    Turn correlations into transformed gene-level statistics.

    Shared by the observed computation and the permutation loop, where
    correlations are recomputed for every permuted score vector.
    """
    if gene_statistic not in _FROM_CORRELATION:
        raise ValueError(f"{gene_statistic.value} is not derived from correlations")
    return _TRANSFORMS[transformation](_FROM_CORRELATION[gene_statistic](r))


def compute_gene_statistics(
    data: DataMatrix,
    pca: PCAResult,
    gene_statistic: GeneStatistic | str = GeneStatistic.FISHER_Z,
    transformation: Transformation | str = Transformation.NONE,
    standardized: NDArray[np.float64] | None = None,
) -> NDArray[np.float64]:
    """
    Compute gene-level statistics for every variable and every PC in ``pca``.

    Args:
        data: Input matrix (observations × variables)
        pca: PCA result already restricted to the PCs of interest
        gene_statistic: loading, cor or z
        transformation: none or abs.value
        standardized: Optional precomputed ``data.standardized()``

    Returns:
        Matrix (n_variables, n_components)
    """
    gene_statistic = GeneStatistic.parse(gene_statistic)
    transformation = Transformation.parse(transformation)

    if gene_statistic is GeneStatistic.LOADING:
        values = np.array(pca.loadings, dtype=np.float64)
        return _TRANSFORMS[transformation](values)

    if standardized is None:
        standardized = data.standardized()
    r = correlate_with_scores(standardized, pca.scores)
    logger.debug(
        "Gene-level %s statistics for PCs %s (max |r| = %.3f)",
        gene_statistic.value, list(pca.pc_indexes), float(np.max(np.abs(r))),
    )
    return gene_statistics_from_correlation(r, gene_statistic, transformation)
