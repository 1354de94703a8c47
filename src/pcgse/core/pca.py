"""
PCA provider: correlation-matrix principal components for a DataMatrix.

Either accepts a precomputed :class:`PCAResult` or computes one from the data.
PCA is always performed on the centered and unit-variance scaled matrix, i.e.
on the sample correlation matrix of the variables, so that

    corr(variable_j, PC_k) = loading[j, k] * sqrt(eigenvalue[k])

PC indexes are 1-based throughout (``PC1`` is the first component).

Sign convention:
    Eigenvectors are only defined up to sign. Each component is flipped so
    that its largest-magnitude loading is positive, which makes repeated
    calls on the same data return identical results.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from pcgse.core.datamatrix import DataMatrix
from pcgse.exceptions import InvalidIndexError, MissingDataError

__all__ = ['PCAResult', 'compute_pca', 'max_components', 'resolve_pca', 'validate_pc_indexes']

logger = logging.getLogger(__name__)

# Eigenvalues below this fraction of the total variance count as zero
_ZERO_EIGENVALUE = 1e-10


@dataclass(frozen=True)
class PCAResult:
    """Principal components of a correlation-matrix PCA.

    Attributes:
        scores: Observation scores (n_observations, k)
        loadings: Unit-norm eigenvectors (n_variables, k)
        eigenvalues: Variance of each score column, ``n - 1`` divisor (k,)
        pc_indexes: 1-based component numbers of the k columns. Defaults to
            ``1..k`` when omitted.
    """

    scores: NDArray[np.float64]
    loadings: NDArray[np.float64]
    eigenvalues: NDArray[np.float64]
    pc_indexes: tuple[int, ...] = ()

    def __post_init__(self):
        """Coerce to read-only float arrays and check shape consistency."""
        scores = np.array(self.scores, dtype=np.float64)
        loadings = np.array(self.loadings, dtype=np.float64)
        eigenvalues = np.array(self.eigenvalues, dtype=np.float64).ravel()
        # A single component may be passed as 1-D vectors
        if scores.ndim == 1:
            scores = scores[:, np.newaxis]
        if loadings.ndim == 1:
            loadings = loadings[:, np.newaxis]

        if scores.shape[1] != loadings.shape[1] or eigenvalues.shape[0] != scores.shape[1]:
            raise ValueError(
                f"inconsistent PCA result: scores {scores.shape}, loadings "
                f"{loadings.shape}, eigenvalues {eigenvalues.shape}"
            )

        if not all(np.isfinite(arr).all() for arr in (scores, loadings, eigenvalues)):
            raise MissingDataError("PCA result contains missing or non-finite values")

        pc_indexes = tuple(int(i) for i in self.pc_indexes)
        if not pc_indexes:
            pc_indexes = tuple(range(1, scores.shape[1] + 1))
        if len(pc_indexes) != scores.shape[1]:
            raise ValueError(
                f"pc_indexes has {len(pc_indexes)} entries for {scores.shape[1]} components"
            )

        for arr in (scores, loadings, eigenvalues):
            arr.flags.writeable = False
        object.__setattr__(self, 'scores', scores)
        object.__setattr__(self, 'loadings', loadings)
        object.__setattr__(self, 'eigenvalues', eigenvalues)
        object.__setattr__(self, 'pc_indexes', pc_indexes)

    @property
    def n_components(self) -> int:
        return self.scores.shape[1]

    def select(self, pc_indexes: Sequence[int]) -> PCAResult:
        """
        Restrict to the given 1-based PC indexes, in the given order.

        Raises:
            InvalidIndexError: If an index is not present in this result
        """
        positions = []
        for pc in pc_indexes:
            if pc not in self.pc_indexes:
                raise InvalidIndexError(
                    f"PC{pc} is not available in the supplied PCA result "
                    f"(components: {list(self.pc_indexes)})"
                )
            positions.append(self.pc_indexes.index(pc))
        return PCAResult(
            scores=self.scores[:, positions],
            loadings=self.loadings[:, positions],
            eigenvalues=self.eigenvalues[positions],
            pc_indexes=tuple(pc_indexes),
        )


def max_components(n_observations: int, n_variables: int) -> int:
    """Number of components with nonzero variance a centered matrix can have."""
    return max(min(n_observations - 1, n_variables), 1)


def validate_pc_indexes(
    pc_indexes: Sequence[int],
    n_observations: int,
    n_variables: int,
) -> tuple[int, ...]:
    """
    Check that every PC index lies in ``[1, min(n_observations - 1, n_variables)]``.

    Centering leaves the data with rank at most ``n_observations - 1``, so
    PC ``n_observations`` and beyond have zero variance.

    Returns:
        The indexes as a tuple of ints

    Raises:
        InvalidIndexError: If the list is empty or an index is out of range
            or not an integer
    """
    if isinstance(pc_indexes, (int, np.integer)):
        pc_indexes = [pc_indexes]
    pc_indexes = list(pc_indexes)
    if not pc_indexes:
        raise InvalidIndexError("at least one PC index is required")

    max_pc = max_components(n_observations, n_variables)
    validated = []
    for pc in pc_indexes:
        if isinstance(pc, bool) or not isinstance(pc, (int, np.integer)):
            raise InvalidIndexError(f"PC indexes must be integers, got {pc!r}")
        if not 1 <= pc <= max_pc:
            raise InvalidIndexError(
                f"PC index {pc} out of range, valid range is [1, {max_pc}] "
                f"for {n_observations} observations and {n_variables} variables "
                f"(centered data has rank at most min(n - 1, p))"
            )
        validated.append(int(pc))
    return tuple(validated)


def compute_pca(
    data: DataMatrix,
    n_components: int | None = None,
    standardized: NDArray[np.float64] | None = None,
) -> PCAResult:
    """
    Compute correlation-matrix PCA by SVD of the standardized data.

    Args:
        data: Input matrix (observations × variables)
        n_components: Number of leading components to keep
            (default: min(n_observations - 1, n_variables))
        standardized: Optional precomputed ``data.standardized()``

    Returns:
        PCAResult with components ``1..n_components``

    Raises:
        ZeroVarianceError: If a variable is constant
    """
    n, p = data.shape
    max_pc = max_components(n, p)
    if n_components is None:
        n_components = max_pc
    if not 1 <= n_components <= max_pc:
        raise InvalidIndexError(f"n_components must be in [1, {max_pc}], got {n_components}")

    z = data.standardized() if standardized is None else standardized
    _, s, vt = np.linalg.svd(z, full_matrices=False)
    loadings = vt[:n_components].T
    s = s[:n_components]

    # Deterministic sign: largest |loading| of each component is positive
    pivot = np.argmax(np.abs(loadings), axis=0)
    signs = np.sign(loadings[pivot, np.arange(n_components)])
    signs[signs == 0] = 1.0
    loadings = loadings * signs

    scores = z @ loadings
    eigenvalues = s ** 2 / (n - 1)

    logger.debug(
        "Computed PCA on %d observations x %d variables, %d components, "
        "leading eigenvalue %.3f", n, p, n_components, eigenvalues[0]
    )
    return PCAResult(scores=scores, loadings=loadings, eigenvalues=eigenvalues)


def resolve_pca(
    data: DataMatrix,
    pc_indexes: Sequence[int],
    pca: PCAResult | None = None,
    standardized: NDArray[np.float64] | None = None,
) -> PCAResult:
    """
    Return the PCA result restricted to ``pc_indexes``.

    If ``pca`` is None the components are computed from ``data`` (only as
    many as the largest requested index). Otherwise the supplied result is
    validated against the data dimensions and subset.

    Raises:
        InvalidIndexError: If an index is out of range, missing from ``pca``,
            or names a computed component with zero variance (collinear data)
        ValueError: If ``pca`` does not match the data dimensions
    """
    pc_indexes = validate_pc_indexes(pc_indexes, data.n_observations, data.n_variables)

    if pca is None:
        logger.info("Computing PCA for PCs %s", list(pc_indexes))
        computed = compute_pca(data, n_components=max(pc_indexes), standardized=standardized)
        # Eigenvalues of a correlation matrix sum to p
        null = [
            pc for pc in pc_indexes
            if computed.eigenvalues[pc - 1] <= _ZERO_EIGENVALUE * data.n_variables
        ]
        if null:
            rank = int(np.sum(computed.eigenvalues > _ZERO_EIGENVALUE * data.n_variables))
            raise InvalidIndexError(
                f"PCs {null} have zero variance: the standardized data has rank {rank}"
            )
        return computed.select(pc_indexes)

    if pca.scores.shape[0] != data.n_observations:
        raise ValueError(
            f"PCA scores have {pca.scores.shape[0]} rows but the data has "
            f"{data.n_observations} observations"
        )
    if pca.loadings.shape[0] != data.n_variables:
        raise ValueError(
            f"PCA loadings have {pca.loadings.shape[0]} rows but the data has "
            f"{data.n_variables} variables"
        )
    logger.info("Using supplied PCA result for PCs %s", list(pc_indexes))
    return pca.select(pc_indexes)
