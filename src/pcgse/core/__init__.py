"""
Core data structures for principal component gene set enrichment.

1. DataMatrix: complete observations × variables matrix with identifiers
2. GeneSetCollection: gene sets as a boolean membership matrix
3. PCAResult / compute_pca / resolve_pca: correlation-matrix PCA provider

Examples:
    >>> from pcgse.core import DataMatrix, GeneSetCollection, resolve_pca
    >>>
    >>> matrix = DataMatrix.from_any(frame)
    >>> sets = GeneSetCollection.from_any({"s1": [0, 1, 2]}, matrix.variable_ids)
    >>> pca = resolve_pca(matrix, pc_indexes=[1, 2])
"""

from pcgse.core.datamatrix import DataMatrix
from pcgse.core.gene_sets import GeneSetCollection
from pcgse.core.pca import (
    PCAResult,
    compute_pca,
    max_components,
    resolve_pca,
    validate_pc_indexes,
)

__all__ = [
    'DataMatrix',
    'GeneSetCollection',
    'PCAResult',
    'compute_pca',
    'max_components',
    'resolve_pca',
    'validate_pc_indexes',
]
