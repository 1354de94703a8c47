"""
PCGSE - Principal Component Gene Set Enrichment

Competitive enrichment of predefined gene sets against the principal
components of an experimental data matrix: PCA-derived gene-level scores are
aggregated per gene set and tested against the complementary set of
variables with a parametric, correlation-adjusted parametric, or permutation
null.
"""

__version__ = "0.1.0"

from pcgse.analysis import PCGSEResult, pcgse
from pcgse.config import PCGSEConfig, load_config
from pcgse.core import DataMatrix, GeneSetCollection, PCAResult, compute_pca
from pcgse.exceptions import (
    DegenerateGeneSetError,
    InvalidIndexError,
    MissingDataError,
    PCGSEError,
    UnsupportedCombinationError,
    UnsupportedFormatError,
    ZeroVarianceError,
)
from pcgse.stats import (
    CorrelationScope,
    GeneSetStatistic,
    GeneSetTest,
    GeneStatistic,
    Transformation,
)

__all__ = [
    "pcgse",
    "PCGSEResult",
    "PCGSEConfig",
    "load_config",
    "DataMatrix",
    "GeneSetCollection",
    "PCAResult",
    "compute_pca",
    "GeneStatistic",
    "Transformation",
    "GeneSetStatistic",
    "GeneSetTest",
    "CorrelationScope",
    "PCGSEError",
    "InvalidIndexError",
    "DegenerateGeneSetError",
    "UnsupportedCombinationError",
    "UnsupportedFormatError",
    "MissingDataError",
    "ZeroVarianceError",
]
