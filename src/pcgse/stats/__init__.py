"""
Statistical stages of principal component gene set enrichment.

Exports:
- Gene-level statistics (loading, correlation, Fisher z) and transformations
- Gene-set statistics (standardized mean difference, standardized rank sum)
- Inter-gene correlation estimate for the Camera variance inflation factor
- Significance tests (parametric, correlation-adjusted, permutation)
"""

from .gene_statistics import (
    GeneStatistic,
    Transformation,
    correlate_with_scores,
    fisher_z_transform,
    compute_gene_statistics,
)
from .set_statistics import (
    GeneSetStatistic,
    validate_gene_set_sizes,
    compute_set_statistics,
    mean_diff_statistic,
    rank_sum_statistic,
)
from .inter_gene_correlation import (
    CorrelationScope,
    estimate_inter_gene_correlation,
)
from .significance import (
    GeneSetTest,
    TestInputs,
    parametric_test,
    cor_adjusted_test,
)
from .permutation import (
    PermutationNullResult,
    run_permutation_null,
    permutation_test,
)

__all__ = [
    "GeneStatistic",
    "Transformation",
    "correlate_with_scores",
    "fisher_z_transform",
    "compute_gene_statistics",
    "GeneSetStatistic",
    "validate_gene_set_sizes",
    "compute_set_statistics",
    "mean_diff_statistic",
    "rank_sum_statistic",
    "CorrelationScope",
    "estimate_inter_gene_correlation",
    "GeneSetTest",
    "TestInputs",
    "parametric_test",
    "cor_adjusted_test",
    "PermutationNullResult",
    "run_permutation_null",
    "permutation_test",
]
