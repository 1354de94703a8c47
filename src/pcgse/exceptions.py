"""
Error taxonomy for principal component gene set enrichment.

Every error is raised during input validation, before PCA or any test
statistic is computed, and aborts the whole call. All classes derive from
``ValueError`` through :class:`PCGSEError` so callers that already catch
``ValueError`` keep working.
"""

from __future__ import annotations

__all__ = [
    "PCGSEError",
    "InvalidIndexError",
    "DegenerateGeneSetError",
    "UnsupportedCombinationError",
    "UnsupportedFormatError",
    "MissingDataError",
    "ZeroVarianceError",
]


class PCGSEError(ValueError):
    """Base class for all pcgse validation errors."""


class InvalidIndexError(PCGSEError):
    """A PC index or gene-set member does not reference valid data."""


class DegenerateGeneSetError(PCGSEError):
    """A gene set is empty or contains every variable."""


class UnsupportedCombinationError(PCGSEError):
    """The requested gene statistic cannot be used with the requested test."""


class UnsupportedFormatError(PCGSEError):
    """The gene-set collection format is not supported by the requested test."""


class MissingDataError(PCGSEError):
    """The data matrix contains missing or non-finite values."""


class ZeroVarianceError(PCGSEError):
    """A variable or PC score vector is constant and cannot be standardized."""
