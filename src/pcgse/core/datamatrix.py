"""
Core data structure for the observations × variables input matrix.

DataMatrix couples the numeric measurements with observation and variable
identifiers and enforces the preconditions every downstream stage relies on:
a complete, finite, two-dimensional matrix.

Biological Context:
    Unlike the genes × samples layout common in expression tooling, the
    matrix here follows the PCA convention:
    - Rows = observations (samples, patients, cell lines)
    - Columns = variables (genes, proteins, transcripts)

    PCA is performed on the correlation matrix of the variables, so the
    matrix is centered and scaled to unit variance before decomposition.

Engineering Design:
    - Immutable: the stored array is a read-only copy
    - Validated: constructor checks shape, completeness and id uniqueness
    - The standardized view is computed on demand and never cached on
      the instance

Examples:
    >>> import numpy as np
    >>> from pcgse.core.datamatrix import DataMatrix
    >>>
    >>> matrix = DataMatrix.from_any(np.random.default_rng(0).normal(size=(20, 5)))
    >>> matrix.shape
    (20, 5)
    >>> z = matrix.standardized()
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from pcgse.exceptions import MissingDataError, ZeroVarianceError

__all__ = ['DataMatrix']


class DataMatrix:
    """
    Immutable container for an observations × variables data matrix.

    Attributes:
        data: Numeric matrix (observations × variables), read-only float64
        observation_ids: Row identifiers
        variable_ids: Column identifiers (gene ids)

    Shape Invariants:
        - data.shape[0] == len(observation_ids)
        - data.shape[1] == len(variable_ids)
        - all values finite
    """

    def __init__(
        self,
        data: np.ndarray,
        observation_ids: pd.Index,
        variable_ids: pd.Index,
    ):
        """
        Initialize DataMatrix with validation.

        Args:
            data: Numeric matrix (observations × variables)
            observation_ids: Row identifiers
            variable_ids: Column identifiers, must be unique

        Raises:
            TypeError: If data or ids have the wrong type
            ValueError: If shapes are inconsistent or ids are duplicated
            MissingDataError: If any value is NaN or infinite
        """
        if not isinstance(data, np.ndarray):
            raise TypeError(f"data must be np.ndarray, got {type(data)}")
        if not isinstance(observation_ids, pd.Index):
            raise TypeError(f"observation_ids must be pd.Index, got {type(observation_ids)}")
        if not isinstance(variable_ids, pd.Index):
            raise TypeError(f"variable_ids must be pd.Index, got {type(variable_ids)}")

        if data.ndim != 2:
            raise ValueError(f"data must be 2D, got shape {data.shape}")

        n_observations, n_variables = data.shape

        if n_observations < 2:
            raise ValueError(f"data must have at least 2 observations, got {n_observations}")
        if n_variables < 1:
            raise ValueError("data must have at least 1 variable")
        if len(observation_ids) != n_observations:
            raise ValueError(
                f"observation_ids length ({len(observation_ids)}) must match data rows ({n_observations})"
            )
        if len(variable_ids) != n_variables:
            raise ValueError(
                f"variable_ids length ({len(variable_ids)}) must match data columns ({n_variables})"
            )
        if not variable_ids.is_unique:
            dupes = variable_ids[variable_ids.duplicated()].unique().tolist()
            raise ValueError(f"variable_ids must be unique, duplicated: {dupes[:5]}")

        try:
            values = np.array(data, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise TypeError(f"data must be numeric: {e}") from e

        finite = np.isfinite(values)
        if not finite.all():
            n_bad = int((~finite).sum())
            bad_cols = variable_ids[~finite.all(axis=0)].tolist()
            raise MissingDataError(
                f"data contains {n_bad} missing or non-finite values "
                f"(variables: {bad_cols[:5]}); the data matrix must be complete"
            )

        values.flags.writeable = False
        self._data = values
        self._observation_ids = observation_ids
        self._variable_ids = variable_ids

    @classmethod
    def from_any(cls, data: DataMatrix | pd.DataFrame | np.ndarray) -> DataMatrix:
        """
        Coerce a DataFrame or array into a DataMatrix.

        DataFrames keep their index and columns as observation and variable ids.
        Arrays get positional ids ``obs_<i>`` and ``var_<j>``.
        """
        if isinstance(data, DataMatrix):
            return data
        if isinstance(data, pd.DataFrame):
            return cls(
                data=data.to_numpy(dtype=np.float64, na_value=np.nan),
                observation_ids=pd.Index(data.index),
                variable_ids=pd.Index(data.columns),
            )
        array = np.asarray(data)
        if array.ndim != 2:
            raise ValueError(f"data must be 2D, got shape {array.shape}")
        return cls(
            data=array,
            observation_ids=pd.Index([f"obs_{i}" for i in range(array.shape[0])]),
            variable_ids=pd.Index([f"var_{j}" for j in range(array.shape[1])]),
        )

    @property
    def data(self) -> np.ndarray:
        """Data matrix (observations × variables)."""
        return self._data

    @property
    def observation_ids(self) -> pd.Index:
        """Row identifiers."""
        return self._observation_ids

    @property
    def variable_ids(self) -> pd.Index:
        """Column identifiers."""
        return self._variable_ids

    @property
    def shape(self) -> tuple[int, int]:
        """Matrix dimensions (n_observations, n_variables)."""
        return self._data.shape

    @property
    def n_observations(self) -> int:
        return self._data.shape[0]

    @property
    def n_variables(self) -> int:
        return self._data.shape[1]

    def standardized(self) -> np.ndarray:
        """
        Center each variable and scale it to unit variance (ddof=1).

        Returns:
            New float64 array (observations × variables) whose cross-product
            divided by ``n - 1`` is the sample correlation matrix.

        Raises:
            ZeroVarianceError: If any variable is constant
        """
        centered = self._data - self._data.mean(axis=0)
        std = centered.std(axis=0, ddof=1)
        constant = std < 1e-12
        if constant.any():
            raise ZeroVarianceError(
                f"{int(constant.sum())} variables have zero variance and cannot be "
                f"scaled: {self._variable_ids[constant].tolist()[:5]}"
            )
        return centered / std

    def __repr__(self) -> str:
        return f"DataMatrix(n_observations={self.n_observations}, n_variables={self.n_variables})"
