"""
Gene-set collections over the variables of a data matrix.

A collection is stored as a boolean membership matrix (gene sets × variables)
regardless of how it was supplied, so every test regime can work with
vectorized row operations. The collection remembers whether it was built
from matrix form because the permutation regime only accepts that form.

Two input forms are accepted:

- Matrix form: a 2-D {0,1} array or a DataFrame (index = set names,
  columns aligned with the data variables).
- Mapping form: ``{set_name: members}`` where members are 0-based variable
  positions or variable ids.

Examples:
    >>> import pandas as pd
    >>> variables = pd.Index(["TP53", "MYC", "EGFR", "KRAS"])
    >>> sets = GeneSetCollection.from_mapping(
    ...     {"growth": ["MYC", "EGFR"], "stress": [0]}, variables
    ... )
    >>> sets.sizes
    array([2, 1])
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from pcgse.exceptions import InvalidIndexError

__all__ = ['GeneSetCollection']


@dataclass(frozen=True)
class GeneSetCollection:
    """Ordered gene sets as a read-only boolean membership matrix.

    Attributes:
        membership: Boolean matrix (n_sets, n_variables)
        names: Gene-set identifiers in row order
        is_matrix_form: True if built from a binary membership matrix
    """

    membership: NDArray[np.bool_]
    names: pd.Index
    is_matrix_form: bool

    def __post_init__(self):
        membership = np.array(self.membership, dtype=bool)
        if membership.ndim != 2:
            raise ValueError(f"membership must be 2D, got shape {membership.shape}")
        if len(self.names) != membership.shape[0]:
            raise ValueError(
                f"names length ({len(self.names)}) must match membership rows ({membership.shape[0]})"
            )
        membership.flags.writeable = False
        object.__setattr__(self, 'membership', membership)
        object.__setattr__(self, 'names', pd.Index(self.names))

    @classmethod
    def from_matrix(
        cls,
        matrix: NDArray | pd.DataFrame,
        variable_ids: pd.Index,
        names: Iterable[str] | None = None,
    ) -> GeneSetCollection:
        """
        Build a collection from a binary membership matrix.

        Args:
            matrix: Array or DataFrame (n_sets, n_variables) with values in {0, 1}.
                If a DataFrame, its index supplies set names and its columns
                are reordered to ``variable_ids`` when they are variable ids.
            variable_ids: Variables of the data matrix, in column order
            names: Optional set names (overrides a DataFrame index)

        Raises:
            ValueError: If the matrix is not 2D, not binary, or its width
                does not match the number of variables
            InvalidIndexError: If DataFrame columns name unknown variables
        """
        if isinstance(matrix, pd.DataFrame):
            if names is None:
                names = [str(n) for n in matrix.index]
            columns = pd.Index(matrix.columns)
            positional = columns.equals(pd.RangeIndex(len(columns)))
            if not columns.equals(variable_ids) and not positional:
                unknown = columns[~columns.isin(variable_ids)].tolist()
                if unknown:
                    raise InvalidIndexError(
                        f"gene-set matrix columns not found among variables: {unknown[:5]}"
                    )
                # Variables absent from the frame are non-members
                matrix = matrix.reindex(columns=variable_ids, fill_value=0)
            values = matrix.to_numpy()
        else:
            values = np.asarray(matrix)

        if values.ndim != 2:
            raise ValueError(f"gene-set matrix must be 2D, got shape {values.shape}")
        if values.shape[1] != len(variable_ids):
            raise ValueError(
                f"gene-set matrix has {values.shape[1]} columns but the data has "
                f"{len(variable_ids)} variables"
            )
        if values.dtype != bool:
            numeric = values.astype(np.float64)
            if not np.isin(numeric, (0.0, 1.0)).all():
                raise ValueError("gene-set matrix must contain only 0/1 values")
            values = numeric.astype(bool)

        if names is None:
            names = [f"set_{i}" for i in range(values.shape[0])]
        return cls(membership=values, names=pd.Index(list(names)), is_matrix_form=True)

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[str, Iterable],
        variable_ids: pd.Index,
    ) -> GeneSetCollection:
        """
        Build a collection from ``{set_name: members}``.

        Members may be 0-based integer positions or variable ids. Ids take
        precedence when a member is both a valid id and an integer.

        Raises:
            InvalidIndexError: If a member is out of range or not a known id
        """
        n_variables = len(variable_ids)
        membership = np.zeros((len(mapping), n_variables), dtype=bool)

        for row, (name, members) in enumerate(mapping.items()):
            for member in members:
                if member in variable_ids:
                    membership[row, variable_ids.get_loc(member)] = True
                elif isinstance(member, (int, np.integer)) and not isinstance(member, bool):
                    if not 0 <= member < n_variables:
                        raise InvalidIndexError(
                            f"gene set '{name}' references variable position {member}, "
                            f"valid range is [0, {n_variables - 1}]"
                        )
                    membership[row, member] = True
                else:
                    raise InvalidIndexError(
                        f"gene set '{name}' references unknown variable {member!r}"
                    )

        return cls(
            membership=membership,
            names=pd.Index([str(n) for n in mapping.keys()]),
            is_matrix_form=False,
        )

    @classmethod
    def from_any(
        cls,
        gene_sets: GeneSetCollection | Mapping | NDArray | pd.DataFrame,
        variable_ids: pd.Index,
    ) -> GeneSetCollection:
        """Dispatch to :meth:`from_matrix` or :meth:`from_mapping` by type."""
        if isinstance(gene_sets, GeneSetCollection):
            if gene_sets.n_variables != len(variable_ids):
                raise ValueError(
                    f"gene-set collection covers {gene_sets.n_variables} variables but "
                    f"the data has {len(variable_ids)}"
                )
            return gene_sets
        if isinstance(gene_sets, Mapping):
            return cls.from_mapping(gene_sets, variable_ids)
        return cls.from_matrix(gene_sets, variable_ids)

    @property
    def n_sets(self) -> int:
        return self.membership.shape[0]

    @property
    def n_variables(self) -> int:
        return self.membership.shape[1]

    @property
    def sizes(self) -> NDArray[np.int64]:
        """Number of members per gene set."""
        return self.membership.sum(axis=1).astype(np.int64)

    def members(self, i: int) -> NDArray[np.intp]:
        """0-based variable positions of gene set ``i``."""
        return np.flatnonzero(self.membership[i])

    def __len__(self) -> int:
        return self.n_sets
