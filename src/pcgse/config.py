"""
Configuration file support for pcgse analyses.

Supports YAML and JSON config files. Options may sit at the top level or
under a ``pcgse:`` section, and may be spelled with underscores
(``gene_set_test``), dashes (``gene-set-test``) or dots (``gene.set.test``).

Example ``analysis.yaml``::

    pcgse:
      pc_indexes: [1, 2, 3]
      gene.statistic: z
      gene.set.statistic: rank.sum
      gene.set.test: permutation
      nperm: 999
      seed: 42
"""

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from pcgse.stats.gene_statistics import GeneStatistic, Transformation
from pcgse.stats.inter_gene_correlation import CorrelationScope
from pcgse.stats.set_statistics import GeneSetStatistic
from pcgse.stats.significance import GeneSetTest


@dataclass
class PCGSEConfig:
    """
    Analysis options for :func:`pcgse.analysis.pcgse`.

    Defaults match the function defaults, so an empty config changes nothing.
    """
    pc_indexes: List[int] = field(default_factory=lambda: [1])
    gene_statistic: str = GeneStatistic.FISHER_Z.value
    transformation: str = Transformation.NONE.value
    gene_set_statistic: str = GeneSetStatistic.MEAN_DIFF.value
    gene_set_test: str = GeneSetTest.COR_ADJ_PARAMETRIC.value
    nperm: int = 9999
    correlation_scope: str = CorrelationScope.ALL.value
    seed: Optional[int] = None
    n_jobs: int = 1
    batch_size: int = 1000

    def __post_init__(self):
        validate_config(asdict(self))

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "PCGSEConfig":
        """
        Build a config from a mapping.

        Raises:
            ValueError: If a key is unknown or a value is invalid
        """
        if 'pcgse' in config:
            section = config['pcgse']
            if not isinstance(section, dict):
                raise ValueError("'pcgse' section must be a mapping")
            config = section

        valid = {f.name for f in fields(cls)}
        normalized = {}
        for key, value in config.items():
            name = _normalize_key(key)
            if name not in valid:
                raise ValueError(
                    f"Unknown config option '{key}'. Valid options: {', '.join(sorted(valid))}"
                )
            normalized[name] = value

        if 'pc_indexes' in normalized and isinstance(normalized['pc_indexes'], int):
            normalized['pc_indexes'] = [normalized['pc_indexes']]
        return cls(**normalized)

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "PCGSEConfig":
        """Load and validate a YAML or JSON config file."""
        return cls.from_dict(load_config(config_path))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _normalize_key(key: str) -> str:
    return str(key).strip().replace('.', '_').replace('-', '_')


# suffix -> (parser, format label, parse error raised by the parser)
_PARSERS = {
    '.yaml': (yaml.safe_load, 'YAML', yaml.YAMLError),
    '.yml': (yaml.safe_load, 'YAML', yaml.YAMLError),
    '.json': (json.load, 'JSON', json.JSONDecodeError),
}


def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read the raw option mapping from a YAML or JSON file.

    The mapping is returned as written; key normalization and the ``pcgse:``
    section are handled by :meth:`PCGSEConfig.from_dict`. An empty file
    yields an empty mapping.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the suffix is not .yaml, .yml or .json, the content
            does not parse, or the top level is not a mapping
    """
    path = Path(config_path)
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    suffix = path.suffix.lower()
    if suffix not in _PARSERS:
        raise ValueError(
            f"Unsupported config format: {suffix or '(none)'}. "
            f"Use {', '.join(sorted(_PARSERS))}"
        )
    parse, label, parse_error = _PARSERS[suffix]

    with path.open('r') as handle:
        try:
            raw = parse(handle)
        except parse_error as e:
            raise ValueError(f"Invalid {label} in config file {path.name}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(
            f"Config file must contain a mapping at top level, got {type(raw).__name__}"
        )
    return raw


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate option values.

    Parameters:
        config: Flat mapping with underscored option names

    Raises:
        ValueError: If a choice is unknown or a count is not a positive integer
    """
    choices = {
        'gene_statistic': GeneStatistic,
        'transformation': Transformation,
        'gene_set_statistic': GeneSetStatistic,
        'gene_set_test': GeneSetTest,
        'correlation_scope': CorrelationScope,
    }
    for key, enum_cls in choices.items():
        if key in config:
            enum_cls.parse(config[key])

    for key in ('nperm', 'n_jobs', 'batch_size'):
        if key in config:
            value = config[key]
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValueError(f"{key} must be a positive integer, got: {value!r}")

    if 'pc_indexes' in config:
        pcs = config['pc_indexes']
        if not isinstance(pcs, (list, tuple)) or not pcs:
            raise ValueError(f"pc_indexes must be a non-empty list, got: {pcs!r}")
        for pc in pcs:
            if isinstance(pc, bool) or not isinstance(pc, int) or pc < 1:
                raise ValueError(f"pc_indexes must be positive integers, got: {pc!r}")

    if config.get('seed') is not None:
        seed = config['seed']
        if isinstance(seed, bool) or not isinstance(seed, int) or seed < 0:
            raise ValueError(f"seed must be a non-negative integer, got: {seed!r}")
