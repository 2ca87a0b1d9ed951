"""
Configuration file support for the popexpr CLI.

Supports YAML and JSON config files with CLI argument override.

Example ``analysis.yaml``:

    counts: data/geuvadis.pseudocounts.tsv
    metadata: data/samples.tsv
    output: results/differential
    group_col: population
    covariates: [sex]
    groups:
      EUR: [CEU, FIN, GBR, TSI]
      AFR: [YRI]
    filtering:
      min_count: 10
      min_samples: 5
    testing:
      alpha: 0.05
      n_cpus: 8
    ohana:
      ohana_bin: ~/progs/ohana/bin
      k: 8
"""

import json
from argparse import Namespace
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


# 1000 Genomes Phase 3 super-populations.
DEFAULT_GROUP_MAP: Dict[str, List[str]] = {
    "AFR": ["ACB", "ASW", "ESN", "GWD", "LWK", "MSL", "YRI"],
    "AMR": ["CLM", "MXL", "PEL", "PUR"],
    "EAS": ["CDX", "CHB", "CHS", "JPT", "KHV"],
    "EUR": ["CEU", "FIN", "GBR", "IBS", "TSI"],
    "SAS": ["BEB", "GIH", "ITU", "PJL", "STU"],
}


@dataclass
class FilteringConfig:
    """Gene filter thresholds."""
    min_count: int = 10
    min_samples: int = 1


@dataclass
class TestingConfig:
    """Contrast testing settings."""
    alpha: float = 0.05
    n_cpus: int = 1


@dataclass
class ConfigSchema:
    """
    Complete configuration schema for ``popexpr differential``.

    Mirrors the CLI argument structure for consistency.
    """
    counts: Optional[Path] = None
    metadata: Optional[Path] = None
    output: Optional[Path] = None
    group_col: str = "population"
    covariates: List[str] = field(default_factory=list)
    groups: Dict[str, List[str]] = field(default_factory=lambda: dict(DEFAULT_GROUP_MAP))
    filtering: FilteringConfig = field(default_factory=FilteringConfig)
    testing: TestingConfig = field(default_factory=TestingConfig)


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters:
        config_path: Path to config file (.yaml, .yml, or .json)

    Returns:
        Dictionary with configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If file format is unsupported or invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    try:
        with open(config_path, 'r') as f:
            if suffix in ('.yaml', '.yml'):
                config = yaml.safe_load(f)
            elif suffix == '.json':
                config = json.load(f)
            else:
                raise ValueError(
                    f"Unsupported config format: {suffix}. "
                    f"Use .yaml, .yml, or .json"
                )
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {e}")
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}")

    if config is None:
        return {}

    if not isinstance(config, dict):
        raise ValueError("Config file must contain a dictionary/mapping at top level")

    validate_config(config)
    return config


def explicit_arg_names(cli_args: Optional[List[str]]) -> set:
    """
    Names (argparse dest form) of the options present on the command line.

    ``--min-count=5`` and ``--min-count 5`` both yield ``min_count``.
    Short flags (``-o out``, ``-k 6``, ``-k6``) map to their long form.
    """
    short_to_long = {
        'o': 'output',
        'k': 'k',
    }
    explicit = set()
    for arg in cli_args or []:
        if arg.startswith('--'):
            explicit.add(arg[2:].split('=', 1)[0].replace('-', '_'))
        elif arg.startswith('-') and len(arg) >= 2 and arg[1] in short_to_long:
            explicit.add(short_to_long[arg[1]])
    return explicit


def _merge_value(cli_value: Any, config_value: Any, was_explicitly_set: bool) -> Any:
    """
    Merge a single config value with CLI argument.

    Rules:
    - CLI args ALWAYS override config if explicitly set
    - If CLI arg not set, use config value
    - If neither set, keep CLI default
    """
    if was_explicitly_set:
        return cli_value
    if config_value is not None:
        return config_value
    return cli_value


def merge_config_with_args(
    config: Dict[str, Any],
    args: Namespace,
    cli_args: Optional[List[str]] = None,
) -> Namespace:
    """
    Merge config file values with CLI arguments.

    Priority (highest to lowest):
    1. Explicitly provided CLI arguments
    2. Config file values
    3. CLI argument defaults

    Parameters:
        config: Configuration dictionary from load_config()
        args: Parsed CLI arguments (argparse.Namespace)
        cli_args: Raw CLI arguments list (for detecting explicit values).
                  If None, assumes all args are defaults

    Returns:
        Updated Namespace with merged values. ``groups`` is set to the
        config's group map (or left as-is when the config has none).
    """
    explicit_args = explicit_arg_names(cli_args)
    merged = Namespace(**vars(args))

    # Top-level keys map 1:1 onto argument names
    path_keys = ('counts', 'metadata', 'output', 'vcf', 'downsample_dir', 'workdir')
    simple_keys = path_keys + ('group_col', 'sample_col', 'covariates', 'ident')
    for key in simple_keys:
        if key in config and hasattr(merged, key):
            value = config[key]
            if value is not None and key in path_keys:
                value = Path(value).expanduser()
            setattr(merged, key, _merge_value(
                getattr(merged, key), value, key in explicit_args
            ))

    if 'groups' in config and hasattr(merged, 'groups'):
        merged.groups = {
            str(g): [str(p) for p in pops] for g, pops in config['groups'].items()
        }

    sections = {
        'filtering': ('min_count', 'min_samples'),
        'testing': ('alpha', 'n_cpus'),
        'ohana': ('ohana_bin', 'plink', 'k', 'max_iter', 'epsilon',
                  'q_matrix', 'c_matrix', 'c_component_template'),
    }
    for section, keys in sections.items():
        values = config.get(section) or {}
        for key in keys:
            if key in values and hasattr(merged, key):
                value = values[key]
                if key == 'ohana_bin' and value is not None:
                    value = Path(value).expanduser()
                setattr(merged, key, _merge_value(
                    getattr(merged, key), value, key in explicit_args
                ))

    return merged


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate configuration structure and values.

    Raises:
        ValueError: If configuration is invalid
    """
    if 'groups' in config:
        groups = config['groups']
        if not isinstance(groups, dict) or not groups:
            raise ValueError("'groups' must be a non-empty mapping of group -> populations")
        for group, pops in groups.items():
            if not isinstance(pops, list) or not pops:
                raise ValueError(
                    f"Group '{group}' must list at least one population, got: {pops}"
                )
        seen: Dict[str, str] = {}
        for group, pops in groups.items():
            for pop in pops:
                if str(pop) in seen:
                    raise ValueError(
                        f"Population '{pop}' is assigned to both "
                        f"'{seen[str(pop)]}' and '{group}'"
                    )
                seen[str(pop)] = group

    if 'covariates' in config and not isinstance(config['covariates'], list):
        raise ValueError(f"'covariates' must be a list, got: {config['covariates']}")

    filtering = config.get('filtering') or {}
    if 'min_count' in filtering:
        value = filtering['min_count']
        if not isinstance(value, int) or value < 0:
            raise ValueError(f"filtering.min_count must be a non-negative integer, got: {value}")
    if 'min_samples' in filtering:
        value = filtering['min_samples']
        if not isinstance(value, int) or value < 1:
            raise ValueError(f"filtering.min_samples must be a positive integer, got: {value}")

    testing = config.get('testing') or {}
    if 'alpha' in testing:
        alpha = testing['alpha']
        if not isinstance(alpha, (int, float)) or not 0 < alpha < 1:
            raise ValueError(f"testing.alpha must be in (0, 1), got: {alpha}")
    if 'n_cpus' in testing:
        n_cpus = testing['n_cpus']
        if not isinstance(n_cpus, int) or n_cpus < 1:
            raise ValueError(f"testing.n_cpus must be a positive integer, got: {n_cpus}")
