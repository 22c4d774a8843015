"""
Configuration file support for the linecorr CLI.

Supports YAML and JSON config files with CLI argument override.

Example ``analysis.yaml``::

    expression: data/expression.csv
    labels: data/cell_line_labels.csv
    label_columns: [tissue, subtype, site]
    output: results/concordance
    estimators: [pearson, spearman]
    workers: 8
    cache_dir: cache/
"""

import json
from argparse import Namespace
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


@dataclass
class AnalysisConfig:
    """
    Complete configuration schema for ``linecorr run``.

    Mirrors the CLI argument structure for consistency.
    """
    expression: Optional[Path] = None
    labels: Optional[Path] = None
    output: Optional[Path] = None
    label_columns: Optional[List[str]] = None
    id_column: Optional[str] = None
    samples_as_rows: bool = True
    estimators: List[str] = field(default_factory=lambda: ["pearson", "spearman"])
    workers: int = 1
    block_size: int = 256
    cache_dir: Optional[Path] = None
    use_clean: bool = True


_PATH_KEYS = ('expression', 'labels', 'output', 'cache_dir')

# config key -> argparse dest, where they differ
_DEST_ALIASES = {
    'samples_as_rows': 'features_as_rows',
    'use_clean': 'all_known',
}


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters:
        config_path: Path to config file (.yaml, .yml, or .json)

    Returns:
        Dictionary with configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If file format is unsupported, invalid, or has unknown keys

    Examples:
        >>> config = load_config(Path("analysis.yaml"))
        >>> print(config['workers'])
        8
    """
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

    known = {f.name for f in fields(AnalysisConfig)}
    unknown = sorted(set(config) - known)
    if unknown:
        raise ValueError(f"Unknown config keys: {unknown}. Valid keys: {sorted(known)}")

    return config


def _explicit_dests(cli_args: Optional[List[str]]) -> set:
    """Argparse dests the user typed on the command line."""
    explicit = set()
    if not cli_args:
        return explicit

    short_to_long = {
        'e': 'expression',
        'l': 'labels',
        'o': 'output',
        'c': 'config',
        'j': 'workers',
    }
    for arg in cli_args:
        if arg.startswith('--'):
            explicit.add(arg[2:].split('=', 1)[0].replace('-', '_'))
        elif arg.startswith('-') and len(arg) == 2 and arg[1] in short_to_long:
            explicit.add(short_to_long[arg[1]])
    return explicit


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
        New Namespace with merged values
    """
    explicit = _explicit_dests(cli_args)
    merged = Namespace(**vars(args))

    for key, value in config.items():
        if value is None:
            continue

        dest = _DEST_ALIASES.get(key, key)
        if dest in explicit:
            continue

        if key in _PATH_KEYS:
            value = Path(value)
        elif key == 'samples_as_rows':
            value = not bool(value)
        elif key == 'use_clean':
            value = not bool(value)
        elif key in ('label_columns', 'estimators') and isinstance(value, str):
            value = [value]

        setattr(merged, dest, value)

    return merged
