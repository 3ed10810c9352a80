"""
Configuration loading with optional YAML overrides.

The environment provides the baseline (see adfence.config.settings). A YAML
file may override individual settings:

    database:
      url: postgres://dbuser_dba@127.0.0.1:5432/meta
    fence:
      table: fences
      data_dir: data/fences
      export_workers: 8
"""

from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Optional

import yaml

from .config.settings import Config, ConfigurationError, DatabaseConfig, FenceConfig

_SECTIONS = {
    'database': DatabaseConfig,
    'fence': FenceConfig,
}


def load_yaml_overrides(config_path: Path) -> dict[str, Any]:
    """
    Read a YAML override file.

    Raises:
        FileNotFoundError: If file doesn't exist
        ConfigurationError: If the file is not valid YAML or has unknown keys
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping")

    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ConfigurationError(f"Unknown sections in {config_path}: {sorted(unknown)}")

    for section, section_cls in _SECTIONS.items():
        allowed = {f.name for f in fields(section_cls)}
        values = data.get(section) or {}
        if not isinstance(values, dict):
            raise ConfigurationError(f"Section '{section}' must be a mapping")
        bad = set(values) - allowed
        if bad:
            raise ConfigurationError(f"Unknown keys in '{section}': {sorted(bad)}")

    return data


def load_config(config_path: Optional[str] = None, env_file: Optional[Path] = None) -> Config:
    """
    Build the runtime configuration.

    Args:
        config_path: Optional YAML override file
        env_file: Optional explicit .env file

    Returns:
        Config with YAML overrides applied on top of the environment
    """
    config = Config(env_file=env_file)
    if not config_path:
        return config

    overrides = load_yaml_overrides(Path(config_path))
    try:
        if overrides.get('database'):
            config.database = replace(config.database, **overrides['database'])
        if overrides.get('fence'):
            config.fence = replace(config.fence, **overrides['fence'])
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid override in {config_path}: {e}") from e

    return config
