"""
Configuration loading for bcd-update.

Values come from config/bcd_update.yaml (or the file named by the
BCD_UPDATE_CONFIG environment variable), layered over DEFAULT_CONFIG.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .tree import DEFAULT_CATEGORIES

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "BCD_UPDATE_CONFIG"
DEFAULT_CONFIG_PATH = Path("config") / "bcd_update.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "bcd_dir": "../browser-compat-data",
    "categories": [c for c in DEFAULT_CATEGORIES if c != "browsers"],
    "reports": [],
    "overrides": None,
    "strict_overrides": False,
    "output": "feature-list.json",
    "log_file": "logs/bcd_update.log",
}


class ConfigError(Exception):
    """Raised when the configuration file cannot be parsed or is invalid."""
    pass


def _candidate_paths(path: Optional[Union[str, Path]]) -> list:
    if path:
        return [Path(path)]
    if os.environ.get(CONFIG_ENV_VAR):
        return [Path(os.environ[CONFIG_ENV_VAR])]
    project_root = Path(__file__).resolve().parent.parent.parent
    return [DEFAULT_CONFIG_PATH, project_root / DEFAULT_CONFIG_PATH]


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load configuration, falling back to defaults when no file exists.

    Args:
        path: Explicit config file; otherwise $BCD_UPDATE_CONFIG, then
            config/bcd_update.yaml

    Returns:
        Config dict with every DEFAULT_CONFIG key present

    Raises:
        ConfigError: If the file exists but is not valid YAML, is not a
            mapping, or has wrongly typed values
    """
    config = dict(DEFAULT_CONFIG)

    for candidate in _candidate_paths(path):
        if not candidate.exists():
            continue
        try:
            with open(candidate, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config {candidate}: {e}")
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config {candidate} must be a mapping, got {type(loaded).__name__}")

        unknown = sorted(set(loaded) - set(DEFAULT_CONFIG))
        if unknown:
            logger.warning(f"Ignoring unknown config keys in {candidate}: {', '.join(unknown)}")
        config.update({k: v for k, v in loaded.items() if k in DEFAULT_CONFIG})
        break
    else:
        if path:
            logger.warning(f"Config file {path} not found, using defaults")

    for key in ("categories", "reports"):
        if isinstance(config[key], str):
            config[key] = [config[key]]
        if not isinstance(config[key], list):
            raise ConfigError(f"Config key '{key}' must be a list")

    return config
