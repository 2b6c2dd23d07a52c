"""
Hierarchical configuration loader for appstate_sync.

Finds YAML config files by convention, merges them with "project wins"
semantics and interpolates environment variables in string values.

Usage:
    from appstate_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "APPSTATE_SYNC_CONFIG"
PROJECT_CONFIG_DIR = ".appstate_sync"

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


# ---------------------------------------------------------------------------
# Env var interpolation
# ---------------------------------------------------------------------------


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` becomes the variable's value, or ``""`` when unset.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    * A ``${`` with no closing ``}`` is left untouched.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def interpolate_tree(obj: Any) -> Any:
    """Interpolate env vars in every string of a nested dict/list."""
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {key: interpolate_tree(val) for key, val in obj.items()}
    if isinstance(obj, list):
        return [interpolate_tree(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``APPSTATE_SYNC_CONFIG`` env var (explicit single path)
        2. ``.appstate_sync/config.yml`` in CWD (project-level)
        3. ``.appstate_sync/config.yaml`` in CWD (alternate extension)
        4. ``~/.config/appstate_sync/config.yml`` (XDG global)

    Only paths that exist on disk are returned.
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    project_dir = Path.cwd() / PROJECT_CONFIG_DIR
    candidates.append(project_dir / "config.yml")
    candidates.append(project_dir / "config.yaml")
    candidates.append(Path.home() / ".config" / "appstate_sync" / "config.yml")

    return [path for path in candidates if path.exists()]


def load_yaml_file(path: Path) -> Any:
    """Parse one YAML file with ``yaml.SafeLoader``."""
    with open(path, "r", encoding="utf-8") as fh:
        return yaml.load(fh, Loader=yaml.SafeLoader)


# ---------------------------------------------------------------------------
# Hierarchical merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Merge strategy ("project wins"):
        Files are loaded from lowest precedence to highest.  Each file's
        top-level keys **replace** (not deep-merge) those from earlier files.

    Env var interpolation is applied after the merge.

    Returns:
        Merged dict; empty when no config files exist (zero-config).

    Raises:
        yaml.YAMLError: If a config file is not valid YAML.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = load_yaml_file(path)
        except yaml.YAMLError:
            logger.exception("Failed to parse config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return interpolate_tree(merged)
