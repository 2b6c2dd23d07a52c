"""Runtime configuration for appstate_sync.

Reads cache, remote and sync settings from CLI args, environment
variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    APPSTATE_CACHE_PATH: Local cache document (optional,
        default: ~/.local/share/appstate_sync/cache.json)
    APPSTATE_REMOTE_URL: Remote snapshot URL (optional; unset disables
        remote sync)
    APPSTATE_REMOTE_TIMEOUT: Remote fetch deadline in seconds (optional,
        default: 15)
    APPSTATE_SAVE_DEBOUNCE: Debounced save idle window in seconds
        (optional, default: 0.5)
    APPSTATE_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_CACHE_PATH = Path("~/.local/share/appstate_sync/cache.json")


@dataclass
class Config:
    cache_path: Path = field(
        default_factory=lambda: DEFAULT_CACHE_PATH.expanduser()
    )
    remote_url: str | None = None
    remote_timeout: float = 15.0
    save_debounce: float = 0.5
    db_filename: str = "db.json"
    include_one_sided: bool = False
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the remote URL is malformed or a number is out of
            range.
    """
    if config.remote_url is not None:
        config.remote_url = config.remote_url.strip()
        if not config.remote_url.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid remote URL '{config.remote_url}': must start with http:// or https://"
            )
        if not urlparse(config.remote_url).hostname:
            raise ValueError(
                f"Invalid remote URL '{config.remote_url}': URL must include a hostname"
            )

    if not (1 <= config.remote_timeout <= 300):
        raise ValueError(
            f"Invalid remote timeout {config.remote_timeout}: must be between 1 and 300 seconds"
        )

    if not (0 <= config.save_debounce <= 60):
        raise ValueError(
            f"Invalid save debounce {config.save_debounce}: must be between 0 and 60 seconds"
        )

    if not config.db_filename.strip() or "/" in config.db_filename:
        raise ValueError(
            f"Invalid snapshot file name '{config.db_filename}': must be a bare file name"
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_float_env(key: str) -> float | None:
    val = os.getenv(key)
    if val is None:
        return None
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"Invalid {key} '{val}': must be a number") from None


def load_config(
    cache_path: str | None = None,
    remote_url: str | None = None,
    remote_timeout: float | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        cache_path: Override cache document path.
        remote_url: Override remote snapshot URL.
        remote_timeout: Override remote fetch deadline.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict from ``config_schema.to_fallbacks()``.
            Used as fallback when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is malformed or out of range.
    """
    fb = yaml_fallbacks or {}

    # --- Path and URL: CLI > env > YAML > default ---

    raw_cache = (
        cache_path or os.getenv("APPSTATE_CACHE_PATH") or fb.get("cache_path")
    )
    final_cache = (
        Path(raw_cache).expanduser()
        if raw_cache
        else DEFAULT_CACHE_PATH.expanduser()
    )

    final_url = (
        remote_url or os.getenv("APPSTATE_REMOTE_URL") or fb.get("remote_url")
    )

    # --- Numeric fields: CLI > env > YAML > default ---

    if remote_timeout is not None:
        final_timeout = float(remote_timeout)
    else:
        env_timeout = _get_float_env("APPSTATE_REMOTE_TIMEOUT")
        final_timeout = (
            env_timeout
            if env_timeout is not None
            else float(fb.get("remote_timeout", 15.0))
        )

    env_debounce = _get_float_env("APPSTATE_SAVE_DEBOUNCE")
    final_debounce = (
        env_debounce
        if env_debounce is not None
        else float(fb.get("save_debounce", 0.5))
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("APPSTATE_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    config = Config(
        cache_path=final_cache,
        remote_url=final_url or None,
        remote_timeout=final_timeout,
        save_debounce=final_debounce,
        db_filename=fb.get("db_filename", "db.json"),
        include_one_sided=bool(fb.get("include_one_sided", False)),
        debug=final_debug,
    )

    validate_config(config)

    return config
