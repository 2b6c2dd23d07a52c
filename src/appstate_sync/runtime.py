"""Runtime assembly: configuration resolution and orchestrator lifecycle."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import partial
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from .config import Config, load_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config, to_fallbacks
from .sync.orchestrator import DirectoryPicker, SyncOrchestrator
from .sync.state import AppStateContainer
from .sync.stores import DirectoryFileStore, HttpRemoteSource, JsonCacheStore

logger = logging.getLogger(__name__)


def resolve_config(
    overrides: dict[str, Any] | None = None,
) -> tuple[Config, UnifiedConfig]:
    """Load configuration with unified precedence.

    CLI overrides > env vars (.env loaded first) > YAML config > defaults.

    Args:
        overrides: CLI values (cache_path, remote_url, remote_timeout,
            debug).

    Returns:
        The validated runtime ``Config`` and the ``UnifiedConfig`` it was
        built from (which also carries the logging section).

    Raises:
        RuntimeError: If any configuration source is invalid.
    """
    overrides = overrides or {}
    try:
        # .env first so ${VAR} interpolation in YAML can see its values
        load_dotenv()

        config_files = discover_config_files()
        unified = build_config(load_hierarchical_config())
        if config_files:
            logger.info("Configuration file: %s", config_files[0])

        config = load_config(
            cache_path=overrides.get("cache_path"),
            remote_url=overrides.get("remote_url"),
            remote_timeout=overrides.get("remote_timeout"),
            debug=overrides.get("debug", False),
            yaml_fallbacks=to_fallbacks(unified),
        )
    except (ValueError, ValidationError) as e:
        logger.error("Configuration error: %s", e)
        raise RuntimeError(f"Configuration error: {e}") from e

    logger.debug("Cache: %s", config.cache_path)
    logger.debug("Remote: %s", config.remote_url or "(disabled)")
    return config, unified


def build_orchestrator(
    config: Config,
    state: AppStateContainer | None = None,
    directory_picker: DirectoryPicker | None = None,
) -> SyncOrchestrator:
    """Wire the concrete stores into a ``SyncOrchestrator``."""
    remote = (
        HttpRemoteSource(config.remote_url, timeout=config.remote_timeout)
        if config.remote_url
        else None
    )
    return SyncOrchestrator(
        state or AppStateContainer(),
        JsonCacheStore(config.cache_path),
        remote,
        file_store_factory=partial(
            DirectoryFileStore, filename=config.db_filename
        ),
        directory_picker=directory_picker,
        save_debounce=config.save_debounce,
        remote_timeout=config.remote_timeout,
        include_one_sided=config.include_one_sided,
    )


@asynccontextmanager
async def sync_session(
    config: Config,
    directory_picker: DirectoryPicker | None = None,
) -> AsyncIterator[SyncOrchestrator]:
    """Run the startup flow, yield the orchestrator, flush on exit.

    On startup the cache and the saved directory file are merged into the
    live state.  On exit pending debounced saves are written.
    """
    orchestrator = build_orchestrator(
        config, directory_picker=directory_picker
    )
    outcome = await orchestrator.startup()
    logger.info("Startup: %s", outcome.summary())
    try:
        yield orchestrator
    finally:
        await orchestrator.close()
        logger.debug("Session closed")
