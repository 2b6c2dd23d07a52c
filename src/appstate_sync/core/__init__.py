"""Async helpers shared by the orchestrator and the CLI."""

from .async_utils import run_sync, run_with_timeout

__all__ = ["run_sync", "run_with_timeout"]
