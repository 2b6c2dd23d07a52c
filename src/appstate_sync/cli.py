"""Command-line interface for appstate_sync.

Offline commands (``merge``, ``diff``) work on two snapshot files and need
no configuration.  Session commands (``startup``, ``remote``, ``resync``,
``export``, ``import``) resolve the configuration, restore the live state
from the cache and the saved directory, run one flow and flush the
debounced save on exit.

User-facing messages go to stderr; command output (JSON, summaries) goes
to stdout.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from collections.abc import Callable
from pathlib import Path

from . import __version__
from .core.async_utils import run_sync
from .file_handler import (
    read_json_document,
    validate_output_path,
    write_json_document,
)
from .logger import setup_logging
from .runtime import resolve_config, sync_session
from .sync.decision import DecisionSession, create_strategy
from .sync.differ import compute_diffs
from .sync.errors import DirectoryAccessError, SyncError
from .sync.merger import merge_snapshots
from .sync.models import Side
from .sync.orchestrator import SyncOrchestrator
from .sync.records import collection_label
from .sync.reporter import (
    diffs_to_json,
    format_conflict_diff,
    format_diff_summary,
    format_outcome,
)

logger = logging.getLogger(__name__)

STRATEGIES = ("newest", "file", "cache", "interactive", "cancel")

Prompt = Callable[[str], str]


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


# ---------------------------------------------------------------------------
# Decision handling
# ---------------------------------------------------------------------------


def decide_interactively(
    session: DecisionSession, prompt: Prompt = input
) -> bool:
    """Walk the user through every diffed record.

    Answers: ``f`` file side, ``c`` cache side, empty keeps the current
    (default) choice, ``q`` cancels the whole session.

    Returns:
        ``False`` if the user cancelled.
    """
    entries = session.entries()
    for index, (name, entry) in enumerate(entries, start=1):
        _stderr_print(f"\n[{index}/{len(entries)}]")
        _stderr_print(format_conflict_diff(name, entry))
        current = session.side_for(name, entry.id)
        while True:
            answer = prompt(
                f"Keep which version? [f]ile / [c]ache / [q]uit "
                f"(default: {current.value}): "
            ).strip().lower()
            if answer in ("", "f", "c", "q"):
                break
            _stderr_print("Please answer f, c, q or press Enter.")
        if answer == "q":
            return False
        if answer == "f":
            session.select(name, entry.id, Side.FILE)
        elif answer == "c":
            session.select(name, entry.id, Side.CACHE)
    return True


async def settle_decision(
    orchestrator: SyncOrchestrator,
    strategy: str,
    prompt: Prompt = input,
) -> None:
    """Confirm or cancel the pending decision according to *strategy*."""
    pending = orchestrator.pending_decision
    if pending is None:
        return

    counts = ", ".join(
        f"{collection_label(name)}: {len(entries)}"
        for name, entries in pending.session.diffs.items()
        if entries
    )
    _stderr_print(
        f"{pending.session.total} record(s) need a decision ({counts})"
    )

    if strategy == "cancel":
        orchestrator.cancel_decision()
        _stderr_print("Decision cancelled; auto-merge result kept.")
        return
    if strategy == "interactive":
        if not await run_sync(decide_interactively, pending.session, prompt):
            orchestrator.cancel_decision()
            _stderr_print("Decision cancelled; auto-merge result kept.")
            return
    else:
        create_strategy(strategy)(pending.session)

    outcome = await orchestrator.confirm_decision()
    print(format_outcome(outcome))


def make_directory_picker(
    directory: str | None, prompt: Prompt = input
) -> Callable[[], Path]:
    """Build a directory picker for ``resync``.

    With *directory* the picker returns it; otherwise it asks on the
    terminal, and an empty answer counts as a cancelled selection.
    """

    def _pick() -> Path:
        raw = directory
        if raw is None:
            raw = prompt("Directory holding the snapshot file: ").strip()
            if not raw:
                raise DirectoryAccessError(
                    "Directory selection cancelled", cancelled=True
                )
        path = Path(raw).expanduser().resolve()
        if not path.is_dir():
            raise DirectoryAccessError(f"Not a directory: {path}")
        return path

    return _pick


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_merge(args: argparse.Namespace) -> int:
    base = read_json_document(Path(args.base))
    incoming = read_json_document(Path(args.incoming))
    merged = merge_snapshots(base, incoming)
    if args.output:
        out = validate_output_path(args.output)
        write_json_document(out, merged)
        _stderr_print(f"Merged snapshot written to {out}")
    else:
        print(json.dumps(merged, indent=2, ensure_ascii=False, default=str))
    return 0


def cmd_diff(args: argparse.Namespace) -> int:
    file_snapshot = read_json_document(Path(args.file))
    cache_snapshot = read_json_document(Path(args.cache))
    diffs = compute_diffs(
        file_snapshot, cache_snapshot, include_one_sided=args.all
    )
    if args.json:
        print(json.dumps(diffs_to_json(diffs), indent=2, ensure_ascii=False))
    else:
        print(format_diff_summary(diffs))
    return 0


async def cmd_session(args: argparse.Namespace, overrides: dict) -> int:
    config, unified = resolve_config(overrides)

    # Re-apply logging now that the config file's logging section is known
    setup_logging(
        debug=config.debug,
        log_file=args.log_file or unified.logging.file,
        debug_format=args.log_format or unified.logging.format,
        level=None if os.getenv("LOG_LEVEL") else unified.logging.level,
    )

    picker = None
    if args.command == "resync":
        picker = make_directory_picker(args.dir)

    async with sync_session(config, directory_picker=picker) as orchestrator:
        if args.command == "startup":
            print(format_outcome(orchestrator.last_outcome))

        elif args.command == "remote":
            if orchestrator.remote is None:
                _stderr_print("No remote URL configured.")
                return 1
            users = await orchestrator.remote_sync()
            print(format_outcome(orchestrator.last_outcome))
            print(f"Users after sync: {len(users)}")
            await settle_decision(orchestrator, args.strategy)

        elif args.command == "resync":
            outcome = await orchestrator.directory_resync(
                force=args.force or args.dir is not None
            )
            print(format_outcome(outcome))
            if outcome.error:
                return 1
            await settle_decision(orchestrator, args.strategy)

        elif args.command == "export":
            target = Path(args.path) if args.path else None
            if target is not None:
                target = validate_output_path(str(target))
            written = await orchestrator.export_snapshot(target)
            _stderr_print(f"Snapshot exported to {written}")

        elif args.command == "import":
            if not args.yes:
                _stderr_print(
                    "Import replaces the current data. Re-run with --yes to confirm."
                )
                return 1
            outcome = await orchestrator.import_snapshot(Path(args.path))
            print(format_outcome(outcome))
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="appstate-sync",
        description="Merge and reconcile application state snapshots",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Merge two snapshot files (incoming wins only when strictly newer)
  appstate-sync merge cache.json db.json -o merged.json

  # List records whose timestamps tie but whose content differs
  appstate-sync diff db.json cache.json

  # Pull the remote snapshot and resolve conflicts interactively
  appstate-sync --remote-url https://example.com/db.json remote --strategy interactive

  # Re-sync with db.json in a directory, keeping the newest side
  appstate-sync resync --dir ~/shared --strategy newest
        """,
    )
    parser.add_argument(
        "--cache",
        dest="cache_path",
        help="Cache document path (overrides APPSTATE_CACHE_PATH and config files)",
    )
    parser.add_argument(
        "--remote-url",
        help="Remote snapshot URL (overrides APPSTATE_REMOTE_URL and config files)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        dest="remote_timeout",
        help="Remote fetch deadline in seconds",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        help="Log record format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"appstate-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p_merge = sub.add_parser("merge", help="Merge INCOMING into BASE")
    p_merge.add_argument("base")
    p_merge.add_argument("incoming")
    p_merge.add_argument("-o", "--output", help="Write result to file")

    p_diff = sub.add_parser("diff", help="Show records needing a decision")
    p_diff.add_argument("file")
    p_diff.add_argument("cache")
    p_diff.add_argument("--json", action="store_true", help="JSON output")
    p_diff.add_argument(
        "--all", action="store_true", help="Include one-sided records"
    )

    sub.add_parser("startup", help="Restore state from cache and directory")

    p_remote = sub.add_parser("remote", help="Sync with the remote snapshot")
    p_remote.add_argument("--strategy", choices=STRATEGIES, default="newest")

    p_resync = sub.add_parser("resync", help="Re-sync with the directory file")
    p_resync.add_argument("--dir", help="Directory holding the snapshot file")
    p_resync.add_argument(
        "--force", action="store_true", help="Choose a new directory"
    )
    p_resync.add_argument(
        "--strategy", choices=STRATEGIES, default="interactive"
    )

    p_export = sub.add_parser("export", help="Write the state to a file")
    p_export.add_argument("path", nargs="?")

    p_import = sub.add_parser("import", help="Replace the state from a file")
    p_import.add_argument("path")
    p_import.add_argument(
        "--yes", action="store_true", help="Confirm overwriting current data"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run one command and return the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    overrides: dict = {}
    for key in ("cache_path", "remote_url", "remote_timeout"):
        if getattr(args, key) is not None:
            overrides[key] = getattr(args, key)
    if args.debug:
        overrides["debug"] = True

    setup_logging(
        debug=args.debug,
        log_file=args.log_file,
        debug_format=args.log_format or "text",
    )

    try:
        if args.command == "merge":
            return cmd_merge(args)
        if args.command == "diff":
            return cmd_diff(args)
        return asyncio.run(cmd_session(args, overrides))
    except (SyncError, OSError, ValueError, RuntimeError) as e:
        logger.debug("Command failed", exc_info=True)
        _stderr_print(f"ERROR: {e}")
        return 1


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
