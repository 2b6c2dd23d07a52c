"""File handler module: encoding-aware reads, atomic writes, JSON documents.

Provides the file I/O used by the cache store, the directory store and
the export/import commands.  All functions are synchronous; the
orchestrator calls them through ``run_sync()``.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from charset_normalizer import from_bytes


# =============================================================================
# Path Validation
# =============================================================================


def validate_output_path(
    path_str: str, base_dir: str | None = None
) -> Path:
    """Validate an output file path (file need not exist, but parent must).

    Args:
        path_str: Path string for the output file.
        base_dir: Optional base directory; output must be under this directory.

    Returns:
        Resolved Path object for the output file.

    Raises:
        ValueError: If the parent doesn't exist, the path is a directory,
            or the path is outside base_dir.
    """
    resolved = Path(path_str).expanduser().resolve()
    if resolved.is_dir():
        raise ValueError(f"Output path is a directory: {resolved}")
    if not resolved.parent.exists():
        raise ValueError(
            f"Output parent directory not found: {resolved.parent}"
        )
    if base_dir is not None:
        base_resolved = Path(base_dir).resolve()
        if not resolved.is_relative_to(base_resolved):
            raise ValueError(
                f"Output path is outside base directory: {resolved} not under {base_resolved}"
            )
    return resolved


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Valid UTF-8 (with or without BOM) is decoded directly; anything else
    goes through charset-normalizer detection.  Defaults to UTF-8 for
    empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    try:
        return (raw.decode("utf-8-sig"), "utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # ascii is a strict subset of utf-8
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content.lstrip("\ufeff"), encoding)


def write_file_atomic(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Write *content* atomically, creating parent directories as needed.

    Writes to a temporary file in the target directory, then calls
    ``os.replace()`` so readers never see a partial document.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(encoded)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(encoded)


# =============================================================================
# JSON Documents
# =============================================================================


def read_json_document(path: Path) -> Any:
    """Read and parse a whole JSON document.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the content is empty or not valid JSON.
    """
    content, _ = read_file_with_encoding(path)
    if not content.strip():
        raise ValueError(f"Empty document: {path}")
    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"Invalid JSON in {path}: {exc}"
        ) from exc


def write_json_document(
    path: Path, data: Any, indent: int | None = 2
) -> int:
    """Write *data* as a pretty-printed JSON document atomically.

    Returns:
        Number of bytes written.
    """
    text = json.dumps(data, indent=indent, ensure_ascii=False, default=str)
    return write_file_atomic(path, text + "\n")
