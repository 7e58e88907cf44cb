"""File handler module: path validation and encoding-aware read/write.

Provides the file I/O used by the file-backed storages and the
instructions writer. Sync functions do plain file I/O; async wrappers
run them through run_sync().
"""

import hashlib
import logging
import os
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

from todo_mcp_server.core.async_utils import run_sync

logger = logging.getLogger(__name__)

# =============================================================================
# Path Validation
# =============================================================================


def validate_instructions_path(
    path_str: str, workspace_root: str | Path | None = None
) -> Path:
    """Validate and resolve the auto-inject instructions file path.

    Args:
        path_str: Path to the instructions file, relative to the workspace
            root.
        workspace_root: Directory relative paths are resolved against.
            Defaults to the current working directory.

    Returns:
        Resolved Path of the instructions file.

    Raises:
        ValueError: If the path is empty, absolute, or contains '..'
            segments.
    """
    if not path_str or not path_str.strip():
        raise ValueError("Instructions file path cannot be empty")
    path = Path(path_str.strip())
    if ".." in path.parts:
        raise ValueError(
            f"Instructions file path cannot contain '..': {path_str}"
        )
    if path.is_absolute():
        raise ValueError(
            f"Instructions file path must be relative to the workspace: {path_str}"
        )
    if path.suffix.lower() != ".md":
        logger.warning(
            "Instructions file %s does not have a .md extension", path_str
        )
    base = Path(workspace_root) if workspace_root else Path.cwd()
    return (base / path).resolve()


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Instruction files are edited by hand in arbitrary editors, so the
    encoding is detected with charset-normalizer. Defaults to UTF-8 for
    empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

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
    return (content, encoding)


def read_text_if_exists(path: Path) -> str | None:
    """Return the decoded file content, or None if the file does not exist."""
    if not path.exists():
        return None
    content, _ = read_file_with_encoding(path)
    return content


def write_file_atomic(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Write content atomically, creating parent directories as needed.

    Writes to a temporary file in the target directory, then replaces
    the target with ``os.replace()`` so readers never see partial data.

    Args:
        path: Path to the output file.
        content: String content to write.
        encoding: Encoding to use (default: utf-8).

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
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


def file_fingerprint(path: Path) -> str | None:
    """SHA-256 of the raw file bytes, or None when the file is missing."""
    try:
        return hashlib.sha256(path.read_bytes()).hexdigest()
    except FileNotFoundError:
        return None


# =============================================================================
# Async Wrappers
# =============================================================================


async def read_text_async(path: Path) -> str | None:
    """Async wrapper for read_text_if_exists()."""
    return await run_sync(read_text_if_exists, path)


async def write_text_async(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Async wrapper for write_file_atomic()."""
    return await run_sync(write_file_atomic, path, content, encoding)
