"""Crash-safe replacement of small config files.

Codex re-reads ``config.toml`` on every ``codex exec``; a half-written
file would make the next run fail to start its MCP servers. Writes
therefore go to a sibling temp file that is renamed over the target.
"""
from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def _fsync_dir(directory: Path) -> None:
    flags = os.O_RDONLY | getattr(os, "O_DIRECTORY", 0)
    try:
        fd = os.open(directory, flags)
    except OSError:
        # Directories cannot be opened on Windows.
        return
    try:
        os.fsync(fd)
    except OSError as exc:
        logger.debug("Directory fsync unsupported for %s: %s", directory, exc)
    finally:
        os.close(fd)


def _existing_mode(path: Path) -> int | None:
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        return None


def atomic_write_text(path: str | Path, content: str, *, encoding: str = "utf-8") -> None:
    """Replace *path* with *content* through a temp file and rename.

    The parent directory is created when missing, line endings are
    written as ``\\n`` on every platform, and an existing file keeps
    its permission bits.
    """
    path = Path(path)
    directory = path.parent
    directory.mkdir(parents=True, exist_ok=True)
    mode = _existing_mode(path)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=directory)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="\n") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            tmp_path.chmod(mode)
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)
    _fsync_dir(directory)
