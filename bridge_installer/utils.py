"""
Bridge Installer Utilities

Shared file and process helpers.
"""

import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from .models import BACKUP_TIMESTAMP_FORMAT


def utc_timestamp() -> str:
    """Sortable UTC timestamp with second resolution (YYYYMMDD-HHMMSS)."""
    return datetime.now(timezone.utc).strftime(BACKUP_TIMESTAMP_FORMAT)


def atomic_write_text(path: Path, text: str) -> None:
    """
    Replace a file's contents without ever exposing a partial write.

    Writes to a temporary file in the same directory and renames it over
    the target, so readers see either the old or the new file.

    Raises:
        OSError: If the temporary file cannot be written or renamed
    """
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        if path.exists():
            # mkstemp creates 0600; keep whatever mode the user had
            shutil.copymode(path, temp_path)
        temp_path.replace(path)
    except BaseException:
        if temp_path.exists():
            temp_path.unlink()
        raise


def find_executable(
    name: str,
    extra_dirs: Sequence[Path] = (),
    search_path: Optional[str] = None,
) -> Optional[Path]:
    """
    Locate an executable on PATH, then in any extra directories.

    Args:
        name: Executable name
        extra_dirs: Directories to check after PATH
        search_path: PATH string to use instead of the process environment

    Returns:
        Path to the executable, or None if not found
    """
    if found := shutil.which(name, path=search_path):
        return Path(found)
    for directory in extra_dirs:
        candidate = Path(directory) / name
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return candidate
    return None


def force_symlink(source: Path, link: Path) -> bool:
    """
    Point link at source, replacing whatever was there (ln -sf).

    Returns:
        True if the link was created, False if the filesystem refused
    """
    try:
        link.parent.mkdir(parents=True, exist_ok=True)
        if link.is_symlink() or link.exists():
            link.unlink()
        link.symlink_to(source)
        return True
    except OSError:
        return False


def remove_path(path: Path) -> bool:
    """
    Delete a file, symlink or directory tree if present.

    Returns:
        True if something was removed
    """
    if path.is_symlink() or path.is_file():
        path.unlink()
        return True
    if path.is_dir():
        shutil.rmtree(path)
        return True
    return False
