"""Output directory and target filename helpers."""

import os
import threading
from pathlib import Path
from typing import Dict, Union

from yt_dlp.utils import sanitize_filename

from .errors import OutputDirectoryError


def ensure_output_dir(path: Union[str, Path]) -> Path:
    """Create the output directory (and parents); raise if that fails."""
    directory = Path(path)
    try:
        os.makedirs(directory, exist_ok=True)
    except OSError as exc:
        raise OutputDirectoryError(f"Error creating output directory {directory}: {exc}") from exc
    if not directory.is_dir():
        raise OutputDirectoryError(f"Output path {directory} is not a directory")
    return directory


def target_path_for(output_dir: Union[str, Path], title: str, identifier: str, extension: str) -> Path:
    """Local file a resource with *title* is stored at."""
    stem = sanitize_filename(title or "").strip()
    if not stem:
        stem = sanitize_filename(identifier, restricted=True).strip() or "download"
    return Path(output_dir) / f"{stem}.{extension.lstrip('.')}"


class PathLocks:
    """One lock per target path, so only one writer handles a file at a time."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def for_path(self, path: Union[str, Path]) -> threading.Lock:
        key = os.path.normcase(os.path.abspath(str(path)))
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock
