"""I/O utility functions for file and directory operations."""

import itertools
import time
from pathlib import Path
from typing import Iterable, Optional, Union

from loguru import logger

_path_counter = itertools.count()


def next_counter() -> int:
    """Process-wide monotonic counter used in temporary file names."""
    return next(_path_counter)


def unique_temp_path(
    base_dir: Union[str, Path],
    prefix: str,
    suffix: str = ".mp4",
    timestamp_ms: Optional[int] = None,
) -> Path:
    """
    Build a temporary file path that is unlikely to collide across runs.

    Names combine a millisecond timestamp with a monotonic counter, e.g.
    ``clip_1718000000000_3.mp4``. Collisions between overlapping runs are
    reduced, not excluded.

    Args:
        base_dir: Directory the file will live in (created if missing).
        prefix: File name prefix (``clip``, ``out``).
        suffix: File extension including the dot.
        timestamp_ms: Timestamp to embed; defaults to now.

    Returns:
        Path inside ``base_dir``.
    """
    base_dir = Path(base_dir)
    base_dir.mkdir(parents=True, exist_ok=True)
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return base_dir / f"{prefix}_{stamp}_{next_counter()}{suffix}"


class RunFiles:
    """
    Temporary files owned by one pipeline run.

    Every path handed out is registered before anything is written to it, so
    partial downloads and half-written outputs are removed by ``cleanup``.
    """

    def __init__(self, base_dir: Union[str, Path], timestamp_ms: Optional[int] = None):
        self.base_dir = Path(base_dir)
        self.timestamp_ms = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
        self.paths: list[Path] = []

    def new_path(self, prefix: str, suffix: str = ".mp4") -> Path:
        path = unique_temp_path(self.base_dir, prefix, suffix, self.timestamp_ms)
        self.paths.append(path)
        return path

    def existing(self) -> list[Path]:
        return [p for p in self.paths if p.exists()]

    def cleanup(self) -> int:
        removed = safe_unlink(self.paths)
        self.paths.clear()
        return removed


def safe_unlink(paths: Iterable[Union[str, Path]]) -> int:
    """
    Delete files, ignoring any error.

    Args:
        paths: Files to delete.

    Returns:
        Number of files actually removed.
    """
    removed = 0
    for path in paths:
        try:
            Path(path).unlink()
            removed += 1
        except OSError as e:
            logger.debug(f"Cleanup skipped {path}: {e}")
    return removed
