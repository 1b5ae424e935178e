"""Tree walking helpers shared by the manifest builder and the applier."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path

from linkforge.core.errors import NotFoundError, SyncIOError

logger = logging.getLogger(__name__)


def relative_posix(path: Path, root: Path) -> str:
    """Slash-normalized path of ``path`` relative to ``root``."""
    return Path(path).relative_to(root).as_posix()


def _dir_key(path: Path) -> tuple[int, int]:
    st = os.stat(path)
    return st.st_dev, st.st_ino


def iter_files(root: Path) -> Iterator[Path]:
    """
    Yield every file under ``root``, recursively.

    Directories are descended into, not yielded. Links to directories are
    followed like plain directories, except a link back to a directory
    already being walked, which is skipped.

    Raises:
        NotFoundError: If ``root`` is not a directory.
        SyncIOError: If a directory cannot be listed.
    """
    root = Path(root)
    if not root.is_dir():
        raise NotFoundError(f"Directory not found: {root}", root)

    stack: list[tuple[Path, frozenset[tuple[int, int]]]] = [(root, frozenset())]
    while stack:
        directory, ancestors = stack.pop()
        try:
            key = _dir_key(directory)
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            raise SyncIOError(f"Failed to list {directory}: {e}", directory, e) from e
        if key in ancestors:
            logger.warning("Skipping %s: link cycle", directory)
            continue
        ancestors = ancestors | {key}
        for entry in entries:
            path = Path(entry.path)
            if entry.is_dir():
                stack.append((path, ancestors))
            else:
                yield path


def list_files(root: Path) -> list[Path]:
    """All files under ``root``, sorted by their relative slash path."""
    root = Path(root)
    return sorted(iter_files(root), key=lambda p: relative_posix(p, root))
