"""
Directory moves that work across volumes.

An atomic rename is tried first. When that fails (typically because the
destination lives on another volume) the tree is copied and the source
deleted: through robocopy on Windows, shutil elsewhere.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path

from linkforge.core.errors import AlreadyExistsError, NotFoundError, SyncIOError

logger = logging.getLogger(__name__)

# robocopy exit codes below 8 mean files were copied or nothing needed copying
ROBOCOPY_FAILURE_THRESHOLD = 8


def _robocopy_copy(source: Path, destination: Path) -> None:
    result = subprocess.run(
        [
            "robocopy",
            str(source),
            str(destination),
            "/E",
            "/COPY:DAT",
            "/R:1",
            "/W:1",
            "/NFL",
            "/NDL",
            "/NJH",
            "/NJS",
        ],
        capture_output=True,
        text=True,
    )
    if result.returncode >= ROBOCOPY_FAILURE_THRESHOLD:
        raise SyncIOError(
            f"robocopy {source} -> {destination} failed with exit code {result.returncode}: "
            f"{result.stdout.strip()}",
            source,
        )
    logger.debug("robocopy %s -> %s exited with %d", source, destination, result.returncode)


def _discard_partial_copy(destination: Path) -> None:
    if not os.path.lexists(destination):
        return
    logger.warning("Removing partial copy at %s", destination)
    shutil.rmtree(destination, ignore_errors=True)


def move_directory(source: Path, destination: Path, platform: str | None = None) -> None:
    """
    Move a real directory to ``destination``.

    When the copy fallback fails, whatever it had copied is removed again,
    so the source stays the only copy and a retry starts clean.

    Args:
        source: Directory to move.
        destination: New location; must not exist. Parents are created.
        platform: ``sys.platform`` style name, for choosing the fallback.

    Raises:
        NotFoundError: If ``source`` is not a directory.
        AlreadyExistsError: If ``destination`` is occupied.
        SyncIOError: If both the rename and the fallback copy fail.
    """
    source, destination = Path(source), Path(destination)
    platform = platform or sys.platform

    if not source.is_dir():
        raise NotFoundError(f"Directory not found: {source}", source)
    if os.path.lexists(destination):
        raise AlreadyExistsError(f"Destination already exists: {destination}", destination)

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SyncIOError(f"Failed to create {destination.parent}: {e}", destination, e) from e

    try:
        os.rename(source, destination)
        logger.debug("Renamed %s -> %s", source, destination)
        return
    except OSError as e:
        logger.info("Rename %s -> %s failed (%s), copying instead", source, destination, e)

    try:
        if platform.startswith("win"):
            _robocopy_copy(source, destination)
        else:
            shutil.copytree(source, destination, symlinks=True)
    except SyncIOError:
        _discard_partial_copy(destination)
        raise
    except (OSError, shutil.Error) as e:
        _discard_partial_copy(destination)
        raise SyncIOError(f"Failed to copy {source} -> {destination}: {e}", source, e) from e

    try:
        shutil.rmtree(source)
    except OSError as e:
        raise SyncIOError(
            f"Copied {source} -> {destination} but could not remove the source: {e}", source, e
        ) from e
