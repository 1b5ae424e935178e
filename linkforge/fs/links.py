"""
Directory link primitives.

A small capability interface over the platform's directory link
mechanism: junctions on Windows, symlinks elsewhere. The rest of the
engine only talks to ``LinkOps``.
"""

from __future__ import annotations

import logging
import os
import stat
import subprocess
import sys
from abc import ABC, abstractmethod
from pathlib import Path

from linkforge.core.errors import LinkCreationError, SyncIOError

logger = logging.getLogger(__name__)


class LinkOps(ABC):
    """
    Abstract directory link operations.

    Implementations must never touch the contents of a link's target.
    """

    @abstractmethod
    def create_link(self, link_path: Path, target: Path) -> None:
        """
        Create a directory link at ``link_path`` pointing to ``target``.

        Raises:
            LinkCreationError: If the platform primitive fails.
        """
        ...

    @abstractmethod
    def remove_link(self, link_path: Path) -> None:
        """
        Remove the link object itself, leaving the target untouched.

        Raises:
            SyncIOError: If the link cannot be removed.
        """
        ...

    @abstractmethod
    def is_link(self, path: Path) -> bool:
        """Check whether ``path`` is a directory link."""
        ...

    @abstractmethod
    def resolve_link_target(self, link_path: Path) -> Path:
        """
        Return the absolute target a link points to.

        Raises:
            SyncIOError: If the link cannot be read.
        """
        ...

    def exists(self, path: Path) -> bool:
        """True if anything, including a dangling link, sits at ``path``."""
        return self.is_link(path) or os.path.lexists(path)


class SymlinkOps(LinkOps):
    """Directory links as POSIX symlinks."""

    def create_link(self, link_path: Path, target: Path) -> None:
        try:
            os.symlink(target, link_path, target_is_directory=True)
        except OSError as e:
            raise LinkCreationError(
                f"Failed to link {link_path} -> {target}: {e}", link_path, e
            ) from e
        logger.debug("Created symlink %s -> %s", link_path, target)

    def remove_link(self, link_path: Path) -> None:
        try:
            os.unlink(link_path)
        except OSError as e:
            raise SyncIOError(f"Failed to remove link {link_path}: {e}", link_path, e) from e

    def is_link(self, path: Path) -> bool:
        return os.path.islink(path)

    def resolve_link_target(self, link_path: Path) -> Path:
        try:
            raw = os.readlink(link_path)
        except OSError as e:
            raise SyncIOError(f"Failed to read link {link_path}: {e}", link_path, e) from e
        target = Path(raw)
        if not target.is_absolute():
            target = Path(link_path).parent / target
        return Path(os.path.normpath(target))


class JunctionOps(LinkOps):
    """Directory links as NTFS junctions (reparse points)."""

    def create_link(self, link_path: Path, target: Path) -> None:
        result = subprocess.run(
            ["cmd", "/c", "mklink", "/J", str(link_path), str(target)],
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise LinkCreationError(
                f"mklink /J {link_path} {target} failed: {result.stderr.strip() or result.stdout.strip()}",
                link_path,
            )
        logger.debug("Created junction %s -> %s", link_path, target)

    def remove_link(self, link_path: Path) -> None:
        # rmdir on a junction removes the reparse point only
        try:
            os.rmdir(link_path)
        except OSError as e:
            raise SyncIOError(f"Failed to remove junction {link_path}: {e}", link_path, e) from e

    def is_link(self, path: Path) -> bool:
        if os.path.islink(path):
            return True
        try:
            attributes = os.lstat(path).st_file_attributes
        except (OSError, AttributeError):
            return False
        return bool(attributes & stat.FILE_ATTRIBUTE_REPARSE_POINT)

    def resolve_link_target(self, link_path: Path) -> Path:
        try:
            raw = os.readlink(link_path)
        except OSError as e:
            raise SyncIOError(f"Failed to read junction {link_path}: {e}", link_path, e) from e
        if raw.startswith("\\\\?\\"):
            raw = raw[4:]
        return Path(os.path.normpath(raw))


def get_link_ops(platform: str | None = None) -> LinkOps:
    """
    Get the link implementation for a platform.

    Args:
        platform: ``sys.platform`` style name. Defaults to the current one.

    Returns:
        LinkOps instance.
    """
    platform = platform or sys.platform
    if platform.startswith("win"):
        return JunctionOps()
    return SymlinkOps()
