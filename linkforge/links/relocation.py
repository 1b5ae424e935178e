"""
Directory relocation behind a stable link.

Moves the real directory backing a mount point to another location,
possibly on another volume, and re-points the mount point link at it so
nothing observing the mount point sees a path change. ``restore`` puts
the directory back.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from linkforge.core.config import EngineConfig, load_config
from linkforge.core.errors import (
    AlreadyExistsError,
    LinkCreationError,
    NotFoundError,
    SyncIOError,
)
from linkforge.fs.links import LinkOps, get_link_ops
from linkforge.fs.moves import move_directory
from linkforge.links.overrides import OverrideStore

logger = logging.getLogger(__name__)


@dataclass
class RelocationResult:
    """Outcome of a move or restore."""

    logical_id: str
    mount_point: Path
    previous: Path
    location: Path
    moved: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "logical_id": self.logical_id,
            "mount_point": str(self.mount_point),
            "previous": str(self.previous),
            "location": str(self.location),
            "moved": self.moved,
        }


def _normalized(path: Path) -> str:
    return os.path.normcase(os.path.abspath(path)).lower()


def same_location(a: Path, b: Path) -> bool:
    """Case-insensitive comparison of two absolute paths."""
    return _normalized(a) == _normalized(b)


class RelocationManager:
    """Moves and restores directories behind mount point links."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        links: LinkOps | None = None,
        store: OverrideStore | None = None,
    ):
        """
        Initialize relocation manager.

        Args:
            config: Engine config. Defaults to ``load_config()``.
            links: Link implementation. Defaults to the current platform's.
            store: Override store. Defaults to ``config.override_store_path``.
        """
        self.config = config or load_config()
        self.links = links or get_link_ops()
        self.store = store or OverrideStore(self.config.override_store_path)

    def resolve_target(self, dest_dir: Path) -> Path:
        """Append the conventional leaf name unless ``dest_dir`` already carries it."""
        dest_dir = Path(dest_dir).absolute()
        if dest_dir.name.lower() == self.config.leaf_name.lower():
            return dest_dir
        return dest_dir / self.config.leaf_name

    def current_location(self, mount_point: Path) -> Path:
        """Real directory behind a mount point: its link target, or itself."""
        if self.links.is_link(mount_point):
            return self.links.resolve_link_target(mount_point)
        return Path(mount_point)

    def location_of(self, logical_id: str) -> Path | None:
        """Recorded relocation for a logical id, if any."""
        return self.store.get(logical_id)

    def _clear_mount_point(self, mount_point: Path) -> None:
        if self.links.is_link(mount_point):
            self.links.remove_link(mount_point)
            return
        try:
            if mount_point.is_dir():
                shutil.rmtree(mount_point)
            elif os.path.lexists(mount_point):
                mount_point.unlink()
        except OSError as e:
            raise SyncIOError(f"Failed to clear {mount_point}: {e}", mount_point, e) from e

    def move(self, workshop_root: Path, logical_id: str, dest_dir: Path) -> RelocationResult:
        """
        Relocate the directory behind a mount point to ``dest_dir``.

        Args:
            workshop_root: Root the mount point lives under.
            logical_id: Identifier selecting the mount point and override entry.
            dest_dir: Chosen destination directory.

        Returns:
            RelocationResult; ``moved`` is False when already in place.

        Raises:
            NotFoundError: If there is no real directory to move.
            AlreadyExistsError: If the destination is occupied.
            SyncIOError: If the move fails.
            LinkCreationError: If the new link cannot be created. The directory
                is moved back to the mount point first.
        """
        mount_point = self.config.mount_point(workshop_root, logical_id).absolute()
        target = self.resolve_target(dest_dir)
        current = self.current_location(mount_point)

        if not current.is_dir():
            raise NotFoundError(f"No directory to relocate at {current}", current)

        if same_location(current, target):
            logger.info("%s already lives at %s", logical_id, target)
            return RelocationResult(logical_id, mount_point, current, target, moved=False)

        if os.path.lexists(target):
            raise AlreadyExistsError(f"Destination already exists: {target}", target)

        move_directory(current, target)
        # Until the link exists restore locates the directory through the store
        self.store.set(logical_id, target)
        self._clear_mount_point(mount_point)
        try:
            mount_point.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SyncIOError(f"Failed to create {mount_point.parent}: {e}", mount_point, e) from e

        try:
            self.links.create_link(mount_point, target)
        except LinkCreationError:
            logger.warning("Linking %s failed, moving %s back", mount_point, target)
            move_directory(target, mount_point)
            self.store.remove(logical_id)
            raise

        logger.info("Relocated %s: %s -> %s", logical_id, current, target)
        return RelocationResult(logical_id, mount_point, current, target, moved=True)

    def restore(self, workshop_root: Path, logical_id: str) -> RelocationResult:
        """
        Move a relocated directory back to its mount point.

        The real location comes from the live link, or from the override
        store when the link is gone.

        Raises:
            AlreadyExistsError: If a real directory or file occupies the mount point.
            NotFoundError: If the relocated directory cannot be found.
            SyncIOError: If the move fails.
        """
        mount_point = self.config.mount_point(workshop_root, logical_id).absolute()

        if self.links.is_link(mount_point):
            current = self.links.resolve_link_target(mount_point)
        elif os.path.lexists(mount_point):
            raise AlreadyExistsError(f"Mount point is occupied: {mount_point}", mount_point)
        else:
            current = self.store.get(logical_id)

        if current is None or not current.is_dir():
            raise NotFoundError(f"Relocated directory for {logical_id} not found", current)

        if self.links.is_link(mount_point):
            self.links.remove_link(mount_point)
        move_directory(current, mount_point)
        self.store.remove(logical_id)

        logger.info("Restored %s: %s -> %s", logical_id, current, mount_point)
        return RelocationResult(logical_id, mount_point, current, mount_point, moved=True)
