"""
Engine configuration.

File names, buffer sizes and store locations used by the engine, loaded
from YAML with environment overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from linkforge.core.errors import SerializationError

ENV_OVERRIDE_STORE = "LINKFORGE_OVERRIDE_STORE"
ENV_HASH_BUFFER_SIZE = "LINKFORGE_HASH_BUFFER_SIZE"
ENV_CONFIG_PATH = "LINKFORGE_CONFIG"


def _default_override_store() -> str:
    return str(Path.home() / ".linkforge" / "overrides.json")


class EngineConfig(BaseModel):
    """Configuration shared by all engine components."""

    model_config = ConfigDict(frozen=True)

    manifest_file_name: str = Field(
        default=".linkforge-manifest.json",
        description="Manifest sidecar file name, placed in the destination root",
    )
    lock_file_name: str = Field(
        default=".linkforge-lock.json",
        description="Lock file name, placed beside the mount point",
    )
    backup_suffix: str = Field(
        default=".linkforge-backup",
        description="Suffix inserted into displaced directory backup names",
    )
    hash_buffer_size: int = Field(
        default=65536, gt=0, description="Read buffer for streamed hashing"
    )
    mods_subpath: str = Field(
        default="mods/{logical_id}/Zomboid/Mods",
        description="Mount point under a workshop root, formatted with the logical id",
    )
    override_store_path: str = Field(
        default_factory=_default_override_store,
        description="Location of the process-wide relocation override store",
    )

    @property
    def leaf_name(self) -> str:
        """Conventional name of a relocated directory."""
        return Path(self.mods_subpath).name

    def mount_point(self, workshop_root: Path, logical_id: str) -> Path:
        """Mount point for a logical id under a workshop root."""
        return Path(workshop_root) / self.mods_subpath.format(logical_id=logical_id)

    def with_overrides(self, **overrides: Any) -> EngineConfig:
        """Return a validated copy with the given fields replaced."""
        return type(self).model_validate({**self.model_dump(), **overrides})

    @classmethod
    def from_yaml(cls, path: Path | str) -> EngineConfig:
        """
        Load configuration from a YAML file.

        Example:
            ```yaml
            lock_file_name: .modpack-lock.json
            hash_buffer_size: 1048576
            override_store_path: /srv/launcher/overrides.json
            ```

        Raises:
            SerializationError: If the file is not valid YAML or fails validation.
        """
        path = Path(path)
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise SerializationError(f"Error parsing config {path}: {e}", path, e) from e

        if not isinstance(data, dict):
            raise SerializationError(f"Config {path} must be a mapping", path)

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise SerializationError(f"Invalid config {path}: {e}", path, e) from e


def load_config(path: Path | str | None = None) -> EngineConfig:
    """
    Load engine configuration.

    Resolution order: explicit path, then ``LINKFORGE_CONFIG``, then
    defaults. Environment overrides are applied last.

    Args:
        path: Optional YAML config file.

    Returns:
        EngineConfig instance.
    """
    path = path or os.environ.get(ENV_CONFIG_PATH)
    config = EngineConfig.from_yaml(path) if path else EngineConfig()

    overrides: dict[str, Any] = {}
    if store := os.environ.get(ENV_OVERRIDE_STORE):
        overrides["override_store_path"] = store
    if buffer_size := os.environ.get(ENV_HASH_BUFFER_SIZE):
        try:
            overrides["hash_buffer_size"] = int(buffer_size)
        except ValueError as e:
            raise SerializationError(
                f"{ENV_HASH_BUFFER_SIZE} must be an integer, got {buffer_size!r}"
            ) from e

    if overrides:
        try:
            config = config.with_overrides(**overrides)
        except ValidationError as e:
            raise SerializationError(f"Invalid environment override: {e}") from e
    return config
