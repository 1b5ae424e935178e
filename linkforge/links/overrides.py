"""
Relocation override store.

A small JSON document mapping logical ids to the absolute path of their
relocated directory. One store per user; it outlives any single
operation and is reloaded on every access.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from linkforge.core.errors import SerializationError
from linkforge.core.json_canonical import read_json_file, write_json_file


class OverrideData(BaseModel):
    """On-disk shape of the override store."""

    mods_locations: dict[str, str] = Field(default_factory=dict)


class OverrideStore:
    """File-backed mapping of logical id to relocated directory."""

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def load(self) -> OverrideData:
        """
        Read the store; a missing file is an empty store.

        Raises:
            SerializationError: If the store is corrupt.
        """
        if not self.path.is_file():
            return OverrideData()
        data = read_json_file(self.path)
        try:
            return OverrideData.model_validate(data)
        except ValidationError as e:
            raise SerializationError(f"Invalid override store {self.path}: {e}", self.path, e) from e

    def get(self, logical_id: str) -> Path | None:
        location = self.load().mods_locations.get(logical_id)
        return Path(location) if location else None

    def set(self, logical_id: str, location: Path) -> None:
        data = self.load()
        data.mods_locations[logical_id] = str(location)
        write_json_file(self.path, data.model_dump())

    def remove(self, logical_id: str) -> bool:
        """Drop an entry. Returns False if there was none."""
        data = self.load()
        if logical_id not in data.mods_locations:
            return False
        del data.mods_locations[logical_id]
        write_json_file(self.path, data.model_dump())
        return True

    def all(self) -> dict[str, Path]:
        return {k: Path(v) for k, v in self.load().mods_locations.items()}
