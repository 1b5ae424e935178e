"""Core utilities: errors, configuration, canonical JSON, mutation journal."""

from linkforge.core.config import EngineConfig, load_config
from linkforge.core.errors import (
    AlreadyExistsError,
    LinkCreationError,
    LinkForgeError,
    NotFoundError,
    SerializationError,
    SyncIOError,
)
from linkforge.core.json_canonical import canonical_json_dumps, canonical_json_loads

__all__ = [
    "EngineConfig",
    "load_config",
    "LinkForgeError",
    "NotFoundError",
    "AlreadyExistsError",
    "SyncIOError",
    "LinkCreationError",
    "SerializationError",
    "canonical_json_dumps",
    "canonical_json_loads",
]
