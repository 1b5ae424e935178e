"""
Deterministic JSON serialization for on-disk state.

Manifests, lock files and the override store are all written through
here so identical state always produces identical bytes.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path, PurePath
from typing import Any

import orjson

from linkforge.core.errors import SerializationError, SyncIOError


def _default_serializer(obj: Any) -> Any:
    """
    Custom serializer for types not natively supported by orjson.

    Args:
        obj: Object to serialize.

    Returns:
        JSON-serializable representation.

    Raises:
        TypeError: If object cannot be serialized.
    """
    if isinstance(obj, PurePath):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        # Sorted for determinism
        return sorted(obj, key=str)
    if hasattr(obj, "model_dump"):
        # Pydantic models
        return obj.model_dump()

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonical_json_dumps(obj: Any, *, indent: bool = False) -> str:
    """
    Serialize object to canonical JSON string.

    Guarantees:
    - Sorted dictionary keys
    - UTF-8 encoding
    - Normalized newlines

    Args:
        obj: Object to serialize.
        indent: If True, pretty-print with 2-space indentation.

    Returns:
        Canonical JSON string.

    Examples:
        >>> canonical_json_dumps({"b": 2, "a": 1})
        '{"a":1,"b":2}'
    """
    options = orjson.OPT_SORT_KEYS

    if indent:
        options |= orjson.OPT_INDENT_2

    result = orjson.dumps(obj, default=_default_serializer, option=options)
    return result.decode("utf-8").replace("\r\n", "\n")


def canonical_json_loads(json_str: str | bytes) -> Any:
    """
    Parse JSON string.

    Examples:
        >>> canonical_json_loads('{"a":1,"b":2}')
        {'a': 1, 'b': 2}
    """
    return orjson.loads(json_str)


def canonical_json_bytes(obj: Any) -> bytes:
    """
    Serialize object to canonical JSON bytes.

    Useful for computing fingerprints of JSON objects.
    """
    return orjson.dumps(obj, default=_default_serializer, option=orjson.OPT_SORT_KEYS)


def read_json_file(path: Path) -> Any:
    """
    Read and parse a JSON state file.

    Args:
        path: File to read.

    Returns:
        Parsed content.

    Raises:
        SyncIOError: If the file cannot be read.
        SerializationError: If the content is not valid JSON.
    """
    try:
        content = Path(path).read_bytes()
    except OSError as e:
        raise SyncIOError(f"Failed to read {path}: {e}", path, e) from e

    try:
        return canonical_json_loads(content)
    except orjson.JSONDecodeError as e:
        raise SerializationError(f"Corrupt JSON in {path}: {e}", path, e) from e


def write_json_file(path: Path, obj: Any) -> None:
    """
    Write a JSON state file, replacing any previous content atomically.

    The payload goes to a sibling temp file first and is renamed into
    place, so readers never observe a half-written file.

    Raises:
        SyncIOError: If the file cannot be written.
    """
    path = Path(path)
    tmp_path = path.with_name(f"{path.name}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(canonical_json_dumps(obj, indent=True) + "\n", encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError as e:
        raise SyncIOError(f"Failed to write {path}: {e}", path, e) from e
