"""Deterministic deep formatting and FNV-1a hashing of objects."""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Mapping
from datetime import date, datetime, timedelta
from enum import Enum

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193
_MASK32 = 0xFFFFFFFF

ALPHANUMS = "bcdfghjklmnpqrstvwxz2456789"


class Fnv32a:
    """32-bit FNV-1a hash."""

    def __init__(self) -> None:
        self._value = _FNV32_OFFSET

    def update(self, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        value = self._value
        for byte in data:
            value = ((value ^ byte) * _FNV32_PRIME) & _MASK32
        self._value = value

    def reset(self) -> None:
        self._value = _FNV32_OFFSET

    def sum32(self) -> int:
        return self._value


def deep_format(obj: object) -> str:
    """Render an object with nested values, sorted map keys and type names."""
    if obj is None:
        return "nil"
    if isinstance(obj, bool):
        return "true" if obj else "false"
    if isinstance(obj, Enum):
        return f"({type(obj).__name__}){deep_format(obj.value)}"
    if isinstance(obj, (int, float)):
        return repr(obj)
    if isinstance(obj, str):
        return json.dumps(obj)
    if isinstance(obj, (bytes, bytearray)):
        return "[]byte{" + obj.hex() + "}"
    if isinstance(obj, (datetime, date)):
        return f"({type(obj).__name__}){obj.isoformat()}"
    if isinstance(obj, timedelta):
        return f"(timedelta){obj.total_seconds()!r}"
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        body = " ".join(
            f"{f.name}:{deep_format(getattr(obj, f.name))}" for f in dataclasses.fields(obj)
        )
        return f"({type(obj).__name__}){{{body}}}"
    if isinstance(obj, Mapping):
        items = sorted((deep_format(k), deep_format(v)) for k, v in obj.items())
        return "map[" + " ".join(f"{k}:{v}" for k, v in items) + "]"
    if isinstance(obj, (set, frozenset)):
        return "set[" + " ".join(sorted(deep_format(v) for v in obj)) + "]"
    if isinstance(obj, (list, tuple)):
        return "[" + " ".join(deep_format(v) for v in obj) + "]"
    return f"({type(obj).__qualname__}){obj!r}"


def deep_hash_object(hasher: Fnv32a, obj: object) -> None:
    """Reset ``hasher`` and feed it the deep rendering of ``obj``."""
    hasher.reset()
    hasher.update(deep_format(obj))


def safe_encode_string(value: str) -> str:
    """Map each character onto an alphabet without vowels."""
    return "".join(ALPHANUMS[ord(ch) % len(ALPHANUMS)] for ch in value)


def fnv_hash_string_objects(*args: object) -> str:
    """Hash objects into a safe string.

    Each object resets the hasher, so only the last one decides the result.
    """
    hasher = Fnv32a()
    for obj in args:
        deep_hash_object(hasher, obj)
    return safe_encode_string(str(hasher.sum32()))