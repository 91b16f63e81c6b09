"""
Deterministic content hashing.

Hashes are SHA-256 digests of a canonical serialization: dict keys are sorted,
list order is preserved, and ``None`` and a missing value serialize to distinct
sentinels. Semantically identical content hashes identically regardless of the
order it was constructed in.
"""
import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from models.base import DualStateMixin


class _Missing:
    """Marker for an absent value (distinct from an explicit None)."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

NULL_SENTINEL = "null"
MISSING_SENTINEL = "undefined"


def _serialize(value: Any) -> str:
    if value is MISSING:
        return MISSING_SENTINEL
    if value is None:
        return NULL_SENTINEL
    # bool before int: True must not serialize like 1
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return _serialize(value.value)
    if isinstance(value, int | float | str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, Decimal):
        return json.dumps(str(value))
    if isinstance(value, UUID):
        return json.dumps(str(value))
    if isinstance(value, datetime | date):
        return json.dumps(value.isoformat())
    if isinstance(value, dict):
        items = sorted(((str(k), v) for k, v in value.items()), key=lambda item: item[0])
        return "{" + ",".join(f"{json.dumps(k)}:{_serialize(v)}" for k, v in items) + "}"
    if isinstance(value, list | tuple):
        return "[" + ",".join(_serialize(item) for item in value) + "]"
    raise TypeError(f"Cannot hash value of type {type(value).__name__}")


def canonical_serialize(value: Any = MISSING) -> str:
    """Serialize a value to its canonical string form (sorted keys, stable scalars)."""
    return _serialize(value)


def hash_content(value: Any = MISSING) -> str:
    """
    Compute the SHA-256 content hash of a value.

    Args:
        value: Any JSON-like value. Omit it to hash the "missing" sentinel.

    Returns:
        64-character lowercase hex digest.
    """
    return hashlib.sha256(canonical_serialize(value).encode("utf-8")).hexdigest()


def compute_entity_hash(row: DualStateMixin) -> str:
    """Hash the semantic fields a dual-state model declares in ``__hashed_fields__``."""
    return hash_content(row.hashed_values())
