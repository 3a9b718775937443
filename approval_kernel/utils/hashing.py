"""
Deterministic serialization and hashing utilities.

Used for the JSON columns that hold before/after values and for rule-set
checksums.  Output must be deterministic and reproducible.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        # Normalize so equal amounts serialize identically; "f" avoids
        # exponent strings such as "1E+4"
        return format(obj.normalize(), "f")
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if isinstance(obj, tuple):
        return list(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


_DECIMAL_KEY = "__decimal__"


def _storage_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return {_DECIMAL_KEY: format(obj, "f")}
    return json_serializer(obj)


def _decode_decimal(obj: dict) -> Any:
    if len(obj) == 1 and _DECIMAL_KEY in obj:
        return Decimal(obj[_DECIMAL_KEY])
    return obj


def dumps(data: Any) -> str:
    """
    JSON-encode a value for storage.

    Decimals are wrapped as ``{"__decimal__": "5000.00"}`` so loads() can
    restore them exactly; dates, UUIDs and enums use json_serializer.
    """
    return json.dumps(data, default=_storage_default)


def loads(text: str) -> Any:
    """Inverse of dumps(): Decimal envelopes come back as Decimal."""
    return json.loads(text, object_hook=_decode_decimal)


def canonicalize_json(data: Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys are sorted alphabetically, no whitespace.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=json_serializer,
    )


def hash_payload(payload: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of ``payload``."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
