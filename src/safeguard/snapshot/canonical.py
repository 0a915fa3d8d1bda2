"""
Canonical JSON serialization for audit payloads.

Provides stable serialization of table rows so that audit lines are
reproducible and diffable. The canonicalization ensures:
- Keys are sorted recursively
- Unicode is normalized (NFC)
- No insignificant whitespace
- Byte values are base64-encoded
- Timestamps use ISO-8601
"""

import base64
import json
import unicodedata
from decimal import Decimal
from typing import Any, Mapping

from ..core.models import Scalar


def canonicalize(obj: Any) -> str:
    """
    Canonicalize a Python object to a stable JSON string.

    Args:
        obj: The object to canonicalize

    Returns:
        Canonical JSON string
    """
    return json.dumps(
        _normalize_for_canonical(obj),
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        default=_canonical_default,
    )


def _normalize_for_canonical(obj: Any) -> Any:
    """
    Recursively normalize an object for canonical serialization.

    - Unwraps Scalar cells to their decoded values
    - Normalizes unicode strings (NFC)
    - Recursively processes dicts and lists
    """
    if isinstance(obj, Scalar):
        return _normalize_for_canonical(obj.value)

    if obj is None:
        return None

    if isinstance(obj, str):
        return unicodedata.normalize("NFC", obj)

    if isinstance(obj, bool):
        # Handle bool before int (bool is subclass of int)
        return obj

    if isinstance(obj, (int, float)):
        return obj

    if isinstance(obj, Decimal):
        return str(obj)

    if isinstance(obj, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(obj)).decode("ascii")

    if isinstance(obj, Mapping):
        return {
            str(_normalize_for_canonical(k)): _normalize_for_canonical(v)
            for k, v in obj.items()
        }

    if isinstance(obj, (list, tuple)):
        return [_normalize_for_canonical(item) for item in obj]

    if hasattr(obj, "isoformat"):
        return obj.isoformat()

    return unicodedata.normalize("NFC", str(obj))


def _canonical_default(obj: Any) -> Any:
    """Default handler for JSON serialization of non-standard types."""
    if hasattr(obj, "isoformat"):
        return obj.isoformat()

    if hasattr(obj, "to_dict"):
        return obj.to_dict()

    return str(obj)


def serialize_row(row: Mapping[str, Any]) -> str:
    """Serialize one table row (column name → value or Scalar) for the audit log."""
    return canonicalize(row)
