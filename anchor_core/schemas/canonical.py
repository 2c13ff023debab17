"""
Anchor Core - Canonical JSON

One JSON form for everything that is hashed or handed to another tool:
proof record ids, the receipt audit export, and the input files written for
the snarkjs witness calculator.

Encoding:
- keys sorted, no whitespace, UTF-8
- field elements as decimal strings (the circuit input convention); other
  ints as numbers unless they exceed 2**53 - 1, then as decimal strings
- bytes as 0x hex
- pydantic models through model_dump; None entries dropped from mappings
- NaN and infinities are rejected
"""

import json
import math
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Union

from pydantic import BaseModel

from .errors import CanonicalizationException

CANONICAL_JSON_SEPARATORS: tuple[str, str] = (",", ":")

MAX_SAFE_JSON_INT = 2**53 - 1


def _fail(path: str, reason: str, **details: Any) -> CanonicalizationException:
    return CanonicalizationException(
        message=f"Cannot encode {path or '<root>'}: {reason}",
        details={"path": path, **details},
    )


def canonicalize_value(value: Any, path: str = "") -> Any:
    """
    Reduce ``value`` to plain JSON types under the rules above.

    Raises:
        CanonicalizationException: For non-finite floats and unsupported
            types; ``details["path"]`` locates the offending entry
    """
    from anchor_core.crypto.field import FieldElement

    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, FieldElement):
        return value.to_decimal()
    if isinstance(value, int):
        return str(value) if abs(value) > MAX_SAFE_JSON_INT else value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise _fail(path, "non-finite float", value=str(value))
        return value
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, Enum):
        return canonicalize_value(value.value, path)
    if isinstance(value, BaseModel):
        return canonicalize_value(value.model_dump(mode="python", exclude_none=True), path)
    if isinstance(value, Mapping):
        out = {}
        for key, item in value.items():
            if item is None:
                continue
            key = str(key)
            out[key] = canonicalize_value(item, f"{path}.{key}" if path else key)
        return out
    if isinstance(value, (list, tuple)):
        return [canonicalize_value(item, f"{path}[{i}]") for i, item in enumerate(value)]
    raise _fail(path, f"unsupported type {type(value).__name__}", type=type(value).__name__)


def dumps_canonical(obj: Any) -> str:
    """
    Example:
        >>> dumps_canonical({"b": 2, "a": 1})
        '{"a":1,"b":2}'
    """
    return json.dumps(
        canonicalize_value(obj),
        sort_keys=True,
        separators=CANONICAL_JSON_SEPARATORS,
        ensure_ascii=False,
        allow_nan=False,
    )


def write_canonical_json(path: Union[str, Path], obj: Any) -> Path:
    """Write ``obj`` to ``path`` in canonical form."""
    path = Path(path)
    path.write_text(dumps_canonical(obj), encoding="utf-8")
    return path
