from __future__ import annotations
import json
from enum import Enum
from typing import Any


class ScalarKind(str, Enum):
    """Kinds of value that can appear in a decoded JSON value bag."""
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    BOOL = "bool"
    NULL = "null"
    OTHER = "other"


def scalar_kind(value: Any) -> ScalarKind:
    # bool is a subclass of int, so it must be checked first
    if value is None:
        return ScalarKind.NULL
    if isinstance(value, bool):
        return ScalarKind.BOOL
    if isinstance(value, int):
        return ScalarKind.INTEGER
    if isinstance(value, float):
        return ScalarKind.FLOAT
    if isinstance(value, str):
        return ScalarKind.STRING
    return ScalarKind.OTHER


def to_float(value: Any) -> float:
    """
    Coerce a decoded JSON scalar to float.

    Integers and floats convert directly. Everything else (strings, booleans,
    null, nested objects, missing keys) becomes 0.0. Never raises.
    """
    kind = scalar_kind(value)
    if kind is ScalarKind.FLOAT:
        return float(value)
    if kind is ScalarKind.INTEGER:
        try:
            return float(value)
        except OverflowError:
            return 0.0
    return 0.0


def natural_text(value: Any) -> str:
    """Display form of a value of unknown type: strings verbatim, the rest as JSON text."""
    kind = scalar_kind(value)
    if kind is ScalarKind.STRING:
        return value
    if kind is ScalarKind.OTHER:
        try:
            return json.dumps(value, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return str(value)
    return json.dumps(value)


ACCURACY_TEXT = {
    0: "unreliable",
    1: "low",
    2: "medium",
    3: "high",
}


def accuracy_text(accuracy: int) -> str:
    return ACCURACY_TEXT.get(accuracy, "unknown")
