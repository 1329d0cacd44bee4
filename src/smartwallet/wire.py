"""
JSON wire codec for backend and prover payloads.

Python integers are arbitrary precision, so the only thing to guard
against is a float sneaking in: floats are refused on the way out and
rejected on the way in.
"""

from __future__ import annotations

import json
from typing import Any

from .errors import MalformedResponseError
from .value import Value


def _default(obj: Any) -> Any:
    if isinstance(obj, Value):
        return int(obj)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"Object of type {type(obj).__name__} is not wire serializable")


def _reject_float(raw: str) -> Any:
    raise MalformedResponseError(f"Non-integer number on the wire: {raw}")


def _reject_constant(raw: str) -> Any:
    raise MalformedResponseError(f"Invalid numeric constant on the wire: {raw}")


def _check_no_floats(obj: Any) -> None:
    if isinstance(obj, float):
        raise ValueError(f"Refusing to serialize float {obj!r}; use an integer amount")
    if isinstance(obj, dict):
        for v in obj.values():
            _check_no_floats(v)
    elif isinstance(obj, (list, tuple)):
        for v in obj:
            _check_no_floats(v)


def serialize(data: Any) -> str:
    """Encode ``data`` as compact JSON, writing Values as bare integers."""
    _check_no_floats(data)
    return json.dumps(data, default=_default, separators=(",", ":"))


def deserialize(text: str | bytes) -> Any:
    """Decode JSON text, keeping every integer exact and rejecting floats."""
    try:
        return json.loads(text, parse_float=_reject_float, parse_constant=_reject_constant)
    except MalformedResponseError:
        raise
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedResponseError(f"Response is not valid JSON: {e}") from e
