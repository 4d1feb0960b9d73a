from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping
from dataclasses import fields, is_dataclass
from typing import Any

from .errors import DecodeError
from .types import EvalRequest, FevalRequest, GetVariableRequest, PutVariableRequest


def _load_object(body: bytes | str) -> dict[str, Any]:
    """Parse a request body into a JSON object.

    Example:
        ```python
        raw = _load_object(b'{"command": "1+1"}')
        ```
    """
    try:
        text = body.decode("utf-8") if isinstance(body, (bytes, bytearray)) else body
        raw = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError(str(exc)) from exc
    if not isinstance(raw, dict):
        raise DecodeError("Request body must be a JSON object")
    return raw


def _string_field(raw: Mapping[str, Any], name: str) -> str:
    """Bind a string field; JSON scalars bind by their text and missing is "".

    Example:
        ```python
        command = _string_field({"command": 12}, "command")  # "12"
        ```
    """
    value = raw.get(name)
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, int, float)):
        return json.dumps(value)
    raise DecodeError(f"'{name}' must be a string")


def _count_field(raw: Mapping[str, Any], name: str) -> int:
    """Bind a non-negative integer field; integral floats are accepted.

    Example:
        ```python
        nlhs = _count_field({"nlhs": 2.0}, "nlhs")  # 2
        ```
    """
    value = raw.get(name)
    if value is None:
        return 0
    if isinstance(value, bool):
        raise DecodeError(f"'{name}' must be an integer")
    if isinstance(value, int):
        count = value
    elif isinstance(value, float) and value.is_integer():
        count = int(value)
    else:
        raise DecodeError(f"'{name}' must be an integer")
    if count < 0:
        raise DecodeError(f"'{name}' must not be negative")
    return count


def _array_field(raw: Mapping[str, Any], name: str) -> list[Any]:
    """Bind an array field; missing or null becomes an empty list.

    Example:
        ```python
        args = _array_field({"args": [1, "a"]}, "args")
        ```
    """
    value = raw.get(name)
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodeError(f"'{name}' must be an array")
    return value


def decode_eval(body: bytes | str) -> EvalRequest:
    """Decode an `/eval` body.

    Example:
        ```python
        req = decode_eval(b'{"command": "disp(1)"}')
        ```
    """
    raw = _load_object(body)
    return EvalRequest(command=_string_field(raw, "command"))


def decode_feval(body: bytes | str) -> FevalRequest:
    """Decode a `/feval` body.

    Example:
        ```python
        req = decode_feval(b'{"nlhs": 1, "func": "sqrt", "args": [16]}')
        ```
    """
    raw = _load_object(body)
    return FevalRequest(
        nlhs=_count_field(raw, "nlhs"),
        func=_string_field(raw, "func"),
        args=_array_field(raw, "args"),
    )


def decode_get_variable(body: bytes | str) -> GetVariableRequest:
    """Decode a `/getVariable` body.

    Example:
        ```python
        req = decode_get_variable(b'{"varName": "x"}')
        ```
    """
    raw = _load_object(body)
    return GetVariableRequest(varName=_string_field(raw, "varName"))


def decode_put_variable(body: bytes | str) -> PutVariableRequest:
    """Decode a `/putVariable` body; `varData` is kept as a raw JSON tree.

    Example:
        ```python
        req = decode_put_variable(b'{"varName": "x", "varData": [1, 2]}')
        ```
    """
    raw = _load_object(body)
    return PutVariableRequest(
        varName=_string_field(raw, "varName"),
        varData=raw.get("varData"),
    )


def to_wire(value: Any) -> Any:
    """Normalize an engine value (or response object) into a JSON tree.

    Multi-output tuples are not reshaped; they simply become arrays.

    Example:
        ```python
        tree = to_wire((1, 2.5, "x"))  # [1, 2.5, "x"]
        ```
    """
    if value is None or isinstance(value, (bool, str, int)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, complex):
        return {"real": to_wire(value.real), "imag": to_wire(value.imag)}
    if not isinstance(value, type) and is_dataclass(value):
        return {item.name: to_wire(getattr(value, item.name)) for item in fields(value)}
    if isinstance(value, Mapping):
        return {str(key): to_wire(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_wire(item) for item in value]
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    tolist = getattr(value, "tolist", None)
    if callable(tolist):
        return to_wire(tolist())
    # MATLAB arrays expose `size` and iterate row by row.
    if hasattr(value, "size") and isinstance(value, Iterable):
        return [to_wire(item) for item in value]
    return str(value)


def encode_response(response: Any) -> bytes:
    """Serialize a response dataclass into compact UTF-8 JSON.

    Example:
        ```python
        body = encode_response(VariableResponse(varName="x", varData=42))
        ```
    """
    return json.dumps(
        to_wire(response),
        ensure_ascii=False,
        separators=(",", ":"),
    ).encode("utf-8")
