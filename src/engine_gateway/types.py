from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"


@dataclass(slots=True)
class EvalRequest:
    """Top-level statement to run in the engine session.

    Example:
        ```python
        req = EvalRequest(command="x = 1 + 1")
        ```
    """

    command: str = ""


@dataclass(slots=True)
class FevalRequest:
    """Named function call with `nlhs` requested return values.

    Example:
        ```python
        req = FevalRequest(nlhs=1, func="max", args=[[1, 5, 3]])
        ```
    """

    nlhs: int = 0
    func: str = ""
    args: list[Any] = field(default_factory=list)


@dataclass(slots=True)
class GetVariableRequest:
    """Read one workspace variable.

    Example:
        ```python
        req = GetVariableRequest(varName="x")
        ```
    """

    varName: str = ""


@dataclass(slots=True)
class PutVariableRequest:
    """Bind one workspace variable.

    Example:
        ```python
        req = PutVariableRequest(varName="x", varData=42)
        ```
    """

    varName: str = ""
    varData: Any = None


@dataclass(slots=True)
class EvalResponse:
    incomingArgs: EvalRequest
    stdout: str = ""
    stderr: str = ""


@dataclass(slots=True)
class FevalResponse:
    incomingArgs: FevalRequest
    result: Any = None
    stdout: str = ""
    stderr: str = ""


@dataclass(slots=True)
class VariableResponse:
    """Variable name and value, returned by both get and put.

    Example:
        ```python
        resp = VariableResponse(varName="x", varData=42)
        ```
    """

    varName: str
    varData: Any = None


@dataclass(slots=True)
class GatewayResponse:
    """Transport-neutral response produced by the dispatcher.

    Example:
        ```python
        resp = GatewayResponse(status=200, body=b"{}", content_type=JSON_CONTENT_TYPE)
        ```
    """

    status: int
    body: bytes
    content_type: str = JSON_CONTENT_TYPE

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")
