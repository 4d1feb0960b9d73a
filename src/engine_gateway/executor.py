from __future__ import annotations

import io

from .session.engine import EngineSession
from .types import (
    EvalRequest,
    EvalResponse,
    FevalRequest,
    FevalResponse,
    GetVariableRequest,
    PutVariableRequest,
    VariableResponse,
)

DEFAULT_MAX_OUTPUT_KB = 1024


class OperationExecutor:
    """Run exactly one engine operation per call and capture its output.

    No retries happen here; a failure propagates once to the dispatcher.

    Example:
        ```python
        executor = OperationExecutor(max_output_kb=64)
        response = executor.eval(session, EvalRequest(command="x = 1"))
        ```
    """

    def __init__(self, *, max_output_kb: int = DEFAULT_MAX_OUTPUT_KB) -> None:
        """Set the per-stream capture limit.

        Example:
            ```python
            executor = OperationExecutor(max_output_kb=8)
            ```
        """
        if max_output_kb < 1:
            raise ValueError("max_output_kb must be at least 1")
        self._max_output_chars = max_output_kb * 1024

    def eval(self, session: EngineSession, request: EvalRequest) -> EvalResponse:
        """Evaluate `request.command` and return captured stdout/stderr.

        Example:
            ```python
            response = executor.eval(session, EvalRequest(command="disp(1)"))
            ```
        """
        stdout, stderr = io.StringIO(), io.StringIO()
        session.eval(request.command, stdout=stdout, stderr=stderr)
        return EvalResponse(
            incomingArgs=request,
            stdout=self._clip(stdout),
            stderr=self._clip(stderr),
        )

    def feval(self, session: EngineSession, request: FevalRequest) -> FevalResponse:
        """Invoke `request.func`; the result keeps the engine's output convention.

        Example:
            ```python
            response = executor.feval(session, FevalRequest(nlhs=1, func="abs", args=[-3]))
            ```
        """
        stdout, stderr = io.StringIO(), io.StringIO()
        result = session.feval(
            request.nlhs,
            request.func,
            request.args,
            stdout=stdout,
            stderr=stderr,
        )
        return FevalResponse(
            incomingArgs=request,
            result=result,
            stdout=self._clip(stdout),
            stderr=self._clip(stderr),
        )

    def get_variable(self, session: EngineSession, request: GetVariableRequest) -> VariableResponse:
        """Read one variable.

        Example:
            ```python
            response = executor.get_variable(session, GetVariableRequest(varName="x"))
            ```
        """
        value = session.get_variable(request.varName)
        return VariableResponse(varName=request.varName, varData=value)

    def put_variable(self, session: EngineSession, request: PutVariableRequest) -> VariableResponse:
        """Write one variable and echo the input value without reading it back.

        Example:
            ```python
            response = executor.put_variable(session, PutVariableRequest(varName="x", varData=1))
            ```
        """
        session.put_variable(request.varName, request.varData)
        return VariableResponse(varName=request.varName, varData=request.varData)

    def _clip(self, buffer: io.StringIO) -> str:
        """Return captured text cut to the `max_output_kb` limit.

        Example:
            ```python
            text = executor._clip(io.StringIO("a" * 5000))
            ```
        """
        return buffer.getvalue()[: self._max_output_chars]
