from __future__ import annotations

from typing import Any

import pytest

from engine_gateway.errors import EngineExecutionError, EngineUnavailable


class RecordingSession:
    """Stub engine session that records every call it receives."""

    def __init__(self, variables: dict[str, Any] | None = None) -> None:
        self.variables: dict[str, Any] = dict(variables or {})
        self.calls: list[tuple[Any, ...]] = []
        self.eval_output: dict[str, tuple[str, str]] = {}
        self.feval_results: dict[str, Any] = {}
        self.released = 0

    def eval(self, command: str, *, stdout, stderr) -> None:
        self.calls.append(("eval", command))
        if command.startswith("error"):
            stdout.write("partial output\n")
            raise EngineExecutionError(f"Engine raised: {command}")
        out, err = self.eval_output.get(command, ("", ""))
        stdout.write(out)
        stderr.write(err)

    def feval(self, nlhs: int, func: str, args, *, stdout, stderr) -> Any:
        self.calls.append(("feval", nlhs, func, list(args)))
        if func not in self.feval_results:
            raise EngineExecutionError(f"Undefined function '{func}'")
        stdout.write(f"called {func}\n")
        return self.feval_results[func]

    def get_variable(self, name: str) -> Any:
        self.calls.append(("getVariable", name))
        if name not in self.variables:
            raise EngineExecutionError(f"Undefined variable '{name}'")
        return self.variables[name]

    def put_variable(self, name: str, value: Any) -> None:
        self.calls.append(("putVariable", name, value))
        self.variables[name] = value

    def release(self) -> None:
        self.released += 1


class RecordingProvider:
    """Stub provider handing out one shared session; release is synchronous."""

    def __init__(self, session: RecordingSession | None = None, *, available: bool = True) -> None:
        self.session = session or RecordingSession()
        self.available = available
        self.acquired = 0
        self.releases: list[Any] = []
        self.closed = False

    def acquire(self) -> RecordingSession:
        self.acquired += 1
        if not self.available:
            raise EngineUnavailable("No engine session is running")
        return self.session

    def release(self, session: RecordingSession | None) -> None:
        self.releases.append(session)
        if session is not None:
            session.release()

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def session() -> RecordingSession:
    return RecordingSession()


@pytest.fixture
def provider(session: RecordingSession) -> RecordingProvider:
    return RecordingProvider(session)
