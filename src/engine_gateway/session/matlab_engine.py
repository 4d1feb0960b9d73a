from __future__ import annotations

import importlib
import logging
from collections.abc import Callable, Sequence
from typing import Any, TextIO

from ..errors import EngineExecutionError, EngineUnavailable
from .engine import EngineSession, release_in_background

logger = logging.getLogger(__name__)

_UNAVAILABLE_ERROR_NAMES = (
    "EngineError",
    "RejectedExecutionError",
    "InterruptedError",
    "CancelledError",
    "TimeoutError",
)


def load_matlab() -> Any:
    """Import the top-level `matlab` package with its `engine` submodule loaded.

    Example:
        ```python
        matlab = load_matlab()
        names = matlab.engine.find_matlab()
        ```
    """
    try:
        importlib.import_module("matlab.engine")
        return importlib.import_module("matlab")
    except ImportError as exc:
        raise EngineUnavailable(
            "MATLAB Engine API for Python is not installed (pip install matlabengine)"
        ) from exc


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_numeric_row(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(_is_number(item) for item in value)


def _is_numeric_matrix(value: Any) -> bool:
    if not isinstance(value, list) or not value:
        return False
    if not all(_is_numeric_row(row) for row in value):
        return False
    return len({len(row) for row in value}) == 1


def to_matlab(value: Any, matlab: Any) -> Any:
    """Convert a JSON tree into values the MATLAB engine binds naturally.

    JSON numbers are always doubles on the MATLAB side: scalars become
    `float`, numeric vectors and rectangular matrices become `matlab.double`.
    Other lists stay lists (cell arrays) and dicts stay dicts (structs).

    Example:
        ```python
        arg = to_matlab([[1, 2], [3, 4]], load_matlab())
        ```
    """
    if _is_number(value):
        return float(value)
    if _is_numeric_row(value):
        return matlab.double([float(item) for item in value])
    if _is_numeric_matrix(value):
        return matlab.double([[float(item) for item in row] for row in value])
    if isinstance(value, list):
        return [to_matlab(item, matlab) for item in value]
    if isinstance(value, dict):
        return {key: to_matlab(item, matlab) for key, item in value.items()}
    return value


class MatlabSession:
    """One connection to a shared MATLAB session.

    Example:
        ```python
        session = MatlabSessionProvider(session_name="MATLAB_1234").acquire()
        ```
    """

    def __init__(self, engine: Any, matlab: Any) -> None:
        self._engine = engine
        self._matlab = matlab
        api = matlab.engine
        self._execution_error = api.MatlabExecutionError
        self._unavailable_errors = tuple(
            getattr(api, name) for name in _UNAVAILABLE_ERROR_NAMES if hasattr(api, name)
        )

    def eval(self, command: str, *, stdout: TextIO, stderr: TextIO) -> None:
        """Evaluate a MATLAB statement.

        Example:
            ```python
            session.eval("disp(magic(3))", stdout=out, stderr=err)
            ```
        """
        self._call(self._engine.eval, command, nargout=0, stdout=stdout, stderr=stderr)

    def feval(
        self,
        nlhs: int,
        func: str,
        args: Sequence[Any],
        *,
        stdout: TextIO,
        stderr: TextIO,
    ) -> Any:
        """Call a MATLAB function with `nargout=nlhs`.

        Example:
            ```python
            value = session.feval(1, "sqrt", [16], stdout=out, stderr=err)
            ```
        """
        converted = [to_matlab(arg, self._matlab) for arg in args]
        return self._call(
            self._engine.feval,
            func,
            *converted,
            nargout=nlhs,
            stdout=stdout,
            stderr=stderr,
        )

    def get_variable(self, name: str) -> Any:
        """Read a variable from the MATLAB base workspace.

        Example:
            ```python
            value = session.get_variable("x")
            ```
        """
        return self._call(self._engine.workspace.__getitem__, name)

    def put_variable(self, name: str, value: Any) -> None:
        """Write a variable into the MATLAB base workspace.

        Example:
            ```python
            session.put_variable("x", [1, 2, 3])
            ```
        """
        self._call(self._engine.workspace.__setitem__, name, to_matlab(value, self._matlab))

    def release(self) -> None:
        """Disconnect; a shared MATLAB session keeps running.

        Example:
            ```python
            session.release()
            ```
        """
        self._engine.quit()
        logger.debug("Disconnected from shared MATLAB session")

    def _call(self, method: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return method(*args, **kwargs)
        except self._execution_error as exc:
            raise EngineExecutionError(str(exc).strip() or type(exc).__name__) from exc
        except KeyError as exc:
            raise EngineExecutionError(f"Undefined variable {exc}") from exc
        except self._unavailable_errors as exc:
            raise EngineUnavailable(str(exc).strip() or type(exc).__name__) from exc


class MatlabSessionProvider:
    """Connect to an already-running shared MATLAB session per request.

    MATLAB must be started separately and shared, e.g. with
    `matlab.engine.shareEngine('gateway')` inside MATLAB.

    Example:
        ```python
        provider = MatlabSessionProvider(session_name="gateway")
        ```
    """

    def __init__(self, session_name: str | None = None, *, matlab: Any | None = None) -> None:
        self._session_name = session_name
        self._matlab = matlab
        self._closed = False

    def list_sessions(self) -> tuple[str, ...]:
        """Return names of shared MATLAB sessions visible to this host.

        Example:
            ```python
            names = provider.list_sessions()
            ```
        """
        return tuple(self._api().engine.find_matlab())

    def acquire(self) -> EngineSession:
        """Connect to the configured (or first) shared MATLAB session.

        Example:
            ```python
            session = provider.acquire()
            ```
        """
        if self._closed:
            raise EngineUnavailable("MATLAB session provider has been closed")
        matlab = self._api()
        api = matlab.engine
        name = self._session_name
        try:
            if name is None:
                names = tuple(api.find_matlab())
                if not names:
                    raise EngineUnavailable("No shared MATLAB session found")
                name = names[0]
            engine = api.connect_matlab(name)
        except api.EngineError as exc:
            raise EngineUnavailable(str(exc).strip() or f"Cannot connect to MATLAB session {name}") from exc
        logger.debug("Connected to shared MATLAB session %s", name)
        return MatlabSession(engine, matlab)

    def release(self, session: EngineSession | None) -> None:
        """Disconnect in the background.

        Example:
            ```python
            provider.release(session)
            ```
        """
        release_in_background(session)

    def close(self) -> None:
        """Refuse further connections.

        Example:
            ```python
            provider.close()
            ```
        """
        self._closed = True

    def _api(self) -> Any:
        if self._matlab is None:
            self._matlab = load_matlab()
        return self._matlab
