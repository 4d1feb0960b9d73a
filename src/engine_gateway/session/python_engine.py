from __future__ import annotations

import ast
import builtins
import contextlib
import importlib
import logging
import traceback
from collections.abc import Sequence
from typing import Any, TextIO

from ..errors import EngineExecutionError, EngineUnavailable
from .engine import EngineSession, release_in_background

logger = logging.getLogger(__name__)

_RESERVED_NAMES = {"__builtins__", "__name__"}


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, SystemExit):
        return f"SystemExit: {exc.code}"
    return f"{type(exc).__name__}: {exc}"


class PythonSession:
    """Handle onto the shared in-process Python workspace.

    Example:
        ```python
        session = PythonSessionProvider().acquire()
        ```
    """

    def __init__(self, namespace: dict[str, Any]) -> None:
        self._namespace = namespace
        self._released = False

    def eval(self, command: str, *, stdout: TextIO, stderr: TextIO) -> None:
        """Run statements; a lone non-None expression echoes its repr to stdout.

        Example:
            ```python
            session.eval("1 + 1", stdout=out, stderr=err)  # out gets "2\\n"
            ```
        """
        self._check_live()
        try:
            tree = ast.parse(command, filename="<engine>", mode="exec")
        except SyntaxError as exc:
            raise EngineExecutionError(f"SyntaxError: {exc}") from exc

        echo = len(tree.body) == 1 and isinstance(tree.body[0], ast.Expr)
        with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
            try:
                if echo:
                    expression = ast.Expression(tree.body[0].value)  # type: ignore[attr-defined]
                    value = eval(compile(expression, "<engine>", "eval"), self._namespace)
                    if value is not None:
                        print(repr(value))
                else:
                    exec(compile(tree, "<engine>", "exec"), self._namespace)
            except (Exception, SystemExit) as exc:
                stderr.write(traceback.format_exc())
                raise EngineExecutionError(_error_text(exc)) from exc

    def feval(
        self,
        nlhs: int,
        func: str,
        args: Sequence[Any],
        *,
        stdout: TextIO,
        stderr: TextIO,
    ) -> Any:
        """Call a workspace, builtin, or module-level function by dotted name.

        Example:
            ```python
            root = session.feval(1, "math.sqrt", [16], stdout=out, stderr=err)
            ```
        """
        self._check_live()
        target = self._resolve_callable(func)
        with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
            try:
                value = target(*args)
            except (Exception, SystemExit) as exc:
                stderr.write(traceback.format_exc())
                raise EngineExecutionError(_error_text(exc)) from exc
        return _shape_outputs(value, nlhs, func)

    def get_variable(self, name: str) -> Any:
        """Return a workspace variable or raise when it is unbound.

        Example:
            ```python
            value = session.get_variable("x")
            ```
        """
        self._check_live()
        if name in _RESERVED_NAMES or name not in self._namespace:
            raise EngineExecutionError(f"NameError: variable '{name}' is not defined")
        return self._namespace[name]

    def put_variable(self, name: str, value: Any) -> None:
        """Bind a workspace variable.

        Example:
            ```python
            session.put_variable("x", 42)
            ```
        """
        self._check_live()
        if not name.isidentifier() or name in _RESERVED_NAMES:
            raise EngineExecutionError(f"ValueError: '{name}' is not a valid variable name")
        self._namespace[name] = value

    def release(self) -> None:
        self._released = True

    def _check_live(self) -> None:
        if self._released:
            raise EngineUnavailable("Engine session has already been released")

    def _resolve_callable(self, func: str) -> Any:
        head, _, rest = func.partition(".")
        if not head.isidentifier():
            raise EngineExecutionError(f"NameError: function '{func}' is not defined")
        if head in self._namespace and head not in _RESERVED_NAMES:
            target = self._namespace[head]
        elif hasattr(builtins, head):
            target = getattr(builtins, head)
        else:
            try:
                target = importlib.import_module(head)
            except ImportError as exc:
                raise EngineExecutionError(f"NameError: function '{func}' is not defined") from exc
        for part in rest.split(".") if rest else []:
            try:
                target = getattr(target, part)
            except AttributeError as exc:
                raise EngineExecutionError(f"NameError: function '{func}' is not defined") from exc
        if not callable(target):
            raise EngineExecutionError(f"TypeError: '{func}' is not callable")
        return target


def _shape_outputs(value: Any, nlhs: int, func: str) -> Any:
    """Apply the engine's output convention: None, one value, or an nlhs-tuple.

    Example:
        ```python
        _shape_outputs((1, 2), 2, "divmod")  # (1, 2)
        ```
    """
    if nlhs == 0:
        return None
    if nlhs == 1:
        return value
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise EngineExecutionError(f"ValueError: '{func}' returned 1 output, {nlhs} requested")
    if len(value) != nlhs:
        raise EngineExecutionError(
            f"ValueError: '{func}' returned {len(value)} outputs, {nlhs} requested"
        )
    return tuple(value)


class PythonSessionProvider:
    """Serve handles onto one long-lived in-process Python workspace.

    Example:
        ```python
        provider = PythonSessionProvider(namespace={"offset": 10})
        ```
    """

    def __init__(self, namespace: dict[str, Any] | None = None) -> None:
        self._namespace: dict[str, Any] = {"__builtins__": builtins, "__name__": "__engine__"}
        self._namespace.update(namespace or {})
        self._closed = False

    def acquire(self) -> EngineSession:
        """Return a handle onto the shared workspace.

        Example:
            ```python
            session = provider.acquire()
            ```
        """
        if self._closed:
            raise EngineUnavailable("Python engine has been shut down")
        return PythonSession(self._namespace)

    def release(self, session: EngineSession | None) -> None:
        """Release a handle in the background.

        Example:
            ```python
            provider.release(session)
            ```
        """
        release_in_background(session)

    def close(self) -> None:
        """Refuse further acquires.

        Example:
            ```python
            provider.close()
            ```
        """
        if not self._closed:
            logger.info("Python engine shut down")
        self._closed = True
