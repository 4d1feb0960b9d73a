from __future__ import annotations

import logging
import threading
from typing import Any, Protocol, Sequence, TextIO

logger = logging.getLogger(__name__)


class EngineSession(Protocol):
    """Exclusive handle to the running engine; never used by two requests at once."""

    def eval(self, command: str, *, stdout: TextIO, stderr: TextIO) -> None:
        """Run `command` as a top-level statement, writing output to the given streams.

        Example:
            ```python
            session.eval("x = 3", stdout=io.StringIO(), stderr=io.StringIO())
            ```
        """
        ...

    def feval(
        self,
        nlhs: int,
        func: str,
        args: Sequence[Any],
        *,
        stdout: TextIO,
        stderr: TextIO,
    ) -> Any:
        """Call `func` with `args` requesting `nlhs` return values.

        Example:
            ```python
            value = session.feval(1, "max", [[1, 9, 4]], stdout=out, stderr=err)
            ```
        """
        ...

    def get_variable(self, name: str) -> Any:
        """Return the workspace value bound to `name`.

        Example:
            ```python
            value = session.get_variable("x")
            ```
        """
        ...

    def put_variable(self, name: str, value: Any) -> None:
        """Bind `value` to `name` in the workspace, replacing any old binding.

        Example:
            ```python
            session.put_variable("x", [1, 2, 3])
            ```
        """
        ...

    def release(self) -> None:
        """Drop this handle; the engine itself keeps running.

        Example:
            ```python
            session.release()
            ```
        """
        ...


class SessionProvider(Protocol):
    def acquire(self) -> EngineSession:
        """Resolve the process-wide engine session or raise `EngineUnavailable`.

        Example:
            ```python
            session = provider.acquire()
            ```
        """
        ...

    def release(self, session: EngineSession | None) -> None:
        """Schedule release of `session` without waiting; `None` is a no-op.

        Example:
            ```python
            provider.release(session)
            ```
        """
        ...

    def close(self) -> None:
        """Stop handing out sessions.

        Example:
            ```python
            provider.close()
            ```
        """
        ...


def _release_quietly(session: EngineSession) -> None:
    try:
        session.release()
    except Exception as exc:  # noqa: BLE001 - release is advisory
        logger.warning("Engine session release failed: %s", exc)


def release_in_background(session: EngineSession | None) -> threading.Thread | None:
    """Run `session.release()` on a daemon thread and return immediately.

    Example:
        ```python
        worker = release_in_background(session)
        ```
    """
    if session is None:
        return None
    worker = threading.Thread(
        target=_release_quietly,
        args=(session,),
        name="engine-session-release",
        daemon=True,
    )
    worker.start()
    return worker
