from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .codec import (
    decode_eval,
    decode_feval,
    decode_get_variable,
    decode_put_variable,
    encode_response,
)
from .errors import GatewayError
from .executor import OperationExecutor
from .session.engine import EngineSession, SessionProvider
from .types import JSON_CONTENT_TYPE, TEXT_CONTENT_TYPE, GatewayResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Route:
    """Decode and execute functions bound to one endpoint.

    Example:
        ```python
        route = Route("/eval", decode_eval, OperationExecutor.eval, ("command",), ("incomingArgs", "stdout", "stderr"))
        ```
    """

    path: str
    decode: Callable[[bytes], Any]
    execute: Callable[[OperationExecutor, EngineSession, Any], Any]
    request_fields: tuple[str, ...]
    response_fields: tuple[str, ...]


ROUTES: dict[str, Route] = {
    route.path: route
    for route in (
        Route(
            "/eval",
            decode_eval,
            OperationExecutor.eval,
            ("command",),
            ("incomingArgs", "stdout", "stderr"),
        ),
        Route(
            "/feval",
            decode_feval,
            OperationExecutor.feval,
            ("nlhs", "func", "args"),
            ("incomingArgs", "result", "stdout", "stderr"),
        ),
        Route(
            "/getVariable",
            decode_get_variable,
            OperationExecutor.get_variable,
            ("varName",),
            ("varName", "varData"),
        ),
        Route(
            "/putVariable",
            decode_put_variable,
            OperationExecutor.put_variable,
            ("varName", "varData"),
            ("varName", "varData"),
        ),
    )
}


def error_response(status: int, message: str) -> GatewayResponse:
    """Build a plain-text failure response.

    Example:
        ```python
        resp = error_response(503, "No shared MATLAB session found")
        ```
    """
    return GatewayResponse(status=status, body=message.encode("utf-8"), content_type=TEXT_CONTENT_TYPE)


class RequestDispatcher:
    """Run the acquire -> decode -> execute -> encode pipeline for every route.

    Not thread-safe: callers must serialize `dispatch` calls, because the
    engine session underneath is not reentrant.

    Example:
        ```python
        dispatcher = RequestDispatcher(PythonSessionProvider())
        resp = dispatcher.dispatch("/eval", b'{"command": "print(1)"}')
        ```
    """

    def __init__(
        self,
        provider: SessionProvider,
        executor: OperationExecutor | None = None,
    ) -> None:
        self._provider = provider
        self._executor = executor or OperationExecutor()

    @property
    def provider(self) -> SessionProvider:
        return self._provider

    def dispatch(self, path: str, body: bytes) -> GatewayResponse:
        """Handle one request body for `path` and return the response to send.

        Example:
            ```python
            resp = dispatcher.dispatch("/getVariable", b'{"varName": "x"}')
            ```
        """
        route = ROUTES.get(path)
        if route is None:
            raise ValueError(f"Unknown route: {path}")

        started = time.perf_counter()
        session: EngineSession | None = None
        try:
            session = self._provider.acquire()
            request = route.decode(body)
            result = route.execute(self._executor, session, request)
            response = GatewayResponse(status=200, body=encode_response(result), content_type=JSON_CONTENT_TYPE)
        except GatewayError as exc:
            response = error_response(exc.status, str(exc))
            logger.warning("%s failed with %s: %s", path, type(exc).__name__, exc)
        except Exception as exc:  # noqa: BLE001 - any other failure is a 503
            response = error_response(503, str(exc) or type(exc).__name__)
            logger.warning("%s failed with unexpected %s: %s", path, type(exc).__name__, exc)
        finally:
            self._provider.release(session)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("%s -> %d (%.1f ms)", path, response.status, elapsed_ms)
        return response
