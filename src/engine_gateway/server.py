from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Iterable

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import Response
from starlette.types import ASGIApp, Receive, Scope, Send

from .config import GatewaySettings
from .dispatcher import ROUTES, RequestDispatcher
from .executor import OperationExecutor
from .session.engine import SessionProvider
from .session.matlab_engine import MatlabSessionProvider
from .session.python_engine import PythonSessionProvider

logger = logging.getLogger(__name__)

ROUTE_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def build_provider(settings: GatewaySettings) -> SessionProvider:
    """Create the session provider for the configured backend.

    Example:
        ```python
        provider = build_provider(GatewaySettings(backend="matlab", session_name="gateway"))
        ```
    """
    if settings.backend == "matlab":
        return MatlabSessionProvider(session_name=settings.session_name)
    return PythonSessionProvider()


class SerialExchangeMiddleware:
    """Serialize route exchanges end to end, from arrival to the last body chunk.

    The lock is taken before the request body is read and released only after
    the wrapped app has sent its final `http.response.body`, so request N+1
    never reaches the engine while response N is still being written.

    Example:
        ```python
        app.add_middleware(SerialExchangeMiddleware, paths=ROUTES)
        ```
    """

    def __init__(self, app: ASGIApp, paths: Iterable[str]) -> None:
        self.app = app
        self._paths = frozenset(paths)
        # asyncio.Lock wakes waiters in FIFO order.
        self._lock = asyncio.Lock()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] not in self._paths:
            await self.app(scope, receive, send)
            return
        async with self._lock:
            await self.app(scope, receive, send)


def _route_handler(
    path: str,
    dispatcher: RequestDispatcher,
    worker: ThreadPoolExecutor,
) -> Callable[[Request], Awaitable[Response]]:
    async def handle(request: Request) -> Response:
        body = await request.body()
        loop = asyncio.get_running_loop()
        # Off the event loop; SerialExchangeMiddleware keeps one exchange in flight.
        result = await loop.run_in_executor(worker, dispatcher.dispatch, path, body)
        return Response(content=result.body, status_code=result.status, media_type=result.content_type)

    return handle


def create_app(provider: SessionProvider, settings: GatewaySettings | None = None) -> FastAPI:
    """Build the FastAPI app exposing the four engine routes.

    Example:
        ```python
        app = create_app(PythonSessionProvider())
        ```
    """
    resolved = settings or GatewaySettings()
    dispatcher = RequestDispatcher(
        provider,
        OperationExecutor(max_output_kb=resolved.max_output_kb),
    )
    worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="engine-gateway")

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info("Engine gateway ready (backend=%s)", resolved.backend)
        try:
            yield
        finally:
            worker.shutdown(wait=True)
            provider.close()
            logger.info("Engine gateway stopped")

    app = FastAPI(title="engine-gateway", lifespan=lifespan)
    app.state.dispatcher = dispatcher
    app.state.settings = resolved
    app.add_middleware(SerialExchangeMiddleware, paths=ROUTES)
    for path in ROUTES:
        app.add_api_route(
            path,
            _route_handler(path, dispatcher, worker),
            methods=ROUTE_METHODS,
            name=path.strip("/"),
            include_in_schema=False,
        )
    return app


def run(settings: GatewaySettings) -> None:
    """Serve the gateway with uvicorn until interrupted.

    Example:
        ```python
        run(GatewaySettings(port=8080))
        ```
    """
    app = create_app(build_provider(settings), settings)
    logger.info("Listening on http://%s:%d", settings.host, settings.port)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )
