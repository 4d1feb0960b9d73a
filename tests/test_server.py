from __future__ import annotations

import asyncio
import threading

import pytest
from fastapi.testclient import TestClient

from conftest import RecordingProvider, RecordingSession
from engine_gateway import GatewaySettings, MatlabSessionProvider, PythonSessionProvider, build_provider, create_app


@pytest.fixture
def client(provider: RecordingProvider):
    with TestClient(create_app(provider)) as test_client:
        yield test_client


@pytest.mark.parametrize(
    ("path", "payload", "echoed"),
    [
        ("/eval", {"command": "x = 1"}, {"incomingArgs": {"command": "x = 1"}}),
        (
            "/feval",
            {"nlhs": 1, "func": "plus", "args": [1, 2]},
            {"incomingArgs": {"nlhs": 1, "func": "plus", "args": [1, 2]}},
        ),
        ("/getVariable", {"varName": "z"}, {"varName": "z"}),
        ("/putVariable", {"varName": "z", "varData": [1, "two", None]}, {"varName": "z", "varData": [1, "two", None]}),
    ],
)
def test_every_route_echoes_input(
    client: TestClient, session: RecordingSession, path: str, payload: dict, echoed: dict
) -> None:
    session.variables["z"] = 7
    session.feval_results["plus"] = 3

    response = client.post(path, json=payload)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/json"
    body = response.json()
    for key, value in echoed.items():
        assert body[key] == value


def test_eval_stdout_over_http(client: TestClient, session: RecordingSession) -> None:
    session.eval_output["1+1"] = ("2\n", "")
    response = client.post("/eval", content=b'{"command":"1+1"}')

    assert response.status_code == 200
    assert response.json() == {"incomingArgs": {"command": "1+1"}, "stdout": "2\n", "stderr": ""}


def test_decode_failure_is_plain_text_400(client: TestClient, session: RecordingSession) -> None:
    response = client.post("/putVariable", content=b"not json")

    assert response.status_code == 400
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "Request body cannot be properly deserialized"
    assert session.calls == []


def test_engine_failure_is_plain_text_503(client: TestClient) -> None:
    response = client.post("/getVariable", content=b'{"varName":"y"}')

    assert response.status_code == 503
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text


def test_any_method_is_accepted(client: TestClient, session: RecordingSession) -> None:
    response = client.put("/putVariable", content=b'{"varName":"m","varData":true}')

    assert response.status_code == 200
    assert session.variables["m"] is True


def test_lifespan_closes_provider(provider: RecordingProvider) -> None:
    with TestClient(create_app(provider)):
        assert provider.closed is False
    assert provider.closed is True


def test_python_backend_end_to_end() -> None:
    with TestClient(create_app(PythonSessionProvider())) as client:
        assert client.post("/putVariable", json={"varName": "x", "varData": 41}).status_code == 200
        evaluated = client.post("/eval", json={"command": "x + 1"})
        called = client.post("/feval", json={"nlhs": 1, "func": "max", "args": [[3, 9, 4]]})
        missing = client.post("/getVariable", json={"varName": "nope"})

    assert evaluated.json()["stdout"] == "42\n"
    assert called.json()["result"] == 9
    assert missing.status_code == 503
    assert "nope" in missing.text


def test_build_provider_follows_backend() -> None:
    assert isinstance(build_provider(GatewaySettings()), PythonSessionProvider)
    assert isinstance(build_provider(GatewaySettings(backend="matlab")), MatlabSessionProvider)


def test_head_and_options_are_accepted(client: TestClient, session: RecordingSession) -> None:
    options = client.request("OPTIONS", "/putVariable", content=b'{"varName":"o","varData":1}')
    head = client.head("/getVariable")

    assert options.status_code == 200
    assert session.variables["o"] == 1
    assert head.status_code == 400


class _GatedSession(RecordingSession):
    """Session whose first put blocks until `gate` opens; tracks overlapping calls."""

    def __init__(self, events: list[str], gate: threading.Event) -> None:
        super().__init__()
        self.events = events
        self.gate = gate
        self.in_flight = 0
        self.max_in_flight = 0
        self._counter = threading.Lock()

    def put_variable(self, name: str, value) -> None:
        with self._counter:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.events.append(f"engine put {name}")
        try:
            if name == "a":
                self.gate.wait(timeout=5)
            super().put_variable(name, value)
        finally:
            with self._counter:
                self.in_flight -= 1


async def _exchange(app, name: str, events: list[str], hold: asyncio.Event | None = None) -> int:
    body = f'{{"varName":"{name}","varData":1}}'.encode()
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": "/putVariable",
        "raw_path": b"/putVariable",
        "root_path": "",
        "query_string": b"",
        "headers": [(b"content-type", b"application/json")],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }
    delivered = False
    status: list[int] = []

    async def receive():
        nonlocal delivered
        if delivered:
            return {"type": "http.disconnect"}
        delivered = True
        return {"type": "http.request", "body": body, "more_body": False}

    async def send(message) -> None:
        if message["type"] == "http.response.start":
            status.append(message["status"])
        if message["type"] == "http.response.body" and not message.get("more_body", False):
            if hold is not None:
                await hold.wait()
            events.append(f"response {name} sent")

    await app(scope, receive, send)
    return status[0]


def test_concurrent_requests_never_overlap_in_engine() -> None:
    events: list[str] = []
    gate = threading.Event()
    session = _GatedSession(events, gate)
    app = create_app(RecordingProvider(session))

    async def scenario() -> list[int]:
        first = asyncio.create_task(_exchange(app, "a", events))
        await asyncio.sleep(0.05)
        second = asyncio.create_task(_exchange(app, "b", events))
        await asyncio.sleep(0.2)
        assert events == ["engine put a"]
        gate.set()
        return await asyncio.gather(first, second)

    statuses = asyncio.run(scenario())

    assert statuses == [200, 200]
    assert events == ["engine put a", "response a sent", "engine put b", "response b sent"]
    assert session.max_in_flight == 1


def test_next_request_waits_for_previous_response_to_be_sent() -> None:
    events: list[str] = []
    gate = threading.Event()
    gate.set()
    session = _GatedSession(events, gate)
    app = create_app(RecordingProvider(session))

    async def scenario() -> None:
        hold_first = asyncio.Event()
        first = asyncio.create_task(_exchange(app, "a", events, hold=hold_first))
        await asyncio.sleep(0.05)
        second = asyncio.create_task(_exchange(app, "b", events))
        await asyncio.sleep(0.2)
        assert events == ["engine put a"]
        hold_first.set()
        await asyncio.gather(first, second)

    asyncio.run(scenario())

    assert events == ["engine put a", "response a sent", "engine put b", "response b sent"]
