"""Tests for the HTTP API with the agent context swapped for scripted fakes."""

import asyncio
import json

import pytest
from conftest import (
    RecordingBackend,
    ScriptedCompletionClient,
)
from fastapi.testclient import TestClient

from trustagent.agent.agent_loop import AgentContext
from trustagent.api import app as api_module
from trustagent.api.app import (
    agent_endpoint,
    app,
    generate_session_title,
    get_context,
)
from trustagent.api.models import MessageRequest
from trustagent.config import Settings
from trustagent.core.errors import ConfigurationError
from trustagent.core.schema import (
    Role,
    Turn,
)
from trustagent.tools import BackendRegistry

READ_A = json.dumps({"tool_name": "read_file", "arguments": {"path": "a.txt"}})


@pytest.fixture(autouse=True)
def clear_sessions():
    api_module.sessions.clear()
    api_module._session_locks.clear()  # pylint: disable=protected-access
    yield
    api_module.sessions.clear()
    api_module._session_locks.clear()  # pylint: disable=protected-access
    app.dependency_overrides.clear()


def _context_for(
    completion: ScriptedCompletionClient, backend: RecordingBackend, **config
) -> AgentContext:
    return AgentContext(
        config=Settings(**config),
        registry=BackendRegistry({backend.name: backend}),
        client_factory=lambda config=None: completion,
    )


def _client_for(
    completion: ScriptedCompletionClient, backend: RecordingBackend, **config
) -> TestClient:
    context = _context_for(completion, backend, **config)
    app.dependency_overrides[get_context] = lambda: context
    return TestClient(app)


def test_health() -> None:
    assert TestClient(app).get("/health").json() == {"status": "ok"}


def test_agent_round_trip_records_session(fs_backend) -> None:
    completion = ScriptedCompletionClient([READ_A, "contents: hello"])
    client = _client_for(completion, fs_backend)

    resp = client.post("/agent", json={"message": "read a.txt please, thanks a lot"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["reply"] == "contents: hello"
    assert body["rounds"] == 2
    assert body["statuses"] == ["Thinking...", "Using tool: read_file", "Thinking..."]

    session = api_module.sessions[body["session_id"]]
    assert [t.content for t in session.turns] == [
        "read a.txt please, thanks a lot",
        "contents: hello",
    ]
    assert session.title == "read a.txt please, t..."


def test_follow_up_sends_session_history(fs_backend) -> None:
    completion = ScriptedCompletionClient(["first", "second"])
    client = _client_for(completion, fs_backend)

    session_id = client.post("/sessions", json={}).json()["session_id"]
    client.post("/agent", json={"message": "one", "session_id": session_id})
    client.post("/agent", json={"message": "two", "session_id": session_id})

    contents = [m["content"] for m in completion.calls[1][1:]]
    assert contents == ["one", "first", "two"]


def test_iterations_exhausted_is_409(fs_backend) -> None:
    completion = ScriptedCompletionClient(fallback=READ_A)
    client = _client_for(completion, fs_backend, MAX_ITERATIONS=2)

    resp = client.post("/agent", json={"message": "loop forever"})

    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "iterations_exhausted"
    assert len(fs_backend.calls) == 2

    kept = resp.json()["detail"]["session_id"]
    assert api_module.sessions[kept].turns[0].content == "loop forever"


def test_continue_after_exhaustion_keeps_the_request(fs_backend) -> None:
    completion = ScriptedCompletionClient([READ_A, READ_A, "contents: hello"])
    client = _client_for(completion, fs_backend, MAX_ITERATIONS=2)
    session_id = client.post("/sessions", json={}).json()["session_id"]

    first = client.post("/agent", json={"message": "read a.txt", "session_id": session_id})
    assert first.status_code == 409

    second = client.post("/agent", json={"message": "continue", "session_id": session_id})
    assert second.status_code == 200
    assert second.json()["reply"] == "contents: hello"

    contents = [m["content"] for m in completion.calls[2][1:]]
    assert contents == [
        "read a.txt",
        READ_A,
        "Tool result for 'read_file':\nhello",
        READ_A,
        "Tool result for 'read_file':\nhello",
        "continue",
    ]
    assert api_module.sessions[session_id].title == "read a.txt"


def test_failed_first_message_creates_no_session(fs_backend) -> None:
    completion = ScriptedCompletionClient([READ_A])
    client = _client_for(completion, fs_backend)

    resp = client.post("/agent", json={"message": "read", "session_id": "fresh", "tools": []})

    assert resp.status_code == 400
    assert api_module.sessions == {}


def test_exhausted_first_message_creates_the_session(fs_backend) -> None:
    completion = ScriptedCompletionClient(fallback=READ_A)
    client = _client_for(completion, fs_backend, MAX_ITERATIONS=1)

    resp = client.post("/agent", json={"message": "loop", "session_id": "fresh"})

    assert resp.status_code == 409
    assert [t.role for t in api_module.sessions["fresh"].turns] == [
        Role.USER,
        Role.ASSISTANT,
        Role.USER,
    ]


def test_concurrent_messages_on_one_session_run_in_order() -> None:
    backend = RecordingBackend("fs", {"read_file": "hello"}, delay=0.01)
    completion = ScriptedCompletionClient([READ_A, "first", "second"])
    context = _context_for(completion, backend)

    async def send_both():
        return await asyncio.gather(
            agent_endpoint(MessageRequest(message="one", session_id="s1"), context),
            agent_endpoint(MessageRequest(message="two", session_id="s1"), context),
        )

    one, two = asyncio.run(send_both())

    assert (one.reply, two.reply) == ("first", "second")
    turns = api_module.sessions["s1"].turns
    assert [t.content for t in turns] == ["one", "first", "two", "second"]
    assert [m["content"] for m in completion.calls[2][1:]] == ["one", "first", "two"]


def test_disabled_tool_is_not_found(fs_backend) -> None:
    completion = ScriptedCompletionClient([READ_A])
    client = _client_for(completion, fs_backend)

    resp = client.post("/agent", json={"message": "read", "tools": []})

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "tool_not_found"
    assert fs_backend.calls == []
    assert "read_file" not in completion.calls[0][0]["content"]


def test_configuration_error_is_503(fs_backend) -> None:
    def no_key(config=None):
        raise ConfigurationError("OpenAI API key is not set in the configuration.")

    context = AgentContext(registry=BackendRegistry({"fs": fs_backend}), client_factory=no_key)
    app.dependency_overrides[get_context] = lambda: context

    resp = TestClient(app).post("/agent", json={"message": "hi"})

    assert resp.status_code == 503
    assert resp.json()["detail"]["code"] == "configuration_error"


def test_list_tools(fs_backend) -> None:
    client = _client_for(ScriptedCompletionClient(), fs_backend)

    tools = client.get("/tools").json()

    assert tools == [
        {"backend_name": "fs", "tool_name": "read_file", "description": "read_file tool"}
    ]


def test_session_management() -> None:
    client = TestClient(app)

    first = client.post("/sessions", json={}).json()["session_id"]
    second = client.post("/sessions", json={"title": "Plans"}).json()["session_id"]

    listed = {s["session_id"]: s for s in client.get("/sessions").json()}
    assert set(listed) == {first, second}
    assert listed[first]["title"] == "New Chat"
    assert listed[second]["title"] == "Plans"

    assert client.patch(f"/sessions/{first}", json={"title": "Renamed"}).status_code == 200
    newest = client.get("/sessions").json()[0]
    assert newest == {**newest, "session_id": first, "title": "Renamed"}

    assert client.delete(f"/sessions/{first}").status_code == 204
    assert client.delete(f"/sessions/{first}").status_code == 404


def test_generate_session_title() -> None:
    assert generate_session_title([]) == "New Chat"
    assert generate_session_title([Turn(role=Role.USER, content="  short  ")]) == "short"
    assert generate_session_title([Turn(role=Role.USER, content="x" * 25)]) == "x" * 20 + "..."
