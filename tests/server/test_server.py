"""
Tests for the AgentBase HTTP API

The app runs offline: a scripted LLM client, in-memory threads and no
built-in utilities.
"""

import json

import pytest
from fastapi.testclient import TestClient

from agentbase.app import AgentBase
from agentbase.server import app as server_app
from agentbase.server.app import api, set_app

HEADERS = {
    "x-client-user-id": "user_1",
    "x-client-organization-id": "org_1",
    "x-platform-user-id": "platform_1",
    "x-platform-api-key": "key_secret",
}


@pytest.fixture
def serve(registry, monkeypatch):
    """``serve(llm, **run_config)`` -> TestClient bound to a fresh AgentBase."""
    monkeypatch.setattr(server_app, "_API_KEY", None)
    clients = []

    def _serve(llm, **run):
        config = {
            "run": {"llm_retry_base_delay": 0, **run},
            "utilities": {"enabled": []},
        }
        set_app(AgentBase(config, llm_client=llm, registry=registry))
        client = TestClient(api)
        client.__enter__()
        clients.append(client)
        return client

    yield _serve
    for client in clients:
        client.__exit__(None, None, None)
    set_app(None)


def _sse_payloads(body: str):
    return [line[len("data: "):] for line in body.split("\n\n") if line.startswith("data: ")]


class TestHealth:

    def test_health(self, serve, scripted_llm):
        client = serve(scripted_llm())
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestRunEndpoint:

    def test_run_with_tool_call(self, serve, scripted_llm, script):
        client = serve(scripted_llm(
            script.calls(("c1", "calc", {"expr": "2+2"})),
            script.answer("2+2 is 4"),
        ))

        resp = client.post("/run", json={"conversation_id": "conv_1", "message": "2+2?"}, headers=HEADERS)

        assert resp.status_code == 200
        body = resp.json()
        assert body["response"] == "2+2 is 4"
        assert body["state"] == "done"
        assert body["turns"] == 2
        assert body["tool_calls"][0]["name"] == "calc"
        assert body["tool_calls"][0]["node_id"].startswith("utility_")
        assert body["token_usage"] == {"input_tokens": 30, "output_tokens": 8}
        assert body["root_node_id"].startswith("agent_")
        assert body["error"] is None

    def test_missing_identity_headers(self, serve, scripted_llm):
        client = serve(scripted_llm())
        headers = {k: v for k, v in HEADERS.items() if k != "x-platform-api-key"}

        resp = client.post("/run", json={"conversation_id": "conv_1", "message": "hi"}, headers=headers)

        assert resp.status_code == 400
        assert "x-platform-api-key" in resp.json()["detail"]

    def test_invalid_body(self, serve, scripted_llm):
        client = serve(scripted_llm())
        resp = client.post("/run", json={"message": "hi"}, headers=HEADERS)
        assert resp.status_code == 422

    def test_max_iterations_status(self, serve, scripted_llm, script):
        client = serve(scripted_llm(script.calls(("c1", "calc", {"expr": "1+1"}))), max_turns=1)

        resp = client.post("/run", json={"conversation_id": "conv_1", "message": "loop"}, headers=HEADERS)

        assert resp.status_code == 422
        assert resp.json()["error"]["error_type"] == "MaxIterationsExceeded"
        assert resp.json()["response"] == ""

    def test_thread_not_found_status(self, serve, scripted_llm):
        client = serve(scripted_llm(), auto_create_thread=False)

        resp = client.post("/run", json={"conversation_id": "missing", "message": "hi"}, headers=HEADERS)

        assert resp.status_code == 404
        assert resp.json()["error"]["error_type"] == "ThreadNotFound"

    def test_model_failure_status(self, serve, scripted_llm):
        client = serve(scripted_llm(RuntimeError("provider down")), llm_max_retries=0)

        resp = client.post("/run", json={"conversation_id": "conv_1", "message": "hi"}, headers=HEADERS)

        assert resp.status_code == 502
        assert resp.json()["error"]["error_type"] == "ModelCallFailed"

    def test_not_configured(self, monkeypatch, tmp_path):
        monkeypatch.setattr(server_app, "_API_KEY", None)
        monkeypatch.setattr(server_app, "_config_path", str(tmp_path / "missing.yaml"))
        set_app(None)

        resp = TestClient(api).post("/run", json={"conversation_id": "c", "message": "hi"}, headers=HEADERS)

        assert resp.status_code == 503


class TestStreamEndpoint:

    def test_stream_events(self, serve, scripted_llm, script):
        client = serve(scripted_llm(script.answer("hello there friend")))

        resp = client.post("/stream", json={"conversation_id": "conv_1", "message": "hi"}, headers=HEADERS)

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        payloads = _sse_payloads(resp.text)
        assert payloads[-1] == "[DONE]"

        events = [json.loads(p) for p in payloads[:-1]]
        chunks = [e["data"]["chunk"] for e in events if e["type"] == "message_chunk"]
        assert "".join(chunks) == "hello there friend"
        assert events[-1]["type"] == "execution_end"
        assert [e["sequence"] for e in events] == sorted(e["sequence"] for e in events)
        assert {e["conversation_id"] for e in events} == {"conv_1"}

    def test_stream_error_is_terminal_event(self, serve, scripted_llm):
        client = serve(scripted_llm(RuntimeError("provider down")), llm_max_retries=0)

        resp = client.post("/stream", json={"conversation_id": "conv_1", "message": "hi"}, headers=HEADERS)

        assert resp.status_code == 200
        payloads = _sse_payloads(resp.text)
        assert payloads[-1] == "[DONE]"
        last = json.loads(payloads[-2])
        assert last["type"] == "error"
        assert last["data"]["error_type"] == "ModelCallFailed"


class TestThreadEndpoints:

    def test_get_and_delete_thread(self, serve, scripted_llm, script):
        client = serve(scripted_llm(script.answer("hello")))
        client.post("/run", json={"conversation_id": "conv_1", "message": "hi"}, headers=HEADERS)

        resp = client.get("/conversations/conv_1/messages")
        assert resp.status_code == 200
        assert resp.json()["messages"] == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ]

        assert client.delete("/conversations/conv_1").json() == {"status": "ok", "conversation_id": "conv_1"}
        assert client.get("/conversations/conv_1/messages").status_code == 404
        assert client.delete("/conversations/conv_1").status_code == 404


class TestUtilitiesEndpoint:

    def test_list(self, serve, scripted_llm):
        client = serve(scripted_llm())
        resp = client.get("/utilities")
        assert resp.status_code == 200
        assert resp.json() == [{"id": "calc", "description": "Add two integers written as 'a+b'."}]


class TestApiKey:

    def test_key_required_when_configured(self, serve, scripted_llm, monkeypatch):
        client = serve(scripted_llm())
        monkeypatch.setattr(server_app, "_API_KEY", "secret")

        assert client.get("/utilities").status_code == 401
        assert client.get("/utilities", headers={"X-API-Key": "secret"}).status_code == 200
        assert client.get("/utilities", headers={"Authorization": "Bearer secret"}).status_code == 200
        assert client.get("/health").status_code == 200
