from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from backend.deepsea.auth.tokens import issue_session_token
from backend.deepsea.config.settings import Settings, get_settings
from backend.deepsea.errors import TIMEOUT_MESSAGE, ClientDisconnectedError
from backend.deepsea.main import app
from backend.deepsea.modes import prompts
from backend.deepsea.providers.base import ProviderName
from backend.deepsea.providers.errors import ProviderTimeoutError, ProviderUpstreamError
from backend.deepsea.service import ChatGateway, get_gateway, run_until_disconnect
from backend.tests._fake_upstream import FakeClock, RecordingSink, ScriptedClient

SECRET = "api-test-secret"
PLAN_JSON = json.dumps({"task_type": "design", "required_elements": ["boundaries"]})
GOOD_REVIEW = json.dumps({"confidence_score": 0.95})


def _frames(text: str):
    contents = []
    chunks = [c for c in text.split("\n\n") if c]
    for chunk in chunks:
        assert chunk.startswith("data: ")
        data = chunk[len("data: "):]
        if data == "[DONE]":
            contents.append(None)
            continue
        contents.append(json.loads(data)["choices"][0]["delta"]["content"])
    return contents


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        app_env="dev",
        jwt_secret_key=SECRET,
        deepseek_api_key="ds-key",
        openai_api_key="oa-key",
    )


@pytest.fixture
def api(settings):
    state = {"client": ScriptedClient(), "sink": RecordingSink(), "clock": FakeClock()}

    def _gateway():
        return ChatGateway(settings, client=state["client"], sink=state["sink"], now_ms=state["clock"])

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_gateway] = _gateway
    try:
        yield state
    finally:
        app.dependency_overrides.clear()


def _auth():
    return {"Authorization": "Bearer " + issue_session_token({"authenticated": True}, SECRET)}


def _post(payload, headers=None):
    with TestClient(app) as client:
        return client.post("/api/chat", json=payload, headers=headers if headers is not None else _auth())


def test_missing_token_is_unauthorized(api):
    res = _post({"messages": [{"role": "user", "content": "hi"}]}, headers={})
    assert res.status_code == 401
    assert res.json() == {"ok": False, "error_code": "unauthorized", "message": "Unauthorized"}


def test_forged_token_is_unauthorized(api):
    token = issue_session_token({"authenticated": True}, "someone-else")
    res = _post({"messages": [{"role": "user", "content": "hi"}]}, headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401


def test_session_cookie_is_accepted(api):
    api["client"].stream_tokens = ["ok"]
    with TestClient(app) as client:
        client.cookies.set("token", issue_session_token({"authenticated": True}, SECRET))
        res = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}], "mode": "lite"})
    assert res.status_code == 200


@pytest.mark.parametrize(
    "payload",
    [
        {"messages": []},
        {},
        {"messages": [{"role": "assistant", "content": "no user here"}]},
        {"messages": [{"role": "robot", "content": "hi"}]},
        {"messages": [{"role": "user", "content": "   "}]},
        {"messages": [{"role": "user", "content": "hi"}], "mode": "turbo"},
    ],
)
def test_malformed_requests_are_rejected(api, payload):
    res = _post(payload)
    assert res.status_code == 400
    assert res.json()["error_code"] == "invalid_request"
    assert api["client"].calls == []


def test_direct_path_streams_upstream_tokens(api):
    api["client"].stream_tokens = ["Deep", "Sea"]
    res = _post({"messages": [{"role": "user", "content": "DeepSea란 뭐야?"}], "mode": "auto"})

    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/event-stream")
    assert res.headers["cache-control"] == "no-cache"
    assert res.headers["x-deepsea-mode"] == "lite"
    assert _frames(res.text) == ["Deep", "Sea", None]

    call = api["client"].calls[0]
    assert call["provider"] is ProviderName.DEEPSEEK
    assert call["messages"][0]["role"] == "system"
    assert call["messages"][0]["content"].startswith(prompts.LITE_SYSTEM)
    assert call["messages"][-1] == {"role": "user", "content": "DeepSea란 뭐야?"}


def test_requested_model_is_forwarded(api):
    api["client"].stream_tokens = ["x"]
    _post({"messages": [{"role": "user", "content": "hello"}], "mode": "standard", "model": "deepseek-reasoner"})
    assert api["client"].calls[0]["model"] == "deepseek-reasoner"


def test_hardcore_pipeline_answer_is_one_synthesized_frame(api):
    api["client"].replies = [PLAN_JSON, "pipeline draft", GOOD_REVIEW]
    res = _post({"messages": [{"role": "user", "content": "마이크로서비스 아키텍처 전략을 분석해줘"}]})

    assert res.status_code == 200
    assert res.headers["x-deepsea-mode"] == "hardcore"
    assert "x-deepsea-error" not in res.headers
    assert _frames(res.text) == ["pipeline draft", None]
    assert len(api["client"].calls) == 3
    assert api["sink"].records[0].confidence_score == 0.95


def test_hardcore_failure_is_still_a_well_formed_stream(api):
    api["client"].replies = [ProviderTimeoutError("slow", provider="deepseek")]
    res = _post({"messages": [{"role": "user", "content": "q"}], "mode": "hardcore"})

    assert res.status_code == 200
    assert res.headers["x-deepsea-error"] == "upstream_timeout"
    assert _frames(res.text) == [TIMEOUT_MESSAGE, None]


def test_missing_primary_key_fails_before_any_call(api):
    api["client"].missing = {ProviderName.DEEPSEEK}
    res = _post({"messages": [{"role": "user", "content": "hi"}], "mode": "standard"})
    assert res.status_code == 500
    body = res.json()
    assert body["error_code"] == "configuration_error"
    assert "DEEPSEEK_API_KEY" in body["message"]
    assert api["client"].calls == []


def test_missing_fallback_key_blocks_hardcore_only(api):
    api["client"].missing = {ProviderName.OPENAI}
    res = _post({"messages": [{"role": "user", "content": "hi"}], "mode": "hardcore"})
    assert res.status_code == 500
    assert res.json()["error_code"] == "configuration_error"
    assert api["client"].calls == []

    api["client"].stream_tokens = ["fine"]
    res = _post({"messages": [{"role": "user", "content": "hi"}], "mode": "standard"})
    assert res.status_code == 200


def test_direct_timeout_is_504(api):
    api["client"].replies = [ProviderTimeoutError("slow", provider="deepseek")]
    res = _post({"messages": [{"role": "user", "content": "hi"}], "mode": "standard"})
    assert res.status_code == 504
    assert res.json() == {"ok": False, "error_code": "upstream_timeout", "message": TIMEOUT_MESSAGE}


def test_direct_upstream_error_is_500_with_detail(api):
    api["client"].replies = [
        ProviderUpstreamError("DeepSeek API Error: quota", provider="deepseek", status_code=402, detail="quota exceeded")
    ]
    res = _post({"messages": [{"role": "user", "content": "hi"}], "mode": "lite"})
    assert res.status_code == 500
    body = res.json()
    assert body["error_code"] == "upstream_error"
    assert body["detail"] == "quota exceeded"


def test_mid_stream_failure_ends_with_error_frame(api):
    api["client"].stream_tokens = ["partial", ProviderTimeoutError("read", provider="deepseek")]
    res = _post({"messages": [{"role": "user", "content": "hi"}], "mode": "standard"})
    assert res.status_code == 200
    assert _frames(res.text) == ["partial", TIMEOUT_MESSAGE, None]


def test_request_id_is_echoed_when_safe(api):
    api["client"].stream_tokens = ["x"]
    headers = {**_auth(), "X-Request-ID": "abc-123"}
    res = _post({"messages": [{"role": "user", "content": "hi"}], "mode": "lite"}, headers=headers)
    assert res.headers["x-request-id"] == "abc-123"

    headers = {**_auth(), "X-Request-ID": "<script>"}
    res = _post({"messages": [{"role": "user", "content": "hi"}], "mode": "lite"}, headers=headers)
    assert res.headers["x-request-id"] != "<script>"
    assert len(res.headers["x-request-id"]) == 36


def test_export_and_import_round_trip(api):
    messages = [{"role": "user", "content": "q"}, {"role": "assistant", "content": "## User\na"}]
    with TestClient(app) as client:
        exported = client.post(
            "/api/conversations/export",
            json={"messages": messages, "mode": "hardcore", "date": "2024-01-01"},
            headers=_auth(),
        )
        assert exported.status_code == 200
        assert exported.headers["content-type"].startswith("text/markdown")
        assert exported.text.startswith("---\nmode: hardcore\ndate: 2024-01-01\n---\n")

        imported = client.post("/api/conversations/import", json={"text": exported.text}, headers=_auth())
    assert imported.status_code == 200
    assert imported.json() == {"messages": messages, "mode": "hardcore", "date": "2024-01-01"}


def test_conversation_endpoints_require_session(api):
    with TestClient(app) as client:
        res = client.post("/api/conversations/import", json={"text": "## User\n\nq\n"})
    assert res.status_code == 401


def test_health(api):
    with TestClient(app) as client:
        body = client.get("/health").json()
    assert body["status"] == "ok"
    assert "version" in body and "uptime_seconds" in body


def test_ready_reports_provider_keys(api):
    with TestClient(app) as client:
        res = client.get("/ready")
    assert res.status_code == 200
    assert res.json()["provider_keys"] == {"primary": True, "fallback": True}


def test_ready_fails_in_prod_without_primary_key(api, settings):
    prod = settings.model_copy(update={"app_env": "prod", "deepseek_api_key": None})
    app.dependency_overrides[get_settings] = lambda: prod
    with TestClient(app) as client:
        res = client.get("/ready")
    assert res.status_code == 503
    assert "DEEPSEEK_API_KEY" in res.json()["missing_env"]


@pytest.mark.parametrize("mode", [None, ""])
def test_missing_mode_means_auto(api, mode):
    api["client"].stream_tokens = ["ok"]
    res = _post({"messages": [{"role": "user", "content": "DeepSea란 뭐야?"}], "mode": mode})
    assert res.status_code == 200
    assert res.headers["x-deepsea-mode"] == "lite"


def test_session_older_than_ttl_is_unauthorized(api, settings):
    issued = datetime.now(timezone.utc) - timedelta(days=settings.session_ttl_days + 1)
    token = issue_session_token({"authenticated": True}, SECRET, ttl_days=365, now=issued)
    res = _post({"messages": [{"role": "user", "content": "hi"}]}, headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401


class SlowClient(ScriptedClient):
    def __init__(self, delay_s: float):
        super().__init__()
        self.delay_s = delay_s
        self.started = 0
        self.finished = 0
        self.cancelled = 0

    async def complete_once(self, messages, model=None, **kwargs) -> str:
        self.started += 1
        try:
            await asyncio.sleep(self.delay_s)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        self.finished += 1
        return PLAN_JSON


def _asgi_post(path, payload, headers, disconnect_after_s):
    """Drive the app directly so the client can hang up mid-request."""
    body = json.dumps(payload).encode("utf-8")
    raw_headers = [(b"content-type", b"application/json"), (b"content-length", str(len(body)).encode())]
    raw_headers += [(name.lower().encode(), value.encode()) for name, value in headers.items()]
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": b"",
        "root_path": "",
        "headers": raw_headers,
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }
    sent = []

    async def scenario():
        hung_up = asyncio.Event()
        body_sent = False

        async def receive():
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            await hung_up.wait()
            return {"type": "http.disconnect"}

        async def send(message):
            sent.append(message)

        asyncio.get_running_loop().call_later(disconnect_after_s, hung_up.set)
        await app(scope, receive, send)

    asyncio.run(scenario())
    return sent


def test_client_disconnect_cancels_hardcore_pipeline(api):
    client = SlowClient(delay_s=0.3)
    api["client"] = client

    sent = _asgi_post(
        "/api/chat",
        {"messages": [{"role": "user", "content": "q"}], "mode": "hardcore"},
        _auth(),
        disconnect_after_s=0.05,
    )

    assert (client.started, client.finished, client.cancelled) == (1, 0, 1)
    start = next(m for m in sent if m["type"] == "http.response.start")
    assert start["status"] == 499
    assert api["sink"].records == []


def test_run_until_disconnect_returns_result_while_connected():
    async def work():
        return "answer"

    async def never():
        await asyncio.sleep(10)

    assert asyncio.run(run_until_disconnect(work(), never)) == "answer"
    assert asyncio.run(run_until_disconnect(work(), None)) == "answer"


def test_run_until_disconnect_cancels_work():
    state = {"cancelled": False}

    async def work():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            state["cancelled"] = True
            raise

    async def hang_up():
        await asyncio.sleep(0.01)

    with pytest.raises(ClientDisconnectedError):
        asyncio.run(run_until_disconnect(work(), hang_up))
    assert state["cancelled"] is True
