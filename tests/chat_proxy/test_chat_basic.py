import json

import httpx
import pytest
from fastapi.testclient import TestClient

from falbridge.chat_proxy.forwarder import build_target_url, extract_api_key

BASE = "https://fal.run/openrouter/router/openai/v1"


def _completion(message):
    return {
        "id": "resp1",
        "object": "chat.completion",
        "choices": [{"index": 0, "message": message, "finish_reason": "stop"}],
        "created": 1,
        "model": "google/gemini-2.5-flash-image",
    }


@pytest.mark.parametrize(
    "path,query,expected",
    [
        ("/v1/chat/completions", "", BASE + "/chat/completions"),
        ("/chat/completions", "", BASE + "/chat/completions"),
        ("/v1/files", "limit=2&after=x", BASE + "/files?limit=2&after=x"),
        ("/v1", "", BASE),
        ("/v1beta/models", "", BASE + "/v1beta/models"),
    ],
)
def test_build_target_url(path, query, expected):
    assert build_target_url(BASE + "/", path, query) == expected


def test_extract_api_key():
    assert extract_api_key("Bearer abc", None) == "abc"
    assert extract_api_key("Key abc", "fallback") == "abc"
    assert extract_api_key("Basic abc", "fallback") == "fallback"
    assert extract_api_key(None, None) == ""


def test_chat_basic(proxy_app, upstream):
    seen = upstream(
        lambda request: httpx.Response(
            200, json=_completion({"role": "assistant", "content": "Hello"})
        )
    )
    client = TestClient(proxy_app.app)
    r = client.post(
        "/v1/chat/completions",
        json={"model": "openai/gpt-4o", "messages": [{"role": "user", "content": "Hi"}]},
        headers={"Authorization": "Bearer fal-key"},
    )
    assert r.status_code == 200
    assert r.json()["choices"][0]["message"]["content"] == "Hello"
    assert r.headers["access-control-allow-origin"] == "*"

    sent = seen[0]
    assert sent.method == "POST"
    assert str(sent.url) == BASE + "/chat/completions"
    assert json.loads(sent.content) == {
        "model": "openai/gpt-4o",
        "messages": [{"role": "user", "content": "Hi"}],
    }


def test_only_whitelisted_headers_reach_upstream(proxy_app, upstream):
    seen = upstream(lambda request: httpx.Response(200, json={"data": []}))
    TestClient(proxy_app.app).post(
        "/v1/embeddings",
        content=b'{"model":"m","input":"x"}',
        headers={
            "Authorization": "Key k1",
            "Accept": "text/event-stream",
            "User-Agent": "my-app/1.0",
            "X-Custom": "secret",
            "Cookie": "session=1",
            "Content-Type": "text/plain",
        },
    )
    headers = seen[0].headers
    assert headers["authorization"] == "Key k1"
    assert headers["content-type"] == "application/json"
    assert headers["accept"] == "text/event-stream"
    assert headers["user-agent"] == "my-app/1.0"
    assert "x-custom" not in headers
    assert "cookie" not in headers


def test_missing_api_key_is_rejected_before_forwarding(proxy_app, upstream):
    seen = upstream(lambda request: httpx.Response(200, json={}))
    r = TestClient(proxy_app.app).post("/v1/chat/completions", json={"model": "m"})
    assert r.status_code == 401
    assert r.json() == {
        "error": {
            "message": "Missing API key. Provide 'Authorization: Bearer YOUR_FAL_KEY' header",
            "type": "authentication_error",
            "code": "invalid_api_key",
        }
    }
    assert r.headers["access-control-allow-origin"] == "*"
    assert seen == []


def test_configured_key_is_used_without_authorization(proxy_app, upstream, monkeypatch):
    monkeypatch.setattr(proxy_app._cfg, "default_api_key", "server-key")
    seen = upstream(lambda request: httpx.Response(200, json={"object": "list"}))
    r = TestClient(proxy_app.app).get("/v1/responses/abc")
    assert r.status_code == 200
    assert seen[0].headers["authorization"] == "Key server-key"
    assert seen[0].content == b""


def test_request_body_is_normalized(proxy_app, upstream):
    seen = upstream(lambda request: httpx.Response(200, json=_completion({"content": "ok"})))
    TestClient(proxy_app.app).post(
        "/v1/chat/completions",
        json={
            "model": "deepseek/deepseek-v3.2-thinking",
            "messages": [{"role": "user", "content": "你好"}],
        },
        headers={"Authorization": "Bearer k"},
    )
    raw = seen[0].content
    assert "你好".encode("utf-8") in raw
    assert b", " not in raw
    body = json.loads(raw)
    assert body["model"] == "deepseek/deepseek-v3.2"
    assert body["reasoning"] == {"enabled": True}


def test_image_request_gets_modalities_and_config(proxy_app, upstream):
    seen = upstream(lambda request: httpx.Response(200, json=_completion({"content": "ok"})))
    TestClient(proxy_app.app).post(
        "/chat/completions",
        json={
            "model": "google/gemini-3-pro-image-preview",
            "messages": [{"role": "user", "content": "a fox in the snow, 横屏, 2k"}],
        },
        headers={"Authorization": "Bearer k"},
    )
    body = json.loads(seen[0].content)
    assert body["modalities"] == ["image", "text"]
    assert body["image_config"] == {"image_size": "2K", "aspect_ratio": "16:9"}


@pytest.mark.parametrize("raw", [b"not json", b"[1, 2]", b""])
def test_non_object_bodies_are_forwarded_verbatim(proxy_app, upstream, raw):
    seen = upstream(lambda request: httpx.Response(400, json={"error": "bad"}))
    r = TestClient(proxy_app.app).post(
        "/v1/chat/completions", content=raw, headers={"Authorization": "Bearer k"}
    )
    assert r.status_code == 400
    assert r.json() == {"error": "bad"}
    assert seen[0].content == raw


def test_image_response_becomes_markdown(proxy_app, upstream):
    upstream(
        lambda request: httpx.Response(
            200,
            json=_completion(
                {
                    "role": "assistant",
                    "content": "Here it is",
                    "images": [{"type": "image_url", "image_url": {"url": "https://cdn/x.png"}}],
                }
            ),
        )
    )
    r = TestClient(proxy_app.app).post(
        "/v1/chat/completions",
        json={"model": "google/gemini-2.5-flash-image"},
        headers={"Authorization": "Bearer k"},
    )
    message = r.json()["choices"][0]["message"]
    assert message["content"] == "Here it is\n\n![Generated Image](https://cdn/x.png)"
    assert "images" not in message


def test_rate_limit_headers_and_status_are_relayed(proxy_app, upstream):
    upstream(
        lambda request: httpx.Response(
            429,
            json={"error": {"message": "slow down"}},
            headers={
                "x-ratelimit-limit": "10",
                "x-ratelimit-remaining": "0",
                "x-ratelimit-reset": "30",
                "x-request-id": "abc",
            },
        )
    )
    r = TestClient(proxy_app.app).post(
        "/v1/chat/completions", json={"model": "m"}, headers={"Authorization": "Bearer k"}
    )
    assert r.status_code == 429
    assert r.json() == {"error": {"message": "slow down"}}
    assert r.headers["x-ratelimit-limit"] == "10"
    assert r.headers["x-ratelimit-remaining"] == "0"
    assert r.headers["x-ratelimit-reset"] == "30"
    assert "x-request-id" not in r.headers


def test_non_json_responses_are_relayed_raw(proxy_app, upstream):
    upstream(
        lambda request: httpx.Response(
            502, content=b"<html>bad gateway</html>", headers={"content-type": "text/html"}
        )
    )
    r = TestClient(proxy_app.app).get("/v1/anything", headers={"Authorization": "Bearer k"})
    assert r.status_code == 502
    assert r.content == b"<html>bad gateway</html>"
    assert r.headers["content-type"] == "text/html"


def test_transport_failure_is_proxy_error(proxy_app, upstream):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    upstream(handler)
    r = TestClient(proxy_app.app).post(
        "/v1/chat/completions", json={"model": "m"}, headers={"Authorization": "Bearer k"}
    )
    assert r.status_code == 502
    assert r.json() == {
        "error": {
            "message": "Proxy error: connection refused",
            "type": "proxy_error",
            "code": "upstream_error",
        }
    }
    assert r.headers["access-control-allow-origin"] == "*"


def test_preflight_is_answered_locally(proxy_app, upstream):
    seen = upstream(lambda request: httpx.Response(200))
    r = TestClient(proxy_app.app).options("/v1/chat/completions")
    assert r.status_code == 204
    assert r.content == b""
    assert r.headers["access-control-allow-origin"] == "*"
    assert "OPTIONS" in r.headers["access-control-allow-methods"]
    assert r.headers["access-control-max-age"] == "86400"
    assert seen == []


def test_service_info(proxy_app):
    r = TestClient(proxy_app.app).get("/")
    assert r.status_code == 200
    info = r.json()
    assert info["usage"]["base_url"] == "http://testserver/v1"
    assert "/v1/chat/completions" in info["endpoints"]
    assert info["thinking_models"]["deepseek/deepseek-v3.2-thinking"] == "deepseek/deepseek-v3.2"
    assert info["image_config"]["defaults"] == {"image_size": "4K", "aspect_ratio": "1:1"}
    assert r.headers["access-control-allow-origin"] == "*"


@pytest.mark.parametrize(
    "inbound,upstream_raw_path",
    [
        (
            "/v1/models/openai%2Fgpt-4o/endpoints",
            b"/openrouter/router/openai/v1/models/openai%2Fgpt-4o/endpoints",
        ),
        ("/v1/files/a%3Fb?limit=1", b"/openrouter/router/openai/v1/files/a%3Fb?limit=1"),
    ],
)
def test_percent_encoded_path_is_forwarded_intact(
    proxy_app, upstream, inbound, upstream_raw_path
):
    seen = upstream(lambda request: httpx.Response(200, json={"ok": True}))
    r = TestClient(proxy_app.app).get(inbound, headers={"Authorization": "Bearer k"})
    assert r.status_code == 200
    assert seen[0].url.raw_path == upstream_raw_path
