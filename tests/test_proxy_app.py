"""Tests for the inference proxy server."""

import json
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from mysight.proxy.app import create_app, escape_js_string
from mysight.utils.config import DEFAULT_PROXY_ENDPOINTS, Config


class Upstream:
    """Scripted upstream inference API."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def config(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("CONFIG_FILE", raising=False)
    monkeypatch.setenv("HF_TOKEN", "hf_test")
    monkeypatch.delenv("GOOGLE_VISION_API_KEY", raising=False)
    return Config(tmp_path / "missing.yaml")


def make_client(config, upstream):
    return TestClient(create_app(config, transport=httpx.MockTransport(upstream)))


BODY = {"model": "google/vit-base-patch16-224", "imageBase64": "AAAA"}


class TestEscapeJsString:
    """Tests for escape_js_string."""

    def test_escapes(self):
        assert escape_js_string("a'b\\c\nd") == "'a\\'b\\\\c\\nd'"

    def test_empty(self):
        assert escape_js_string("") == "''"
        assert escape_js_string(None) == "''"


class TestInferenceProxy:
    """Tests for the inference relay endpoint."""

    def test_success_is_relayed_verbatim(self, config):
        payload = b'[{"label": "tabby, tabby cat", "score": 0.93}]'
        upstream = Upstream(httpx.Response(200, content=payload))
        client = make_client(config, upstream)

        response = client.post("/api/huggingface", json=BODY)

        assert response.status_code == 200
        assert response.content == payload
        assert response.headers["access-control-allow-origin"] == "*"

        request = upstream.requests[0]
        assert str(request.url) == "https://api-inference.huggingface.co/models/google/vit-base-patch16-224"
        assert request.headers["authorization"] == "Bearer hf_test"
        assert json.loads(request.content) == {"inputs": "AAAA"}

    def test_root_path_is_an_alias(self, config):
        upstream = Upstream(httpx.Response(200, json=["dog"]))
        client = make_client(config, upstream)

        response = client.post("/", json=BODY)

        assert response.status_code == 200
        assert response.json() == ["dog"]

    def test_missing_model_makes_no_upstream_call(self, config):
        upstream = Upstream()
        client = make_client(config, upstream)

        response = client.post("/api/huggingface", json={"imageBase64": "AAAA"})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing model or imageBase64"}
        assert upstream.requests == []

    def test_empty_image_rejected(self, config):
        upstream = Upstream()
        client = make_client(config, upstream)

        response = client.post("/api/huggingface", json={"model": "m", "imageBase64": ""})

        assert response.status_code == 400
        assert upstream.requests == []

    def test_invalid_json_rejected(self, config):
        upstream = Upstream()
        client = make_client(config, upstream)

        response = client.post(
            "/api/huggingface",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert upstream.requests == []

    def test_missing_token_fails_closed(self, config, monkeypatch):
        monkeypatch.delenv("HF_TOKEN")
        upstream = Upstream()
        client = make_client(config, upstream)

        response = client.post("/api/huggingface", json=BODY)

        assert response.status_code == 500
        assert response.json() == {"error": "HF_TOKEN not configured"}
        assert upstream.requests == []

    def test_token_read_per_request(self, config, monkeypatch):
        monkeypatch.delenv("HF_TOKEN")
        upstream = Upstream(httpx.Response(200, json=[]))
        client = make_client(config, upstream)
        assert client.post("/api/huggingface", json=BODY).status_code == 500

        monkeypatch.setenv("HF_TOKEN", "hf_rotated")

        assert client.post("/api/huggingface", json=BODY).status_code == 200
        assert upstream.requests[0].headers["authorization"] == "Bearer hf_rotated"

    def test_not_found_advances_to_next_endpoint(self, config):
        upstream = Upstream(
            httpx.Response(404, text="Not Found"),
            httpx.Response(200, json=["cat"]),
        )
        client = make_client(config, upstream)

        response = client.post("/api/huggingface", json=BODY)

        assert response.status_code == 200
        assert [str(r.url) for r in upstream.requests] == [
            t.format(model=BODY["model"]) for t in DEFAULT_PROXY_ENDPOINTS[:2]
        ]

    def test_all_endpoints_not_found(self, config):
        upstream = Upstream(*(httpx.Response(404, text="gone") for _ in range(3)))
        client = make_client(config, upstream)

        response = client.post("/api/huggingface", json=BODY)

        assert response.status_code == 404
        body = response.json()
        assert body["status"] == 404
        assert body["details"] == "gone"
        assert len(body["triedEndpoints"]) == 3
        assert response.headers["access-control-allow-origin"] == "*"

    def test_transport_error_advances_to_next_endpoint(self, config):
        upstream = Upstream(
            httpx.ConnectError("dns failure"),
            httpx.Response(200, json=["cat"]),
        )
        client = make_client(config, upstream)

        response = client.post("/api/huggingface", json=BODY)

        assert response.status_code == 200
        assert len(upstream.requests) == 2

    def test_no_endpoint_reachable(self, config):
        upstream = Upstream(*(httpx.ConnectError("offline") for _ in range(3)))
        client = make_client(config, upstream)

        response = client.post("/api/huggingface", json=BODY)

        assert response.status_code == 502
        assert response.json()["details"] == "offline"

    def test_upstream_error_is_relayed(self, config):
        upstream = Upstream(httpx.Response(503, text='{"error":"Model is loading"}'))
        client = make_client(config, upstream)

        response = client.post("/api/huggingface", json=BODY)

        assert response.status_code == 503
        assert response.json() == {
            "error": "Hugging Face API error",
            "status": 503,
            "details": '{"error":"Model is loading"}',
        }
        # Only a 404 moves on to the next endpoint
        assert len(upstream.requests) == 1

    def test_preflight(self, config):
        client = make_client(config, Upstream())

        response = client.options("/api/huggingface")

        assert response.status_code == 204
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-methods"] == "POST, OPTIONS"
        assert response.headers["access-control-allow-headers"] == "Content-Type"
        assert response.headers["access-control-max-age"] == "86400"

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE", "PATCH"])
    def test_other_methods_not_allowed(self, config, method):
        client = make_client(config, Upstream())

        response = client.request(method, "/api/huggingface")

        assert response.status_code == 405
        assert response.text == "Method not allowed"


class TestConfigScript:
    """Tests for the client configuration script."""

    def test_config_script(self, config, monkeypatch):
        monkeypatch.setenv("HF_TOKEN", "hf_it's")
        monkeypatch.setenv("GOOGLE_VISION_API_KEY", "AIza\\key")
        client = make_client(config, Upstream())

        response = client.get("/config.js")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/javascript; charset=utf-8"
        assert response.headers["cache-control"] == "public, max-age=3600"
        assert "HF_TOKEN: 'hf_it\\'s'" in response.text
        assert "GOOGLE_VISION_API_KEY: 'AIza\\\\key'" in response.text

    def test_missing_secrets_render_empty(self, config, monkeypatch):
        monkeypatch.delenv("HF_TOKEN")
        client = make_client(config, Upstream())

        response = client.get("/config.js")

        assert "HF_TOKEN: ''" in response.text
        assert "GOOGLE_VISION_API_KEY: ''" in response.text
