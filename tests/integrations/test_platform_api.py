import io
import json
import urllib.error

import pytest

from story_player.integrations import platform_api as api


class _Response:
    def __init__(self, body: bytes):
        self.body = body

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        _ = (exc_type, exc, tb)
        return False

    def read(self):
        return self.body


def test_request_json_sends_bearer_token_and_body(monkeypatch):
    captured = {}

    def fake_urlopen(request, **kwargs):
        captured["request"] = request
        captured["kwargs"] = kwargs
        return _Response(b'{"success": true}')

    monkeypatch.setattr(api.urllib.request, "urlopen", fake_urlopen)
    result = api._request_json(
        method="POST",
        url="https://stories.example.com/api/user/progress/a",
        timeout_seconds=7,
        token="tok",
        payload={"position": 1},
    )

    request = captured["request"]
    assert result == {"success": True}
    assert request.get_method() == "POST"
    assert request.get_header("Authorization") == "Bearer tok"
    assert json.loads(request.data.decode("utf-8")) == {"position": 1}
    assert captured["kwargs"] == {"timeout": 7.0}


def test_request_json_disables_timeout_when_zero(monkeypatch):
    captured = {}

    def fake_urlopen(request, **kwargs):
        captured["kwargs"] = kwargs
        captured["auth"] = request.get_header("Authorization")
        return _Response(b"")

    monkeypatch.setattr(api.urllib.request, "urlopen", fake_urlopen)
    result = api._request_json(method="GET", url="https://x/api/stories/a", timeout_seconds=0)

    assert result == {}
    assert captured == {"kwargs": {}, "auth": None}


def test_request_json_maps_http_errors(monkeypatch):
    def fake_urlopen(request, **_kwargs):
        raise urllib.error.HTTPError(
            request.full_url, 401, "Unauthorized", {}, io.BytesIO(b'{"message":"bad token"}')
        )

    monkeypatch.setattr(api.urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(api.PlatformApiError, match="HTTP 401: .*bad token"):
        api._request_json(method="GET", url="https://x/api/stories/a", timeout_seconds=1)


def test_request_json_maps_unreachable_host(monkeypatch):
    def fake_urlopen(_request, **_kwargs):
        raise urllib.error.URLError("connection refused")

    monkeypatch.setattr(api.urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(api.PlatformApiError, match="Failed to reach"):
        api._request_json(method="GET", url="https://x/api/stories/a", timeout_seconds=1)


@pytest.mark.parametrize("body", [b"not json", b"[1, 2]"])
def test_request_json_rejects_non_object_payload(monkeypatch, body):
    monkeypatch.setattr(api.urllib.request, "urlopen", lambda _request, **_kwargs: _Response(body))

    with pytest.raises(api.PlatformApiError):
        api._request_json(method="GET", url="https://x/api/stories/a", timeout_seconds=1)


def test_client_requires_base_url():
    with pytest.raises(api.PlatformApiError):
        api.PlatformApiClient("  ")


def test_get_story_builds_story_from_envelope(monkeypatch):
    calls = []

    def fake_request_json(**kwargs):
        calls.append(kwargs)
        return {
            "success": True,
            "data": {
                "_id": "64f0",
                "slug": "prophet yunus",
                "title": "Prophet Yunus",
                "audioUrl": "http://cdn.example.com/yunus.mp3",
                "duration": 421,
            },
        }

    monkeypatch.setattr(api, "_request_json", fake_request_json)
    client = api.PlatformApiClient("https://stories.example.com/api/", timeout_seconds=3)

    story = client.get_story("prophet yunus")

    assert story.id == "64f0"
    assert story.audio_url == "https://cdn.example.com/yunus.mp3"
    assert calls == [
        {
            "method": "GET",
            "url": "https://stories.example.com/api/stories/prophet%20yunus",
            "timeout_seconds": 3,
        }
    ]


@pytest.mark.parametrize(
    "response",
    [
        {"success": False, "message": "Story not found"},
        {"success": True},
        {"success": True, "data": {"_id": "x", "title": "No audio"}},
    ],
)
def test_get_story_rejects_missing_or_unplayable_story(monkeypatch, response):
    monkeypatch.setattr(api, "_request_json", lambda **_kwargs: response)
    client = api.PlatformApiClient("https://stories.example.com/api")

    with pytest.raises(api.PlatformApiError):
        client.get_story("missing")


def test_push_progress_posts_to_user_progress(monkeypatch):
    calls = []

    def fake_request_json(**kwargs):
        calls.append(kwargs)
        return {"success": True}

    monkeypatch.setattr(api, "_request_json", fake_request_json)
    client = api.PlatformApiClient("https://stories.example.com/api")

    client.push_progress("a", {"position": 30.9, "duration": 120, "completed": 0}, token="tok")

    assert calls == [
        {
            "method": "POST",
            "url": "https://stories.example.com/api/user/progress/a",
            "timeout_seconds": 10.0,
            "token": "tok",
            "payload": {"position": 30, "duration": 120, "completed": False},
        }
    ]


def test_push_progress_raises_on_rejection(monkeypatch):
    monkeypatch.setattr(api, "_request_json", lambda **_kwargs: {"success": False, "message": "expired"})
    client = api.PlatformApiClient("https://stories.example.com/api")

    with pytest.raises(api.PlatformApiError, match="expired"):
        client.push_progress("a", {"position": 1, "duration": 2}, token="tok")
