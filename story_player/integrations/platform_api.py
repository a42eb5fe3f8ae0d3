"""Story platform REST API: catalog lookup and account progress writes."""
from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Mapping

from ..domain.story import Story


class PlatformApiError(RuntimeError):
    """Raised when a platform request fails or returns an invalid payload."""


def _normalize_base_url(base_url: str) -> str:
    normalized = (base_url or "").strip().rstrip("/")
    if not normalized:
        raise PlatformApiError("Platform API URL is empty.")
    return normalized


def _request_json(
    *,
    method: str,
    url: str,
    timeout_seconds: float,
    token: str | None = None,
    payload: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    headers = {"Content-Type": "application/json", "Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    body = json.dumps(dict(payload)).encode("utf-8") if payload is not None else None
    http_request = urllib.request.Request(url, data=body, headers=headers, method=method)
    request_timeout: float | None
    try:
        request_timeout = float(timeout_seconds)
    except (TypeError, ValueError):
        request_timeout = None
    if request_timeout is not None and request_timeout <= 0:
        request_timeout = None
    try:
        if request_timeout is None:
            response_ctx = urllib.request.urlopen(http_request)
        else:
            response_ctx = urllib.request.urlopen(http_request, timeout=request_timeout)
        with response_ctx as response:
            raw_response = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        error_payload = exc.read().decode("utf-8", errors="replace").strip()
        snippet = error_payload[:500] if error_payload else "No body"
        raise PlatformApiError(f"Platform API HTTP {exc.code}: {snippet}") from exc
    except urllib.error.URLError as exc:
        raise PlatformApiError(f"Failed to reach platform API: {url}") from exc
    except TimeoutError as exc:
        raise PlatformApiError("Platform API request timed out.") from exc
    except OSError as exc:
        raise PlatformApiError(f"Platform API connection error: {exc}") from exc

    if not raw_response.strip():
        return {}
    try:
        data = json.loads(raw_response)
    except json.JSONDecodeError as exc:
        raise PlatformApiError("Platform API returned invalid JSON.") from exc
    if not isinstance(data, dict):
        raise PlatformApiError("Platform API response must be a JSON object.")
    return data


class PlatformApiClient:
    def __init__(self, base_url: str, *, timeout_seconds: float = 10.0) -> None:
        self.base_url = _normalize_base_url(base_url)
        self.timeout_seconds = timeout_seconds

    def _url(self, *parts: str) -> str:
        quoted = "/".join(urllib.parse.quote(str(part), safe="") for part in parts)
        return f"{self.base_url}/{quoted}"

    def get_story(self, slug: str) -> Story:
        data = _request_json(
            method="GET",
            url=self._url("stories", slug),
            timeout_seconds=self.timeout_seconds,
        )
        story_payload = data.get("data")
        if data.get("success") is False or not isinstance(story_payload, dict):
            message = data.get("message") or "Story not found."
            raise PlatformApiError(f"Story lookup failed for {slug}: {message}")
        try:
            return Story.from_mapping(story_payload)
        except ValueError as exc:
            raise PlatformApiError(f"Story {slug} is not playable: {exc}") from exc

    def push_progress(
        self,
        story_id: str,
        payload: Mapping[str, Any],
        *,
        token: str,
    ) -> dict[str, Any]:
        body = {
            "position": int(payload.get("position", 0)),
            "duration": int(payload.get("duration", 0)),
            "completed": bool(payload.get("completed", False)),
        }
        data = _request_json(
            method="POST",
            url=self._url("user", "progress", story_id),
            timeout_seconds=self.timeout_seconds,
            token=token,
            payload=body,
        )
        if data.get("success") is False:
            raise PlatformApiError(
                f"Progress update rejected for story {story_id}: {data.get('message') or 'unknown error'}"
            )
        return data
