import json

import httpx
import pytest

from models import NotifyError
from services.notifier import CompletionNotifier


@pytest.mark.asyncio
async def test_notify_posts_clip_payload_with_bearer_token() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"ok": True})

    notifier = CompletionNotifier(
        "https://hooks.test/clip-ready",
        token="s3cret",
        transport=httpx.MockTransport(handler),
    )
    await notifier.notify("user-1", "video-9", "https://storage.googleapis.com/clips/final/a.mp4", "public")

    (request,) = captured
    assert request.method == "POST"
    assert request.headers["Authorization"] == "Bearer s3cret"
    assert json.loads(request.content) == {
        "user_id": "user-1",
        "video_id": "video-9",
        "clipUrl": "https://storage.googleapis.com/clips/final/a.mp4",
        "privacyStatus": "public",
    }


@pytest.mark.asyncio
async def test_notify_without_token_sends_no_auth_header() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(204)

    await CompletionNotifier("https://hooks.test/x", transport=httpx.MockTransport(handler)).notify(
        "u", "v", "https://clip", "private"
    )
    assert "Authorization" not in captured[0].headers


@pytest.mark.asyncio
async def test_non_2xx_raises_notify_error() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway"))
    with pytest.raises(NotifyError, match="HTTP 502"):
        await CompletionNotifier("https://hooks.test/x", transport=transport).notify("u", "v", "https://clip", "public")


@pytest.mark.asyncio
async def test_transport_failure_raises_notify_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(NotifyError, match="timed out"):
        await CompletionNotifier("https://hooks.test/x", transport=httpx.MockTransport(handler)).notify(
            "u", "v", "https://clip", "public"
        )
