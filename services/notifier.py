"""Best-effort completion callback to the downstream service."""

from __future__ import annotations

import logging

import httpx

from models import NotifyError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class CompletionNotifier:
    """
    POSTs ``{user_id, video_id, clipUrl, privacyStatus}`` once per finished clip.

    Single attempt; any transport error or non-2xx answer raises NotifyError.
    The response body is informational only.
    """

    def __init__(
        self,
        url: str,
        *,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._token = token
        self._timeout = timeout
        self._transport = transport

    @property
    def url(self) -> str:
        return self._url

    async def notify(
        self,
        user_id: str,
        video_id: str,
        clip_url: str,
        privacy_status: str,
        *,
        label: str = "",
    ) -> None:
        payload = {
            "user_id": user_id,
            "video_id": video_id,
            "clipUrl": clip_url,
            "privacyStatus": privacy_status,
        }
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        logger.info("[notifier] %s POST %s user_id=%s video_id=%s", label, self._url, user_id, video_id)
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                response = await client.post(self._url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotifyError(f"Completion callback returned HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NotifyError(f"Completion callback failed: {e}") from e
        logger.info("[notifier] %s callback accepted (HTTP %s): %.200s", label, response.status_code, response.text)
