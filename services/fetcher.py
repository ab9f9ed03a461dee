"""Download a remote source video to a local file (staged mode only)."""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from models import AcquisitionError

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class SourceFetcher:
    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None, timeout: float | None = None) -> None:
        self._transport = transport
        self._timeout = httpx.Timeout(timeout) if timeout else httpx.Timeout(30.0, read=None)

    async def fetch(self, url: str, destination: Path, *, label: str = "") -> Path:
        """
        Stream ``url`` into ``destination``.

        Any HTTP or transport failure raises AcquisitionError and leaves no
        partial file behind.
        """
        logger.info("[fetcher] %s downloading %s", label, url)
        written = 0
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self._timeout,
                follow_redirects=True,
            ) as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    with destination.open("wb") as fh:
                        async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                            fh.write(chunk)
                            written += len(chunk)
        except httpx.HTTPStatusError as e:
            destination.unlink(missing_ok=True)
            raise AcquisitionError(f"Source download failed with HTTP {e.response.status_code}: {url}") from e
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            destination.unlink(missing_ok=True)
            raise AcquisitionError(f"Source download failed: {e}") from e
        except BaseException:
            destination.unlink(missing_ok=True)
            raise

        if written == 0:
            destination.unlink(missing_ok=True)
            raise AcquisitionError(f"Source download returned no data: {url}")
        logger.info("[fetcher] %s downloaded %d bytes to %s", label, written, destination)
        return destination
