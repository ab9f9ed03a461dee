"""GCS upload and URL resolution for finished clips."""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from urllib.parse import quote

from requests.exceptions import Timeout as RequestTimeout

from models import Artifact, JobStage, StageTimeoutError, UploadError, UploadResult

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "clips"
PUBLIC_BASE_URL = "https://storage.googleapis.com"


def get_bucket_name() -> str:
    """Bucket name from env or default."""
    return os.environ.get("GCS_BUCKET", "").strip() or DEFAULT_BUCKET


def upload_blob(
    blob_name: str,
    *,
    data: bytes | None = None,
    filename: Path | None = None,
    content_type: str = "video/mp4",
    bucket_name: str | None = None,
    timeout: float | None = None,
) -> None:
    """
    Upload bytes or a local file to a GCS object.

    Writing to an existing object name replaces it (a new generation), so
    re-uploading the same key is an upsert rather than an error.

    :param blob_name: Object path in bucket, e.g. "final/3f2a....mp4"
    :param data: Raw bytes to upload
    :param filename: Local file to upload instead of ``data``
    :param content_type: MIME type stored on the object
    :param bucket_name: GCS bucket; default from GCS_BUCKET env or "clips"
    :param timeout: Per-request deadline in seconds; the client default when None
    """
    from google.cloud import storage

    bucket_name = bucket_name or get_bucket_name()
    client = storage.Client()
    bucket = client.bucket(bucket_name)
    blob = bucket.blob(blob_name)
    options: dict = {"content_type": content_type}
    if timeout is not None:
        options["timeout"] = timeout
    if filename is not None:
        blob.upload_from_filename(str(filename), **options)
    elif data is not None:
        blob.upload_from_string(data, **options)
    else:
        raise ValueError("upload_blob needs data or filename")


def public_url(blob_name: str, *, bucket_name: str | None = None, base_url: str = PUBLIC_BASE_URL) -> str:
    """Deterministic public URL for an object; no network call."""
    bucket_name = bucket_name or get_bucket_name()
    return f"{base_url.rstrip('/')}/{bucket_name}/{quote(blob_name)}"


def generate_signed_url(
    blob_name: str,
    *,
    bucket_name: str | None = None,
    expiration_seconds: int,
    method: str = "GET",
) -> str:
    """
    Generate a V4 signed URL for a GCS object.

    Signing happens locally with the default credentials (GOOGLE_APPLICATION_CREDENTIALS
    or ADC); those credentials must be able to sign.
    """
    from google.cloud import storage

    bucket_name = bucket_name or get_bucket_name()
    client = storage.Client()
    bucket = client.bucket(bucket_name)
    blob = bucket.blob(blob_name)
    expiration = datetime.now(timezone.utc) + timedelta(seconds=expiration_seconds)
    return blob.generate_signed_url(
        expiration=expiration,
        method=method,
        version="v4",
    )


class ArtifactStoreClient:
    """Uploads artifacts to one bucket and resolves the URL handed back to callers."""

    def __init__(
        self,
        bucket_name: str | None = None,
        *,
        public_base_url: str = PUBLIC_BASE_URL,
        signed_url_seconds: int | None = None,
    ) -> None:
        self._bucket_name = bucket_name or get_bucket_name()
        self._public_base_url = public_base_url
        self._signed_url_seconds = signed_url_seconds

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    async def upload(
        self,
        key: str,
        artifact: Artifact,
        *,
        label: str = "",
        timeout: float | None = None,
    ) -> UploadResult:
        """
        Upsert ``artifact`` at ``key`` and return the URL for it.

        ``timeout`` is handed to the storage client, which aborts the request
        itself. The blocking upload runs in a worker thread that cannot be
        interrupted, so a cancelled caller still waits for it to settle before
        the artifact's file can be removed.
        """
        logger.info("[gcs] %s uploading %d bytes to gs://%s/%s", label, artifact.size, self._bucket_name, key)
        worker = asyncio.ensure_future(
            asyncio.to_thread(
                upload_blob,
                key,
                data=artifact.data,
                filename=artifact.path,
                content_type=artifact.content_type,
                bucket_name=self._bucket_name,
                timeout=timeout,
            )
        )
        try:
            await asyncio.shield(worker)
        except asyncio.CancelledError:
            logger.warning("[gcs] %s cancelled; waiting for in-flight upload of %s to settle", label, key)
            await asyncio.wait([worker])
            if worker.exception() is not None:
                logger.warning("[gcs] %s in-flight upload of %s failed: %s", label, key, worker.exception())
            raise
        except RequestTimeout as exc:
            logger.error("[gcs] %s upload of gs://%s/%s timed out after %ss", label, self._bucket_name, key, timeout)
            raise StageTimeoutError(JobStage.UPLOADING) from exc
        except Exception as exc:  # noqa: BLE001
            raise UploadError(f"Upload to gs://{self._bucket_name}/{key} failed: {exc}") from exc
        url = await self._url_for_stored(key, label)
        logger.info("[gcs] %s uploaded gs://%s/%s", label, self._bucket_name, key)
        return UploadResult(public_url=url, storage_key=key)

    async def _url_for_stored(self, key: str, label: str) -> str:
        # The object is committed by now; signing failures fall back to the public URL.
        if not self._signed_url_seconds:
            return self.resolve_url(key)
        try:
            return await asyncio.to_thread(self.resolve_url, key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("[gcs] %s could not sign URL for %s, returning public URL: %s", label, key, exc)
            return public_url(key, bucket_name=self._bucket_name, base_url=self._public_base_url)

    def resolve_url(self, key: str) -> str:
        if self._signed_url_seconds:
            return generate_signed_url(
                key,
                bucket_name=self._bucket_name,
                expiration_seconds=self._signed_url_seconds,
            )
        return public_url(key, bucket_name=self._bucket_name, base_url=self._public_base_url)
