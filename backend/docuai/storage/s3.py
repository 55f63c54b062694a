"""
Object Storage Service — files in S3, vectors in the provider-side table

Two backends behind one service object:

  Bucket (aioboto3)
    Original documents land under  documents/<ts>_<rand>_<name>
    Extracted images land under    images/<ts>_<rand>_<name>
    <ts> is epoch milliseconds and <rand> 11 base-36 characters, so two
    uploads of the same filename never collide. Each upload returns a
    publicly resolvable URL built from the configured public base URL.

  Vector table (httpx → PostgREST-style endpoint)
    store_vector_embedding()  POST /rest/v1/<vector_table>
    search_similar_vectors()  POST /rest/v1/rpc/match_documents
                              {query_embedding, match_threshold, match_count}

Dual-write note:
  Every embedding is written both to the local vector_embeddings table (by
  the DocumentStore) and to the provider table here. No transaction spans
  the two writes; if this insert fails the local row already exists and the
  pipeline marks the run failed.

When VECTOR_URL is empty the vector calls are skipped (logged at debug)
and search returns no matches.
"""

from __future__ import annotations

import logging
import mimetypes
import secrets
import string
import time
from typing import Any, Sequence

import aioboto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError

from docuai.core.config import Settings

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase
_RANDOM_SUFFIX_LEN = 11


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class StorageError(RuntimeError):
    """Object or vector storage call failed. Fatal to the calling stage."""


# ---------------------------------------------------------------------------
# Naming helpers
# ---------------------------------------------------------------------------

def unique_name(file_name: str) -> str:
    """<epoch_ms>_<rand>_<name> with path separators stripped from name."""
    safe_name = file_name.replace("\\", "/").rsplit("/", 1)[-1].replace("..", "_") or "file"
    suffix = "".join(secrets.choice(_BASE36) for _ in range(_RANDOM_SUFFIX_LEN))
    return f"{int(time.time() * 1000)}_{suffix}_{safe_name}"


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class ObjectStorageService:
    """
    One instance per process, built in the app lifespan.

    aioboto3 clients are opened per call (async with); the session itself
    is cheap and safe to share across concurrent pipeline runs.
    """

    def __init__(
        self,
        settings:    Settings,
        session:     aioboto3.Session | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._bucket          = settings.s3_bucket
        self._region          = settings.aws_region
        self._endpoint_url    = settings.s3_endpoint_url or None
        self._public_base_url = (
            settings.s3_public_base_url.rstrip("/")
            or f"https://{settings.s3_bucket}.s3.{settings.aws_region}.amazonaws.com"
        )
        self._session = session or aioboto3.Session(
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
        )

        self._vector_url       = settings.vector_url.rstrip("/")
        self._vector_table     = settings.vector_table
        self._match_threshold  = settings.vector_match_threshold
        self._http = http_client or httpx.AsyncClient(
            timeout=settings.vector_timeout_seconds,
            headers=_vector_headers(settings.vector_key),
        )

    async def close(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.client(
            "s3",
            region_name=self._region,
            endpoint_url=self._endpoint_url,
        )

    def public_url(self, key: str) -> str:
        return f"{self._public_base_url}/{key}"

    async def _put(self, key: str, data: bytes, file_name: str) -> str:
        content_type = mimetypes.guess_type(file_name)[0] or "application/octet-stream"
        try:
            async with self._client() as s3:
                await s3.put_object(
                    Bucket=self._bucket,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                )
        except (ClientError, BotoCoreError) as exc:
            logger.error("S3 upload failed | key=%s error=%s", key, exc)
            raise StorageError(f"Failed to upload {file_name}: {exc}") from exc

        logger.info("S3 upload ok | key=%s size=%d", key, len(data))
        return self.public_url(key)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def upload_document(self, data: bytes, file_name: str) -> str:
        return await self._put(f"documents/{unique_name(file_name)}", data, file_name)

    async def upload_image(self, data: bytes, file_name: str) -> str:
        return await self._put(f"images/{unique_name(file_name)}", data, file_name)

    async def delete_objects_for(self, urls: Sequence[str]) -> int:
        """
        Best-effort removal of objects behind public URLs (used by document
        delete). Failures are logged; returns the number of keys removed.
        """
        prefix = f"{self._public_base_url}/"
        keys = [u[len(prefix):] for u in urls if u and u.startswith(prefix)]
        if not keys:
            return 0
        try:
            async with self._client() as s3:
                await s3.delete_objects(
                    Bucket=self._bucket,
                    Delete={"Objects": [{"Key": k} for k in keys], "Quiet": True},
                )
        except (ClientError, BotoCoreError) as exc:
            logger.warning("S3 cleanup failed | keys=%d error=%s", len(keys), exc)
            return 0
        logger.info("S3 cleanup ok | keys=%d", len(keys))
        return len(keys)

    # ------------------------------------------------------------------
    # Provider-side vectors
    # ------------------------------------------------------------------

    @property
    def vectors_enabled(self) -> bool:
        return bool(self._vector_url)

    async def store_vector_embedding(
        self,
        vector:   Sequence[float],
        content:  str,
        metadata: dict[str, Any],
    ) -> None:
        if not self.vectors_enabled:
            logger.debug("Vector endpoint not configured; provider insert skipped")
            return
        await self._post(
            f"/rest/v1/{self._vector_table}",
            {"content": content, "embedding": list(vector), "metadata": metadata},
        )

    async def search_similar_vectors(
        self,
        query_vector: Sequence[float],
        limit:        int = 10,
    ) -> list[dict[str, Any]]:
        """Ranked matches above the fixed similarity threshold."""
        if not self.vectors_enabled:
            logger.debug("Vector endpoint not configured; search returns no matches")
            return []
        resp = await self._post(
            "/rest/v1/rpc/match_documents",
            {
                "query_embedding": list(query_vector),
                "match_threshold": self._match_threshold,
                "match_count":     limit,
            },
        )
        matches = resp.json()
        return matches if isinstance(matches, list) else []

    async def _post(self, path: str, body: dict[str, Any]) -> httpx.Response:
        url = f"{self._vector_url}{path}"
        try:
            resp = await self._http.post(url, json=body)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("Vector endpoint error | path=%s status=%d", path, exc.response.status_code)
            raise StorageError(
                f"Vector endpoint {path} returned {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            logger.error("Vector endpoint network error | path=%s error=%s", path, exc)
            raise StorageError(f"Vector endpoint {path} unreachable: {exc}") from exc
        return resp


def _vector_headers(key: str) -> dict[str, str]:
    if not key:
        return {}
    return {"apikey": key, "Authorization": f"Bearer {key}"}
