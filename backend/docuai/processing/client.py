"""
Document AI Client  —  OCR extraction + embeddings over an OpenAI-compatible API
════════════════════════════════════════════════════════════════════════════════

Two calls, both through openai.AsyncOpenAI pointed at the configured
provider base URL (Mistral by default):

  extract_text_and_images()   chat completion with the file inlined as a
                              base64 data URL; the reply is parsed as JSON
  create_embeddings()         one embeddings call per batch of chunks

Response parsing (OCR):
  The model is asked for {text, images:[{pageNumber, annotation, bounds,
  imageBase64}], analysis}. Replies wrapped in a ```json fence are unwrapped.
  A reply that is not a JSON object is NOT an error: the whole reply becomes
  the text and zero images are reported.

Error policy:
  The SDK is built with max_retries=0, so nothing retries automatically.
  Every openai.APIError (HTTP status, connection, timeout) is re-raised as
  ProviderError so the pipeline can fail the run with a readable message.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import mimetypes
import time
from dataclasses import dataclass, field
from typing import Any, Sequence

import openai
from openai import AsyncOpenAI

from docuai.core.config import Settings

logger = logging.getLogger(__name__)

# Extension fallback when the caller does not pass the detected MIME type
_DEFAULT_MIME = "application/pdf"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ProviderError(RuntimeError):
    """A call to the OCR / embedding provider failed. Never retried."""

    def __init__(self, stage: str, message: str, status_code: int | None = None) -> None:
        self.stage       = stage
        self.status_code = status_code
        prefix = f"{stage} failed"
        if status_code is not None:
            prefix += f" (HTTP {status_code})"
        super().__init__(f"{prefix}: {message}")


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclass
class OcrImage:
    page_number: int | None
    annotation:  str | None
    image_bytes: bytes = b""
    bounds:      dict[str, Any] | None = None


@dataclass
class OcrResult:
    text:     str
    images:   list[OcrImage]  = field(default_factory=list)
    analysis: dict[str, Any]  = field(default_factory=dict)

    @property
    def language(self) -> str:
        return str(self.analysis.get("language") or "unknown")

    @property
    def document_type(self) -> str:
        return str(self.analysis.get("document_type") or "general_document")


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class DocumentAIClient:
    """
    Stateless wrapper around one AsyncOpenAI client.

    Built once in the app lifespan and injected into DocumentPipeline and the
    search route. Tests pass an AsyncOpenAI whose http_client uses
    httpx.MockTransport, so the real SDK request/response path is exercised.
    """

    def __init__(
        self,
        client:          AsyncOpenAI,
        ocr_model:       str,
        embedding_model: str,
        instruction:     str,
    ) -> None:
        self._client          = client
        self._ocr_model       = ocr_model
        self._embedding_model = embedding_model
        self._instruction     = instruction

    @classmethod
    def from_settings(cls, settings: Settings) -> "DocumentAIClient":
        client = AsyncOpenAI(
            api_key=settings.ai_api_key or "unset",
            base_url=settings.ai_base_url,
            timeout=settings.ai_timeout_seconds,
            max_retries=0,
        )
        return cls(
            client=client,
            ocr_model=settings.ocr_model,
            embedding_model=settings.embedding_model,
            instruction=settings.ocr_instruction,
        )

    async def close(self) -> None:
        await self._client.close()

    # ------------------------------------------------------------------
    # OCR
    # ------------------------------------------------------------------

    async def extract_text_and_images(
        self,
        file_bytes:  bytes,
        file_name:   str,
        mime_type:   str | None = None,
        prompt_hint: str | None = None,
    ) -> OcrResult:
        """
        Send the file to the provider and parse text, images and analysis.

        Args:
            file_bytes:  raw upload content.
            file_name:   original filename (used for MIME fallback + logs).
            mime_type:   detected MIME type; guessed from file_name if omitted.
            prompt_hint: optional category prompt appended to the instruction.
        """
        mime = mime_type or mimetypes.guess_type(file_name)[0] or _DEFAULT_MIME
        data_url = f"data:{mime};base64,{base64.b64encode(file_bytes).decode('ascii')}"

        instruction = self._instruction
        if prompt_hint:
            instruction = f"{instruction}\n\n{prompt_hint}"

        t0 = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=self._ocr_model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": instruction},
                            {"type": "image_url", "image_url": {"url": data_url}},
                        ],
                    }
                ],
            )
        except openai.APIError as exc:
            raise _wrap("OCR", exc) from exc

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""

        result = parse_ocr_content(content)
        logger.info(
            "OCR done | file=%s mime=%s chars=%d images=%d elapsed_ms=%.0f",
            file_name, mime, len(result.text), len(result.images),
            (time.monotonic() - t0) * 1000,
        )
        return result

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    async def create_embeddings(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed a batch of texts in one call.
        Output is re-ordered by each item's index so result[i] ↔ texts[i].
        """
        if not texts:
            return []

        t0 = time.monotonic()
        try:
            response = await self._client.embeddings.create(
                model=self._embedding_model,
                input=list(texts),
            )
        except openai.APIError as exc:
            raise _wrap("Embedding", exc) from exc

        items = sorted(response.data, key=lambda item: item.index)
        if len(items) != len(texts):
            raise ProviderError(
                "Embedding",
                f"expected {len(texts)} embeddings, provider returned {len(items)}",
            )

        logger.debug(
            "Embeddings | model=%s inputs=%d api_ms=%.0f",
            self._embedding_model, len(texts), (time.monotonic() - t0) * 1000,
        )
        return [list(item.embedding) for item in items]

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single search query with the same model as the documents."""
        vectors = await self.create_embeddings([text])
        return vectors[0]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _wrap(stage: str, exc: openai.APIError) -> ProviderError:
    status_code = getattr(exc, "status_code", None)
    logger.warning("%s provider error | status=%s error=%s", stage, status_code, exc)
    return ProviderError(stage, str(exc), status_code)


def _strip_code_fence(content: str) -> str:
    stripped = content.strip()
    if stripped.startswith("```") and stripped.endswith("```"):
        body = stripped[3:-3]
        # drop an optional language tag on the opening fence line
        first_newline = body.find("\n")
        if first_newline != -1 and not body[:first_newline].strip().startswith("{"):
            body = body[first_newline + 1:]
        return body.strip()
    return stripped


def _decode_image(raw: Any) -> bytes:
    if not isinstance(raw, str) or not raw:
        return b""
    if raw.startswith("data:") and "," in raw:
        raw = raw.split(",", 1)[1]
    try:
        return base64.b64decode(raw, validate=False)
    except (binascii.Error, ValueError):
        logger.warning("OCR image payload is not valid base64; storing empty image")
        return b""


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_ocr_content(content: str) -> OcrResult:
    """
    Parse the model reply. Falls back to plain text when the reply is not a
    JSON object.
    """
    try:
        payload = json.loads(_strip_code_fence(content))
    except (json.JSONDecodeError, ValueError):
        payload = None

    if not isinstance(payload, dict):
        return OcrResult(text=content, images=[], analysis={})

    raw_images = payload.get("images")
    images: list[OcrImage] = []
    for raw in raw_images if isinstance(raw_images, list) else []:
        if not isinstance(raw, dict):
            continue
        images.append(
            OcrImage(
                page_number=_as_int(raw.get("pageNumber", raw.get("page_number"))),
                annotation=raw.get("annotation"),
                image_bytes=_decode_image(raw.get("imageBase64", raw.get("image_base64"))),
                bounds=raw.get("bounds") if isinstance(raw.get("bounds"), dict) else None,
            )
        )

    analysis = payload.get("analysis")
    return OcrResult(
        text=str(payload.get("text") or ""),
        images=images,
        analysis=analysis if isinstance(analysis, dict) else {},
    )
