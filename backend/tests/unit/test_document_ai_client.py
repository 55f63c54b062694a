"""
Unit Tests — DocumentAIClient
═════════════════════════════
The real openai SDK runs against FakeAIProvider (httpx.MockTransport), so
request shape, response parsing and error wrapping are all exercised
without a network.
"""

from __future__ import annotations

import base64
import json

import pytest

from docuai.processing.client import ProviderError, parse_ocr_content


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


# ─────────────────────────────────────────────────────────────────────────────
# OCR
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestExtractTextAndImages:

    async def test_request_inlines_file_as_data_url(self, ai_client, ai_provider):
        await ai_client.extract_text_and_images(b"%PDF-1.4 data", "report.pdf", mime_type="application/pdf")

        path, body = ai_provider.requests[-1]
        assert path.endswith("/chat/completions")
        assert body["model"] == "ocr-test"
        parts = body["messages"][0]["content"]
        assert parts[0] == {"type": "text", "text": "Extract everything."}
        assert parts[1]["image_url"]["url"] == (
            "data:application/pdf;base64," + _b64(b"%PDF-1.4 data")
        )

    async def test_mime_guessed_from_filename(self, ai_client, ai_provider):
        await ai_client.extract_text_and_images(b"\x89PNG", "scan.png")
        _, body = ai_provider.requests[-1]
        assert body["messages"][0]["content"][1]["image_url"]["url"].startswith("data:image/png;base64,")

    async def test_prompt_hint_extends_instruction(self, ai_client, ai_provider):
        await ai_client.extract_text_and_images(b"x", "a.pdf", prompt_hint="Focus on totals.")
        _, body = ai_provider.requests[-1]
        assert body["messages"][0]["content"][0]["text"] == "Extract everything.\n\nFocus on totals."

    async def test_parses_text_images_and_analysis(self, ai_client, ai_provider):
        ai_provider.ocr_content = json.dumps({
            "text": "Invoice 42",
            "images": [
                {"pageNumber": 2, "annotation": "logo", "bounds": {"x": 1}, "imageBase64": _b64(b"img-1")},
                {"pageNumber": "3", "annotation": "chart"},
            ],
            "analysis": {"language": "fr", "document_type": "invoice"},
        })

        result = await ai_client.extract_text_and_images(b"x", "a.pdf")

        assert result.text == "Invoice 42"
        assert [i.page_number for i in result.images] == [2, 3]
        assert result.images[0].image_bytes == b"img-1"
        assert result.images[0].bounds == {"x": 1}
        assert result.images[1].image_bytes == b""
        assert result.language == "fr"
        assert result.document_type == "invoice"

    async def test_fenced_json_is_unwrapped(self, ai_client, ai_provider):
        ai_provider.ocr_content = '```json\n{"text": "fenced", "images": []}\n```'
        result = await ai_client.extract_text_and_images(b"x", "a.pdf")
        assert result.text == "fenced"

    async def test_non_json_reply_becomes_plain_text(self, ai_client, ai_provider):
        ai_provider.ocr_content = "Just some prose the model returned."
        result = await ai_client.extract_text_and_images(b"x", "a.pdf")

        assert result.text == "Just some prose the model returned."
        assert result.images == []
        assert result.analysis == {}
        assert result.language == "unknown"
        assert result.document_type == "general_document"

    async def test_http_error_becomes_provider_error(self, ai_client, ai_provider):
        ai_provider.ocr_status = 500

        with pytest.raises(ProviderError) as exc_info:
            await ai_client.extract_text_and_images(b"x", "a.pdf")

        assert exc_info.value.stage == "OCR"
        assert exc_info.value.status_code == 500
        # max_retries=0: exactly one attempt
        assert ai_provider.paths().count("/v1/chat/completions") == 1


# ─────────────────────────────────────────────────────────────────────────────
# Embeddings
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestEmbeddings:

    async def test_empty_input_makes_no_call(self, ai_client, ai_provider):
        assert await ai_client.create_embeddings([]) == []
        assert ai_provider.requests == []

    async def test_output_is_ordered_by_index(self, ai_client, ai_provider):
        texts = ["one", "three", "fifteen"]
        vectors = await ai_client.create_embeddings(texts)

        assert vectors == [ai_provider.vector_for(t, i) for i, t in enumerate(texts)]
        _, body = ai_provider.requests[-1]
        assert body["model"] == "embed-test"
        assert body["input"] == texts

    async def test_count_mismatch_is_provider_error(self, ai_client, ai_provider):
        ai_provider.embed_count_override = 1
        with pytest.raises(ProviderError, match="expected 2 embeddings"):
            await ai_client.create_embeddings(["a", "b"])

    async def test_http_error_becomes_provider_error(self, ai_client, ai_provider):
        ai_provider.embed_status = 503
        with pytest.raises(ProviderError) as exc_info:
            await ai_client.create_embeddings(["a"])
        assert exc_info.value.stage == "Embedding"
        assert exc_info.value.status_code == 503

    async def test_embed_query_returns_single_vector(self, ai_client, ai_provider):
        assert await ai_client.embed_query("find me") == ai_provider.vector_for("find me", 0)


# ─────────────────────────────────────────────────────────────────────────────
# parse_ocr_content (pure)
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestParseOcrContent:

    def test_json_array_falls_back_to_text(self):
        result = parse_ocr_content("[1, 2, 3]")
        assert result.text == "[1, 2, 3]"
        assert result.images == []

    def test_data_url_image_payload_decoded(self):
        content = json.dumps({
            "text": "t",
            "images": [{"page_number": 1, "image_base64": "data:image/jpeg;base64," + _b64(b"jpeg")}],
        })
        result = parse_ocr_content(content)
        assert result.images[0].page_number == 1
        assert result.images[0].image_bytes == b"jpeg"

    def test_non_dict_images_and_analysis_ignored(self):
        result = parse_ocr_content(json.dumps({"text": "t", "images": ["junk"], "analysis": "none"}))
        assert result.images == []
        assert result.analysis == {}

    @pytest.mark.parametrize("images", [3, True, "abc", {"pageNumber": 1}])
    def test_images_that_are_not_a_list_are_ignored(self, images):
        result = parse_ocr_content(json.dumps({"text": "kept", "images": images}))
        assert result.text == "kept"
        assert result.images == []
