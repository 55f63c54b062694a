"""
Integration Tests — upload → pipeline → status → delete against PostgreSQL
══════════════════════════════════════════════════════════════════════════
What is real vs mocked
──────────────────────
  ✅ Real: FastAPI routing, multipart parsing, SqlDocumentStore /
           SqlCatalogStore on PostgreSQL, DocumentPipeline, TaskSupervisor,
           the app lifespan (engine, create_all, catalog seeding)
  🔲 Mock: JWT verification  (dependency_overrides → user_payload)
  🔲 Mock: S3 / vector endpoint (mock_storage fixture)
  🔲 Fake: OCR + embeddings (OpenAI SDK over httpx.MockTransport)

How to run
──────────
  TEST_DATABASE_URL=postgresql+asyncpg://... pytest -m integration
"""

from __future__ import annotations

import os
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "")

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL not set"),
]

TEST_ISSUER   = "https://test.auth.example.com/"
TEST_AUDIENCE = "test-api-audience"
TEST_USER_ID  = "auth0|user-bbbb"


async def _truncate(engine) -> None:
    from docuai.models.documents import Base
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())


@pytest_asyncio.fixture
async def sql_stores(clock):
    from sqlalchemy.ext.asyncio import create_async_engine

    from docuai.db.session import build_session_factory, create_tables
    from docuai.store.sql import SqlCatalogStore, SqlDocumentStore

    engine = create_async_engine(TEST_DATABASE_URL)
    await create_tables(engine)
    sessions = build_session_factory(engine)
    try:
        yield SqlDocumentStore(sessions, clock=clock), SqlCatalogStore(sessions, clock=clock)
    finally:
        await _truncate(engine)
        await engine.dispose()


@pytest_asyncio.fixture
async def sql_client(test_settings, user_payload, sql_stores, ai_client, mock_storage, supervisor, clock):
    from docuai.auth import dependencies as deps
    from docuai.auth.token import get_current_user
    from docuai.main import create_app
    from docuai.processing.pipeline import DocumentPipeline

    documents, catalog = sql_stores
    pipeline = DocumentPipeline(
        store=documents, ai=ai_client, storage=mock_storage, catalog=catalog, clock=clock,
    )

    app = create_app(test_settings)
    app.dependency_overrides[get_current_user]        = lambda: user_payload
    app.dependency_overrides[deps.get_document_store] = lambda: documents
    app.dependency_overrides[deps.get_catalog_store]  = lambda: catalog
    app.dependency_overrides[deps.get_ai_client]      = lambda: ai_client
    app.dependency_overrides[deps.get_object_storage] = lambda: mock_storage
    app.dependency_overrides[deps.get_pipeline]       = lambda: pipeline
    app.dependency_overrides[deps.get_supervisor]     = lambda: supervisor

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


class TestUploadFlow:

    async def test_upload_process_poll_delete(self, sql_client, sql_stores, supervisor, ai_provider, mock_storage):
        documents, _ = sql_stores
        ai_provider.ocr_content = (
            '{"text": "' + " ".join(f"word{i:03d}" for i in range(120)) + '",'
            ' "images": [{"pageNumber": 1, "annotation": "logo", "imageBase64": "aW1n"}],'
            ' "analysis": {"language": "en", "document_type": "letter"}}'
        )

        resp = await sql_client.post(
            "/api/documents/upload",
            files={"document": ("letter.pdf", b"%PDF-1.4 letter", "application/pdf")},
        )
        assert resp.status_code == 200
        doc_id = resp.json()["documentId"]

        await supervisor.join()

        status = (await sql_client.get(f"/api/documents/{doc_id}/status")).json()
        assert status["status"] == "completed"
        assert status["queueItem"]["progress"] == 100

        doc = (await sql_client.get(f"/api/documents/{doc_id}")).json()
        assert doc["imageCount"] == 1
        # 120 words of 7 chars + separators = 959 chars → 2 chunks
        assert doc["vectorCount"] == 2
        assert doc["aiAnalysis"]["document_type"] == "letter"

        vectors = (await sql_client.get(f"/api/documents/{doc_id}/vectors")).json()
        assert [v["metadata"]["chunk_index"] for v in vectors] == [0, 1]
        assert mock_storage.store_vector_embedding.await_count == 2

        stats = (await sql_client.get("/api/analytics/stats")).json()
        assert stats["documentsProcessed"] == 1
        assert stats["vectorEmbeddings"]   == 2

        deleted = await sql_client.delete(f"/api/documents/{doc_id}")
        assert deleted.json() == {"success": True}
        assert await documents.get_document(uuid.UUID(doc_id)) is None
        assert await documents.get_document_vectors(uuid.UUID(doc_id)) == []
        assert await documents.get_queue_items(uuid.UUID(doc_id)) == []

    async def test_ocr_failure_is_recorded(self, sql_client, supervisor, ai_provider, mock_storage):
        ai_provider.ocr_status = 500

        resp = await sql_client.post(
            "/api/documents/upload",
            files={"document": ("scan.png", b"\x89PNG fake", "image/png")},
        )
        doc_id = resp.json()["documentId"]
        await supervisor.join()

        status = (await sql_client.get(f"/api/documents/{doc_id}/status")).json()
        assert status["status"] == "failed"
        assert status["processingError"]
        assert status["queueItem"]["status"] == "failed"
        assert status["queueItem"]["step"] == "ocr"
        mock_storage.upload_document.assert_not_awaited()


class TestLifespan:

    async def test_startup_creates_tables_and_seeds(self):
        from docuai.core.config import Settings
        from docuai.main import create_app

        settings = Settings(
            database_url=TEST_DATABASE_URL,
            db_create_tables=True,
            seed_catalog=True,
            auth_mode="jwt",
            auth_issuer=TEST_ISSUER,
            auth_audience=TEST_AUDIENCE,
            shutdown_grace_seconds=1.0,
        )
        app = create_app(settings)

        async with app.router.lifespan_context(app):
            default = await app.state.catalog_store.get_default_category()
            assert default.name == "Others (Default)"

            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                ready = await client.get("/ready")
            assert ready.status_code == 200
            assert ready.json()["status"] == "ready"
            assert ready.json()["in_flight"] == 0

            await _truncate(app.state.engine)
