"""End-to-end integration tests against a live deployment.

# MANUAL RUN REQUIRED: These tests need live API keys, a Supabase project with
# migrations/001_initial_schema.sql applied, and a running API server.
# Run manually with: pytest -m expensive tests/test_pipeline_integration.py -v
# Ensure .env has OPENAI_API_KEY, SUPABASE_URL, SUPABASE_KEY, ANTHROPIC_API_KEY set.
#
# These tests are NOT run in CI (marked @pytest.mark.expensive).
#
# WHAT IS TESTED:
#   1. Upload a small FAQ document mapped to a throwaway business number
#   2. Verify the mapping lists the new document
#   3. Embed a question and retrieve against the document scope
#   4. Assert the best match carries the expected fact
#   5. Clean up (mapping, chunks and document row)
"""

from __future__ import annotations

import os
import uuid

import httpx
import pytest

API_BASE_URL = os.environ.get("AUTOREPLY_API_URL", "http://localhost:8000")

# Unique per run so parallel runs against one Supabase project never collide.
TEST_PHONE = f"+1999{uuid.uuid4().int % 10**7:07d}"

FAQ = (
    "Acme Ethnic Wear FAQ\n\n"
    "Returns: unworn items can be returned within 7 days of delivery for a full refund.\n\n"
    "Shipping: orders to Pune arrive in 3 to 5 business days. Express shipping costs INR 150.\n\n"
    "Care: hand-block printed kurtas should be washed cold and dried in shade."
)


@pytest.mark.expensive
def test_document_ingest_and_retrieve() -> None:
    """Upload -> mapping -> similarity search over the uploaded document."""
    from autoreply.dependencies import get_embedder, get_supabase
    from autoreply.ingestion.models import SourceType
    from autoreply.retrieval.search import DocumentScope, RetrievalEngine, VectorIndex

    with httpx.Client(timeout=120.0) as client:
        upload = client.post(
            f"{API_BASE_URL}/api/documents",
            files={"file": ("acme-faq.txt", FAQ.encode("utf-8"), "text/plain")},
            data={"phone_number": TEST_PHONE},
        )
    assert upload.status_code == 200, f"Upload failed ({upload.status_code}): {upload.text}"
    document_id = upload.json()["document_id"]
    assert upload.json()["chunk_count"] >= 1

    supabase = get_supabase()
    try:
        with httpx.Client(timeout=30.0) as client:
            mapping = client.get(f"{API_BASE_URL}/api/mappings/{TEST_PHONE}")
        assert mapping.status_code == 200, mapping.text
        assert document_id in mapping.json()["document_ids"]

        query = get_embedder().session().embed("How long do I have to return a kurta?")
        matches = RetrievalEngine(VectorIndex(supabase)).retrieve(query, DocumentScope((document_id,)), limit=3)

        assert matches, "No chunks retrieved for the uploaded document"
        assert all(m.source_id == document_id for m in matches)
        assert "7 days" in matches[0].text
    finally:
        with httpx.Client(timeout=30.0) as client:
            client.delete(f"{API_BASE_URL}/api/mappings/{TEST_PHONE}")
        supabase.table("rag_chunks").delete().eq("source_type", SourceType.DOCUMENT.value).eq(
            "source_id", document_id
        ).execute()
        supabase.table("documents").delete().eq("id", document_id).execute()


@pytest.mark.expensive
def test_unmapped_number_gets_no_documents() -> None:
    """An unknown business number is reported, not answered."""
    with httpx.Client(timeout=60.0) as client:
        response = client.post(
            f"{API_BASE_URL}/api/respond",
            json={"from_number": "+919800000000", "to_number": TEST_PHONE, "message_text": "hello"},
        )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["success"] is False
    assert body["no_documents"] is True
