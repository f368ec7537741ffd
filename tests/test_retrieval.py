# =============================================================================
# Unit Tests — Retrieval Service Backends
# =============================================================================
#
# Chroma: a MagicMock collection stands in for the real one, so no
# embedding model is downloaded. Azure AI Search: httpx.MockTransport
# answers the REST calls in-process.
# =============================================================================

from __future__ import annotations

import asyncio
import json
from unittest.mock import MagicMock

import httpx
import pytest

from agentic_rag.errors import RetrievalServiceError
from agentic_rag.services.retrieval import (
    AzureSearchRetrievalService,
    ChromaRetrievalService,
    _parse_azure_hit,
    _parse_chroma_query,
    _sanitise_chroma_metadata,
    build_retrieval_service,
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Test: ChromaDB backend
# ---------------------------------------------------------------------------


class TestChromaRetrievalService:
    """Query shaping and result mapping over a mocked collection."""

    def test_semantic_search_scores_from_distance(self):
        collection = MagicMock()
        collection.query.return_value = {
            "ids": [["a", "b"]],
            "documents": [["Adobe red is #FA0F00.", "Adobe Clean."]],
            "metadatas": [[{"source": "brand.md"}, None]],
            "distances": [[0.12, 0.4]],
        }
        service = ChromaRetrievalService(collection=collection)
        response = _run(service.search("Adobe colour", top=2))

        collection.query.assert_called_once_with(
            query_texts=["Adobe colour"],
            n_results=2,
            include=["documents", "metadatas", "distances"],
        )
        assert [d.score for d in response.documents] == [0.88, 0.6]
        assert response.documents[0].metadata == {"source": "brand.md", "id": "a"}
        assert response.documents[1].metadata == {"id": "b"}
        assert response.total_count == 2

    def test_keyword_search_uses_containment_filter(self):
        collection = MagicMock()
        collection.get.return_value = {
            "ids": ["k1"],
            "documents": ["Logo clear space rules."],
            "metadatas": [{}],
        }
        service = ChromaRetrievalService(collection=collection)
        response = _run(service.search("clear space", top=3, mode="simple"))

        collection.get.assert_called_once_with(
            where_document={"$contains": "clear space"},
            limit=3,
            include=["documents", "metadatas"],
        )
        assert response.documents[0].score == 1.0
        collection.query.assert_not_called()

    def test_empty_result(self):
        collection = MagicMock()
        collection.query.return_value = {"ids": [[]], "documents": [[]], "distances": [[]]}
        response = _run(ChromaRetrievalService(collection=collection).search("x"))
        assert response.documents == []
        assert response.total_count == 0

    def test_backend_error_wrapped(self):
        collection = MagicMock()
        collection.query.side_effect = RuntimeError("collection missing")
        with pytest.raises(RetrievalServiceError, match="collection missing"):
            _run(ChromaRetrievalService(collection=collection).search("x"))

    def test_add_documents_sanitises_metadata(self):
        collection = MagicMock()
        service = ChromaRetrievalService(collection=collection)
        ids = service.add_documents(
            ["text"], metadatas=[{"tags": ["a", "b"], "page": None}], ids=["d1"],
        )

        assert ids == ["d1"]
        collection.upsert.assert_called_once_with(
            ids=["d1"], documents=["text"], metadatas=[{"tags": "a,b", "page": ""}],
        )

    def test_add_documents_generates_ids(self):
        collection = MagicMock()
        ids = ChromaRetrievalService(collection=collection).add_documents(["a", "b"])
        assert len(set(ids)) == 2

    def test_clear_deletes_existing_ids(self):
        collection = MagicMock()
        collection.get.return_value = {"ids": ["x", "y"]}
        ChromaRetrievalService(collection=collection).clear()
        collection.delete.assert_called_once_with(ids=["x", "y"])

    def test_far_distance_clamps_to_zero(self):
        docs = _parse_chroma_query({
            "ids": [["a"]], "documents": [["t"]], "metadatas": [[{}]], "distances": [[1.7]],
        })
        assert docs[0].score == 0.0


# ---------------------------------------------------------------------------
# Test: Azure AI Search backend
# ---------------------------------------------------------------------------


def _azure(handler, **kwargs) -> AzureSearchRetrievalService:
    return AzureSearchRetrievalService(
        endpoint="https://search.example.net",
        api_key="secret",
        index_name="knowledge-base",
        semantic_configuration="default",
        api_version="2023-11-01",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestAzureSearchRetrievalService:
    """REST request shape and hit mapping."""

    def test_semantic_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers["api-key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "@odata.count": 12,
                "value": [
                    {"@search.score": 3.2, "@search.rerankerScore": 2.9,
                     "content": "Adobe red is #FA0F00.", "title": "Brand"},
                ],
            })

        response = _run(_azure(handler).search("Adobe colour", top=5))

        assert seen["url"] == (
            "https://search.example.net/indexes/knowledge-base/docs/search"
            "?api-version=2023-11-01"
        )
        assert seen["key"] == "secret"
        assert seen["body"] == {
            "search": "Adobe colour",
            "top": 5,
            "count": True,
            "queryType": "semantic",
            "semanticConfiguration": "default",
        }
        assert response.total_count == 12
        doc = response.documents[0]
        assert doc.content == "Adobe red is #FA0F00."
        assert doc.score == 3.2
        assert "@search.rerankerScore" not in doc.metadata

    def test_simple_mode_omits_semantic_fields(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"value": []})

        response = _run(_azure(handler).search("logo", mode="simple"))
        assert "queryType" not in seen["body"]
        assert response.total_count == 0

    def test_http_error_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={"error": "busy"})

        with pytest.raises(RetrievalServiceError, match="Azure AI Search"):
            _run(_azure(handler).search("x"))

    def test_invalid_json_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"not json")

        with pytest.raises(RetrievalServiceError):
            _run(_azure(handler).search("x"))

    def test_requires_https(self):
        with pytest.raises(ValueError, match="https"):
            AzureSearchRetrievalService(endpoint="http://search.example.net", api_key="k")

    def test_hit_without_content_field_serialises_fields(self):
        doc = _parse_azure_hit({"@search.score": 1.5, "title": "Brand", "page": 3})
        assert json.loads(doc.content) == {"title": "Brand", "page": 3}
        assert doc.score == 1.5


# ---------------------------------------------------------------------------
# Test: Factory and helpers
# ---------------------------------------------------------------------------


class TestRetrievalFactory:

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown retrieval backend"):
            build_retrieval_service("elasticsearch")

    def test_sanitise_passes_scalars(self):
        assert _sanitise_chroma_metadata({"a": 1, "b": 2.5, "c": True, "d": "x"}) == {
            "a": 1, "b": 2.5, "c": True, "d": "x",
        }
