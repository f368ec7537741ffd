# =============================================================================
# Retrieval Service — Pluggable Document Search Backends
# =============================================================================
#
# Provides a common interface for "search documents by text", with
# concrete implementations for ChromaDB and Azure AI Search.
#
# DESIGN DECISION: Protocol (structural typing) over ABC.
# Same pattern as LLMProvider in llm.py. Strategies receive a
# RetrievalService through their constructor, so tests pass a fake.
#
# DESIGN DECISION: Text in, documents out.
# Both backends embed/rank server-side (Chroma's collection embedding
# function, Azure's semantic ranker). The workflow never handles vectors.
#
# DESIGN DECISION: Fail distinctly.
# Backend errors surface as RetrievalServiceError. Turning a failure into
# "zero documents" is the workflow's decision, not the backend's.
#
# ARCHITECTURE:
#   RetrievalService (Protocol)
#   ├── ChromaRetrievalService     : in-process, persistent, or HTTP
#   │   └── search()               : sync client via asyncio.to_thread()
#   ├── AzureSearchRetrievalService: REST via httpx.AsyncClient
#   └── get_retrieval_service()    : lazy singleton factory, reads config
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

import chromadb
import httpx

from agentic_rag.config import settings
from agentic_rag.errors import RetrievalServiceError

logger = logging.getLogger(__name__)

SEMANTIC = "semantic"


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class RetrievedDocument:
    """A single search hit: text, relevance score, and opaque source metadata."""

    content: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchResponse:
    """Result of one search call."""

    documents: list[RetrievedDocument]
    total_count: int


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class RetrievalService(Protocol):
    """Protocol defining the Retrieval Service interface."""

    async def search(
        self,
        query: str,
        top: int = 5,
        mode: str = SEMANTIC,
    ) -> SearchResponse:
        """
        Search the index for documents relevant to `query`.

        Args:
            query: Free-form search text.
            top: Maximum number of documents to return.
            mode: "semantic" for meaning-based ranking; any other value
                selects the backend's keyword search.

        Returns:
            SearchResponse with documents ordered best-first.

        Raises:
            RetrievalServiceError: The backend is unreachable or errored.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: ChromaDB
# ---------------------------------------------------------------------------


class ChromaRetrievalService:
    """
    ChromaDB-backed retrieval over a single collection.

    ChromaDB supports three client modes:
    - Client/server: set CHROMA_URL (e.g., Docker deployment)
    - Persistent in-process: set CHROMA_PERSIST_DIR
    - Ephemeral in-process (default): data lives in memory

    Semantic mode uses the collection's embedding function on the query
    text. Keyword mode filters on document text containment and scores
    every hit 1.0.
    """

    def __init__(self, collection=None, collection_name: str | None = None) -> None:
        if collection is not None:
            self._collection = collection
            return

        if settings.chroma_url:
            client = chromadb.HttpClient(host=settings.chroma_url)
        elif settings.chroma_persist_dir:
            client = chromadb.PersistentClient(path=settings.chroma_persist_dir)
        else:
            client = chromadb.Client()

        # Cosine distance so that 1 - distance reads as a similarity score
        self._collection = client.get_or_create_collection(
            name=collection_name or settings.chroma_collection,
            metadata={"hnsw:space": "cosine"},
        )

    async def search(
        self,
        query: str,
        top: int = 5,
        mode: str = SEMANTIC,
    ) -> SearchResponse:
        """Search the collection. The sync client runs in a worker thread."""

        def _sync_search() -> list[RetrievedDocument]:
            if mode == SEMANTIC:
                results = self._collection.query(
                    query_texts=[query],
                    n_results=top,
                    include=["documents", "metadatas", "distances"],
                )
                return _parse_chroma_query(results)

            results = self._collection.get(
                where_document={"$contains": query},
                limit=top,
                include=["documents", "metadatas"],
            )
            return _parse_chroma_get(results)

        try:
            documents = await asyncio.to_thread(_sync_search)
        except Exception as e:
            raise RetrievalServiceError(f"Chroma search failed: {e}") from e

        logger.info(
            "Chroma search complete: mode=%s, query='%s', documents=%d",
            mode, query[:80], len(documents),
        )
        return SearchResponse(documents=documents, total_count=len(documents))

    def add_documents(
        self,
        contents: list[str],
        metadatas: list[dict[str, Any]] | None = None,
        ids: list[str] | None = None,
    ) -> list[str]:
        """Store documents in the collection. Sync; used by seeding scripts."""
        ids = ids or [str(uuid.uuid4()) for _ in contents]
        kwargs: dict[str, Any] = {"ids": ids, "documents": contents}
        if metadatas:
            kwargs["metadatas"] = [_sanitise_chroma_metadata(m) for m in metadatas]
        self._collection.upsert(**kwargs)

        logger.info("Stored %d documents in ChromaDB", len(ids))
        return ids

    def count(self) -> int:
        return self._collection.count()

    def clear(self) -> None:
        """Delete every document in the collection."""
        ids = self._collection.get(include=[])["ids"]
        if ids:
            self._collection.delete(ids=ids)
        logger.info("Deleted %d documents from ChromaDB", len(ids))


# ---------------------------------------------------------------------------
# Implementation 2: Azure AI Search
# ---------------------------------------------------------------------------


class AzureSearchRetrievalService:
    """
    Azure AI Search over its REST API.

    Semantic mode sends `queryType=semantic` with the configured semantic
    configuration. The document text is the index's `content` field, or
    the JSON of all document fields when the index has none.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        api_key: str | None = None,
        index_name: str | None = None,
        semantic_configuration: str | None = None,
        api_version: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        resolved_endpoint = endpoint or settings.azure_search_endpoint
        resolved_key = api_key or settings.azure_search_api_key
        if not resolved_endpoint or not resolved_key:
            raise ValueError(
                "Azure AI Search needs an endpoint and API key. Set "
                "AZURE_SEARCH_ENDPOINT and AZURE_SEARCH_API_KEY in .env"
            )
        if not resolved_endpoint.startswith("https://"):
            raise ValueError("AZURE_SEARCH_ENDPOINT must be an https:// URL")

        self._index_name = index_name or settings.azure_search_index_name
        self._semantic_configuration = (
            semantic_configuration or settings.azure_search_semantic_config
        )
        self._api_version = api_version or settings.azure_search_api_version
        self._client = httpx.AsyncClient(
            base_url=resolved_endpoint.rstrip("/"),
            headers={"api-key": resolved_key},
            timeout=settings.azure_search_timeout_seconds,
            transport=transport,
        )

    async def search(
        self,
        query: str,
        top: int = 5,
        mode: str = SEMANTIC,
    ) -> SearchResponse:
        """Run a search request against the configured index."""
        body: dict[str, Any] = {"search": query, "top": top, "count": True}
        if mode == SEMANTIC:
            body["queryType"] = "semantic"
            body["semanticConfiguration"] = self._semantic_configuration

        logger.info(
            "Azure AI Search: index=%s, mode=%s, query='%s'",
            self._index_name, mode, query[:80],
        )

        try:
            response = await self._client.post(
                f"/indexes/{self._index_name}/docs/search",
                params={"api-version": self._api_version},
                json=body,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RetrievalServiceError(f"Azure AI Search failed: {e}") from e

        documents = [_parse_azure_hit(hit) for hit in data.get("value", [])]
        total = data.get("@odata.count")

        logger.info(
            "Azure AI Search complete: documents=%d, total=%s",
            len(documents), total,
        )
        return SearchResponse(
            documents=documents,
            total_count=total if isinstance(total, int) else len(documents),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_service: RetrievalService | None = None


def build_retrieval_service(backend: str | None = None) -> RetrievalService:
    """Build a fresh retrieval backend for `backend` (default: settings)."""
    backend = backend or settings.retrieval_backend
    if backend == "azure_search":
        logger.info("Using Azure AI Search retrieval backend")
        return AzureSearchRetrievalService()
    if backend == "chroma":
        logger.info("Using ChromaDB retrieval backend")
        return ChromaRetrievalService()
    raise ValueError(
        f"Unknown retrieval backend '{backend}'. Supported: chroma, azure_search"
    )


def get_retrieval_service() -> RetrievalService:
    """Return the process-wide Retrieval Service, created on first use."""
    global _service
    if _service is None:
        _service = build_retrieval_service()
    return _service


async def close_retrieval_service() -> None:
    """Release the singleton's network resources, if it holds any."""
    global _service
    if _service is not None and hasattr(_service, "aclose"):
        await _service.aclose()
    _service = None


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _parse_chroma_query(results) -> list[RetrievedDocument]:
    """Map a Chroma query() result (one query text) to documents."""
    if not results or not results.get("ids") or not results["ids"][0]:
        return []

    documents_column = (results.get("documents") or [[]])[0]
    metadatas_column = (results.get("metadatas") or [[]])[0]
    distances_column = (results.get("distances") or [[]])[0]

    documents: list[RetrievedDocument] = []
    for i, chroma_id in enumerate(results["ids"][0]):
        distance = distances_column[i] if i < len(distances_column) else 1.0
        metadata = dict(metadatas_column[i] or {}) if i < len(metadatas_column) else {}
        metadata.setdefault("id", chroma_id)
        documents.append(RetrievedDocument(
            content=(documents_column[i] or "") if i < len(documents_column) else "",
            # Cosine distance is in [0, 2]; clamp the similarity into [0, 1]
            score=round(max(0.0, 1.0 - distance), 4),
            metadata=metadata,
        ))
    return documents


def _parse_chroma_get(results) -> list[RetrievedDocument]:
    """Map a Chroma get() result to documents with a flat score of 1.0."""
    if not results or not results.get("ids"):
        return []

    documents_column = results.get("documents") or []
    metadatas_column = results.get("metadatas") or []

    documents: list[RetrievedDocument] = []
    for i, chroma_id in enumerate(results["ids"]):
        metadata = dict(metadatas_column[i] or {}) if i < len(metadatas_column) else {}
        metadata.setdefault("id", chroma_id)
        documents.append(RetrievedDocument(
            content=(documents_column[i] or "") if i < len(documents_column) else "",
            score=1.0,
            metadata=metadata,
        ))
    return documents


def _parse_azure_hit(hit: dict[str, Any]) -> RetrievedDocument:
    """Map one Azure AI Search hit to a document."""
    fields = {k: v for k, v in hit.items() if not k.startswith("@search.")}
    content = fields.get("content")
    if not isinstance(content, str) or not content:
        content = json.dumps(fields, default=str)
    return RetrievedDocument(
        content=content,
        score=float(hit.get("@search.score") or 0.0),
        metadata=fields,
    )


def _sanitise_chroma_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """
    Sanitise metadata for ChromaDB compatibility.

    ChromaDB requires all metadata values to be str, int, float, or bool:
    - list → comma-separated string
    - None → empty string
    """
    sanitised: dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            sanitised[key] = ""
        elif isinstance(value, list):
            sanitised[key] = ",".join(str(v) for v in value)
        elif isinstance(value, (str, int, float, bool)):
            sanitised[key] = value
        else:
            sanitised[key] = str(value)
    return sanitised
