"""Knowledge-base context: vector retrieval with a URL-fetch fallback.

Indexed knowledge lives in a Qdrant collection as chunks whose payload
carries ``agent_id`` and ``content``.  A query is embedded with a
sentence-transformers model and matched against the agent's chunks above a
similarity threshold.

When nothing matches, up to three *pending* (not yet indexed) knowledge
URLs are fetched concurrently, stripped to plain text and capped at 2,000
characters each.

Every failure here is soft: the caller gets an empty context string and
the reply is generated without knowledge grounding.
"""

from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Protocol

import httpx
from bs4 import BeautifulSoup
from qdrant_client import QdrantClient
from qdrant_client import models as qmodels

from agent_runtime.config import (
    EMBEDDING_MODEL,
    QDRANT_COLLECTION,
    QDRANT_PATH,
    QDRANT_URL,
    RETRIEVAL_MATCH_THRESHOLD,
    RETRIEVAL_MAX_CHUNKS,
)
from agent_runtime.models import KnowledgeItem
from agent_runtime.services.metrics import metrics
from agent_runtime.services.store import InMemoryStore

logger = logging.getLogger(__name__)

URL_FETCH_TIMEOUT_SECONDS = 5.0
URL_TEXT_LIMIT = 2000
MAX_FALLBACK_URLS = 3
USER_AGENT = "Mozilla/5.0 (compatible; AgentRuntimeBot/1.0)"

_WHITESPACE_RE = re.compile(r"\s+")


class Embedder(Protocol):
    def embed_query(self, text: str) -> list[float]: ...


class SentenceTransformerEmbedder:
    """Local sentence-transformers model, loaded on first use."""

    def __init__(self, model_name: str = EMBEDDING_MODEL) -> None:
        self._model_name = model_name
        self._model = None
        self._lock = threading.Lock()

    def embed_query(self, text: str) -> list[float]:
        if self._model is None:
            with self._lock:
                if self._model is None:
                    # Lazy import: loading torch is slow and not needed in tests
                    from sentence_transformers import SentenceTransformer  # noqa: PLC0415

                    logger.info("Loading embedding model %s", self._model_name)
                    self._model = SentenceTransformer(self._model_name, trust_remote_code=True)
        return self._model.encode(text, normalize_embeddings=True).tolist()


# ── Qdrant client singleton ─────────────────────────────────────────
_qdrant_client: QdrantClient | None = None
_qdrant_lock = threading.Lock()


def get_qdrant_client() -> QdrantClient:
    """Return a process-wide Qdrant client (remote URL or local path)."""
    global _qdrant_client
    if _qdrant_client is None:
        with _qdrant_lock:
            if _qdrant_client is None:
                if QDRANT_URL:
                    logger.info("Connecting to Qdrant at %s", QDRANT_URL)
                    _qdrant_client = QdrantClient(url=QDRANT_URL)
                else:
                    logger.info("Opening local Qdrant store at %s", QDRANT_PATH)
                    _qdrant_client = QdrantClient(path=QDRANT_PATH)
    return _qdrant_client


@dataclass(frozen=True)
class RetrievedChunk:
    content: str
    similarity: float

    def render(self) -> str:
        return f"[Relevance: {self.similarity * 100:.0f}%]\n{self.content}"


def html_to_text(html: str, limit: int = URL_TEXT_LIMIT) -> str:
    """Strip scripts, styles and tags; collapse whitespace; cap the length."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    text = _WHITESPACE_RE.sub(" ", soup.get_text(" ")).strip()
    return text[:limit]


class KnowledgeRetriever:
    """Builds the knowledge-base section of an agent's instructions."""

    def __init__(
        self,
        store: InMemoryStore,
        *,
        embedder: Embedder | None = None,
        qdrant: QdrantClient | None = None,
        http_client: httpx.Client | None = None,
        collection: str = QDRANT_COLLECTION,
        match_threshold: float = RETRIEVAL_MATCH_THRESHOLD,
    ):
        self._store = store
        self._embedder = embedder or SentenceTransformerEmbedder()
        self._qdrant = qdrant
        self._http = http_client or httpx.Client(
            timeout=URL_FETCH_TIMEOUT_SECONDS,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
        self._collection = collection
        self._threshold = match_threshold

    # ── Vector retrieval ─────────────────────────────────────────────

    def retrieve_chunks(
        self, agent_id: str, query: str, max_chunks: int = RETRIEVAL_MAX_CHUNKS,
    ) -> list[RetrievedChunk]:
        """Return the agent's chunks most similar to *query*, best first."""
        try:
            vector = self._embedder.embed_query(query)
        except Exception:
            logger.exception("Failed to embed query, continuing without retrieval")
            return []

        qdrant = self._qdrant or get_qdrant_client()
        try:
            with metrics.track("qdrant", "query_points"):
                results = qdrant.query_points(
                    collection_name=self._collection,
                    query=vector,
                    query_filter=qmodels.Filter(
                        must=[
                            qmodels.FieldCondition(
                                key="agent_id",
                                match=qmodels.MatchValue(value=agent_id),
                            )
                        ]
                    ),
                    limit=max_chunks,
                    score_threshold=self._threshold,
                    with_payload=True,
                )
        except Exception as exc:
            logger.warning("Chunk retrieval for agent %s failed: %s", agent_id, exc)
            return []

        chunks = [
            RetrievedChunk(content=str(p.payload.get("content", "")), similarity=p.score)
            for p in results.points
            if p.payload and p.payload.get("content")
        ]
        logger.info("Retrieved %d relevant chunks for agent %s", len(chunks), agent_id)
        return chunks

    # ── URL fallback ─────────────────────────────────────────────────

    def fetch_url_text(self, url: str) -> str | None:
        """Fetch an HTML or plain-text page and return its visible text."""
        try:
            with metrics.track("knowledge_url", "fetch"):
                response = self._http.get(url)
        except httpx.HTTPError as exc:
            logger.debug("Knowledge URL %s fetch failed: %s", url, exc)
            return None

        if not response.is_success:
            return None
        content_type = response.headers.get("content-type", "")
        if "text/html" not in content_type and "text/plain" not in content_type:
            return None
        return html_to_text(response.text) or None

    def _fetch_pending(self, items: list[KnowledgeItem]) -> list[str]:
        with ThreadPoolExecutor(max_workers=MAX_FALLBACK_URLS) as pool:
            texts = list(pool.map(lambda item: self.fetch_url_text(item.url), items))
        return [
            f"\n--- {item.title} ({item.url}) ---\n{text}"
            for item, text in zip(items, texts)
            if text
        ]

    # ── Public entry point ───────────────────────────────────────────

    def knowledge_context(self, agent_id: str, query: str) -> str:
        """Return the knowledge section for the instructions, or ``""``."""
        chunks = self.retrieve_chunks(agent_id, query)
        if chunks:
            return "\n\n## Relevant Knowledge (from indexed sources):\n" + "\n\n---\n\n".join(
                c.render() for c in chunks
            )

        items = self._store.pending_knowledge_items(agent_id, limit=MAX_FALLBACK_URLS)
        if not items:
            return ""
        logger.info("Falling back to URL fetching for %d knowledge items", len(items))
        contents = self._fetch_pending(items)
        if not contents:
            return ""
        return "\n\n## Knowledge Base Context:\n" + "\n".join(contents)
