"""
RAG Retriever Service

Queries the ChromaDB vector store for passages that are semantically similar
to one phrasing of the learner's question.

Uses the chromadb client directly (not langchain_chroma) to avoid
LangChain Document deserialization that can raise KeyError('_type').

How retrieval works:
1. The query string is converted into a vector using OpenAI embeddings.
2. ChromaDB compares this vector against stored passage vectors.
3. If a topic filter is provided, only passages tagged with that topic are searched.
4. The top-K passages come back with their metadata and a similarity score.

The index is a pass-through: ranking, merging and budgeting live in
``multi_query.py``.
"""

import asyncio
import logging
import os
from types import SimpleNamespace
from typing import Protocol

import chromadb
from langchain_openai import OpenAIEmbeddings

from archtutor.core.config import get_settings
from archtutor.models.passage import RetrievedPassage
from archtutor.services.rag.templates import GENERAL_TOPIC

logger = logging.getLogger(__name__)


class RetrievalIndex(Protocol):
    """Anything that can answer one similarity query."""

    async def search(self, query: str, filter: dict | None = None) -> list[RetrievedPassage]:
        ...


# ── Singleton: chromadb client + collection + embeddings ──────────────────────

_rag_store: SimpleNamespace | None = None


def _get_vector_store() -> SimpleNamespace | None:
    """
    Get or create ChromaDB connection using chromadb client directly
    (avoids langchain_chroma so we never touch Document/_type deserialization).
    """
    global _rag_store
    if _rag_store is not None:
        return _rag_store

    settings = get_settings()
    persist_dir = settings.chroma_persist_dir

    if not os.path.exists(persist_dir):
        logger.warning("[RAG] ChromaDB directory not found, retrieval disabled (populate the index first)")
        return None

    try:
        client = chromadb.PersistentClient(path=persist_dir)
        collection = client.get_or_create_collection(settings.chroma_collection)
        embeddings = OpenAIEmbeddings(
            model=settings.embedding_model,
            openai_api_key=settings.openai_api_key,
        )
    except Exception as e:
        if str(e) == "'_type'":
            logger.error(
                "[RAG] Failed to load ChromaDB index: incompatible persisted format "
                "(missing '_type'). Rebuild the index."
            )
        else:
            logger.error("[RAG] Failed to load ChromaDB: %s", e)
        return None

    logger.info("[RAG] ChromaDB loaded: %d passages available", collection.count())
    _rag_store = SimpleNamespace(
        collection=collection,
        embedding_function=embeddings,
    )
    return _rag_store


def get_index_status() -> dict:
    """Return status info about the vector store for the /rag/status endpoint."""
    settings = get_settings()
    persist_dir = settings.chroma_persist_dir

    if not os.path.exists(persist_dir):
        return {
            "available": False,
            "chunk_count": 0,
            "persist_dir": os.path.abspath(persist_dir),
            "message": "ChromaDB not initialized. Populate the index first.",
        }

    store = _get_vector_store()
    if store is None:
        return {
            "available": False,
            "chunk_count": 0,
            "persist_dir": os.path.abspath(persist_dir),
            "message": "Failed to load ChromaDB.",
        }

    collection = store.collection
    count = collection.count()

    try:
        all_meta = collection.get(include=["metadatas"])
        topics = sorted(set(
            (m or {}).get("topic", "unknown")
            for m in all_meta["metadatas"]
        ))
    except Exception as e:
        logger.warning("[RAG] Could not list topics: %s", e)
        topics = []

    return {
        "available": True,
        "chunk_count": count,
        "collection": settings.chroma_collection,
        "topics": topics,
        "persist_dir": os.path.abspath(persist_dir),
    }


# ── Retrieval ────────────────────────────────────────────────────────────────

def _distance_to_score(distance: float | None) -> float:
    if distance is None:
        return 0.0
    return 1.0 / (1.0 + max(0.0, float(distance)))


class ChromaRetrievalIndex:
    """RetrievalIndex backed by the persisted ChromaDB collection."""

    def __init__(self, top_k: int | None = None, store: SimpleNamespace | None = None):
        self.top_k = top_k if top_k is not None else get_settings().retrieval_top_k
        self._store = store

    def _resolve_store(self) -> SimpleNamespace:
        store = self._store or _get_vector_store()
        if store is None:
            raise RuntimeError("Vector store is not available")
        return store

    def _query(self, query: str, where: dict | None) -> list[RetrievedPassage]:
        store = self._resolve_store()
        query_embedding = store.embedding_function.embed_query(query)
        result = store.collection.query(
            query_embeddings=[query_embedding],
            n_results=self.top_k,
            where=where,
            include=["documents", "metadatas", "distances"],
        )
        # result["documents"] = [[doc1, doc2, ...]], same shape for metadatas/distances
        docs_list = result["documents"][0] if result.get("documents") else []
        metas_list = result["metadatas"][0] if result.get("metadatas") else []
        dist_list = result["distances"][0] if result.get("distances") else []

        passages = []
        for i, text in enumerate(docs_list):
            text = (text or "").strip()
            if not text:
                continue
            meta = (metas_list[i] if i < len(metas_list) else None) or {}
            distance = dist_list[i] if i < len(dist_list) else None
            passages.append(
                RetrievedPassage(
                    content=text,
                    metadata=dict(meta),
                    score=_distance_to_score(distance),
                )
            )
        return passages

    async def search(self, query: str, filter: dict | None = None) -> list[RetrievedPassage]:
        """
        Similarity search for one query phrasing.

        A ``{"topic": "general"}`` filter searches the whole collection.
        Errors propagate to the caller; the fusion layer decides what a failed
        phrasing contributes.
        """
        where = dict(filter) if filter else None
        if where and where.get("topic") in (None, GENERAL_TOPIC):
            where.pop("topic", None)

        passages = await asyncio.to_thread(self._query, query, where or None)
        logger.debug("[RAG] %d passages for filter=%s", len(passages), where)
        return passages
