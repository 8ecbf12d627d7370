"""
RAG (Retrieval-Augmented Generation) Pipeline

Provides computer-architecture reference material to the LLM by:
1. Expanding the learner's question into several phrasings
2. Searching a ChromaDB vector store once per phrasing, filtered by topic
3. Merging, ranking and budgeting the passages for the generation prompt
"""

from archtutor.services.rag.multi_query import MultiQueryRetriever
from archtutor.services.rag.retriever import ChromaRetrievalIndex, RetrievalIndex, get_index_status
from archtutor.services.rag.tokens import TokenCounter, get_token_counter

__all__ = [
    "MultiQueryRetriever",
    "ChromaRetrievalIndex",
    "RetrievalIndex",
    "get_index_status",
    "TokenCounter",
    "get_token_counter",
]
