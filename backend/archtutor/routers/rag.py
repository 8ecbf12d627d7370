"""
RAG Status Router

Reports whether the retrieval index is populated and ready.
"""

from fastapi import APIRouter
from pydantic import BaseModel

from archtutor.services.rag.retriever import get_index_status

router = APIRouter()


class RAGStatusResponse(BaseModel):
    available: bool
    chunk_count: int
    collection: str = ""
    topics: list[str] = []
    persist_dir: str
    message: str = ""


@router.get("/status", response_model=RAGStatusResponse)
async def rag_status():
    """Check the status of the RAG vector store."""
    info = get_index_status()
    return RAGStatusResponse(**info)
