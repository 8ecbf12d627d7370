"""
Chat Router

HTTP surface over the tutoring pipeline: one-shot and streamed replies,
feedback, and session management. No tutoring logic lives here.
"""

import json
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import StreamingResponse

from archtutor.models.response import TutorResponse
from archtutor.services.llm.registry import MODEL_REGISTRY
from archtutor.services.scaffolding.orchestrator import ScaffoldingOrchestrator, get_tutor

router = APIRouter()

Tutor = Annotated[ScaffoldingOrchestrator, Depends(get_tutor)]


# Schemas
class ChatRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    session_id: str = Field(..., min_length=1, max_length=128)
    query: str = Field(..., max_length=4000)
    model_id: str | None = None  # Registered model for this turn; None uses the default


class FeedbackRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=128)
    is_positive: bool


class FeedbackResponse(BaseModel):
    session_id: str
    positive_count: int
    negative_count: int
    total_count: int
    performance_ratio: float


class SessionSummaryResponse(BaseModel):
    session_id: str
    turn_count: int
    topics: list[str]
    last_interaction_time: datetime | None = None


def _sse_event(event: str, data: Any) -> str:
    """Format a Server-Sent Event: ``event: {type}\\ndata: {json}\\n\\n``."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def _check_model(model_id: str | None) -> None:
    if model_id is not None and model_id not in MODEL_REGISTRY:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown model: {model_id}",
        )


@router.post("", response_model=TutorResponse)
async def chat(request: ChatRequest, tutor: Tutor):
    """Answer one query with a scaffolded tutoring response."""
    _check_model(request.model_id)
    return await tutor.process_query(request.session_id, request.query, request.model_id)


@router.post("/stream")
async def chat_stream(request: ChatRequest, tutor: Tutor):
    """
    Stream a tutoring response as Server-Sent Events.

    Events: ``chunk`` ({"text"}), then exactly one of ``complete``
    ({"response"}) or ``error`` ({"message", "response"}).
    """
    _check_model(request.model_id)

    async def generate():
        async for event in tutor.stream_query(request.session_id, request.query, request.model_id):
            payload = event.model_dump(mode="json", exclude={"event"})
            yield _sse_event(event.event, payload)

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
        },
    )


@router.post("/feedback", response_model=FeedbackResponse)
async def submit_feedback(request: FeedbackRequest, tutor: Tutor):
    """Record whether the last response helped."""
    record = await tutor.process_feedback(request.session_id, request.is_positive)
    return FeedbackResponse(
        session_id=request.session_id,
        positive_count=record.positive_count,
        negative_count=record.negative_count,
        total_count=record.total_count,
        performance_ratio=record.ratio,
    )


@router.get("/{session_id}/summary", response_model=SessionSummaryResponse)
async def session_summary(session_id: str, tutor: Tutor):
    """Summarize the topics covered in a session."""
    summary = tutor.summarize_session(session_id)
    return SessionSummaryResponse(**summary.model_dump())


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(session_id: str, tutor: Tutor):
    """End a conversation and forget its state."""
    await tutor.end_session(session_id)
