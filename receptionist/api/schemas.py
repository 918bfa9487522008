"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ToolCallResult(BaseModel):
    """One spoken answer, matched to the tool call that asked for it."""

    toolCallId: str = Field(..., description="ID of the tool call being answered")
    result: str = Field(..., description="Sentence the voice assistant reads to the caller")


class WebhookResponse(BaseModel):
    """Reply to a voice-platform tool call."""

    results: list[ToolCallResult]


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "ai-receptionist"
