"""FastAPI route definitions for the receptionist webhook API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from receptionist.api.schemas import ErrorResponse, HealthResponse, WebhookResponse
from receptionist.handler import WebhookHandler

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_handler(request: Request) -> WebhookHandler:
    """Retrieve the webhook handler built during the FastAPI lifespan."""
    handler = getattr(request.app.state, "webhook_handler", None)
    if handler is None:
        raise HTTPException(
            status_code=503,
            detail="The receptionist is still starting up. Please try again in a moment.",
        )
    return handler


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post(
    "/webhooks/voice",
    responses={
        200: {"model": WebhookResponse, "description": "Spoken answer, or a hangup instruction"},
        400: {"model": ErrorResponse},
        500: {"model": WebhookResponse},
    },
)
async def voice_webhook(http_request: Request):
    """Answer one tool call from the voice platform.

    ``WebhookHandler.handle`` is synchronous and may spend several seconds
    on calendar and model calls, so it runs in the default thread pool.
    """
    handler = _get_handler(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        payload = await http_request.json()
    except ValueError:
        logger.warning("[%s] Webhook body is not valid JSON", request_id)
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="Invalid webhook payload. Body must be JSON.").model_dump(),
        )

    result = await asyncio.to_thread(handler.handle, payload)
    logger.info("[%s] Webhook answered with %d", request_id, result.status_code)
    return JSONResponse(status_code=result.status_code, content=result.body)
