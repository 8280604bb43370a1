"""
Brief Routes

POST /api/briefs/generate streams the run's progress events as
server-sent events. The stream ends after the terminal event. If the
client disconnects first, the run is cancelled (its credit is refunded
by the service).
"""

import asyncio
import json
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from briefing.api.security import verify_api_key
from briefing.models.events import GenerationFailed
from briefing.pipeline.events import EventBus
from briefing.pipeline.service import BriefGenerationService
from briefing.utils.logging import LogLevel, api_logger, get_log_buffer

router = APIRouter(prefix="/api", tags=["briefs"])


# =============================================================================
# Request Models
# =============================================================================

class GenerateBriefRequest(BaseModel):
    """Request to generate a brief."""
    subject: str = Field(..., min_length=3, max_length=2000)
    owner_id: str = Field(..., min_length=1)
    kind: str = "brief"


@lru_cache(maxsize=1)
def get_generation_service() -> BriefGenerationService:
    return BriefGenerationService()


def _close_after(bus: EventBus):
    """Done-callback: guarantee the stream ends even if the run crashed."""

    def callback(task: asyncio.Task) -> None:
        if task.cancelled():
            bus.close()
            return
        exc = task.exception()
        if exc is not None and not bus.closed:
            api_logger.error("Generation task crashed", error_type=type(exc).__name__)
            bus.publish(GenerationFailed(message="brief generation failed"))
        bus.close()

    return callback


# =============================================================================
# Generation
# =============================================================================

@router.post("/briefs/generate")
async def generate_brief(
    request: GenerateBriefRequest,
    api_key: str = Depends(verify_api_key),
    service: BriefGenerationService = Depends(get_generation_service),
):
    """
    Generate a brief and stream progress.

    Returns 402 if the owner has no credit. Otherwise returns an SSE stream
    of generation events, ending with exactly one ``complete`` or ``error``.
    """
    if not await service.has_credits(request.owner_id):
        raise HTTPException(status_code=402, detail="Insufficient credit")

    bus = EventBus()
    subscription = bus.subscribe()
    task = asyncio.create_task(
        service.generate(request.subject, request.owner_id, request.kind, bus=bus)
    )
    task.add_done_callback(_close_after(bus))
    api_logger.info("Brief generation requested", owner_id=request.owner_id)

    async def stream():
        try:
            async for event in subscription:
                yield f"data: {json.dumps(event.to_dict())}\n\n"
        finally:
            if not task.done():
                api_logger.warning("Client disconnected; cancelling generation")
                task.cancel()

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


# =============================================================================
# Logs
# =============================================================================

@router.get("/logs")
async def get_logs(
    limit: int = Query(100, ge=1, le=500),
    level: Optional[str] = Query(None, description="Filter by level (debug, info, warning, error, critical)"),
    source: Optional[str] = Query(None, description="Filter by source"),
    investigation_id: Optional[str] = Query(None, description="Only entries from one generation run"),
    api_key: str = Depends(verify_api_key),
):
    """Recent log entries from the in-memory buffer."""
    level_filter = None
    if level:
        try:
            level_filter = LogLevel(level.lower())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid log level: {level}")

    log_buffer = get_log_buffer()
    return {
        "logs": log_buffer.get_recent(
            limit=limit, level=level_filter, source=source, investigation_id=investigation_id
        ),
        "stats": log_buffer.get_stats(),
    }
