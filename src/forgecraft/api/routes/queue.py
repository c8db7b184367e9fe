"""Generation queue API endpoints.

This module implements the command surface the desktop UI drives:
- POST /api/queue - Enqueue a generation request
- GET /api/queue - List queue items (newest first)
- GET /api/queue/status - Aggregate queue status
- POST /api/queue/{id}/cancel|retry|remove - Lifecycle commands
- POST /api/queue/pause, /api/queue/resume - Processor intake control
- DELETE /api/queue/completed - Clear completed items

Lifecycle commands answer {"success": false} when the command does not apply
to the item's current status (or the item is unknown) rather than an error.
"""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError

from forgecraft.api.dependencies import get_queue_service
from forgecraft.models.queue_item import GenerationRequest, QueueItem, QueueStatus
from forgecraft.repositories.queue import QueueStatusSummary
from forgecraft.services.queue_service import QueueService

logger = structlog.get_logger()
router = APIRouter(prefix="/api/queue", tags=["queue"])


# Request/Response Models


class AddResponse(BaseModel):
    id: str = Field(..., description="Queue item id (the request id)")


class CommandResponse(BaseModel):
    success: bool = Field(..., description="True if the command applied to the item")


class ProcessorStateResponse(BaseModel):
    running: bool
    paused: bool


class ClearCompletedResponse(BaseModel):
    cleared: int = Field(..., description="Number of completed items deleted")


class QueueItemDTO(BaseModel):
    """Data Transfer Object for queue items in API responses."""

    id: str
    status: QueueStatus = Field(
        ..., description="Queue item status (pending, generating, complete, failed)"
    )
    request: GenerationRequest
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = Field(default=None, description="Failure reason (failed items only)")
    result_seed: int | None = Field(
        default=None, description="Seed the backend used (complete items only)"
    )

    @classmethod
    def from_item(cls, item: QueueItem) -> "QueueItemDTO":
        return cls(
            id=item.id,
            status=item.status,
            request=item.generation_request,
            created_at=item.created_at,
            started_at=item.started_at,
            completed_at=item.completed_at,
            error=item.error,
            result_seed=item.result_seed,
        )


# Endpoints


@router.post("", response_model=AddResponse, status_code=status.HTTP_201_CREATED)
async def add_to_queue(
    request: GenerationRequest, service: QueueService = Depends(get_queue_service)
) -> AddResponse:
    try:
        job_id = await service.add(request)
    except IntegrityError:
        logger.warning("queue.add.duplicate", job_id=request.id)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Queue item {request.id} already exists",
        )
    return AddResponse(id=job_id)


@router.get("", response_model=list[QueueItemDTO])
async def list_queue(
    status_filter: QueueStatus | None = Query(default=None, alias="status"),
    service: QueueService = Depends(get_queue_service),
) -> list[QueueItemDTO]:
    items = await service.list(status=status_filter)
    return [QueueItemDTO.from_item(item) for item in items]


@router.get("/status", response_model=QueueStatusSummary)
async def get_queue_status(
    service: QueueService = Depends(get_queue_service),
) -> QueueStatusSummary:
    return await service.get_status()


@router.post("/pause", response_model=ProcessorStateResponse)
async def pause_queue(service: QueueService = Depends(get_queue_service)) -> ProcessorStateResponse:
    await service.pause()
    return ProcessorStateResponse(running=service.is_running(), paused=service.is_paused())


@router.post("/resume", response_model=ProcessorStateResponse)
async def resume_queue(
    service: QueueService = Depends(get_queue_service),
) -> ProcessorStateResponse:
    await service.resume()
    return ProcessorStateResponse(running=service.is_running(), paused=service.is_paused())


@router.delete("/completed", response_model=ClearCompletedResponse)
async def clear_completed(
    service: QueueService = Depends(get_queue_service),
) -> ClearCompletedResponse:
    return ClearCompletedResponse(cleared=await service.clear_completed())


@router.post("/{job_id}/cancel", response_model=CommandResponse)
async def cancel_job(
    job_id: str, service: QueueService = Depends(get_queue_service)
) -> CommandResponse:
    return CommandResponse(success=await service.cancel(job_id))


@router.post("/{job_id}/retry", response_model=CommandResponse)
async def retry_job(
    job_id: str, service: QueueService = Depends(get_queue_service)
) -> CommandResponse:
    return CommandResponse(success=await service.retry(job_id))


@router.post("/{job_id}/remove", response_model=CommandResponse)
async def remove_job(
    job_id: str, service: QueueService = Depends(get_queue_service)
) -> CommandResponse:
    return CommandResponse(success=await service.remove(job_id))
