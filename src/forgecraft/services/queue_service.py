"""Queue service - command surface and event fan-out for the generation queue.

Wires the queue processor's callbacks to an EventBroadcaster and exposes the
commands the UI uses. Mutating commands return a success flag instead of
raising, so "not applicable" outcomes (cancel a running job, retry a completed
one) need no exception handling on the caller's side.
"""

from typing import Callable

import structlog
from pydantic import BaseModel

from forgecraft.models.queue_item import GenerationRequest, QueueItem, QueueStatus
from forgecraft.repositories.queue import QueueStatusSummary
from forgecraft.services.broadcast import (
    GENERATION_COMPLETE,
    GENERATION_FAILED,
    GENERATION_PROGRESS,
    QUEUE_DISK_FULL,
    QUEUE_STATUS,
    EventBroadcaster,
)
from forgecraft.services.generation.backend import GenerationBackend, GenerationProgress
from forgecraft.workers.queue_processor import QueueProcessor, QueueProcessorCallbacks

logger = structlog.get_logger(__name__)


# Broadcast payloads


class GenerationProgressMessage(BaseModel):
    request_id: str
    step: int
    total_steps: int
    percent: int


class GenerationCompleteMessage(BaseModel):
    request_id: str
    output_path: str
    seed: int


class GenerationFailedMessage(BaseModel):
    request_id: str
    error: str


class DiskFullMessage(BaseModel):
    request_id: str


class QueueService:
    """Owns the queue processor and broadcasts its events.

    Example:
        service = QueueService(uow_factory, SdCppBackend(binary, models_dir), broadcaster)
        service.start()
        job_id = await service.add(request)
        await service.retry(job_id)
    """

    def __init__(
        self,
        uow_factory: Callable,
        backend: GenerationBackend,
        broadcaster: EventBroadcaster | None = None,
        **processor_options,
    ):
        """Initialize service and its processor.

        Args:
            uow_factory: Factory creating UnitOfWork instances
            backend: Generation backend handed to the processor
            broadcaster: Event fan-out; a private one is created when omitted
            **processor_options: Passed through to QueueProcessor
                (poll_interval_seconds, background_remover, disk_full_classifier)
        """
        self.uow_factory = uow_factory
        self.broadcaster = broadcaster or EventBroadcaster()
        self.processor = QueueProcessor(
            uow_factory,
            backend,
            QueueProcessorCallbacks(
                on_status_change=self._on_status_change,
                on_progress=self._on_progress,
                on_complete=self._on_complete,
                on_failed=self._on_failed,
                on_disk_full=self._on_disk_full,
            ),
            **processor_options,
        )

    # Processor callbacks

    async def _on_status_change(self, job_id: str, status: QueueStatus) -> None:
        await self.broadcast_queue_status()

    def _on_progress(self, job_id: str, progress: GenerationProgress) -> None:
        self.broadcaster.publish(
            GENERATION_PROGRESS,
            GenerationProgressMessage(
                request_id=job_id,
                step=progress.step,
                total_steps=progress.total_steps,
                percent=progress.percent,
            ),
        )

    def _on_complete(self, job_id: str, output_path: str, seed: int) -> None:
        self.broadcaster.publish(
            GENERATION_COMPLETE,
            GenerationCompleteMessage(request_id=job_id, output_path=output_path, seed=seed),
        )

    def _on_failed(self, job_id: str, error: str) -> None:
        self.broadcaster.publish(
            GENERATION_FAILED, GenerationFailedMessage(request_id=job_id, error=error)
        )

    def _on_disk_full(self, job_id: str) -> None:
        self.broadcaster.publish(QUEUE_DISK_FULL, DiskFullMessage(request_id=job_id))

    async def broadcast_queue_status(self) -> QueueStatusSummary:
        status = await self.get_status()
        self.broadcaster.publish(QUEUE_STATUS, status)
        return status

    # Processor controls

    def start(self) -> None:
        self.processor.start()

    def stop(self) -> None:
        self.processor.stop()

    async def pause(self) -> None:
        self.processor.pause()
        await self.broadcast_queue_status()

    async def resume(self) -> None:
        """Resume intake, e.g. after space was freed following a disk-full pause."""
        self.processor.resume()
        await self.broadcast_queue_status()

    def is_running(self) -> bool:
        return self.processor.is_running()

    def is_paused(self) -> bool:
        return self.processor.is_paused()

    async def shutdown(self) -> None:
        await self.processor.shutdown()

    # Commands

    async def add(self, request: GenerationRequest) -> str:
        """Enqueue a request and return its id.

        Raises:
            IntegrityError: If an item with the same id already exists
        """
        async with await self.uow_factory() as uow:
            await uow.queue.enqueue(request)

        logger.info("queue.job.added", job_id=request.id, model=request.model)
        await self.broadcast_queue_status()
        self.processor.wake()
        return request.id

    async def cancel(self, job_id: str) -> bool:
        """Delete a pending item. Items already generating cannot be cancelled."""
        async with await self.uow_factory() as uow:
            deleted = await uow.queue.delete(job_id, expected_statuses=[QueueStatus.PENDING])

        if not deleted:
            return False

        logger.info("queue.job.cancelled", job_id=job_id)
        await self.broadcast_queue_status()
        return True

    async def remove(self, job_id: str) -> bool:
        """Delete a finished (complete or failed) item from the queue list."""
        async with await self.uow_factory() as uow:
            deleted = await uow.queue.delete(
                job_id, expected_statuses=[QueueStatus.COMPLETE, QueueStatus.FAILED]
            )

        if not deleted:
            return False

        logger.info("queue.job.removed", job_id=job_id)
        await self.broadcast_queue_status()
        return True

    async def retry(self, job_id: str) -> bool:
        """Put a failed item back to pending, clearing its error, timestamps and seed."""
        async with await self.uow_factory() as uow:
            reset = await uow.queue.reset_to_pending(job_id, expected_status=QueueStatus.FAILED)

        if not reset:
            return False

        logger.info("queue.job.retried", job_id=job_id)
        await self.broadcast_queue_status()
        self.processor.wake()
        return True

    async def clear_completed(self) -> int:
        async with await self.uow_factory() as uow:
            cleared = await uow.queue.clear_completed()

        if cleared:
            logger.info("queue.completed_cleared", count=cleared)
            await self.broadcast_queue_status()
        return cleared

    async def list(self, status: QueueStatus | None = None) -> list[QueueItem]:
        async with await self.uow_factory() as uow:
            return await uow.queue.list(status=status)

    async def get_status(self) -> QueueStatusSummary:
        async with await self.uow_factory() as uow:
            return await uow.queue.counts_by_status()
