"""Generation queue processor.

Polls the queue for pending items, runs them one at a time against the
generation backend, and records the outcome on the queue item and in the
generation history.

## Run state

The processor is an explicit instance holding its own run state:

- stopped: no polling; start() begins the poll loop
- running: polls for pending work every poll interval while idle
- running + paused: keeps the loop alive but picks up no new jobs

pause() and stop() never interrupt the job in flight. That job always runs to
completion and writes its result; the processor only withholds the next one.

## Poll loop

A single asyncio task runs an explicit loop. While idle it waits on a wake
event with the poll interval as timeout, so resume() and newly added work are
picked up immediately. Consecutive jobs run back to back with no delay. The
in-flight flag guarantees one job at a time, and next_pending() guarantees
FIFO order.

## Failure handling

Every backend failure (failed result or raised exception) is recorded on the
item and the loop continues. A disk-full failure additionally pauses intake so
a large batch does not burn through every remaining item while storage is
exhausted; resume() restarts intake once space is freed.

An item that another writer removed or moved while it was in flight is logged
as vanished and skipped; its outcome is not recorded.

Storage errors are not job failures: they end the poll task and propagate.
Interrupted jobs are reset to pending by crash recovery on the next start.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog

from forgecraft.core.timezone import utcnow
from forgecraft.models.generation import GenerationRecord
from forgecraft.models.queue_item import (
    GenerationRequest,
    InvalidStateTransition,
    QueueItem,
    QueueStatus,
)
from forgecraft.services.background_removal import BackgroundRemover, transparent_path_for
from forgecraft.services.generation.backend import (
    GenerationBackend,
    GenerationOptions,
    GenerationProgress,
    GenerationResult,
)
from forgecraft.services.generation.disk_full import (
    DISK_FULL_MESSAGE,
    DiskFullClassifier,
    is_disk_full_error,
)

logger = structlog.get_logger(__name__)

POLL_INTERVAL_SECONDS = 0.1
UNKNOWN_ERROR = "Unknown error"


@dataclass
class QueueProcessorCallbacks:
    """Plain callbacks the processor notifies; any of them may be omitted.

    on_status_change, on_complete, on_failed and on_disk_full may return an
    awaitable, which is awaited. on_progress is called synchronously from the
    backend's progress reporting and must not block.
    """

    on_status_change: Optional[Callable[[str, QueueStatus], Any]] = None
    on_progress: Optional[Callable[[str, GenerationProgress], None]] = None
    on_complete: Optional[Callable[[str, str, int], Any]] = None
    on_failed: Optional[Callable[[str, str], Any]] = None
    on_disk_full: Optional[Callable[[str], Any]] = None


@dataclass
class _RunState:
    running: bool = False
    paused: bool = False
    processing: bool = False
    current_job_id: Optional[str] = None
    wake: asyncio.Event = field(default_factory=asyncio.Event)


class QueueProcessor:
    """Single-worker processor for the generation queue."""

    def __init__(
        self,
        uow_factory: Callable,
        backend: GenerationBackend,
        callbacks: QueueProcessorCallbacks | None = None,
        *,
        poll_interval_seconds: float = POLL_INTERVAL_SECONDS,
        background_remover: BackgroundRemover | None = None,
        disk_full_classifier: DiskFullClassifier = is_disk_full_error,
    ):
        """Initialize processor.

        Args:
            uow_factory: Factory creating UnitOfWork instances
            backend: Generation backend that runs one job
            callbacks: Notification callbacks (status, progress, completion, failure, disk full)
            poll_interval_seconds: Idle delay between checks for new pending work
            background_remover: Optional post-process producing a transparent image
            disk_full_classifier: Decides whether a failure means storage is exhausted
        """
        self.uow_factory = uow_factory
        self.backend = backend
        self.callbacks = callbacks or QueueProcessorCallbacks()
        self.poll_interval_seconds = poll_interval_seconds
        self.background_remover = background_remover
        self.disk_full_classifier = disk_full_classifier

        self._state = _RunState()
        self._task: asyncio.Task | None = None

    # Controls

    def start(self) -> None:
        """Start polling. No-op if already running; clears a previous pause."""
        if self._state.running:
            return

        self._state.running = True
        self._state.paused = False

        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(
                self._run(), name="queue-processor"
            )
            self._task.add_done_callback(self._on_task_done)
        else:
            # Previous loop is still finishing its in-flight job; it keeps going
            self._state.wake.set()

    def stop(self) -> None:
        """Stop picking up work. The job in flight still completes and is recorded."""
        if not self._state.running and not self._state.paused:
            return

        self._state.running = False
        self._state.paused = False
        self._state.wake.set()
        logger.info("queue_processor.stop_requested", in_flight=self._state.current_job_id)

    def pause(self) -> None:
        if not self._state.running or self._state.paused:
            return
        self._state.paused = True
        logger.info("queue_processor.paused")

    def resume(self) -> None:
        if not self._state.running or not self._state.paused:
            return
        self._state.paused = False
        self._state.wake.set()
        logger.info("queue_processor.resumed")

    def wake(self) -> None:
        """Skip the idle delay and check for pending work now."""
        self._state.wake.set()

    async def shutdown(self) -> None:
        """Stop and wait for the poll task (and any job in flight) to finish."""
        self.stop()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    # Queries

    def is_running(self) -> bool:
        return self._state.running

    def is_paused(self) -> bool:
        return self._state.paused

    def is_processing(self) -> bool:
        return self._state.processing

    @property
    def current_job_id(self) -> str | None:
        return self._state.current_job_id

    # Poll loop

    async def _run(self) -> None:
        logger.info("queue_processor.started", poll_interval=self.poll_interval_seconds)

        try:
            while self._state.running:
                if self._state.paused:
                    # Only resume(), stop() or wake() end a pause wait
                    await self._wait_for_wake(timeout=None)
                    continue

                async with await self.uow_factory() as uow:
                    item = await uow.queue.next_pending()

                if item is None:
                    await self._wait_for_wake(timeout=self.poll_interval_seconds)
                    continue

                self._state.processing = True
                self._state.current_job_id = item.id
                try:
                    await self._process_item(item)
                finally:
                    self._state.processing = False
                    self._state.current_job_id = None

        except asyncio.CancelledError:
            logger.info("queue_processor.cancelled")
            raise

        except Exception as e:
            # Storage failure - no defined recovery, the process should restart
            self._state.running = False
            self._state.paused = False
            logger.error(
                "queue_processor.crashed",
                error_type=type(e).__name__,
                error_message=str(e),
                exc_info=True,
            )
            raise

        logger.info("queue_processor.stopped")

    async def _wait_for_wake(self, timeout: float | None) -> None:
        try:
            await asyncio.wait_for(self._state.wake.wait(), timeout)
        except TimeoutError:
            pass
        self._state.wake.clear()

    def _on_task_done(self, task: asyncio.Task) -> None:
        # Retrieve the exception so it is not reported as never retrieved;
        # it was already logged by _run
        if not task.cancelled():
            task.exception()

    # Processing one item

    async def _process_item(self, item: QueueItem) -> None:
        """Run one pending item through the backend and record the outcome.

        Workflow:
        1. pending -> generating, started_at = now
        2. Await the backend, forwarding progress reports
        3. Success -> complete + history record (same transaction)
        4. Failure result or exception -> failed with error text
        5. Disk-full failure -> "Disk full" error and intake paused
        """
        job_id = item.id
        request = item.generation_request

        try:
            async with await self.uow_factory() as uow:
                claimed = await uow.queue.update_status(
                    job_id, QueueStatus.GENERATING, started_at=utcnow()
                )
        except InvalidStateTransition as e:
            self._log_vanished(job_id, e)
            return
        if not claimed:
            # Cancelled between the poll and the claim
            logger.info("queue.job.vanished", job_id=job_id)
            return

        logger.info(
            "queue.job.started",
            job_id=job_id,
            model=request.model,
            output_path=request.output_path,
        )
        await self._emit(self.callbacks.on_status_change, job_id, QueueStatus.GENERATING)

        try:
            result = await self.backend.generate(
                GenerationOptions.from_request(request),
                lambda progress: self._forward_progress(job_id, progress),
            )
        except Exception as e:
            await self._mark_failed(job_id, error=e, message=str(e) or type(e).__name__)
            return

        if not result.success:
            message = result.error or UNKNOWN_ERROR
            await self._mark_failed(job_id, error=message, message=message)
            return

        await self._mark_complete(job_id, request, result)

    async def _mark_complete(
        self, job_id: str, request: GenerationRequest, result: GenerationResult
    ) -> None:
        completed_at = utcnow()

        # Backend-reported seed, else the requested one, else 0
        if result.seed is not None:
            seed = result.seed
        elif request.seed is not None:
            seed = request.seed
        else:
            seed = 0

        # Runs while the item is still generating: the transparent path must be
        # known before the complete transition and history insert commit together
        transparent_path = await self._remove_background(job_id, request.output_path)

        try:
            async with await self.uow_factory() as uow:
                updated = await uow.queue.update_status(
                    job_id, QueueStatus.COMPLETE, completed_at=completed_at, result_seed=seed
                )
                if not updated:
                    logger.warning("queue.job.vanished", job_id=job_id)
                    return

                await uow.generations.record(
                    GenerationRecord(
                        id=job_id,
                        theme_id=request.theme_id,
                        template_id=request.template_id,
                        template_values=request.template_values,
                        prompt=request.prompt,
                        negative_prompt=request.negative_prompt,
                        seed=seed,
                        output_path=request.output_path,
                        transparent_path=transparent_path,
                        model=request.model,
                        width=request.width,
                        height=request.height,
                        steps=request.steps,
                        cfg_scale=request.cfg_scale,
                        generation_time_ms=result.generation_time_ms,
                        created_at=completed_at,
                    )
                )
        except InvalidStateTransition as e:
            self._log_vanished(job_id, e)
            return

        logger.info(
            "queue.job.succeeded",
            job_id=job_id,
            seed=seed,
            output_path=request.output_path,
            generation_time_ms=result.generation_time_ms,
        )
        await self._emit(self.callbacks.on_status_change, job_id, QueueStatus.COMPLETE)
        await self._emit(self.callbacks.on_complete, job_id, request.output_path, seed)

    async def _mark_failed(self, job_id: str, *, error: object, message: str) -> None:
        """Record a failure; a disk-full failure also pauses intake.

        Args:
            job_id: Failed item
            error: Raised exception or error text, passed to the disk-full classifier
            message: Error text stored on the item when the disk is not full
        """
        disk_full = self.disk_full_classifier(error)
        stored_error = DISK_FULL_MESSAGE if disk_full else message

        try:
            async with await self.uow_factory() as uow:
                updated = await uow.queue.update_status(
                    job_id, QueueStatus.FAILED, completed_at=utcnow(), error=stored_error
                )
        except InvalidStateTransition as e:
            self._log_vanished(job_id, e)
            return
        if not updated:
            logger.warning("queue.job.vanished", job_id=job_id)
            return

        logger.error(
            "queue.job.failed",
            job_id=job_id,
            error_type=type(error).__name__ if isinstance(error, BaseException) else "result",
            error_message=message,
            disk_full=disk_full,
        )
        await self._emit(self.callbacks.on_status_change, job_id, QueueStatus.FAILED)
        await self._emit(self.callbacks.on_failed, job_id, stored_error)

        if disk_full:
            # A processor stopped mid-job stays stopped, never stopped-and-paused
            if self._state.running:
                self._state.paused = True
            logger.warning(
                "queue.disk_full",
                job_id=job_id,
                action="paused" if self._state.paused else "none",
            )
            await self._emit(self.callbacks.on_disk_full, job_id)

    def _log_vanished(self, job_id: str, error: InvalidStateTransition) -> None:
        # Another writer moved the item while it was in flight
        logger.warning("queue.job.vanished", job_id=job_id, error_message=str(error))

    async def _remove_background(self, job_id: str, output_path: str) -> str | None:
        """Run the optional background removal; a failure leaves the job complete."""
        if self.background_remover is None:
            return None

        target_path = transparent_path_for(output_path)
        try:
            removal = await self.background_remover(output_path, target_path)
        except Exception as e:
            logger.error(
                "queue.job.background_removal_failed",
                job_id=job_id,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return None

        if not removal.success:
            logger.error(
                "queue.job.background_removal_failed", job_id=job_id, error_message=removal.error
            )
            return None
        return target_path

    # Notifications

    def _forward_progress(self, job_id: str, progress: GenerationProgress) -> None:
        if self.callbacks.on_progress is None:
            return
        try:
            self.callbacks.on_progress(job_id, progress)
        except Exception as e:
            logger.error(
                "queue_processor.callback_failed",
                callback="on_progress",
                job_id=job_id,
                error_message=str(e),
            )

    async def _emit(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        """Call an observer; an observer error is logged and never stops the queue."""
        if callback is None:
            return
        try:
            outcome = callback(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(
                "queue_processor.callback_failed",
                callback=getattr(callback, "__name__", repr(callback)),
                error_type=type(e).__name__,
                error_message=str(e),
                exc_info=True,
            )
