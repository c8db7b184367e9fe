"""Background workers for async processing tasks."""

from forgecraft.workers.queue_processor import QueueProcessor, QueueProcessorCallbacks

__all__ = [
    "QueueProcessor",
    "QueueProcessorCallbacks",
]
