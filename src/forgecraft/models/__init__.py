"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
before the schema is created.
"""

from forgecraft.models.generation import GenerationRecord
from forgecraft.models.queue_item import (
    GenerationRequest,
    InvalidStateTransition,
    QueueItem,
    QueueStatus,
)

__all__ = [
    "GenerationRecord",
    "GenerationRequest",
    "InvalidStateTransition",
    "QueueItem",
    "QueueStatus",
]
