"""Repository layer for Forgecraft.

Provides data access abstractions for the queue and history stores.
No base classes - each repository is self-contained.
"""

from forgecraft.repositories.generation import GenerationRepository
from forgecraft.repositories.queue import QueueRepository, QueueStatusSummary

__all__ = [
    "GenerationRepository",
    "QueueRepository",
    "QueueStatusSummary",
]
