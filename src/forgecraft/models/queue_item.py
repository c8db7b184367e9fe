"""QueueItem entity - one requested generation job and its lifecycle status."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import JSON, Column, Index
from sqlmodel import Field, SQLModel

from forgecraft.core.timezone import utcnow


class QueueStatus(str, Enum):
    """Queue item lifecycle status."""

    PENDING = "pending"
    GENERATING = "generating"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (QueueStatus.COMPLETE, QueueStatus.FAILED)

    def can_transition_to(self, target: "QueueStatus") -> bool:
        return target in _LEGAL_TRANSITIONS[self]


_LEGAL_TRANSITIONS: dict[QueueStatus, frozenset[QueueStatus]] = {
    QueueStatus.PENDING: frozenset({QueueStatus.GENERATING}),
    QueueStatus.GENERATING: frozenset({QueueStatus.COMPLETE, QueueStatus.FAILED}),
    QueueStatus.COMPLETE: frozenset(),
    QueueStatus.FAILED: frozenset({QueueStatus.PENDING}),
}


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid queue item state transition."""

    pass


class GenerationRequest(BaseModel):
    """Immutable snapshot of everything needed to run one generation job.

    Captured at enqueue time and never mutated afterwards.
    """

    model_config = {"frozen": True}

    id: str
    prompt: str
    negative_prompt: Optional[str] = None
    model: str
    width: int = 512
    height: int = 512
    steps: int = 20
    cfg_scale: float = 7.0
    seed: Optional[int] = None
    output_path: str

    # Provenance (raw prompts have none)
    theme_id: Optional[str] = None
    template_id: Optional[str] = None
    template_values: Optional[dict[str, str]] = None


class QueueItem(SQLModel, table=True):
    """QueueItem tracks one generation job from enqueue to a terminal status."""

    __tablename__ = "generation_queue"  # type: ignore[assignment]
    __table_args__ = (
        # Supports the "oldest pending" and "single generating" lookups
        Index("ix_generation_queue_status_created_at", "status", "created_at"),
    )

    id: str = Field(primary_key=True, max_length=255)
    status: QueueStatus = Field(default=QueueStatus.PENDING)
    request: dict = Field(sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    error: Optional[str] = Field(default=None)
    result_seed: Optional[int] = Field(default=None)

    @property
    def generation_request(self) -> GenerationRequest:
        """Rebuild the typed request snapshot from the stored JSON column."""
        return GenerationRequest.model_validate(self.request)
