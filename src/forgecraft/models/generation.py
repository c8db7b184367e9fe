"""GenerationRecord entity - immutable history of completed generations."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from forgecraft.core.timezone import utcnow


class GenerationRecord(SQLModel, table=True):
    """GenerationRecord is written once, when a queue item reaches complete."""

    __tablename__ = "generations"  # type: ignore[assignment]

    id: str = Field(primary_key=True, max_length=255)

    # Provenance, nullable because raw prompts have no theme or template
    theme_id: Optional[str] = Field(default=None, index=True)
    template_id: Optional[str] = Field(default=None, index=True)
    template_values: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    prompt: str
    negative_prompt: Optional[str] = Field(default=None)
    seed: int
    output_path: str
    transparent_path: Optional[str] = Field(default=None)
    model: str
    width: int
    height: int
    steps: int
    cfg_scale: float
    generation_time_ms: Optional[int] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, index=True)
