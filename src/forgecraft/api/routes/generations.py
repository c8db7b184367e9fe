"""Generation history API endpoints.

- GET /api/generations - Paginated history, newest first, filterable by theme/template
- GET /api/generations/count - Number of records matching the same filters
- GET /api/generations/{id} - One record (404 if missing)
- DELETE /api/generations/{id} - Delete a record (maintenance)
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from forgecraft.api.dependencies import get_uow_factory
from forgecraft.models.generation import GenerationRecord

router = APIRouter(prefix="/api/generations", tags=["generations"])


class GenerationDTO(BaseModel):
    """Data Transfer Object for history records in API responses."""

    id: str
    theme_id: str | None = None
    template_id: str | None = None
    template_values: dict[str, str] | None = None
    prompt: str
    negative_prompt: str | None = None
    seed: int
    output_path: str
    transparent_path: str | None = Field(
        default=None, description="Background-removed copy (null if not produced)"
    )
    model: str
    width: int
    height: int
    steps: int
    cfg_scale: float
    generation_time_ms: int | None = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: GenerationRecord) -> "GenerationDTO":
        return cls.model_validate(record.model_dump())


class GenerationsResponse(BaseModel):
    generations: list[GenerationDTO]
    total: int = Field(..., description="Total records matching the filters")
    offset: int
    limit: int


class CountResponse(BaseModel):
    count: int


class DeleteResponse(BaseModel):
    success: bool


@router.get("", response_model=GenerationsResponse)
async def list_generations(
    theme_id: str | None = Query(default=None),
    template_id: str | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    uow_factory=Depends(get_uow_factory),
) -> GenerationsResponse:
    async with await uow_factory() as uow:
        records = await uow.generations.list(
            theme_id=theme_id, template_id=template_id, limit=limit, offset=offset
        )
        total = await uow.generations.count(theme_id=theme_id, template_id=template_id)

    return GenerationsResponse(
        generations=[GenerationDTO.from_record(record) for record in records],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.get("/count", response_model=CountResponse)
async def count_generations(
    theme_id: str | None = Query(default=None),
    template_id: str | None = Query(default=None),
    uow_factory=Depends(get_uow_factory),
) -> CountResponse:
    async with await uow_factory() as uow:
        count = await uow.generations.count(theme_id=theme_id, template_id=template_id)
    return CountResponse(count=count)


@router.get("/{record_id}", response_model=GenerationDTO)
async def get_generation(record_id: str, uow_factory=Depends(get_uow_factory)) -> GenerationDTO:
    async with await uow_factory() as uow:
        record = await uow.generations.get(record_id)

    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Generation {record_id} not found"
        )
    return GenerationDTO.from_record(record)


@router.delete("/{record_id}", response_model=DeleteResponse)
async def delete_generation(
    record_id: str, uow_factory=Depends(get_uow_factory)
) -> DeleteResponse:
    async with await uow_factory() as uow:
        deleted = await uow.generations.delete(record_id)
    return DeleteResponse(success=deleted)
