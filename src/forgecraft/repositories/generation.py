"""Generation history repository for Forgecraft.

Provides insert-only recording and faceted queries over GenerationRecord entities.
"""

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from forgecraft.models.generation import GenerationRecord


class GenerationRepository:
    """Repository for GenerationRecord entities.

    Records are written once by the queue processor and never updated.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(self, record: GenerationRecord) -> GenerationRecord:
        """Persist a completed generation.

        Args:
            record: History record; its id must be unique

        Returns:
            Persisted record

        Raises:
            IntegrityError: If a record with the same id already exists
        """
        self.session.add(record)
        await self.session.flush()
        return record

    async def get(self, record_id: str) -> GenerationRecord | None:
        result = await self.session.execute(
            select(GenerationRecord).where(GenerationRecord.id == record_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def list(
        self,
        *,
        theme_id: str | None = None,
        template_id: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[GenerationRecord]:
        """List history records, newest first, optionally filtered by theme/template.

        Args:
            theme_id: Only records generated from this theme
            template_id: Only records generated from this template
            limit: Maximum number of records
            offset: Number of records to skip (pagination)

        Returns:
            Records ordered by created_at descending
        """
        query = select(GenerationRecord)
        if theme_id:
            query = query.where(GenerationRecord.theme_id == theme_id)  # type: ignore[arg-type]
        if template_id:
            query = query.where(GenerationRecord.template_id == template_id)  # type: ignore[arg-type]
        query = query.order_by(GenerationRecord.created_at.desc())  # type: ignore[attr-defined]
        if limit:
            query = query.limit(limit)
        if offset:
            query = query.offset(offset)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count(self, *, theme_id: str | None = None, template_id: str | None = None) -> int:
        query = select(func.count()).select_from(GenerationRecord)
        if theme_id:
            query = query.where(GenerationRecord.theme_id == theme_id)  # type: ignore[arg-type]
        if template_id:
            query = query.where(GenerationRecord.template_id == template_id)  # type: ignore[arg-type]

        result = await self.session.execute(query)
        return result.scalar_one()

    async def delete(self, record_id: str) -> bool:
        """Delete a history record (maintenance only, never used by the processor)."""
        result = await self.session.execute(
            delete(GenerationRecord).where(GenerationRecord.id == record_id)  # type: ignore[arg-type]
        )
        return result.rowcount > 0  # type: ignore[attr-defined]
