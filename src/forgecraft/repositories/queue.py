"""Queue repository for Forgecraft.

Provides data access methods for QueueItem entities. The queue processor is the
only writer of status transitions; commands issued from the UI use the
conditional variants of delete/reset so a check and its write happen in one
statement.
"""

from datetime import datetime
from typing import Iterable

from pydantic import BaseModel
from sqlalchemy import delete, func, literal_column, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from forgecraft.core.timezone import utcnow
from forgecraft.models.queue_item import (
    GenerationRequest,
    InvalidStateTransition,
    QueueItem,
    QueueStatus,
)


class QueueStatusSummary(BaseModel):
    """Aggregate queue status broadcast to observers."""

    pending: int = 0
    generating: str | None = None
    completed: int = 0
    failed: int = 0


class QueueRepository:
    """Repository for QueueItem entities.

    Unknown ids are reported with None/False sentinels; storage errors propagate.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def enqueue(self, request: GenerationRequest) -> QueueItem:
        """Insert a new pending item for the request.

        Args:
            request: Immutable request snapshot; its id becomes the item id

        Returns:
            Persisted queue item with status pending
        """
        item = QueueItem(
            id=request.id,
            status=QueueStatus.PENDING,
            request=request.model_dump(mode="json"),
            created_at=utcnow(),
        )
        self.session.add(item)
        await self.session.flush()
        return item

    async def get(self, item_id: str) -> QueueItem | None:
        """Retrieve queue item by id.

        Returns:
            QueueItem if found, None otherwise
        """
        result = await self.session.execute(select(QueueItem).where(QueueItem.id == item_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def next_pending(self) -> QueueItem | None:
        """Return the oldest pending item.

        Ordered by created_at, with SQLite's rowid breaking ties so items
        enqueued within the same clock tick still drain in insertion order.
        """
        result = await self.session.execute(
            select(QueueItem)
            .where(QueueItem.status == QueueStatus.PENDING)  # type: ignore[arg-type]
            .order_by(QueueItem.created_at.asc(), literal_column("rowid").asc())  # type: ignore[attr-defined]
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def update_status(
        self,
        item_id: str,
        status: QueueStatus,
        *,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        error: str | None = None,
        result_seed: int | None = None,
    ) -> bool:
        """Transition an item to a new status with a partial field update.

        Only the supplied fields change.

        Args:
            item_id: Queue item id
            status: Target status
            started_at: Set when entering generating
            completed_at: Set when entering a terminal status
            error: Failure reason (failed only)
            result_seed: Seed the backend actually used (complete only)

        Returns:
            True if the item exists and was updated, False for an unknown id

        Raises:
            InvalidStateTransition: If the transition is not part of the lifecycle
        """
        item = await self.get(item_id)
        if item is None:
            return False

        if not item.status.can_transition_to(status):
            raise InvalidStateTransition(
                f"Cannot move queue item {item_id} from {item.status.value} to {status.value}."
            )

        item.status = status
        if started_at is not None:
            item.started_at = started_at
        if completed_at is not None:
            item.completed_at = completed_at
        if error is not None:
            item.error = error
        if result_seed is not None:
            item.result_seed = result_seed

        self.session.add(item)
        await self.session.flush()
        return True

    async def delete(
        self, item_id: str, *, expected_statuses: Iterable[QueueStatus] | None = None
    ) -> bool:
        """Delete an item, optionally only while it is in one of the given statuses.

        Returns:
            True if a row was deleted, False otherwise
        """
        stmt = delete(QueueItem).where(QueueItem.id == item_id)  # type: ignore[arg-type]
        if expected_statuses is not None:
            stmt = stmt.where(QueueItem.status.in_(list(expected_statuses)))  # type: ignore[attr-defined]
        result = await self.session.execute(stmt)
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def list(
        self,
        *,
        status: QueueStatus | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[QueueItem]:
        """List queue items, newest first.

        Args:
            status: Only return items in this status
            limit: Maximum number of items
            offset: Number of items to skip

        Returns:
            List of queue items ordered by created_at descending
        """
        query = select(QueueItem)
        if status is not None:
            query = query.where(QueueItem.status == status)  # type: ignore[arg-type]
        query = query.order_by(
            QueueItem.created_at.desc(),  # type: ignore[attr-defined]
            literal_column("rowid").desc(),
        )
        if limit:
            query = query.limit(limit)
        if offset:
            query = query.offset(offset)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def counts_by_status(self) -> QueueStatusSummary:
        """Count items per status and find the single generating item, if any."""
        result = await self.session.execute(
            select(QueueItem.status, func.count()).group_by(QueueItem.status)  # type: ignore[arg-type]
        )
        counts = {status: count for status, count in result.all()}

        generating = await self.session.execute(
            select(QueueItem.id).where(QueueItem.status == QueueStatus.GENERATING).limit(1)  # type: ignore[arg-type]
        )

        return QueueStatusSummary(
            pending=counts.get(QueueStatus.PENDING, 0),
            generating=generating.scalar_one_or_none(),
            completed=counts.get(QueueStatus.COMPLETE, 0),
            failed=counts.get(QueueStatus.FAILED, 0),
        )

    async def reset_to_pending(
        self, item_id: str, *, expected_status: QueueStatus | None = None
    ) -> bool:
        """Put an item back to pending and clear its run fields.

        Used by retry (expected_status=FAILED) and by crash recovery.

        Returns:
            True if a row was reset, False otherwise
        """
        stmt = (
            update(QueueItem)
            .where(QueueItem.id == item_id)  # type: ignore[arg-type]
            .values(**_RESET_VALUES)
        )
        if expected_status is not None:
            stmt = stmt.where(QueueItem.status == expected_status)  # type: ignore[arg-type]
        result = await self.session.execute(stmt)
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def reset_interrupted(self) -> int:
        """Reset every item stuck in generating back to pending.

        Query:
            UPDATE generation_queue
            SET status = 'pending', started_at = NULL, completed_at = NULL,
                error = NULL, result_seed = NULL
            WHERE status = 'generating'

        Returns:
            Number of items reset
        """
        result = await self.session.execute(
            update(QueueItem)
            .where(QueueItem.status == QueueStatus.GENERATING)  # type: ignore[arg-type]
            .values(**_RESET_VALUES)
        )
        return result.rowcount  # type: ignore[attr-defined]

    async def clear_completed(self) -> int:
        """Delete every complete item. History records are kept."""
        result = await self.session.execute(
            delete(QueueItem).where(QueueItem.status == QueueStatus.COMPLETE)  # type: ignore[arg-type]
        )
        return result.rowcount  # type: ignore[attr-defined]


_RESET_VALUES = {
    "status": QueueStatus.PENDING,
    "started_at": None,
    "completed_at": None,
    "error": None,
    "result_seed": None,
}
