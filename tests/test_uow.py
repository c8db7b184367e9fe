"""Unit of Work pattern tests.

Tests focus on transaction management:
- Successful commits persist changes
- Exceptions trigger rollback
- Multiple repository operations are atomic
"""

import pytest
from sqlalchemy.exc import IntegrityError

from forgecraft.core.timezone import utcnow
from forgecraft.models.generation import GenerationRecord
from forgecraft.models.queue_item import QueueStatus


@pytest.mark.asyncio
async def test_uow_commits_on_successful_exit(uow_factory, make_request):
    """Test that UoW commits changes when exiting successfully.

    Changes made within the context should persist after the context exits.
    """
    # Make changes within UoW context
    async with await uow_factory() as uow:
        await uow.queue.enqueue(make_request("g1"))
        # Context exits successfully - should commit

    # Verify changes persisted in a new UoW context
    async with await uow_factory() as uow:
        item = await uow.queue.get("g1")
        assert item is not None
        assert item.status == QueueStatus.PENDING


@pytest.mark.asyncio
async def test_uow_rollback_on_exception(uow_factory, make_request):
    """Test that UoW rolls back changes when an exception occurs.

    If an exception is raised within the context:
    1. Changes should be rolled back
    2. Exception should propagate (not be swallowed)
    """
    with pytest.raises(ValueError, match="Simulated error"):
        async with await uow_factory() as uow:
            await uow.queue.enqueue(make_request("g1"))
            raise ValueError("Simulated error")

    # Verify the item was NOT persisted
    async with await uow_factory() as uow:
        assert await uow.queue.get("g1") is None


@pytest.mark.asyncio
async def test_uow_completion_and_history_are_atomic(uow_factory, make_request):
    """The complete transition and its history record commit or roll back together.

    A duplicate history id fails the insert, which must also undo the status change.
    """
    async with await uow_factory() as uow:
        await uow.queue.enqueue(make_request("g1"))
        await uow.queue.update_status("g1", QueueStatus.GENERATING, started_at=utcnow())
        await uow.generations.record(
            GenerationRecord(
                id="g1",
                prompt="earlier run",
                seed=1,
                output_path="/out/g1.png",
                model="m1",
                width=512,
                height=512,
                steps=20,
                cfg_scale=7.0,
            )
        )

    with pytest.raises(IntegrityError):
        async with await uow_factory() as uow:
            await uow.queue.update_status(
                "g1", QueueStatus.COMPLETE, completed_at=utcnow(), result_seed=42
            )
            await uow.generations.record(
                GenerationRecord(
                    id="g1",
                    prompt="a fox",
                    seed=42,
                    output_path="/out/g1.png",
                    model="m1",
                    width=512,
                    height=512,
                    steps=20,
                    cfg_scale=7.0,
                )
            )

    async with await uow_factory() as uow:
        item = await uow.queue.get("g1")
        assert item is not None
        assert item.status == QueueStatus.GENERATING
        assert item.result_seed is None
