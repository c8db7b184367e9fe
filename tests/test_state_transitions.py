"""State transition tests for QueueItem.

Tests focus on validating the queue item lifecycle state machine:
- Valid transitions between states (pending → generating → complete/failed, failed → pending)
- Invalid transitions are rejected with clear error messages
- Terminal states
"""

import pytest

from forgecraft.core.timezone import utcnow
from forgecraft.models.queue_item import InvalidStateTransition, QueueStatus
from forgecraft.repositories.queue import QueueRepository


def test_lifecycle_transition_table():
    """Only the documented lifecycle edges are legal."""
    assert QueueStatus.PENDING.can_transition_to(QueueStatus.GENERATING)
    assert QueueStatus.GENERATING.can_transition_to(QueueStatus.COMPLETE)
    assert QueueStatus.GENERATING.can_transition_to(QueueStatus.FAILED)
    assert QueueStatus.FAILED.can_transition_to(QueueStatus.PENDING)

    assert not QueueStatus.PENDING.can_transition_to(QueueStatus.COMPLETE)
    assert not QueueStatus.PENDING.can_transition_to(QueueStatus.FAILED)
    assert not QueueStatus.COMPLETE.can_transition_to(QueueStatus.PENDING)
    assert not QueueStatus.COMPLETE.can_transition_to(QueueStatus.GENERATING)
    assert not QueueStatus.FAILED.can_transition_to(QueueStatus.COMPLETE)


def test_terminal_statuses():
    assert QueueStatus.COMPLETE.is_terminal
    assert QueueStatus.FAILED.is_terminal
    assert not QueueStatus.PENDING.is_terminal
    assert not QueueStatus.GENERATING.is_terminal


@pytest.mark.asyncio
async def test_valid_state_transitions(session, make_request):
    """Test the happy path through update_status.

    Validates: pending → generating → complete, with timestamps and seed recorded
    """
    repo = QueueRepository(session)
    await repo.enqueue(make_request("g1"))

    # Transition: pending → generating
    started_at = utcnow()
    assert await repo.update_status("g1", QueueStatus.GENERATING, started_at=started_at)
    item = await repo.get("g1")
    assert item is not None
    assert item.status == QueueStatus.GENERATING
    assert item.started_at == started_at

    # Transition: generating → complete
    assert await repo.update_status(
        "g1", QueueStatus.COMPLETE, completed_at=utcnow(), result_seed=42
    )
    item = await repo.get("g1")
    assert item is not None
    assert item.status == QueueStatus.COMPLETE
    assert item.result_seed == 42
    assert item.completed_at is not None
    # Partial update leaves earlier fields untouched
    assert item.started_at == started_at


@pytest.mark.asyncio
async def test_invalid_state_transition_raises_exception(session, make_request):
    """Test that invalid state transitions raise descriptive exceptions.

    Example: Cannot go directly from pending to complete without generating.
    """
    repo = QueueRepository(session)
    await repo.enqueue(make_request("g1"))

    with pytest.raises(InvalidStateTransition) as exc_info:
        await repo.update_status("g1", QueueStatus.COMPLETE, completed_at=utcnow())

    assert "pending" in str(exc_info.value)
    assert "complete" in str(exc_info.value)

    item = await repo.get("g1")
    assert item is not None
    assert item.status == QueueStatus.PENDING


@pytest.mark.asyncio
async def test_update_status_unknown_id_returns_false(session):
    repo = QueueRepository(session)

    assert await repo.update_status("missing", QueueStatus.GENERATING) is False
