"""pytest fixtures for Forgecraft tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- engine: Function-scoped SQLite database (file in tmp_path) with schema created
- session_factory / session: Sessions bound to the test database
- uow_factory: Function-scoped UnitOfWork factory
- make_request: Builder for GenerationRequest snapshots
- fake_backend: Scriptable in-memory generation backend
- wait_until: Poll a condition while the processor task runs
"""

import asyncio
import inspect
import os
from typing import Any, AsyncGenerator, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from forgecraft.core.database import create_engine, init_database, setup_db_session
from forgecraft.models.queue_item import GenerationRequest
from forgecraft.services.generation.backend import (
    GenerationOptions,
    GenerationProgress,
    GenerationResult,
    ProgressCallback,
)
from forgecraft.uow import create_uow_factory


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests.

    Autouse fixture ensures TZ=UTC is set before any test runs.
    This prevents timezone-dependent behavior and ensures reproducible tests.
    """
    os.environ["TZ"] = "UTC"
    yield
    # No cleanup needed - environment persists for session


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Provide a fresh SQLite database per test.

    Each test gets its own file so tests are isolated without truncation.
    """
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_database(engine, setup_db_session(engine))
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return setup_db_session(engine)


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session.

    Uncommitted changes are rolled back when the test ends.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory.

    Returns a callable that creates UoW instances against the test database.
    """
    return create_uow_factory(session_factory)


@pytest.fixture
def make_request() -> Callable[..., GenerationRequest]:
    """Build a request snapshot; keyword overrides replace the defaults."""

    def _make_request(request_id: str = "g1", **overrides: Any) -> GenerationRequest:
        fields: dict[str, Any] = {
            "id": request_id,
            "prompt": "a fox",
            "model": "m1",
            "width": 512,
            "height": 512,
            "steps": 20,
            "cfg_scale": 7.0,
            "output_path": f"/out/{request_id}.png",
        }
        fields.update(overrides)
        return GenerationRequest(**fields)

    return _make_request


class FakeBackend:
    """In-memory backend that plays back scripted outcomes.

    Outcomes are keyed by output path (one per request). An outcome is a
    GenerationResult to return or an exception to raise; unscripted jobs
    succeed with default_seed. Set gate to hold every job until the event is set.
    """

    def __init__(self) -> None:
        self.calls: list[GenerationOptions] = []
        self.outcomes: dict[str, GenerationResult | BaseException] = {}
        self.progress: list[GenerationProgress] = []
        self.default_seed: int | None = None
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()

    async def generate(
        self, options: GenerationOptions, on_progress: ProgressCallback | None = None
    ) -> GenerationResult:
        self.calls.append(options)
        self.started.set()

        for report in self.progress:
            if on_progress is not None:
                on_progress(report)

        if self.gate is not None:
            await self.gate.wait()

        outcome = self.outcomes.get(options.output_path)
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is not None:
            return outcome
        return GenerationResult(
            success=True,
            output_path=options.output_path,
            generation_time_ms=1200,
            seed=self.default_seed,
        )

    @property
    def prompts(self) -> list[str]:
        return [call.prompt for call in self.calls]

    @property
    def output_paths(self) -> list[str]:
        return [call.output_path for call in self.calls]


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def wait_until():
    """Return an async helper that polls a (sync or async) predicate until it holds."""

    async def _wait_until(predicate: Callable[[], Any], timeout: float = 5.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            outcome = predicate()
            if inspect.isawaitable(outcome):
                outcome = await outcome
            if outcome:
                return
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)

    return _wait_until
