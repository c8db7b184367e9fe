"""FastAPI dependencies shared by the API routes.

Both objects are created once by the app lifespan and stored on app.state:
- The queue service (command surface and processor controls)
- The Unit of Work factory, for read-only history queries
"""

from typing import Callable

from fastapi import Request

from forgecraft.services.queue_service import QueueService
from forgecraft.uow import UnitOfWork


def get_queue_service(request: Request) -> QueueService:
    """Get the queue service from app state.

    Example:
        >>> @router.post("/endpoint")
        >>> async def endpoint(service: QueueService = Depends(get_queue_service)):
        ...     await service.retry(job_id)
    """
    return request.app.state.queue_service


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    History reads bypass the queue service; they never touch queue state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.generations.count()
    """
    return request.app.state.uow_factory
