"""FastAPI dependencies: caller identity and service wiring."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status

from carousel_studio.config import get_settings
from carousel_studio.database import async_session_maker
from carousel_studio.services.editing import EditingService
from carousel_studio.services.events import ProgressEventPublisher
from carousel_studio.services.generation import GenerationOrchestrator
from carousel_studio.services.repository import CarouselRepository
from carousel_studio.services.storage import StorageService, storage_service


async def get_current_user_id(x_user_id: Annotated[str | None, Header()] = None) -> UUID:
    """Caller identity, set by the authenticating gateway in ``X-User-Id``."""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="UNAUTHENTICATED")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="UNAUTHENTICATED") from None


def get_repository() -> CarouselRepository:
    return CarouselRepository(async_session_maker)


def get_storage() -> StorageService:
    return storage_service


def get_publisher(request: Request) -> ProgressEventPublisher:
    redis = getattr(request.app.state, "redis", None)
    return ProgressEventPublisher(redis, enabled=get_settings().progress_events_enabled)


CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]
Repository = Annotated[CarouselRepository, Depends(get_repository)]
Storage = Annotated[StorageService, Depends(get_storage)]
Publisher = Annotated[ProgressEventPublisher, Depends(get_publisher)]


def get_orchestrator(repository: Repository, storage: Storage, publisher: Publisher) -> GenerationOrchestrator:
    return GenerationOrchestrator(repository, storage, publisher=publisher)


def get_editing_service(repository: Repository, publisher: Publisher) -> EditingService:
    return EditingService(repository, publisher=publisher)


Orchestrator = Annotated[GenerationOrchestrator, Depends(get_orchestrator)]
Editor = Annotated[EditingService, Depends(get_editing_service)]
