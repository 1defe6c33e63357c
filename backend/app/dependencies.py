"""FastAPI dependencies wiring the sync coordinator to a storage backend.

The table -> service bundle lives on app.state; the lifespan builds it and
tests swap it out. Tests can also override get_coordinator with
app.dependency_overrides.
"""

from typing import Annotated

from fastapi import Depends, Request

from .config import Settings, get_settings
from .logging_config import get_logger
from .services.base import DomainServices
from .services.memory import InMemoryEntityStore, build_memory_services
from .sync.coordinator import SyncCoordinator

logger = get_logger("snakey.dependencies")


def build_domain_services(settings: Settings) -> DomainServices:
    """Build the table -> service bundle for the configured backend."""
    if settings.storage_backend == "memory":
        logger.warning("Using in-memory storage; data is lost on restart")
        return build_memory_services(InMemoryEntityStore())

    from .database import get_supabase_client
    from .services.supabase_store import build_supabase_services

    return build_supabase_services(get_supabase_client(settings))


def get_domain_services(
    request: Request, settings: Annotated[Settings, Depends(get_settings)]
) -> DomainServices:
    """The app's service bundle, built on first use if the lifespan did not run."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_domain_services(settings)
        request.app.state.services = services
    return services


def get_coordinator(
    services: Annotated[DomainServices, Depends(get_domain_services)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SyncCoordinator:
    return SyncCoordinator(services, batch_size=settings.sync_batch_size)


# Type alias for dependency injection
Coordinator = Annotated[SyncCoordinator, Depends(get_coordinator)]
