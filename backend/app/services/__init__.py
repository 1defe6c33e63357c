"""Domain services: one per synced table, behind a shared storage backend."""

from .base import DomainService, DomainServices
from .entity import EntityService, EntityStore, build_services
from .memory import InMemoryEntityStore, build_memory_services

__all__ = [
    "DomainService",
    "DomainServices",
    "EntityService",
    "EntityStore",
    "InMemoryEntityStore",
    "build_memory_services",
    "build_services",
]
