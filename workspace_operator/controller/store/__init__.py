"""Resource store implementations."""

from workspace_operator.controller.store.base import (
    AlreadyExistsError,
    ConflictError,
    InvalidError,
    NotFoundError,
    ResourceStore,
    StoreError,
    StoreUnavailableError,
)
from workspace_operator.controller.store.memory import InMemoryResourceStore

__all__ = [
    "AlreadyExistsError",
    "ConflictError",
    "InMemoryResourceStore",
    "InvalidError",
    "NotFoundError",
    "ResourceStore",
    "StoreError",
    "StoreUnavailableError",
]
