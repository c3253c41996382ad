"""Resource store interface.

The store is the apiserver-equivalent backing the controller: it persists
Workspace and WorkspaceTemplate objects, enforces optimistic concurrency via
``metadata.resourceVersion`` and honours finalizers on delete.  Watching is
left to kopf.  The interface is async so that both the in-memory backend and
the Kubernetes API backend can sit behind it.

Every write that carries a ``resourceVersion`` is conditional: if the stored
object has moved on, the write fails with ``ConflictError`` and the caller
re-reads and retries (see ``core/retry.py``).
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from workspace_operator.controller.models.meta import ObjectKey, Resource

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class StoreError(Exception):
    """Base class for resource store failures."""


class NotFoundError(StoreError, LookupError):
    """The object does not exist."""

    def __init__(self, kind: str, key: ObjectKey) -> None:
        super().__init__(f"{kind} '{key}' not found")
        self.kind = kind
        self.key = key


class AlreadyExistsError(StoreError):
    """An object with the same identity already exists."""

    def __init__(self, kind: str, key: ObjectKey) -> None:
        super().__init__(f"{kind} '{key}' already exists")
        self.kind = kind
        self.key = key


class ConflictError(StoreError):
    """A conditional write lost against a concurrent modification."""


class InvalidError(StoreError, ValueError):
    """The store rejected the write as invalid (e.g. new finalizer on a terminating object)."""


class StoreUnavailableError(StoreError):
    """Transient transport or availability failure; safe to retry."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ResourceStore(Protocol):
    """Async protocol for namespaced custom resources.

    ``kind`` is the model class (``Workspace`` or ``WorkspaceTemplate``); the
    store returns fresh model instances, never shared references.
    """

    async def get[R: Resource](self, kind: type[R], namespace: str, name: str) -> R:
        """Read one object.  Raises ``NotFoundError``."""
        ...

    async def list_objects[R: Resource](
        self,
        kind: type[R],
        namespace: str | None = None,
        *,
        label_selector: dict[str, str] | None = None,
    ) -> list[R]:
        """List objects in *namespace*, or across all namespaces when ``None``."""
        ...

    async def create[R: Resource](self, obj: R) -> R:
        """Create an object.  Raises ``AlreadyExistsError``."""
        ...

    async def update[R: Resource](self, obj: R) -> R:
        """Replace metadata and spec, conditional on ``metadata.resourceVersion``.

        Status is left untouched.  Removing the last finalizer of a terminating
        object completes its deletion.  Raises ``NotFoundError``,
        ``ConflictError`` or ``InvalidError``.
        """
        ...

    async def update_status[R: Resource](self, obj: R) -> R:
        """Replace only the status, conditional on ``metadata.resourceVersion``."""
        ...

    async def delete(self, kind: type[Resource], namespace: str, name: str) -> None:
        """Request deletion.

        Objects with finalizers get a ``deletionTimestamp`` and stay readable
        until the finalizer list is empty.  Raises ``NotFoundError``.
        """
        ...
