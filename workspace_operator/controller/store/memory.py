"""In-memory resource store.

Implements the ResourceStore protocol with the apiserver semantics the
controller depends on:

- a cluster-wide, monotonically increasing ``resourceVersion``; writes that
  carry a stale version fail with ``ConflictError``
- ``generation`` bumps only when ``spec`` changes; status lives behind
  ``update_status``
- deleting an object with finalizers only sets ``deletionTimestamp``; the
  object is removed once an update empties its finalizer list, and no new
  finalizers may be added while it is terminating
- no-op writes do not bump the version

Objects are held as wire-format dicts and every read returns a fresh model,
so callers never share mutable state with the store.  Each operation yields
to the event loop once before touching state, standing in for the network
round-trip of a real apiserver so that concurrent callers interleave.

Used for local runs (``WSOP_STORE=memory``) and throughout the test suite.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import uuid
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from workspace_operator.controller.models.meta import ObjectKey, Resource
from workspace_operator.controller.store.base import (
    AlreadyExistsError,
    ConflictError,
    InvalidError,
    NotFoundError,
)

# Server-managed metadata that clients cannot change through update().
_SERVER_FIELDS = ("uid", "creationTimestamp", "deletionTimestamp", "generation")

_Slot = tuple[str, str, str]


class InMemoryResourceStore:
    """Process-local implementation of the ResourceStore protocol."""

    def __init__(self) -> None:
        self._objects: dict[_Slot, dict[str, Any]] = {}
        self._versions = itertools.count(1)

    # -- Read ------------------------------------------------------------------

    async def get[R: Resource](self, kind: type[R], namespace: str, name: str) -> R:
        await asyncio.sleep(0)
        data = self._objects.get((kind.KIND, namespace, name))
        if data is None:
            raise NotFoundError(kind.KIND, ObjectKey(namespace, name))
        return kind.from_wire(copy.deepcopy(data))

    async def list_objects[R: Resource](
        self,
        kind: type[R],
        namespace: str | None = None,
        *,
        label_selector: dict[str, str] | None = None,
    ) -> list[R]:
        await asyncio.sleep(0)
        return [kind.from_wire(copy.deepcopy(data)) for data in self._matching(kind.KIND, namespace, label_selector)]

    # -- Write -----------------------------------------------------------------

    async def create[R: Resource](self, obj: R) -> R:
        await asyncio.sleep(0)
        kind = type(obj)
        if not obj.metadata.namespace:
            msg = f"{kind.KIND} '{obj.metadata.name}' must have a namespace"
            raise InvalidError(msg)
        slot = self._slot(obj)
        if slot in self._objects:
            raise AlreadyExistsError(kind.KIND, obj.key)

        data = obj.to_wire()
        meta = data["metadata"]
        meta.pop("deletionTimestamp", None)
        meta["uid"] = str(uuid.uuid4())
        meta["creationTimestamp"] = _now()
        meta["generation"] = 1
        meta["resourceVersion"] = self._next_version()
        self._objects[slot] = data
        return kind.from_wire(copy.deepcopy(data))

    async def update[R: Resource](self, obj: R) -> R:
        await asyncio.sleep(0)
        kind = type(obj)
        slot = self._slot(obj)
        stored = self._load(slot, obj)

        incoming = obj.to_wire()
        meta = incoming["metadata"]
        stored_meta = stored["metadata"]
        for key in _SERVER_FIELDS:
            if key in stored_meta:
                meta[key] = stored_meta[key]
            else:
                meta.pop(key, None)

        terminating = "deletionTimestamp" in stored_meta
        if terminating:
            added = set(meta.get("finalizers", [])) - set(stored_meta.get("finalizers", []))
            if added:
                msg = f"{kind.KIND} '{obj.key}' is being deleted; cannot add finalizers {sorted(added)}"
                raise InvalidError(msg)

        if incoming.get("spec") != stored.get("spec"):
            meta["generation"] = stored_meta.get("generation", 0) + 1
        if "status" in stored:
            incoming["status"] = stored["status"]
        else:
            incoming.pop("status", None)

        meta["resourceVersion"] = stored_meta["resourceVersion"]
        if incoming == stored:
            return kind.from_wire(copy.deepcopy(stored))

        meta["resourceVersion"] = self._next_version()
        if terminating and not meta.get("finalizers"):
            del self._objects[slot]
            logger.debug("Store: {} {} finalized and removed", kind.KIND, obj.key)
            return kind.from_wire(copy.deepcopy(incoming))

        self._objects[slot] = incoming
        return kind.from_wire(copy.deepcopy(incoming))

    async def update_status[R: Resource](self, obj: R) -> R:
        await asyncio.sleep(0)
        kind = type(obj)
        slot = self._slot(obj)
        stored = self._load(slot, obj)

        status = obj.to_wire().get("status")
        if status == stored.get("status"):
            return kind.from_wire(copy.deepcopy(stored))

        updated = copy.deepcopy(stored)
        if status is None:
            updated.pop("status", None)
        else:
            updated["status"] = status
        updated["metadata"]["resourceVersion"] = self._next_version()
        self._objects[slot] = updated
        return kind.from_wire(copy.deepcopy(updated))

    async def delete(self, kind: type[Resource], namespace: str, name: str) -> None:
        await asyncio.sleep(0)
        slot = (kind.KIND, namespace, name)
        stored = self._objects.get(slot)
        if stored is None:
            raise NotFoundError(kind.KIND, ObjectKey(namespace, name))

        meta = stored["metadata"]
        if meta.get("finalizers"):
            if "deletionTimestamp" not in meta:
                meta["deletionTimestamp"] = _now()
                meta["resourceVersion"] = self._next_version()
                logger.debug(
                    "Store: {} {}/{} marked for deletion (finalizers={})",
                    kind.KIND,
                    namespace,
                    name,
                    meta["finalizers"],
                )
            return

        del self._objects[slot]

    # -- Internal helpers ------------------------------------------------------

    def _slot(self, obj: Resource) -> _Slot:
        return (type(obj).KIND, obj.metadata.namespace or "", obj.metadata.name)

    def _load(self, slot: _Slot, obj: Resource) -> dict[str, Any]:
        """Return the stored dict for *obj*, enforcing the version precondition."""
        kind = type(obj).KIND
        stored = self._objects.get(slot)
        if stored is None:
            raise NotFoundError(kind, obj.key)
        expected = obj.metadata.resource_version
        current = stored["metadata"]["resourceVersion"]
        if expected is not None and expected != current:
            msg = (
                f"Operation cannot be fulfilled on {kind} '{obj.key}': the object has been modified "
                f"(resourceVersion {expected} != {current}); please apply your changes to the latest version"
            )
            raise ConflictError(msg)
        return stored

    def _matching(
        self,
        kind: str,
        namespace: str | None,
        label_selector: dict[str, str] | None,
    ) -> list[dict[str, Any]]:
        result = []
        for (slot_kind, slot_namespace, _), data in sorted(self._objects.items()):
            if slot_kind != kind or (namespace is not None and slot_namespace != namespace):
                continue
            labels = data["metadata"].get("labels", {})
            if label_selector and any(labels.get(k) != v for k, v in label_selector.items()):
                continue
            result.append(data)
        return result

    def _next_version(self) -> str:
        return str(next(self._versions))



def _now() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
