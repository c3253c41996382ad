"""Reference tracker -- protects in-use templates from deletion.

Workspace -> template references cross namespaces, so there is no owner
reference or foreign key to lean on.  Instead each WorkspaceTemplate carries a
reverse index (the ``referenced-by`` annotation, a sorted JSON list of
workspace keys) and the ``template-protection`` finalizer.  Both are written
in one conditional update, so the finalizer is present exactly when the index
is non-empty.

Every mutation is a read-compute-write loop conditioned on the template's
``resourceVersion`` and retried on conflict.  Many reconcilers, for
workspaces in any number of namespaces, may add and remove references to the
same shared template at once; a lost update here would either strand a
finalizer or let a template in use be deleted.

State per template::

    unreferenced --acquire--> referenced --release(last)--> unreferenced
                                   |
                                delete
                                   v
                          pending deletion --release(last)--> removed by store
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from workspace_operator.controller.core.retry import DEFAULT_BACKOFF, Backoff, retry_on_conflict
from workspace_operator.controller.models.template import WorkspaceTemplate
from workspace_operator.controller.models.workspace import Workspace
from workspace_operator.controller.store.base import NotFoundError

if TYPE_CHECKING:
    from workspace_operator.controller.models.meta import ObjectKey
    from workspace_operator.controller.store.base import ResourceStore


class ReferenceTracker:
    """Maintains template reverse indexes and the protection finalizer.

    Stateless beyond its store reference; safe to share between workers.
    """

    def __init__(self, store: ResourceStore, *, backoff: Backoff = DEFAULT_BACKOFF) -> None:
        self._store = store
        self._backoff = backoff

    # -- Acquire ---------------------------------------------------------------

    async def acquire(self, template_key: ObjectKey, workspace_key: ObjectKey) -> bool:
        """Record *workspace_key* as a user of the template and ensure the finalizer.

        Returns ``True`` if the template was written.  Raises ``NotFoundError``
        if the template does not exist.
        """

        async def _attempt() -> bool:
            template = await self._store.get(WorkspaceTemplate, template_key.namespace, template_key.name)
            refs = template.references()
            if workspace_key in refs and template.is_protected:
                return False
            if template.is_terminating and not template.is_protected:
                # Held only by foreign finalizers; the store refuses new ones.
                logger.warning(
                    "Template {} is being deleted without protection; not recording workspace {}",
                    template_key,
                    workspace_key,
                )
                return False

            refs.add(workspace_key)
            template.set_references(refs)
            await self._store.update(template)
            logger.info("Template {}: referenced by workspace {} ({} total)", template_key, workspace_key, len(refs))
            return True

        return await retry_on_conflict(_attempt, backoff=self._backoff, description=f"acquire {template_key}")

    # -- Release ---------------------------------------------------------------

    async def release(self, template_key: ObjectKey, workspace_key: ObjectKey) -> bool:
        """Drop *workspace_key* from the template's index.

        When the index becomes empty the finalizer goes with it, which lets
        the store finish a pending deletion.  A missing template is a no-op.
        Returns ``True`` if the template was written.
        """

        async def _attempt() -> bool:
            try:
                template = await self._store.get(WorkspaceTemplate, template_key.namespace, template_key.name)
            except NotFoundError:
                return False
            refs = template.references()
            if workspace_key not in refs:
                return False

            refs.discard(workspace_key)
            template.set_references(refs)
            try:
                await self._store.update(template)
            except NotFoundError:
                return False

            if refs:
                logger.info("Template {}: released by workspace {} ({} left)", template_key, workspace_key, len(refs))
            elif template.is_terminating:
                logger.info("Template {}: last reference released, deletion can complete", template_key)
            else:
                logger.info("Template {}: last reference released, protection removed", template_key)
            return True

        return await retry_on_conflict(_attempt, backoff=self._backoff, description=f"release {template_key}")

    async def release_everywhere(self, workspace_key: ObjectKey) -> list[ObjectKey]:
        """Release *workspace_key* from every template that lists it.

        Used when a workspace is gone or terminating, where its last resolved
        template may no longer be known.  Returns the templates released.
        """
        released: list[ObjectKey] = []
        for template in await self._store.list_objects(WorkspaceTemplate):
            if workspace_key in template.references() and await self.release(template.key, workspace_key):
                released.append(template.key)
        return released

    # -- Garbage collection ----------------------------------------------------

    async def prune(self, template_key: ObjectKey) -> set[ObjectKey]:
        """Drop references to workspaces that are gone or terminating.

        Also restores a missing finalizer while live references remain, and
        removes an orphaned one when none do.  The template is read before
        the workspaces so that a reference added concurrently either belongs to
        a workspace we can see or bumps the version and forces a retry.

        Returns the stale workspace keys removed.  A missing template is a
        no-op.
        """

        async def _attempt() -> set[ObjectKey]:
            try:
                template = await self._store.get(WorkspaceTemplate, template_key.namespace, template_key.name)
            except NotFoundError:
                return set()
            refs = template.references()

            live: set[ObjectKey] = set()
            for key in refs:
                try:
                    workspace = await self._store.get(Workspace, key.namespace, key.name)
                except NotFoundError:
                    continue
                if not workspace.is_terminating:
                    live.add(key)

            stale = refs - live
            missing_finalizer = bool(live) and not template.is_protected
            orphaned_finalizer = not live and template.is_protected
            if not (stale or missing_finalizer or orphaned_finalizer):
                return set()
            if missing_finalizer and template.is_terminating:
                return set()

            template.set_references(live)
            try:
                await self._store.update(template)
            except NotFoundError:
                return set()
            if stale:
                logger.info("Template {}: pruned stale references {}", template_key, sorted(str(k) for k in stale))
            if missing_finalizer:
                logger.warning("Template {}: restored missing protection finalizer", template_key)
            return stale

        return await retry_on_conflict(_attempt, backoff=self._backoff, description=f"prune {template_key}")
