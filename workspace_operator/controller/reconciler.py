"""Reconcilers for Workspace and WorkspaceTemplate objects.

Both are idempotent and re-entrant: each call starts from a fresh read, every
write is conditional, and abandoning a call half-way leaves nothing that the
next call will not converge.  Ordering inside the workspace reconcile is
chosen so that a crash between steps never drops protection from a template
still in use:

1. acquire the newly resolved template
2. release the previously resolved template (if different)
3. persist defaults + label, then status

A crash after (1) leaves an extra reference that (2) removes on retry; a
crash after (2) leaves status pointing at the old template, which the retry
releases again as a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from workspace_operator.controller.constants import LABEL_TEMPLATE_NAMESPACE
from workspace_operator.controller.core.defaults import apply_template_defaults
from workspace_operator.controller.core.resolver import TemplateNotFoundError, resolve_template
from workspace_operator.controller.core.retry import DEFAULT_BACKOFF, Backoff, retry_on_conflict
from workspace_operator.controller.models.enums import ConditionReason, ConditionStatus, ConditionType
from workspace_operator.controller.models.meta import Condition, set_condition
from workspace_operator.controller.models.workspace import ResolvedTemplate, Workspace
from workspace_operator.controller.store.base import NotFoundError, StoreUnavailableError

if TYPE_CHECKING:
    from workspace_operator.controller.core.resolver import TemplateResolution
    from workspace_operator.controller.core.tracker import ReferenceTracker
    from workspace_operator.controller.models.meta import ObjectKey
    from workspace_operator.controller.store.base import ResourceStore


@dataclass(frozen=True)
class ReconcileResult:
    """Whether kopf should run the handler again for this object.

    ``requeue`` retries with per-object backoff; ``requeue_after`` retries after a
    fixed delay.  Neither means the object is done until the next event.
    """

    requeue: bool = False
    requeue_after: float | None = None


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------


class WorkspaceReconciler:
    """Resolves, defaults and tracks a single workspace."""

    def __init__(
        self,
        store: ResourceStore,
        tracker: ReferenceTracker,
        *,
        default_namespace: str | None,
        backoff: Backoff = DEFAULT_BACKOFF,
    ) -> None:
        self._store = store
        self._tracker = tracker
        self._default_namespace = default_namespace
        self._backoff = backoff

    async def reconcile(self, key: ObjectKey) -> ReconcileResult:
        try:
            workspace = await self._store.get(Workspace, key.namespace, key.name)
        except NotFoundError:
            released = await self._tracker.release_everywhere(key)
            if released:
                logger.info("Workspace {} deleted; released templates {}", key, [str(k) for k in released])
            return ReconcileResult()

        if workspace.is_terminating:
            await self._tracker.release_everywhere(key)
            return ReconcileResult()

        try:
            return await self._reconcile_live(workspace)
        except StoreUnavailableError as exc:
            await self._report_unavailable(key, exc)
            raise

    async def _reconcile_live(self, workspace: Workspace) -> ReconcileResult:
        key = workspace.key
        prior = workspace.status.resolved_template
        ref = workspace.spec.template_ref

        if ref is None:
            if prior is not None:
                await self._tracker.release(prior.key, key)
            await self._persist_unreferenced(key)
            return ReconcileResult()

        try:
            resolution = await resolve_template(
                self._store, ref, key.namespace, default_namespace=self._default_namespace
            )
        except TemplateNotFoundError as exc:
            logger.warning("Workspace {}: {}", key, exc)
            # Every candidate for the current ref is gone, so the prior template is no longer named by it.
            if prior is not None:
                await self._tracker.release(prior.key, key)
            await self._persist_status(
                key,
                Condition(
                    type=ConditionType.TEMPLATE_RESOLVED,
                    status=ConditionStatus.FALSE,
                    reason=ConditionReason.TEMPLATE_NOT_FOUND,
                    message=str(exc),
                ),
                resolved=None,
            )
            return ReconcileResult(requeue=True)

        template_key = resolution.key
        try:
            await self._tracker.acquire(template_key, key)
        except NotFoundError:
            # Deleted between resolution and tracking; resolve again.
            return ReconcileResult(requeue=True)
        if prior is not None and prior.key != template_key:
            await self._tracker.release(prior.key, key)
            logger.info("Workspace {}: template changed {} -> {}", key, prior.key, template_key)

        try:
            await self._persist_spec(key, resolution)
        except NotFoundError:
            # Deleted mid-reconcile; the delete event releases the reference.
            return ReconcileResult()

        await self._persist_status(
            key,
            Condition(
                type=ConditionType.TEMPLATE_RESOLVED,
                status=ConditionStatus.TRUE,
                reason=ConditionReason.RESOLVED,
                message=f"Resolved template {template_key} from the {resolution.tier} namespace",
            ),
            resolved=ResolvedTemplate(name=template_key.name, namespace=template_key.namespace),
        )
        return ReconcileResult()

    # -- Writes ----------------------------------------------------------------

    async def _persist_spec(self, key: ObjectKey, resolution: TemplateResolution) -> None:
        """Write template defaults and the template-namespace label."""

        async def _attempt() -> None:
            workspace = await self._store.get(Workspace, key.namespace, key.name)
            spec = apply_template_defaults(workspace.spec, resolution.template)
            labels = {**workspace.metadata.labels, LABEL_TEMPLATE_NAMESPACE: resolution.namespace}
            if spec == workspace.spec and labels == workspace.metadata.labels:
                return
            workspace.spec = spec
            workspace.metadata.labels = labels
            await self._store.update(workspace)
            logger.info("Workspace {}: applied defaults from template {}", key, resolution.key)

        await retry_on_conflict(_attempt, backoff=self._backoff, description=f"workspace {key} spec")

    async def _persist_unreferenced(self, key: ObjectKey) -> None:
        """Clear the label and resolved template of a workspace without templateRef."""

        async def _attempt() -> None:
            workspace = await self._store.get(Workspace, key.namespace, key.name)
            if LABEL_TEMPLATE_NAMESPACE in workspace.metadata.labels:
                workspace.metadata.labels.pop(LABEL_TEMPLATE_NAMESPACE)
                workspace = await self._store.update(workspace)
            if workspace.status.resolved_template is not None:
                workspace.status.resolved_template = None
                await self._store.update_status(workspace)

        try:
            await retry_on_conflict(_attempt, backoff=self._backoff, description=f"workspace {key} label")
        except NotFoundError:
            return

    async def _persist_status(self, key: ObjectKey, condition: Condition, *, resolved: ResolvedTemplate | None) -> None:
        """Write the TemplateResolved condition; no write when nothing changed."""

        async def _attempt() -> None:
            workspace = await self._store.get(Workspace, key.namespace, key.name)
            status = workspace.status
            generation = workspace.metadata.generation
            changed = set_condition(status.conditions, condition.model_copy(update={"observed_generation": generation}))
            if status.resolved_template != resolved:
                status.resolved_template = resolved
                changed = True
            if status.observed_generation != generation:
                status.observed_generation = generation
                changed = True
            if changed:
                await self._store.update_status(workspace)

        try:
            await retry_on_conflict(_attempt, backoff=self._backoff, description=f"workspace {key} status")
        except NotFoundError:
            return

    async def _report_unavailable(self, key: ObjectKey, exc: StoreUnavailableError) -> None:
        """Best effort: surface a transient condition; the store may still be down."""
        condition = Condition(
            type=ConditionType.TEMPLATE_RESOLVED,
            status=ConditionStatus.UNKNOWN,
            reason=ConditionReason.STORE_UNAVAILABLE,
            message=f"Template store unavailable, retrying: {exc}",
        )
        try:
            workspace = await self._store.get(Workspace, key.namespace, key.name)
            if set_condition(workspace.status.conditions, condition):
                await self._store.update_status(workspace)
        except (StoreUnavailableError, NotFoundError) as status_exc:
            logger.debug("Workspace {}: could not record unavailability: {}", key, status_exc)


# ---------------------------------------------------------------------------
# Template
# ---------------------------------------------------------------------------


class TemplateReconciler:
    """Garbage-collects a template's reverse index.

    A template with a ``deletionTimestamp`` is reconciled like any other: it
    is still readable, still resolvable, and still releases normally.
    """

    def __init__(self, tracker: ReferenceTracker) -> None:
        self._tracker = tracker

    async def reconcile(self, key: ObjectKey) -> ReconcileResult:
        await self._tracker.prune(key)
        return ReconcileResult()
