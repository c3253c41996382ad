"""kopf handlers driving the workspace and template reconcilers.

kopf owns the watch streams, per-object serialization and retries.  Each
handler turns the object into an ``ObjectKey`` and runs the matching
reconciler from ``memo``; the reconcilers re-read everything from the store,
so the body kopf hands over is only used to spot deletions.

Handlers are registered on a dedicated registry by ``build_registry`` rather
than with module-level decorators, because the resync interval and worker
limit come from ``OperatorSettings``.

Mapping onto kopf:

- create / update / resume -> reconcile; a requested requeue or a store
  failure raises ``kopf.TemporaryError`` with a per-object exponential delay
- workspace removal -> ``release_everywhere`` from a raw event handler, since
  a workspace carries no finalizer of ours and kopf never sees it terminate
- template deletion -> prune, so that stale references cannot pin a
  terminating template
- a periodic timer on every template -> prune, catching workspaces removed
  while the operator was down
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import kopf
from loguru import logger

from workspace_operator.controller.constants import API_GROUP, API_VERSION
from workspace_operator.controller.core.retry import Backoff
from workspace_operator.controller.core.tracker import ReferenceTracker
from workspace_operator.controller.models.enums import ConditionStatus, ConditionType, WatchEventType
from workspace_operator.controller.models.meta import ObjectKey, get_condition
from workspace_operator.controller.models.template import WorkspaceTemplate
from workspace_operator.controller.models.workspace import Workspace
from workspace_operator.controller.reconciler import TemplateReconciler, WorkspaceReconciler
from workspace_operator.controller.store.base import StoreError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from workspace_operator.controller.reconciler import ReconcileResult
    from workspace_operator.controller.settings import OperatorSettings
    from workspace_operator.controller.store.base import ResourceStore

WORKSPACES = (API_GROUP, API_VERSION, Workspace.PLURAL)
TEMPLATES = (API_GROUP, API_VERSION, WorkspaceTemplate.PLURAL)


def build_memo(store: ResourceStore, settings: OperatorSettings, *, backoff: Backoff | None = None) -> kopf.Memo:
    """Shared state handed to every handler as ``memo``."""
    backoff = backoff or Backoff(steps=settings.conflict_retry_steps)
    tracker = ReferenceTracker(store, backoff=backoff)
    return kopf.Memo(
        store=store,
        settings=settings,
        tracker=tracker,
        workspaces=WorkspaceReconciler(
            store,
            tracker,
            default_namespace=settings.default_template_namespace,
            backoff=backoff,
        ),
        templates=TemplateReconciler(tracker),
    )


def build_registry(settings: OperatorSettings) -> kopf.OperatorRegistry:
    registry = kopf.OperatorRegistry()

    kopf.on.startup(registry=registry)(configure)
    kopf.on.login(registry=registry)(login)

    for register in (kopf.on.resume, kopf.on.create, kopf.on.update):
        register(*WORKSPACES, registry=registry)(reconcile_workspace)
    kopf.on.event(*WORKSPACES, registry=registry)(workspace_event)

    kopf.on.resume(*TEMPLATES, registry=registry)(template_appeared)
    kopf.on.create(*TEMPLATES, registry=registry)(template_appeared)
    kopf.on.update(*TEMPLATES, registry=registry)(reconcile_template)
    kopf.on.delete(*TEMPLATES, optional=True, registry=registry)(reconcile_template)
    if settings.resync_period > 0:
        kopf.timer(*TEMPLATES, interval=settings.resync_period, registry=registry)(resync_template)

    return registry


def needs_resolution(workspace: Workspace) -> bool:
    """True if the workspace has a templateRef that did not resolve last time."""
    if workspace.spec.template_ref is None:
        return False
    condition = get_condition(workspace.status.conditions, ConditionType.TEMPLATE_RESOLVED)
    return condition is None or condition.status != ConditionStatus.TRUE


def requeue_delay(retry: int, settings: OperatorSettings) -> float:
    return min(settings.requeue_base_delay * 2**retry, settings.requeue_max_delay)


# ---------------------------------------------------------------------------
# Operator-level handlers
# ---------------------------------------------------------------------------


def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **_: Any) -> None:
    # Keep kopf's bookkeeping out of status, which the reconciler owns.
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix=API_GROUP)
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(prefix=API_GROUP)
    settings.posting.level = logging.WARNING
    settings.batching.worker_limit = memo.settings.workers


def login(**kwargs: Any) -> kopf.ConnectionInfo | None:
    return kopf.login_via_client(**kwargs)


# ---------------------------------------------------------------------------
# Workspace handlers
# ---------------------------------------------------------------------------


async def reconcile_workspace(name: str, namespace: str, memo: kopf.Memo, retry: int = 0, **_: Any) -> None:
    await _reconcile(memo.workspaces.reconcile, ObjectKey(namespace, name), retry, memo.settings)


async def workspace_event(
    event: dict[str, Any],
    name: str,
    namespace: str,
    body: kopf.Body,
    memo: kopf.Memo,
    **_: Any,
) -> None:
    """Release references of a removed or terminating workspace.

    Failures are not retried here; the template timer prunes what is missed.
    """
    if event.get("type") != WatchEventType.DELETED and not body.get("metadata", {}).get("deletionTimestamp"):
        return
    await memo.workspaces.reconcile(ObjectKey(namespace, name))


# ---------------------------------------------------------------------------
# Template handlers
# ---------------------------------------------------------------------------


async def reconcile_template(name: str, namespace: str, memo: kopf.Memo, retry: int = 0, **_: Any) -> None:
    await _reconcile(memo.templates.reconcile, ObjectKey(namespace, name), retry, memo.settings)


async def template_appeared(name: str, namespace: str, memo: kopf.Memo, retry: int = 0, **_: Any) -> None:
    """Prune, then retry workspaces that were waiting for a template of this name.

    Those workspaces also retry on their own backoff; this only shortens the wait.
    """
    key = ObjectKey(namespace, name)
    await _reconcile(memo.templates.reconcile, key, retry, memo.settings)

    try:
        workspaces = await memo.store.list_objects(Workspace, memo.settings.watch_namespace)
        for workspace in workspaces:
            ref = workspace.spec.template_ref
            if ref is None or ref.name != name or not needs_resolution(workspace):
                continue
            logger.info("Template {} appeared; retrying workspace {}", key, workspace.key)
            await memo.workspaces.reconcile(workspace.key)
    except StoreError as exc:
        raise kopf.TemporaryError(f"{key}: {exc}", delay=requeue_delay(retry, memo.settings)) from exc


async def resync_template(name: str, namespace: str, memo: kopf.Memo, **_: Any) -> None:
    try:
        await memo.templates.reconcile(ObjectKey(namespace, name))
    except StoreError as exc:
        logger.warning("Resync of template {}/{} failed: {}", namespace, name, exc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _reconcile(
    reconcile: Callable[[ObjectKey], Awaitable[ReconcileResult]],
    key: ObjectKey,
    retry: int,
    settings: OperatorSettings,
) -> None:
    delay = requeue_delay(retry, settings)
    try:
        result = await reconcile(key)
    except StoreError as exc:
        logger.warning("Reconcile {}: {}, retrying in {:.2f}s", key, exc, delay)
        raise kopf.TemporaryError(f"{key}: {exc}", delay=delay) from exc

    if result.requeue_after is not None:
        raise kopf.TemporaryError(f"{key}: requeued", delay=result.requeue_after)
    if result.requeue:
        raise kopf.TemporaryError(f"{key}: not settled yet", delay=delay)
