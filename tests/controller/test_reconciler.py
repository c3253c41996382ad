"""Tests for the workspace and template reconcilers, driven step by step."""

from __future__ import annotations

import pytest

from workspace_operator.controller.constants import LABEL_TEMPLATE_NAMESPACE
from workspace_operator.controller.core.retry import Backoff
from workspace_operator.controller.core.tracker import ReferenceTracker
from workspace_operator.controller.models.enums import ConditionReason, ConditionStatus, ConditionType
from workspace_operator.controller.models.meta import ObjectKey, get_condition
from workspace_operator.controller.models.template import WorkspaceTemplate
from workspace_operator.controller.models.workspace import TemplateRef, Workspace
from workspace_operator.controller.reconciler import TemplateReconciler, WorkspaceReconciler
from workspace_operator.controller.store.base import NotFoundError, StoreUnavailableError
from workspace_operator.controller.store.memory import InMemoryResourceStore

SHARED = "jupyter-k8s-shared"
WS = ObjectKey("team-a", "ws")


@pytest.fixture
def tracker(store: InMemoryResourceStore, fast_backoff: Backoff) -> ReferenceTracker:
    return ReferenceTracker(store, backoff=fast_backoff)


@pytest.fixture
def reconciler(store: InMemoryResourceStore, tracker: ReferenceTracker, fast_backoff: Backoff) -> WorkspaceReconciler:
    return WorkspaceReconciler(store, tracker, default_namespace=SHARED, backoff=fast_backoff)


async def _workspace(store: InMemoryResourceStore) -> Workspace:
    return await store.get(Workspace, WS.namespace, WS.name)


async def _template(store: InMemoryResourceStore, namespace: str, name: str) -> WorkspaceTemplate:
    return await store.get(WorkspaceTemplate, namespace, name)


def _resolved(workspace: Workspace):
    return get_condition(workspace.status.conditions, ConditionType.TEMPLATE_RESOLVED)


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


async def test_resolves_defaults_and_protects(
    store: InMemoryResourceStore,
    reconciler: WorkspaceReconciler,
    template_factory,
    workspace_factory,
) -> None:
    await store.create(template_factory("fallback-template", SHARED, image="jupyter/base:1", storage="5Gi"))
    await store.create(workspace_factory(WS.name, WS.namespace, template="fallback-template"))

    result = await reconciler.reconcile(WS)

    assert not result.requeue
    workspace = await _workspace(store)
    assert workspace.spec.image == "jupyter/base:1"
    assert workspace.spec.storage.size == "5Gi"
    assert workspace.metadata.labels[LABEL_TEMPLATE_NAMESPACE] == SHARED
    assert workspace.status.resolved_template.key == ObjectKey(SHARED, "fallback-template")
    assert workspace.status.observed_generation == workspace.metadata.generation
    condition = _resolved(workspace)
    assert condition.status == ConditionStatus.TRUE
    assert condition.reason == ConditionReason.RESOLVED

    template = await _template(store, SHARED, "fallback-template")
    assert template.is_protected
    assert template.references() == {WS}


async def test_second_reconcile_writes_nothing(
    store: InMemoryResourceStore,
    reconciler: WorkspaceReconciler,
    template_factory,
    workspace_factory,
) -> None:
    await store.create(template_factory("basic-template", "team-a", image="img"))
    await store.create(workspace_factory(WS.name, WS.namespace, template="basic-template"))
    await reconciler.reconcile(WS)
    workspace_version = (await _workspace(store)).metadata.resource_version
    template_version = (await _template(store, "team-a", "basic-template")).metadata.resource_version

    await reconciler.reconcile(WS)

    assert (await _workspace(store)).metadata.resource_version == workspace_version
    assert (await _template(store, "team-a", "basic-template")).metadata.resource_version == template_version


async def test_user_values_are_not_overwritten(
    store: InMemoryResourceStore,
    reconciler: WorkspaceReconciler,
    template_factory,
    workspace_factory,
) -> None:
    await store.create(template_factory("basic-template", "team-a", image="template-image"))
    await store.create(workspace_factory(WS.name, WS.namespace, template="basic-template", image="mine"))

    await reconciler.reconcile(WS)

    assert (await _workspace(store)).spec.image == "mine"


# ---------------------------------------------------------------------------
# Resolution failure
# ---------------------------------------------------------------------------


async def test_missing_template_sets_condition_and_requeues(
    store: InMemoryResourceStore,
    reconciler: WorkspaceReconciler,
    template_factory,
    workspace_factory,
) -> None:
    await store.create(workspace_factory(WS.name, WS.namespace, template="later-template"))

    result = await reconciler.reconcile(WS)

    assert result.requeue
    condition = _resolved(await _workspace(store))
    assert condition.status == ConditionStatus.FALSE
    assert condition.reason == ConditionReason.TEMPLATE_NOT_FOUND
    assert "failed to get template" in condition.message

    await store.create(template_factory("later-template", SHARED))
    result = await reconciler.reconcile(WS)

    assert not result.requeue
    assert _resolved(await _workspace(store)).status == ConditionStatus.TRUE


async def test_failed_re_resolution_releases_prior_template(
    store: InMemoryResourceStore,
    reconciler: WorkspaceReconciler,
    template_factory,
    workspace_factory,
) -> None:
    await store.create(template_factory("basic-template", SHARED))
    await store.create(workspace_factory(WS.name, WS.namespace, template="basic-template"))
    await reconciler.reconcile(WS)

    workspace = await _workspace(store)
    workspace.spec.template_ref = TemplateRef(name="gone-template")
    await store.update(workspace)
    result = await reconciler.reconcile(WS)

    assert result.requeue
    workspace = await _workspace(store)
    assert workspace.status.resolved_template is None
    assert _resolved(workspace).reason == ConditionReason.TEMPLATE_NOT_FOUND
    old = await _template(store, SHARED, "basic-template")
    assert old.references() == set()
    assert not old.is_protected

    await store.delete(WorkspaceTemplate, SHARED, "basic-template")
    with pytest.raises(NotFoundError):
        await _template(store, SHARED, "basic-template")


# ---------------------------------------------------------------------------
# Re-resolution and removal
# ---------------------------------------------------------------------------


async def test_template_switch_moves_the_reference(
    store: InMemoryResourceStore,
    reconciler: WorkspaceReconciler,
    template_factory,
    workspace_factory,
) -> None:
    await store.create(template_factory("old-template", SHARED, image="old-image"))
    await store.create(template_factory("new-template", "team-a", image="new-image", storage="1Gi"))
    await store.create(workspace_factory(WS.name, WS.namespace, template="old-template"))
    await reconciler.reconcile(WS)

    workspace = await _workspace(store)
    workspace.spec.template_ref = TemplateRef(name="new-template")
    await store.update(workspace)
    await reconciler.reconcile(WS)

    old = await _template(store, SHARED, "old-template")
    new = await _template(store, "team-a", "new-template")
    assert not old.is_protected
    assert new.references() == {WS}

    workspace = await _workspace(store)
    assert workspace.metadata.labels[LABEL_TEMPLATE_NAMESPACE] == "team-a"
    assert workspace.status.resolved_template.key == new.key
    # Persisted defaults stick; only unset fields are filled.
    assert workspace.spec.image == "old-image"
    assert workspace.spec.storage.size == "1Gi"


async def test_removing_template_ref_releases(
    store: InMemoryResourceStore,
    reconciler: WorkspaceReconciler,
    template_factory,
    workspace_factory,
) -> None:
    await store.create(template_factory("basic-template", SHARED))
    await store.create(workspace_factory(WS.name, WS.namespace, template="basic-template"))
    await reconciler.reconcile(WS)

    workspace = await _workspace(store)
    workspace.spec.template_ref = None
    await store.update(workspace)
    await reconciler.reconcile(WS)

    assert not (await _template(store, SHARED, "basic-template")).is_protected
    workspace = await _workspace(store)
    assert LABEL_TEMPLATE_NAMESPACE not in workspace.metadata.labels
    assert workspace.status.resolved_template is None


async def test_deleted_workspace_releases_its_template(
    store: InMemoryResourceStore,
    reconciler: WorkspaceReconciler,
    template_factory,
    workspace_factory,
) -> None:
    await store.create(template_factory("cross-ns-finalizer-template", SHARED))
    await store.create(workspace_factory(WS.name, WS.namespace, template="cross-ns-finalizer-template"))
    await reconciler.reconcile(WS)
    await store.delete(WorkspaceTemplate, SHARED, "cross-ns-finalizer-template")
    assert (await _template(store, SHARED, "cross-ns-finalizer-template")).is_terminating

    await store.delete(Workspace, WS.namespace, WS.name)
    await reconciler.reconcile(WS)

    with pytest.raises(NotFoundError):
        await _template(store, SHARED, "cross-ns-finalizer-template")


async def test_terminating_workspace_releases_its_template(
    store: InMemoryResourceStore,
    reconciler: WorkspaceReconciler,
    template_factory,
    workspace_factory,
) -> None:
    await store.create(template_factory("basic-template", SHARED))
    workspace = workspace_factory(WS.name, WS.namespace, template="basic-template")
    workspace.metadata.finalizers.append("example.com/cleanup")
    await store.create(workspace)
    await reconciler.reconcile(WS)

    await store.delete(Workspace, WS.namespace, WS.name)
    await reconciler.reconcile(WS)

    assert not (await _template(store, SHARED, "basic-template")).is_protected


# ---------------------------------------------------------------------------
# Transient failures
# ---------------------------------------------------------------------------


class _TemplateOutage(InMemoryResourceStore):
    """Workspaces stay reachable; template reads fail."""

    async def get(self, kind, namespace, name):
        if kind is WorkspaceTemplate:
            msg = "etcd leader changed"
            raise StoreUnavailableError(msg)
        return await super().get(kind, namespace, name)


async def test_store_outage_reports_unknown_and_raises(fast_backoff: Backoff, workspace_factory) -> None:
    store = _TemplateOutage()
    reconciler = WorkspaceReconciler(
        store, ReferenceTracker(store, backoff=fast_backoff), default_namespace=SHARED, backoff=fast_backoff
    )
    await store.create(workspace_factory(WS.name, WS.namespace, template="basic-template"))

    with pytest.raises(StoreUnavailableError):
        await reconciler.reconcile(WS)

    condition = _resolved(await _workspace(store))
    assert condition.status == ConditionStatus.UNKNOWN
    assert condition.reason == ConditionReason.STORE_UNAVAILABLE


# ---------------------------------------------------------------------------
# Template reconciler
# ---------------------------------------------------------------------------


async def test_template_reconcile_prunes_stale_references(
    store: InMemoryResourceStore,
    tracker: ReferenceTracker,
    template_factory,
) -> None:
    await store.create(template_factory("basic-template", SHARED))
    key = ObjectKey(SHARED, "basic-template")
    await tracker.acquire(key, ObjectKey("team-a", "deleted-while-controller-was-down"))

    result = await TemplateReconciler(tracker).reconcile(key)

    assert not result.requeue
    assert not (await _template(store, SHARED, "basic-template")).is_protected
