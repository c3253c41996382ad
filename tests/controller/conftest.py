"""Shared fixtures for controller tests.

Everything runs against ``InMemoryResourceStore``, which enforces the same
resourceVersion / finalizer / deletionTimestamp rules as the apiserver, so no
cluster is needed.  Tests that talk to a real cluster are marked
``@pytest.mark.integration``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import kopf
import pytest

from workspace_operator.controller.core.retry import Backoff
from workspace_operator.controller.handlers import build_memo
from workspace_operator.controller.models.meta import ObjectMeta
from workspace_operator.controller.models.template import WorkspaceTemplate, WorkspaceTemplateSpec
from workspace_operator.controller.models.workspace import (
    ResourceRequirements,
    StorageSpec,
    TemplateRef,
    Workspace,
    WorkspaceSpec,
)
from workspace_operator.controller.settings import OperatorSettings
from workspace_operator.controller.store.memory import InMemoryResourceStore

SHARED_NAMESPACE = "jupyter-k8s-shared"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def build_template(
    name: str,
    namespace: str,
    *,
    image: str | None = None,
    storage: str | None = None,
    requests: dict[str, str] | None = None,
) -> WorkspaceTemplate:
    return WorkspaceTemplate(
        metadata=ObjectMeta(name=name, namespace=namespace),
        spec=WorkspaceTemplateSpec(
            display_name=name,
            default_image=image,
            default_storage_size=storage,
            default_resources=ResourceRequirements(requests=requests) if requests else None,
        ),
    )


def build_workspace(
    name: str,
    namespace: str,
    *,
    template: str | None = None,
    template_namespace: str | None = None,
    image: str | None = None,
    storage: str | None = None,
) -> Workspace:
    return Workspace(
        metadata=ObjectMeta(name=name, namespace=namespace),
        spec=WorkspaceSpec(
            display_name=name,
            image=image,
            template_ref=TemplateRef(name=template, namespace=template_namespace) if template else None,
            storage=StorageSpec(size=storage) if storage else None,
        ),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> InMemoryResourceStore:
    return InMemoryResourceStore()


@pytest.fixture
def fast_backoff() -> Backoff:
    """Enough attempts for dozens of writers contending on one template."""
    return Backoff(steps=200, duration=0.001, factor=1.5, jitter=1.0, cap=0.01)


@pytest.fixture
def template_factory() -> Callable[..., WorkspaceTemplate]:
    return build_template


@pytest.fixture
def workspace_factory() -> Callable[..., Workspace]:
    return build_workspace


@pytest.fixture
def settings() -> OperatorSettings:
    return OperatorSettings(
        store="memory",
        default_template_namespace=SHARED_NAMESPACE,
        workers=2,
        resync_period=0,
        requeue_base_delay=0.01,
        requeue_max_delay=0.2,
        conflict_retry_steps=200,
        admission_timeout=1.0,
        graceful_shutdown_timeout=5,
        _env_file=None,
    )


@pytest.fixture
def memo(store: InMemoryResourceStore, settings: OperatorSettings, fast_backoff: Backoff) -> kopf.Memo:
    """What kopf hands every handler, wired to the in-memory store."""
    return build_memo(store, settings, backoff=fast_backoff)


@pytest.fixture
def eventually() -> Callable[..., Awaitable[Any]]:
    """Poll an async predicate until it returns a truthy value."""

    async def _eventually(predicate: Callable[[], Awaitable[Any]], timeout: float = 5.0) -> Any:
        async with asyncio.timeout(timeout):
            while True:
                result = await predicate()
                if result:
                    return result
                await asyncio.sleep(0.01)

    return _eventually


@pytest.fixture
def fake_kopf(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    """Replace ``kopf.operator`` with a loop that reports ready and idles until stopped.

    Returns the keyword arguments of every call.
    """
    calls: list[dict[str, Any]] = []

    async def _operator(*, ready_flag, stop_flag, **kwargs: Any) -> None:
        calls.append(kwargs)
        ready_flag.set()
        while not stop_flag.is_set():
            await asyncio.sleep(0.01)

    monkeypatch.setattr(kopf, "operator", _operator)
    return calls
