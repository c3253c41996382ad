"""Tests for the kopf thread owner, with ``kopf.operator`` replaced."""

from __future__ import annotations

import kopf
import pytest

from workspace_operator.controller.reconciler import TemplateReconciler, WorkspaceReconciler
from workspace_operator.controller.runner import OperatorRunner
from workspace_operator.controller.settings import OperatorSettings
from workspace_operator.controller.store.memory import InMemoryResourceStore


async def _wait_running(runner: OperatorRunner, eventually) -> None:
    async def _running() -> bool:
        return runner.running

    await eventually(_running)


async def test_runs_kopf_clusterwide(
    store: InMemoryResourceStore,
    settings: OperatorSettings,
    fake_kopf,
    eventually,
) -> None:
    runner = OperatorRunner(store, settings)
    assert not runner.running

    runner.start()
    await _wait_running(runner, eventually)
    assert await runner.stop(timeout=1)

    assert not runner.running
    [call] = fake_kopf
    assert call["standalone"] is True
    assert call["clusterwide"] is True
    assert call["namespaces"] == []
    assert call["registry"] is runner.registry
    assert call["memo"] is runner.memo


async def test_watch_namespace_restricts_kopf(
    store: InMemoryResourceStore,
    settings: OperatorSettings,
    fake_kopf,
    eventually,
) -> None:
    runner = OperatorRunner(store, settings.model_copy(update={"watch_namespace": "team-a"}))
    runner.start()
    await _wait_running(runner, eventually)
    await runner.stop(timeout=1)

    assert fake_kopf[0]["clusterwide"] is False
    assert fake_kopf[0]["namespaces"] == ["team-a"]


def test_memo_and_registry(store: InMemoryResourceStore, settings: OperatorSettings) -> None:
    runner = OperatorRunner(store, settings)

    assert isinstance(runner.registry, kopf.OperatorRegistry)
    assert isinstance(runner.memo.workspaces, WorkspaceReconciler)
    assert isinstance(runner.memo.templates, TemplateReconciler)
    assert runner.memo.store is store


async def test_stop_is_idempotent(
    store: InMemoryResourceStore,
    settings: OperatorSettings,
    fake_kopf,
    eventually,
) -> None:
    runner = OperatorRunner(store, settings)
    assert await runner.stop(timeout=1)

    runner.start()
    await _wait_running(runner, eventually)

    assert await runner.stop(timeout=1)
    assert await runner.stop(timeout=1)


async def test_start_twice_is_rejected(
    store: InMemoryResourceStore,
    settings: OperatorSettings,
    fake_kopf,
) -> None:
    runner = OperatorRunner(store, settings)
    runner.start()
    try:
        with pytest.raises(RuntimeError):
            runner.start()
    finally:
        await runner.stop(timeout=1)


async def test_crashed_operator_is_not_running(
    store: InMemoryResourceStore,
    settings: OperatorSettings,
    monkeypatch: pytest.MonkeyPatch,
    eventually,
) -> None:
    async def _crashing(*, ready_flag, stop_flag, **kwargs) -> None:
        ready_flag.set()
        msg = "watch on workspacetemplates failed: 404"
        raise RuntimeError(msg)

    monkeypatch.setattr(kopf, "operator", _crashing)
    runner = OperatorRunner(store, settings)
    runner.start()

    async def _stopped() -> bool:
        return not runner.running

    await eventually(_stopped)
    assert await runner.stop(timeout=1)
