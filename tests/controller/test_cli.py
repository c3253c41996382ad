"""Tests for the ``wsop`` inspection commands against a seeded in-memory store."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator

import pytest
from click.testing import CliRunner

from workspace_operator.cli import main
from workspace_operator.controller import app as app_module
from workspace_operator.controller.constants import LABEL_TEMPLATE_NAMESPACE
from workspace_operator.controller.settings import get_settings
from workspace_operator.controller.store.memory import InMemoryResourceStore

SHARED = "jupyter-k8s-shared"


@pytest.fixture
def seeded(template_factory, workspace_factory, monkeypatch: pytest.MonkeyPatch) -> Iterator[InMemoryResourceStore]:
    store = InMemoryResourceStore()
    workspace = workspace_factory("ws", "team-a", template="priority-test-template", image="team-a-image")
    workspace.metadata.labels[LABEL_TEMPLATE_NAMESPACE] = "team-a"

    async def _seed() -> None:
        await store.create(template_factory("priority-test-template", "team-a", image="team-a-image"))
        await store.create(template_factory("priority-test-template", SHARED, image="shared-image"))
        await store.create(workspace)

    # The CLI runs its own event loop, so seed outside of any running loop.
    asyncio.run(_seed())

    monkeypatch.setenv("WSOP_DEFAULT_TEMPLATE_NAMESPACE", SHARED)
    monkeypatch.setattr(app_module, "create_store", lambda _settings: store)
    get_settings.cache_clear()
    yield store
    get_settings.cache_clear()


def test_resolve_prefers_workspace_namespace(seeded: InMemoryResourceStore) -> None:
    result = CliRunner().invoke(main, ["resolve", "priority-test-template", "-n", "team-a"])

    assert result.exit_code == 0, result.output
    assert result.output.strip() == "team-a/priority-test-template (tier: workspace)"


def test_resolve_explicit_namespace(seeded: InMemoryResourceStore) -> None:
    result = CliRunner().invoke(
        main, ["resolve", "priority-test-template", "-n", "team-a", "--template-namespace", SHARED]
    )

    assert result.exit_code == 0, result.output
    assert result.output.strip() == f"{SHARED}/priority-test-template (tier: explicit)"


def test_resolve_not_found(seeded: InMemoryResourceStore) -> None:
    result = CliRunner().invoke(
        main, ["resolve", "priority-test-template", "-n", "team-a", "--template-namespace", "team-b"]
    )

    assert result.exit_code == 1
    assert "failed to get template" in result.output


def test_get_jsonpath(seeded: InMemoryResourceStore) -> None:
    runner = CliRunner()

    image = runner.invoke(main, ["get", "workspace", "ws", "-n", "team-a", "-o", "jsonpath={.spec.image}"])
    label = runner.invoke(
        main,
        [
            "get",
            "ws",
            "ws",
            "-n",
            "team-a",
            "-o",
            r"jsonpath={.metadata.labels.workspace\.jupyter\.org/template-namespace}",
        ],
    )

    assert image.output.strip() == "team-a-image"
    assert label.output.strip() == "team-a"


def test_get_json(seeded: InMemoryResourceStore) -> None:
    result = CliRunner().invoke(main, ["get", "workspacetemplate", "priority-test-template", "-n", SHARED])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["kind"] == "WorkspaceTemplate"
    assert data["spec"]["defaultImage"] == "shared-image"


def test_get_errors(seeded: InMemoryResourceStore) -> None:
    runner = CliRunner()

    missing = runner.invoke(main, ["get", "workspace", "nope", "-n", "team-a"])
    bad_kind = runner.invoke(main, ["get", "pod", "ws", "-n", "team-a"])

    assert missing.exit_code == 1
    assert "not found" in missing.output.lower()
    assert bad_kind.exit_code == 2
