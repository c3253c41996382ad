"""Liveness and readiness endpoints."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, HTTPException, Request, status

from workspace_operator.controller.deps import SettingsDep, StoreDep
from workspace_operator.controller.models.template import WorkspaceTemplate
from workspace_operator.controller.store.base import StoreError

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(request: Request, store: StoreDep, settings: SettingsDep) -> dict[str, str]:
    """Ready once the store answers and, if enabled, the operator is running."""
    operator = getattr(request.app.state, "operator", None)
    if settings.run_controller and (operator is None or not operator.running):
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Operator not running.")
    try:
        async with asyncio.timeout(settings.admission_timeout):
            await store.list_objects(WorkspaceTemplate, settings.watch_namespace)
    except (StoreError, TimeoutError) as exc:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"Store unreachable: {exc}") from None
    return {"status": "ok"}
