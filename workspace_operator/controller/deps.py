"""FastAPI dependency injection for the resource store and settings.

Usage in route handlers::

    @router.post("/validate-workspace")
    async def validate(review: AdmissionReview, store: StoreDep, settings: SettingsDep) -> dict:
        ...

``StoreDep`` raises HTTP 503 while the store is not configured (before the
lifespan has run, or after it failed to connect).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from workspace_operator.controller.settings import OperatorSettings, get_settings
from workspace_operator.controller.store.base import ResourceStore


async def get_store(request: Request) -> ResourceStore:
    store: ResourceStore | None = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Resource store not configured.",
        )
    return store


async def get_app_settings(request: Request) -> OperatorSettings:
    """Settings captured by the lifespan, falling back to the cached instance."""
    settings: OperatorSettings | None = getattr(request.app.state, "settings", None)
    return settings if settings is not None else get_settings()


# -- Annotated type aliases for concise route signatures ---------------------

StoreDep = Annotated[ResourceStore, Depends(get_store)]
"""Annotated dependency: the shared resource store."""

SettingsDep = Annotated[OperatorSettings, Depends(get_app_settings)]
