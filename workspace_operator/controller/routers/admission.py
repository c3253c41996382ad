"""Validating admission webhook for Workspace objects.

The apiserver POSTs an ``AdmissionReview`` and expects one back with the same
``request.uid``.  A denial is reported in-band (``allowed: false`` plus a
status code and message); HTTP errors are reserved for malformed reviews.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, status
from loguru import logger
from pydantic import ValidationError

from workspace_operator.controller.deps import SettingsDep, StoreDep
from workspace_operator.controller.managers.admission import validate_workspace
from workspace_operator.controller.models.admission import (
    AdmissionDecision,
    AdmissionResponse,
    AdmissionReview,
    AdmissionStatus,
)
from workspace_operator.controller.models.enums import AdmissionOperation
from workspace_operator.controller.models.workspace import Workspace

router = APIRouter(tags=["admission"])


@router.post("/validate-workspace")
async def validate(review: AdmissionReview, store: StoreDep, settings: SettingsDep) -> dict[str, Any]:
    """Reject workspaces whose ``templateRef`` cannot be resolved."""
    request = review.request
    if request is None:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="AdmissionReview has no request.")

    decision = AdmissionDecision(allowed=True)
    if request.operation in (AdmissionOperation.CREATE, AdmissionOperation.UPDATE) and request.object is not None:
        try:
            workspace = Workspace.from_wire(request.object)
            old = Workspace.from_wire(request.old_object) if request.old_object else None
        except ValidationError as exc:
            logger.info("Admission: malformed workspace in request {}: {}", request.uid, exc)
            decision = AdmissionDecision(
                allowed=False, message=f"invalid Workspace: {exc}", code=status.HTTP_400_BAD_REQUEST
            )
        else:
            if workspace.metadata.namespace is None:
                workspace.metadata.namespace = request.namespace
            decision = await validate_workspace(
                store,
                workspace,
                default_namespace=settings.default_template_namespace,
                timeout=settings.admission_timeout,
                old=old,
            )

    response = AdmissionResponse(uid=request.uid, allowed=decision.allowed)
    if not decision.allowed:
        response.status = AdmissionStatus(code=decision.code, message=decision.message)
    return AdmissionReview(api_version=review.api_version, response=response).to_wire()
