"""AdmissionReview schemas (``admission.k8s.io/v1``).

Only the fields the validating webhook reads or writes are modelled; the
apiserver ignores anything else in the response.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from workspace_operator.controller.models.enums import AdmissionOperation
from workspace_operator.controller.models.meta import KubeModel


class GroupVersionKind(KubeModel):
    group: str = ""
    version: str = ""
    kind: str = ""


class AdmissionRequest(KubeModel):
    uid: str
    kind: GroupVersionKind | None = None
    namespace: str | None = None
    name: str | None = None
    operation: AdmissionOperation
    object: dict[str, Any] | None = None
    old_object: dict[str, Any] | None = None
    dry_run: bool | None = None


class AdmissionStatus(KubeModel):
    code: int | None = None
    message: str | None = None
    reason: str | None = None


class AdmissionResponse(KubeModel):
    uid: str
    allowed: bool
    status: AdmissionStatus | None = None
    warnings: list[str] | None = None


class AdmissionReview(KubeModel):
    api_version: str = "admission.k8s.io/v1"
    kind: str = "AdmissionReview"
    request: AdmissionRequest | None = None
    response: AdmissionResponse | None = None


class AdmissionDecision(KubeModel):
    """Outcome of validating a single object, before wire translation."""

    allowed: bool
    message: str | None = None
    code: int = Field(default=200, description="HTTP-style status code reported to the requester")
