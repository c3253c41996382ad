"""Data models for the workspace controller."""

from workspace_operator.controller.models.admission import (
    AdmissionDecision,
    AdmissionRequest,
    AdmissionResponse,
    AdmissionReview,
    AdmissionStatus,
)
from workspace_operator.controller.models.enums import (
    AdmissionOperation,
    ConditionReason,
    ConditionStatus,
    ConditionType,
    DesiredStatus,
    OwnershipType,
    TemplateTier,
    WatchEventType,
)
from workspace_operator.controller.models.meta import Condition, ObjectKey, ObjectMeta, Resource
from workspace_operator.controller.models.template import WorkspaceTemplate, WorkspaceTemplateSpec
from workspace_operator.controller.models.workspace import (
    ResolvedTemplate,
    ResourceRequirements,
    StorageSpec,
    TemplateRef,
    Workspace,
    WorkspaceSpec,
    WorkspaceStatus,
)

__all__ = [
    # Admission
    "AdmissionDecision",
    # Enums
    "AdmissionOperation",
    "AdmissionRequest",
    "AdmissionResponse",
    "AdmissionReview",
    "AdmissionStatus",
    # Meta
    "Condition",
    "ConditionReason",
    "ConditionStatus",
    "ConditionType",
    "DesiredStatus",
    "ObjectKey",
    "ObjectMeta",
    "OwnershipType",
    # Workspace
    "ResolvedTemplate",
    "Resource",
    "ResourceRequirements",
    "StorageSpec",
    "TemplateRef",
    "TemplateTier",
    "WatchEventType",
    "Workspace",
    "WorkspaceSpec",
    "WorkspaceStatus",
    # Template
    "WorkspaceTemplate",
    "WorkspaceTemplateSpec",
]
