"""Workspace custom resource.

A workspace is a user's notebook environment.  It names the template it is
built from via ``spec.templateRef``; fields the user leaves unset are filled
from that template's defaults by the controller.
"""

from __future__ import annotations

from typing import ClassVar

from pydantic import Field

from workspace_operator.controller.models.enums import DesiredStatus, OwnershipType
from workspace_operator.controller.models.meta import Condition, KubeModel, ObjectKey, Resource


class TemplateRef(KubeModel):
    """Reference to a WorkspaceTemplate.

    An empty ``namespace`` means "search the workspace namespace, then the
    shared template namespace".
    """

    name: str
    namespace: str | None = None


class StorageSpec(KubeModel):
    size: str | None = None


class ResourceRequirements(KubeModel):
    requests: dict[str, str] = Field(default_factory=dict)
    limits: dict[str, str] = Field(default_factory=dict)


class WorkspaceSpec(KubeModel):
    display_name: str | None = None
    image: str | None = None
    desired_status: DesiredStatus | None = None
    ownership_type: OwnershipType | None = None
    template_ref: TemplateRef | None = None
    storage: StorageSpec | None = None
    resources: ResourceRequirements | None = None


class ResolvedTemplate(KubeModel):
    """Identity of the template a workspace was last resolved to."""

    name: str
    namespace: str

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(namespace=self.namespace, name=self.name)


class WorkspaceStatus(KubeModel):
    conditions: list[Condition] = Field(default_factory=list)
    resolved_template: ResolvedTemplate | None = None
    observed_generation: int | None = None


class Workspace(Resource):
    KIND: ClassVar[str] = "Workspace"
    PLURAL: ClassVar[str] = "workspaces"

    spec: WorkspaceSpec = Field(default_factory=WorkspaceSpec)
    status: WorkspaceStatus = Field(default_factory=WorkspaceStatus)
