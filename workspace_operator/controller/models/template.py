"""WorkspaceTemplate custom resource.

Templates carry the defaults applied to workspaces that reference them.  A
template may live in a workspace's own namespace or in the shared template
namespace, and may be referenced from any namespace.
"""

from __future__ import annotations

import json
from typing import ClassVar

from pydantic import Field

from workspace_operator.controller.constants import ANNOTATION_REFERENCED_BY, FINALIZER_TEMPLATE_PROTECTION
from workspace_operator.controller.models.meta import KubeModel, ObjectKey, Resource
from workspace_operator.controller.models.workspace import ResourceRequirements


class WorkspaceTemplateSpec(KubeModel):
    display_name: str | None = None
    description: str | None = None
    default_image: str | None = None
    default_storage_size: str | None = None
    default_resources: ResourceRequirements | None = None


class WorkspaceTemplate(Resource):
    KIND: ClassVar[str] = "WorkspaceTemplate"
    PLURAL: ClassVar[str] = "workspacetemplates"

    spec: WorkspaceTemplateSpec = Field(default_factory=WorkspaceTemplateSpec)

    # -- Reference bookkeeping ---------------------------------------------------

    @property
    def is_protected(self) -> bool:
        return FINALIZER_TEMPLATE_PROTECTION in self.metadata.finalizers

    def references(self) -> set[ObjectKey]:
        """Workspace keys recorded in the reverse-index annotation.

        Malformed entries are ignored; the next prune rewrites the annotation.
        """
        raw = self.metadata.annotations.get(ANNOTATION_REFERENCED_BY)
        if not raw:
            return set()
        try:
            values = json.loads(raw)
        except json.JSONDecodeError:
            return set()
        keys: set[ObjectKey] = set()
        for value in values if isinstance(values, list) else []:
            try:
                keys.add(ObjectKey.parse(str(value)))
            except ValueError:
                continue
        return keys

    def set_references(self, keys: set[ObjectKey]) -> None:
        """Write the reverse index and the protection finalizer together.

        The finalizer is present exactly when *keys* is non-empty.
        """
        if keys:
            self.metadata.annotations[ANNOTATION_REFERENCED_BY] = json.dumps(sorted(str(k) for k in keys))
            if FINALIZER_TEMPLATE_PROTECTION not in self.metadata.finalizers:
                self.metadata.finalizers.append(FINALIZER_TEMPLATE_PROTECTION)
        else:
            self.metadata.annotations.pop(ANNOTATION_REFERENCED_BY, None)
            self.metadata.finalizers = [f for f in self.metadata.finalizers if f != FINALIZER_TEMPLATE_PROTECTION]
