"""Template defaulting.

Fields the workspace leaves unset are filled from the resolved template;
anything the user set explicitly wins.
"""

from __future__ import annotations

from workspace_operator.controller.models.template import WorkspaceTemplate
from workspace_operator.controller.models.workspace import ResourceRequirements, StorageSpec, WorkspaceSpec


def apply_template_defaults(spec: WorkspaceSpec, template: WorkspaceTemplate) -> WorkspaceSpec:
    """Return a copy of *spec* with unset fields taken from *template*."""
    defaults = template.spec
    result = spec.model_copy(deep=True)

    if not result.image and defaults.default_image:
        result.image = defaults.default_image

    if defaults.default_storage_size and not (result.storage and result.storage.size):
        result.storage = (result.storage or StorageSpec()).model_copy(update={"size": defaults.default_storage_size})

    if defaults.default_resources and defaults.default_resources.requests:
        resources = result.resources or ResourceRequirements()
        missing = {k: v for k, v in defaults.default_resources.requests.items() if k not in resources.requests}
        if missing:
            resources.requests = {**resources.requests, **missing}
            result.resources = resources

    return result
