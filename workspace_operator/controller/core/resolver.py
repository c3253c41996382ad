"""Template resolver -- maps a workspace's ``templateRef`` to a concrete
WorkspaceTemplate.

Resolution order (first success wins):

1. ``templateRef.namespace`` set: that namespace only.  A miss fails
   immediately; there is no fallback.
2. ``templateRef.namespace`` empty: the workspace's own namespace.  This
   dominates the shared namespace even when both hold a same-named template.
3. The configured default (shared) template namespace.
4. Nothing found: ``TemplateNotFoundError`` listing the namespaces tried.

The lookup plan is computed by ``plan_lookup`` (pure, no I/O) and walked by
``resolve_template``.  The resolver only reads; the admission webhook and the
reconciler share it so that what admission allowed and what reconciliation
resolves cannot drift apart.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from workspace_operator.controller.models.enums import TemplateTier
from workspace_operator.controller.models.template import WorkspaceTemplate
from workspace_operator.controller.store.base import NotFoundError

if TYPE_CHECKING:
    from workspace_operator.controller.models.meta import ObjectKey
    from workspace_operator.controller.models.workspace import TemplateRef
    from workspace_operator.controller.store.base import ResourceStore

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TemplateNotFoundError(LookupError):
    """No tier produced a template with the referenced name."""

    def __init__(self, name: str, tried: list[str], *, explicit: bool) -> None:
        if explicit:
            message = (
                f'failed to get template "{name}" from namespace "{tried[0]}": not found '
                "(templateRef.namespace is explicit, no fallback)"
            )
        else:
            namespaces = ", ".join(f'"{ns}"' for ns in tried)
            message = f'failed to get template "{name}": not found in namespaces [{namespaces}]'
        super().__init__(message)
        self.name = name
        self.tried = tried
        self.explicit = explicit


# ---------------------------------------------------------------------------
# Lookup plan
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LookupCandidate:
    """One namespace to try.  ``final`` stops the search after this candidate."""

    tier: TemplateTier
    namespace: str
    final: bool = False


@dataclass(frozen=True)
class TemplateResolution:
    template: WorkspaceTemplate
    namespace: str
    tier: TemplateTier

    @property
    def key(self) -> ObjectKey:
        return self.template.key


def plan_lookup(ref: TemplateRef, workspace_namespace: str, default_namespace: str | None) -> list[LookupCandidate]:
    """Return the ordered namespaces to search for *ref*."""
    if ref.namespace:
        return [LookupCandidate(TemplateTier.EXPLICIT, ref.namespace, final=True)]

    plan = [LookupCandidate(TemplateTier.WORKSPACE, workspace_namespace)]
    if default_namespace and default_namespace != workspace_namespace:
        plan.append(LookupCandidate(TemplateTier.DEFAULT, default_namespace))
    return plan


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def resolve_template(
    store: ResourceStore,
    ref: TemplateRef,
    workspace_namespace: str,
    *,
    default_namespace: str | None,
) -> TemplateResolution:
    """Resolve *ref* for a workspace living in *workspace_namespace*.

    Templates that are being deleted still resolve; the finalizer keeps them
    readable for as long as workspaces reference them.

    Raises
    ------
    TemplateNotFoundError:
        No candidate namespace holds a template named ``ref.name``.
    StoreError:
        Any store failure other than "not found" propagates unchanged, so a
        transport error is never mistaken for a missing template.
    """
    tried: list[str] = []
    plan = plan_lookup(ref, workspace_namespace, default_namespace)
    for candidate in plan:
        tried.append(candidate.namespace)
        try:
            template = await store.get(WorkspaceTemplate, candidate.namespace, ref.name)
        except NotFoundError:
            if candidate.final:
                break
            continue
        logger.debug(
            "Resolved template {} for workspace namespace {} via {} tier",
            template.key,
            workspace_namespace,
            candidate.tier,
        )
        return TemplateResolution(template=template, namespace=candidate.namespace, tier=candidate.tier)

    raise TemplateNotFoundError(ref.name, tried, explicit=bool(ref.namespace))
