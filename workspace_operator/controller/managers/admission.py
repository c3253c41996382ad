"""Workspace admission validation.

Runs the template resolver synchronously before a workspace is persisted so
that a reference to a missing template is rejected up front.  Defaulting and
reference tracking happen later, at reconcile time; admission is a fail-fast
check, not the system of record.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from loguru import logger

from workspace_operator.controller.core.resolver import TemplateNotFoundError, resolve_template
from workspace_operator.controller.models.admission import AdmissionDecision
from workspace_operator.controller.store.base import StoreError

if TYPE_CHECKING:
    from workspace_operator.controller.models.workspace import Workspace
    from workspace_operator.controller.store.base import ResourceStore

DENY_NOT_FOUND = 403
DENY_UNAVAILABLE = 503


async def validate_workspace(
    store: ResourceStore,
    workspace: Workspace,
    *,
    default_namespace: str | None,
    timeout: float,
    old: Workspace | None = None,
) -> AdmissionDecision:
    """Decide whether *workspace* may be written.

    Only creates and updates that change ``spec.templateRef`` are checked;
    other updates are admitted so that a workspace whose template has since
    vanished can still be edited or cleaned up.

    A transport failure or a lookup exceeding *timeout* denies with a
    retryable message rather than silently allowing.
    """
    ref = workspace.spec.template_ref
    if ref is None:
        return AdmissionDecision(allowed=True)
    if old is not None and old.spec.template_ref == ref:
        return AdmissionDecision(allowed=True)

    namespace = workspace.metadata.namespace or ""
    try:
        async with asyncio.timeout(timeout):
            resolution = await resolve_template(store, ref, namespace, default_namespace=default_namespace)
    except TemplateNotFoundError as exc:
        logger.info("Admission: denied workspace {}/{}: {}", namespace, workspace.metadata.name, exc)
        return AdmissionDecision(allowed=False, message=str(exc), code=DENY_NOT_FOUND)
    except TimeoutError:
        message = (
            f'unable to verify template "{ref.name}" within {timeout:g}s: '
            "template store did not respond, retry the request"
        )
        logger.warning("Admission: {}", message)
        return AdmissionDecision(allowed=False, message=message, code=DENY_UNAVAILABLE)
    except StoreError as exc:
        message = f'unable to verify template "{ref.name}": {exc}; retry the request'
        logger.warning("Admission: {}", message)
        return AdmissionDecision(allowed=False, message=message, code=DENY_UNAVAILABLE)

    logger.debug(
        "Admission: allowed workspace {}/{} (template {} via {} tier)",
        namespace,
        workspace.metadata.name,
        resolution.key,
        resolution.tier,
    )
    return AdmissionDecision(allowed=True)
