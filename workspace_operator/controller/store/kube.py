"""Kubernetes API resource store.

Backs the ResourceStore protocol with the official ``kubernetes`` client's
``CustomObjectsApi``.  The client is synchronous, so every call runs in a
worker thread via ``anyio.to_thread.run_sync``.  Each request carries
``_request_timeout`` so no call blocks without bound, and reads abandon their
thread on cancellation so that callers such as admission can give up early.
Watching is left to kopf.

Optimistic concurrency, finalizers, ``deletionTimestamp`` and generation
handling are enforced by the apiserver itself; this module only maps API
errors onto the store exception hierarchy:

- 404 -> ``NotFoundError``
- 409 ``AlreadyExists`` -> ``AlreadyExistsError``; other 409 -> ``ConflictError``
- 400 / 422 -> ``InvalidError``
- 429, 5xx and transport failures -> ``StoreUnavailableError``
"""

from __future__ import annotations

import json
from collections.abc import Callable
from functools import partial
from typing import Any

from anyio import to_thread
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from loguru import logger
from urllib3.exceptions import HTTPError

from workspace_operator.controller.models.meta import ObjectKey, Resource
from workspace_operator.controller.store.base import (
    AlreadyExistsError,
    ConflictError,
    InvalidError,
    NotFoundError,
    StoreError,
    StoreUnavailableError,
)

# Seconds applied to both the connect and the read of every API request.
DEFAULT_REQUEST_TIMEOUT = 10.0


def load_kube_config(kubeconfig: str | None = None, context: str | None = None) -> None:
    """Configure the client: in-cluster first, then the local kubeconfig."""
    if kubeconfig is None:
        try:
            config.load_incluster_config()
            logger.info("Kubernetes: using in-cluster configuration")
            return
        except config.ConfigException:
            pass
    config.load_kube_config(config_file=kubeconfig, context=context)
    logger.info("Kubernetes: using kubeconfig (context={})", context or "current")


class KubernetesResourceStore:
    """ResourceStore backed by the Kubernetes API server."""

    def __init__(
        self,
        api: client.CustomObjectsApi | None = None,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._api = api or client.CustomObjectsApi()
        self._request_timeout = request_timeout

    # -- Read ------------------------------------------------------------------

    async def get[R: Resource](self, kind: type[R], namespace: str, name: str) -> R:
        data = await self._call(
            kind,
            ObjectKey(namespace, name),
            self._api.get_namespaced_custom_object,
            kind.GROUP,
            kind.VERSION,
            namespace,
            kind.PLURAL,
            name,
            abandon_on_cancel=True,
        )
        return kind.from_wire(data)

    async def list_objects[R: Resource](
        self,
        kind: type[R],
        namespace: str | None = None,
        *,
        label_selector: dict[str, str] | None = None,
    ) -> list[R]:
        kwargs: dict[str, Any] = {}
        if label_selector:
            kwargs["label_selector"] = ",".join(f"{k}={v}" for k, v in label_selector.items())
        if namespace is None:
            fn = partial(self._api.list_cluster_custom_object, kind.GROUP, kind.VERSION, kind.PLURAL, **kwargs)
        else:
            fn = partial(
                self._api.list_namespaced_custom_object, kind.GROUP, kind.VERSION, namespace, kind.PLURAL, **kwargs
            )
        data = await self._call(kind, ObjectKey(namespace or "", ""), fn, abandon_on_cancel=True)
        return [kind.from_wire(item) for item in data.get("items", [])]

    # -- Write -----------------------------------------------------------------

    async def create[R: Resource](self, obj: R) -> R:
        kind = type(obj)
        data = await self._call(
            kind,
            obj.key,
            self._api.create_namespaced_custom_object,
            kind.GROUP,
            kind.VERSION,
            obj.metadata.namespace,
            kind.PLURAL,
            obj.to_wire(),
        )
        return kind.from_wire(data)

    async def update[R: Resource](self, obj: R) -> R:
        kind = type(obj)
        data = await self._call(
            kind,
            obj.key,
            self._api.replace_namespaced_custom_object,
            kind.GROUP,
            kind.VERSION,
            obj.metadata.namespace,
            kind.PLURAL,
            obj.metadata.name,
            obj.to_wire(),
        )
        return kind.from_wire(data)

    async def update_status[R: Resource](self, obj: R) -> R:
        kind = type(obj)
        data = await self._call(
            kind,
            obj.key,
            self._api.replace_namespaced_custom_object_status,
            kind.GROUP,
            kind.VERSION,
            obj.metadata.namespace,
            kind.PLURAL,
            obj.metadata.name,
            obj.to_wire(),
        )
        return kind.from_wire(data)

    async def delete(self, kind: type[Resource], namespace: str, name: str) -> None:
        await self._call(
            kind,
            ObjectKey(namespace, name),
            self._api.delete_namespaced_custom_object,
            kind.GROUP,
            kind.VERSION,
            namespace,
            kind.PLURAL,
            name,
        )

    # -- Internal helpers ------------------------------------------------------

    async def _call(
        self,
        kind: type[Resource],
        key: ObjectKey,
        fn: Callable[..., Any],
        *args: Any,
        abandon_on_cancel: bool = False,
    ) -> Any:
        request = partial(fn, *args, _request_timeout=self._request_timeout)
        try:
            return await to_thread.run_sync(request, abandon_on_cancel=abandon_on_cancel)
        except ApiException as exc:
            raise _translate(kind.KIND, key, exc) from exc
        except HTTPError as exc:
            msg = f"Kubernetes API unreachable: {exc}"
            raise StoreUnavailableError(msg) from exc


def _translate(kind: str, key: ObjectKey, exc: ApiException) -> StoreError:
    """Map an ApiException onto the store exception hierarchy."""
    reason, message = _status_details(exc)
    if exc.status == 404:
        return NotFoundError(kind, key)
    if exc.status == 409:
        if reason == "AlreadyExists":
            return AlreadyExistsError(kind, key)
        return ConflictError(message)
    if exc.status in (400, 422):
        return InvalidError(message)
    return StoreUnavailableError(f"Kubernetes API error {exc.status}: {message}")


def _status_details(exc: ApiException) -> tuple[str | None, str]:
    """Extract (reason, message) from the Status object in the error body."""
    try:
        body = json.loads(exc.body) if exc.body else {}
    except (TypeError, ValueError):
        body = {}
    if not isinstance(body, dict):
        body = {}
    return body.get("reason"), body.get("message") or exc.reason or str(exc)
