"""Controller configuration loaded from WSOP_* environment variables."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from workspace_operator.controller.constants import DEFAULT_TEMPLATE_NAMESPACE


class OperatorSettings(BaseSettings):
    """Workspace controller settings.

    All fields are read from environment variables with the ``WSOP_`` prefix.
    For example, ``WSOP_DEFAULT_TEMPLATE_NAMESPACE=platform`` maps to
    ``default_template_namespace``.
    """

    model_config = SettingsConfigDict(
        env_prefix="WSOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Resolution ------------------------------------------------------------
    default_template_namespace: str = DEFAULT_TEMPLATE_NAMESPACE
    """Shared namespace searched when ``templateRef.namespace`` is empty and the
    workspace's own namespace has no matching template."""

    # -- Backing store ---------------------------------------------------------
    store: Literal["kubernetes", "memory"] = "kubernetes"

    kubeconfig: str | None = None
    """Path to a kubeconfig file.  Unset: in-cluster config, then ``~/.kube/config``."""

    kube_context: str | None = None

    kube_request_timeout: float = 10.0
    """Seconds before a single Kubernetes API request is abandoned."""

    watch_namespace: str | None = None
    """Restrict watches to one namespace.  Unset: all namespaces."""

    # -- Reconciliation --------------------------------------------------------
    workers: int = 4
    """Limit on kopf's concurrently running per-object workers (``settings.batching.worker_limit``)."""

    resync_period: float = 300.0
    """Seconds between periodic prunes of every template; 0 disables the timer."""

    requeue_base_delay: float = 0.05
    requeue_max_delay: float = 300.0
    """Per-object exponential retry delay bounds for unsettled reconciles."""

    conflict_retry_steps: int = 10
    """Conditional-write attempts before a conflict is handed back to kopf for a retry."""

    run_controller: bool = True
    """Set to false to serve only the admission webhook.  The operator always
    talks to the Kubernetes API, so local runs with ``store=memory`` disable it."""

    # -- Admission -------------------------------------------------------------
    admission_timeout: float = 5.0
    """Upper bound on template lookups during admission; the apiserver's own
    webhook timeout must be larger."""

    # -- Server ----------------------------------------------------------------
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 9443
    webhook_cert_file: str | None = None
    webhook_key_file: str | None = None
    graceful_shutdown_timeout: int = 30
    """Seconds to let in-flight reconciles finish during shutdown."""


@lru_cache(maxsize=1)
def get_settings() -> OperatorSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call.  Call
    ``get_settings.cache_clear()`` in tests to force a re-read.
    """
    return OperatorSettings()
