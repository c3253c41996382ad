from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from workspace_operator.controller.log import setup_logging
from workspace_operator.controller.runner import OperatorRunner
from workspace_operator.controller.settings import OperatorSettings, get_settings
from workspace_operator.controller.store.base import ResourceStore
from workspace_operator.controller.store.memory import InMemoryResourceStore


def create_store(settings: OperatorSettings) -> ResourceStore:
    """Create the resource store backend based on configuration."""
    if settings.store == "memory":
        logger.warning("Using the in-memory store -- state is lost on restart")
        return InMemoryResourceStore()

    from workspace_operator.controller.store.kube import KubernetesResourceStore, load_kube_config

    load_kube_config(settings.kubeconfig, settings.kube_context)
    return KubernetesResourceStore(request_timeout=settings.kube_request_timeout)


def create_app(settings: OperatorSettings | None = None, store: ResourceStore | None = None) -> FastAPI:
    """Build the webhook/controller app.

    *settings* and *store* default to the environment configuration; tests
    pass their own.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        # -- Startup -----------------------------------------------------------
        cfg = settings or get_settings()
        setup_logging(cfg.log_level)
        logger.info(
            "Workspace operator starting (store={}, default template namespace={})",
            cfg.store,
            cfg.default_template_namespace,
        )

        backend = store or create_store(cfg)
        _app.state.settings = cfg
        _app.state.store = backend
        _app.state.operator = None

        if cfg.run_controller:
            operator = OperatorRunner(backend, cfg)
            operator.start()
            _app.state.operator = operator
        else:
            logger.warning("WSOP_RUN_CONTROLLER=false -- serving admission only")

        yield

        # -- Shutdown ----------------------------------------------------------
        if _app.state.operator is not None:
            timeout = cfg.graceful_shutdown_timeout
            logger.info("Stopping operator (timeout={}s)...", timeout)
            await _app.state.operator.stop(timeout=timeout)
        _app.state.store = None
        logger.info("Workspace operator stopped")

    app = FastAPI(title="Workspace Template Operator", lifespan=lifespan)

    from workspace_operator.controller.routers.admission import router as admission_router
    from workspace_operator.controller.routers.health import router as health_router

    app.include_router(health_router)
    app.include_router(admission_router)
    return app


app = create_app()
