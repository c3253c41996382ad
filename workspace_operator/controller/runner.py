"""Runs kopf next to the admission webhook.

kopf installs its own event loop machinery and, in the main thread, its own
signal handlers.  uvicorn owns both in this process, so the operator runs in
a dedicated thread with its own loop and is stopped through ``stop_flag``::

    runner = OperatorRunner(store, settings)
    runner.start()
    ...
    await runner.stop(timeout=30)

Stopping sets kopf's stop flag and waits up to *timeout* for the thread to
exit.  A handler cut short is re-run after restart; every reconcile is
idempotent.
"""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING

import kopf
from anyio import to_thread
from loguru import logger

from workspace_operator.controller.handlers import build_memo, build_registry

if TYPE_CHECKING:
    from workspace_operator.controller.settings import OperatorSettings
    from workspace_operator.controller.store.base import ResourceStore


class OperatorRunner:
    """Owns the kopf thread: start, readiness, graceful stop."""

    def __init__(self, store: ResourceStore, settings: OperatorSettings) -> None:
        self._settings = settings
        self.registry = build_registry(settings)
        self.memo = build_memo(store, settings)
        self._ready = threading.Event()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return (
            self._thread is not None
            and self._thread.is_alive()
            and self._ready.is_set()
            and not self._stop.is_set()
        )

    def start(self) -> None:
        if self._thread is not None:
            msg = "Operator already started"
            raise RuntimeError(msg)
        self._thread = threading.Thread(target=self._run, name="kopf-operator", daemon=True)
        self._thread.start()
        logger.info(
            "Operator started (namespace={}, worker limit={}, resync={}s)",
            self._settings.watch_namespace or "*",
            self._settings.workers,
            self._settings.resync_period,
        )

    async def stop(self, timeout: float | None = None) -> bool:
        """Signal kopf to stop and wait for the thread.

        Returns ``True`` if the operator exited within *timeout*.
        """
        if self._thread is None or self._stop.is_set():
            return True
        self._stop.set()
        await to_thread.run_sync(self._thread.join, timeout)
        stopped = not self._thread.is_alive()
        if stopped:
            logger.info("Operator stopped")
        else:
            logger.warning("Operator still running after {}s; abandoning its thread", timeout)
        return stopped

    def _run(self) -> None:
        namespace = self._settings.watch_namespace
        try:
            asyncio.run(
                kopf.operator(
                    registry=self.registry,
                    memo=self.memo,
                    standalone=True,
                    clusterwide=namespace is None,
                    namespaces=[namespace] if namespace else [],
                    ready_flag=self._ready,
                    stop_flag=self._stop,
                )
            )
        except Exception:
            logger.exception("Operator exited with an error")
