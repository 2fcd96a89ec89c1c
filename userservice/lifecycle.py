"""Process startup and shutdown ordering for the current user service."""

from __future__ import annotations

import asyncio
import logging
import signal
from enum import Enum
from typing import Any, Callable, Optional

import uvicorn
from fastapi import FastAPI

from .config import Settings
from .database import ConnectionState, MongoConnector
from .service import create_app

logger = logging.getLogger("userservice.lifecycle")

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)

ServerFactory = Callable[[FastAPI, Settings], Any]


class ReadinessState(str, Enum):
    """Externally visible readiness of the service process."""

    INITIALIZING = "initializing"
    CONNECTING = "connecting"
    RETRY_WAIT = "retry-wait"
    LISTENING = "listening"
    STOPPED = "stopped"


def build_server(app: FastAPI, settings: Settings) -> uvicorn.Server:
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=settings.shutdown_grace_period,
    )
    return uvicorn.Server(config)


def _exit_cleanly(signum: int, _frame: Any) -> None:
    # uvicorn re-raises the signal it captured once its shutdown has finished.
    logger.info("Received signal %s, exiting", signum)
    raise SystemExit(0)


class ServiceLifecycle:
    """Connect to the database first, then serve HTTP until told to stop."""

    def __init__(
        self,
        settings: Settings,
        *,
        connector: MongoConnector | None = None,
        server_factory: ServerFactory | None = None,
    ) -> None:
        self._settings = settings
        self._connector = connector or MongoConnector(settings)
        self._server_factory = server_factory or build_server
        self._listening = False
        self._stopped = False
        self._connect_task: Optional[asyncio.Task] = None

    @property
    def connector(self) -> MongoConnector:
        return self._connector

    @property
    def state(self) -> ReadinessState:
        if self._stopped:
            return ReadinessState.STOPPED
        if self._listening:
            return ReadinessState.LISTENING
        connection_state = self._connector.state
        if connection_state is ConnectionState.RETRY_WAIT:
            return ReadinessState.RETRY_WAIT
        if connection_state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return ReadinessState.CONNECTING
        return ReadinessState.INITIALIZING

    def request_stop(self) -> None:
        """Abort a pending connection attempt."""

        if self._connect_task is not None and not self._connect_task.done():
            logger.info("Shutdown requested while waiting for the database")
            self._connect_task.cancel()

    async def wait_for_database(self) -> bool:
        """Run the connect loop; return ``False`` when it was stopped first."""

        self._connect_task = asyncio.ensure_future(self._connector.start())
        try:
            await self._connect_task
        except asyncio.CancelledError:
            if not self._connect_task.cancelled():
                raise
            return False
        return True

    async def run(self, *, install_signal_handlers: bool = True) -> int:
        loop = asyncio.get_running_loop()
        if install_signal_handlers:
            for sig in SHUTDOWN_SIGNALS:
                loop.add_signal_handler(sig, self.request_stop)

        try:
            try:
                connected = await self.wait_for_database()
            finally:
                if install_signal_handlers:
                    for sig in SHUTDOWN_SIGNALS:
                        loop.remove_signal_handler(sig)
                        signal.signal(sig, _exit_cleanly)

            if not connected:
                return 0

            app = create_app(settings=self._settings, connector=self._connector)
            server = self._server_factory(app, self._settings)

            self._listening = True
            logger.info("Starting API server on %s:%s", self._settings.host, self._settings.port)
            await server.serve()
            return 0
        finally:
            self._listening = False
            self._stopped = True
            await self._connector.close()


async def run_service(settings: Settings, **kwargs: Any) -> int:
    """Start the service and block until it shuts down."""

    lifecycle = ServiceLifecycle(settings, **kwargs)
    return await lifecycle.run()


__all__ = [
    "ReadinessState",
    "SHUTDOWN_SIGNALS",
    "ServiceLifecycle",
    "build_server",
    "run_service",
]
