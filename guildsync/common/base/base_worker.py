# guildsync/common/base/base_worker.py
"""
Base Worker - Shared Infrastructure for GuildSync Worker Processes

Provides what every long-running worker needs:
- Infrastructure initialization (PostgreSQL pool + schema, Redis)
- Startup logging (log_worker_banner, log_status_update)
- SIGINT/SIGTERM handling (a third signal forces exit)
- A periodic metrics log line
- Shutdown: worker components first, then Redis and PostgreSQL

Usage:
    class MyWorker(BaseWorker):
        def __init__(self):
            super().__init__("my-worker")

        async def _initialize_worker_specific(self):
            self.listener = ...

        async def _start_processing(self):
            await self.listener.start()

        async def _stop_worker_specific(self):
            await self.listener.stop()

        async def _get_metrics(self) -> Dict[str, Any]:
            return {"processed": ...}
"""

import asyncio
import logging
import os
import signal
import socket
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from guildsync.config.logging_config import log_status_update
from guildsync.config.pg_client_config import get_postgres_config
from guildsync.infra.persistence.pg_client import close_db_pool, init_db_pool, run_schema_from_file
from guildsync.infra.persistence.redis_client import (
    close_global_client as close_redis,
    init_global_client as init_redis,
)

METRICS_LOG_INTERVAL_SECONDS = 300
BACKGROUND_STOP_TIMEOUT_SECONDS = 10.0


class BaseWorker(ABC):
    """
    Abstract base class for worker processes.

    Subclasses only implement worker-specific wiring; connections and the
    shutdown sequence live here.
    """

    def __init__(self, worker_name: str, instance_id: Optional[str] = None):
        self.worker_name = worker_name
        self.instance_id = instance_id or os.getenv("WORKER_INSTANCE_ID") or f"{socket.gethostname()}-{os.getpid()}"

        self.redis_client = None

        self._running = False
        self._initialized = False
        self._shutdown_event = asyncio.Event()
        self._start_time = time.time()
        self._shutdown_initiated = False
        self._signal_count = 0

        self._background_tasks: List[asyncio.Task] = []

        self.logger = logging.getLogger(f"guildsync.worker.{worker_name}")

    async def initialize(self) -> None:
        """Initialize common infrastructure, then the worker itself"""
        if self._initialized:
            self.logger.warning("Worker already initialized")
            return

        self.logger.info(f"Worker ({self.instance_id}) initializing as {self.worker_name}")

        try:
            await self._connect_infrastructure()

            self.logger.info("Running worker-specific initialization...")
            await self._initialize_worker_specific()
            self.logger.info("Worker-specific initialization complete")

            await self._setup_background_tasks()

            self._initialized = True
            self.logger.info(f"Worker ({self.instance_id}) initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize worker: {e}", exc_info=True)
            raise

    async def _connect_infrastructure(self) -> None:
        self.logger.info("Connecting to infrastructure...")

        pg_config = get_postgres_config()
        await init_db_pool(pg_config)
        if pg_config.run_schema_on_start:
            await run_schema_from_file()

        self.redis_client = await init_redis()

        log_status_update(self.logger, "Infrastructure Ready", {
            "postgres": "connected",
            "schema": "applied" if pg_config.run_schema_on_start else "skipped",
            "redis": "connected",
        })

    async def _setup_background_tasks(self) -> None:
        self._background_tasks.append(asyncio.create_task(
            self._metrics_reporting_loop(),
            name="metrics-reporting",
        ))

    async def _metrics_reporting_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(METRICS_LOG_INTERVAL_SECONDS)
                if not self._running:
                    continue
                await self._log_periodic_metrics()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error logging metrics: {e}")

    async def _log_periodic_metrics(self) -> None:
        metrics = await self._get_metrics()
        self.logger.info(f"Metrics: {metrics}")

    @abstractmethod
    async def _initialize_worker_specific(self) -> None:
        """Build worker components (adapters, reconcilers, listeners)"""

    async def _start_processing(self) -> None:
        """Start consuming. Must return once consumers are running."""

    async def _stop_worker_specific(self) -> None:
        """Stop consumers and worker-owned clients"""

    @abstractmethod
    async def _get_metrics(self) -> Dict[str, Any]:
        pass

    async def start(self) -> None:
        if not self._initialized:
            raise RuntimeError("Worker must be initialized before starting")

        if self._running:
            self.logger.warning("Worker already running")
            return

        self.logger.info(f"Starting {self.worker_name} worker {self.instance_id}")
        self._running = True

        try:
            await self._start_processing()
        except Exception as e:
            self.logger.error(f"Failed to start worker: {e}", exc_info=True)
            self._running = False
            raise

    async def stop(self) -> None:
        """Stop processing, then close connections"""
        if self._shutdown_initiated:
            self.logger.warning("Shutdown already in progress")
            return

        self._shutdown_initiated = True
        self.logger.info(f"Stopping worker {self.instance_id}")
        self._running = False

        try:
            await self._stop_worker_specific()
        except Exception as e:
            self.logger.error(f"Error stopping worker components: {e}", exc_info=True)

        if self._background_tasks:
            self.logger.info("Stopping background tasks...")
            for task in self._background_tasks:
                if not task.done():
                    task.cancel()
            try:
                await asyncio.wait_for(
                    asyncio.gather(*self._background_tasks, return_exceptions=True),
                    timeout=BACKGROUND_STOP_TIMEOUT_SECONDS,
                )
            except asyncio.TimeoutError:
                self.logger.warning("Some background tasks did not complete in time")

        await self._log_final_metrics()

        await close_redis()
        await close_db_pool()

        self.logger.info(f"Worker {self.instance_id} stopped")

    async def _log_final_metrics(self) -> None:
        final_metrics = await self._get_metrics()
        uptime = int(time.time() - self._start_time)
        self.logger.info(f"Final metrics - Uptime: {uptime}s, Metrics: {final_metrics}")

    async def wait_for_shutdown(self) -> None:
        await self._shutdown_event.wait()

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.handle_signal, sig, None)
            except NotImplementedError:
                signal.signal(sig, self.handle_signal)

    def handle_signal(self, sig, frame):
        """First signal starts a graceful stop, a third one exits immediately"""
        self._signal_count += 1
        signal_name = signal.Signals(sig).name

        self.logger.warning(f"Received signal {signal_name} (count: {self._signal_count})")

        if self._signal_count < 3:
            self._shutdown_event.set()
        else:
            self.logger.error("Multiple signals received - forcing immediate exit")
            os._exit(1)

