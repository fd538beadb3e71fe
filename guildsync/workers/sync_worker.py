# =============================================================================
# File: guildsync/workers/sync_worker.py
# Description: Sync worker process - Redis events in, Discord state out,
#              Discord interactions back into the web app
# =============================================================================

import asyncio
import functools
import logging
import os
import sys
from typing import Any, Dict, Optional

from prometheus_client import start_http_server

from guildsync.common.base.base_worker import BaseWorker
from guildsync.config.discord_config import get_discord_config
from guildsync.config.logging_config import log_status_update, log_worker_banner, setup_logging
from guildsync.config.sync_config import get_sync_config
from guildsync.infra.discord.client import GuildSyncClient
from guildsync.infra.discord.gateway import DiscordGateway
from guildsync.infra.discord.interactions import InteractionBridge
from guildsync.infra.event_bus.sync_event_listener import SyncEventListener
from guildsync.infra.persistence import redis_client
from guildsync.infra.reliability.keyed_lock import KeyedLock
from guildsync.infra.read_repos.correlation_repo import CorrelationRepo
from guildsync.infra.read_repos.web_app_repo import WebAppRepo
from guildsync.sync.dead_letter import RedisDeadLetterSink
from guildsync.sync.dispatcher import EventDispatcher
from guildsync.sync.event_handlers import SyncEventHandlers
from guildsync.sync.interaction.handlers import InteractionRouter
from guildsync.sync.interaction.identity import IdentityResolver
from guildsync.sync.interaction.setup_wizard import SetupWizard
from guildsync.sync.reconcilers.channel_lifecycle import ChannelLifecycleReconciler
from guildsync.sync.reconcilers.notification import NotificationFanout
from guildsync.sync.reconcilers.role_sync import RoleSyncReconciler
from guildsync.sync.reconcilers.task_posting import TaskPostingReconciler

WORKER_NAME = "sync"


class SyncWorker(BaseWorker):
    """
    Wires adapters, reconcilers and the two inbound paths:

    - SyncEventListener (Redis pub/sub) -> EventDispatcher -> reconcilers
    - GuildSyncClient.on_interaction -> InteractionBridge -> InteractionRouter
    """

    def __init__(self, instance_id: Optional[str] = None):
        super().__init__(WORKER_NAME, instance_id)
        self.discord_config = get_discord_config()
        self.sync_config = get_sync_config()

        self.client: Optional[GuildSyncClient] = None
        self.gateway: Optional[DiscordGateway] = None
        self.dispatcher: Optional[EventDispatcher] = None
        self.listener: Optional[SyncEventListener] = None
        self.dead_letters: Optional[RedisDeadLetterSink] = None

    async def _initialize_worker_specific(self) -> None:
        if self.sync_config.metrics_port:
            start_http_server(self.sync_config.metrics_port)
            self.logger.info(f"Prometheus metrics on :{self.sync_config.metrics_port}")

        self.client = GuildSyncClient(self.discord_config)
        await self.client.start_background()
        self.gateway = DiscordGateway(self.client, self.discord_config)

        store = CorrelationRepo()
        web_app = WebAppRepo()
        publisher = functools.partial(redis_client.publish, r=self.redis_client)

        channels = ChannelLifecycleReconciler(self.gateway, store, web_app, self.discord_config, self.sync_config)
        fanout = NotificationFanout(self.gateway, store, web_app)
        tasks = TaskPostingReconciler(self.gateway, store, fanout, self.discord_config)
        roles = RoleSyncReconciler(self.gateway, store, web_app, channels, self.sync_config)

        handlers = SyncEventHandlers(
            self.gateway, web_app, channels, tasks, roles, fanout,
            publisher=publisher,
            discord_config=self.discord_config,
            sync_config=self.sync_config,
        )
        # Event handlers and the setup wizard serialize on the same entity keys
        locks = KeyedLock()
        self.dead_letters = RedisDeadLetterSink(self.redis_client, self.sync_config)
        self.dispatcher = EventDispatcher(handlers.handler_map(), self.dead_letters, self.sync_config, locks=locks)
        self.listener = SyncEventListener(self.redis_client, self.dispatcher, self.sync_config)

        router = InteractionRouter(
            web_app, store, self.gateway,
            IdentityResolver(web_app, store),
            SetupWizard(store, web_app, channels, locks=locks),
            self.discord_config,
        )
        self.client.attach_bridge(InteractionBridge(router))

    async def _start_processing(self) -> None:
        await self.listener.start()

    async def _stop_worker_specific(self) -> None:
        if self.listener is not None:
            await self.listener.stop()
        if self.client is not None:
            await self.client.shutdown()

    async def _get_metrics(self) -> Dict[str, Any]:
        return {
            "processed": self.dispatcher.processed_count if self.dispatcher else 0,
            "listener": self.listener.get_status() if self.listener else None,
        }


# =============================================================================
# Main Entry Point
# =============================================================================

async def run_worker():
    worker = None
    log = logging.getLogger(f"guildsync.worker.{WORKER_NAME}")

    try:
        setup_logging(
            service_name=f"worker.{WORKER_NAME}",
            log_file=os.getenv("WORKER_LOG_FILE"),
            enable_json=os.getenv("ENVIRONMENT") == "production",
        )

        worker = SyncWorker()
        log_worker_banner(log, "GuildSync Worker", worker.instance_id)

        await worker.initialize()
        worker.install_signal_handlers()

        log_status_update(log, "Worker Ready", {
            "status": "syncing",
            "channels": len(worker.listener.channels),
            "topic_prefix": worker.sync_config.topic_prefix,
        })

        await worker.start()
        await worker.wait_for_shutdown()

    except KeyboardInterrupt:
        log.info("Worker interrupted by user")
    except Exception as e:
        log.error(f"Worker failed: {e}", exc_info=True)
        raise
    finally:
        if worker:
            try:
                await asyncio.wait_for(worker.stop(), timeout=worker.sync_config.shutdown_grace_seconds + 15)
                log.info("Graceful shutdown completed")
            except asyncio.TimeoutError:
                log.error("Graceful shutdown timed out")
            except Exception as e:
                log.error(f"Error during shutdown: {e}", exc_info=True)


def main():
    """Main entry point"""
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        print("\nWorker interrupted")
    except Exception as e:
        print(f"Worker crashed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
