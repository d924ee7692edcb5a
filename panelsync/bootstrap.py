# -*- coding: utf-8 -*-
"""
Composition root: builds the engine from settings.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .broadcaster import SyncBroadcaster
from .config import SyncSettings, get_settings
from .conflict_handler import ConflictResolver
from .endpoints import EndpointRegistry
from .local_store import LocalEntityStore
from .models import RetryPolicy
from .orchestrator import SyncOrchestrator
from .outbox import SyncQueue
from .sync_client import SyncClient
from .sync_service import SyncService

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


@dataclass
class SyncEngine:
    settings: SyncSettings
    queue: SyncQueue
    local_store: LocalEntityStore
    client: SyncClient
    orchestrator: SyncOrchestrator
    service: SyncService

    def close(self):
        self.service.stop()
        self.client.close()


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def build_engine(settings: Optional[SyncSettings] = None,
                 client: Optional[SyncClient] = None) -> SyncEngine:
    """
    Wire queue, registry, resolver, broadcaster, client and orchestrator.

    Args:
        settings: Defaults to get_settings()
        client: Pre-built client (tests, custom sessions)
    """
    settings = settings or get_settings()
    retry_policy = RetryPolicy(
        max_retries=settings.MAX_RETRIES,
        extended_max_retries=settings.EXTENDED_MAX_RETRIES,
    )

    queue = SyncQueue(
        settings.QUEUE_DB_PATH,
        retry_policy=retry_policy,
        health_avg_retry_ceiling=settings.HEALTH_AVG_RETRY_CEILING,
        health_pending_ceiling=settings.HEALTH_PENDING_CEILING,
    )
    local_store = LocalEntityStore(settings.LOCAL_DB_PATH)
    client = client or SyncClient.from_settings(settings)

    orchestrator = SyncOrchestrator(
        queue=queue,
        client=client,
        local_store=local_store,
        registry=EndpointRegistry(),
        resolver=ConflictResolver(),
        broadcaster=SyncBroadcaster(),
        retry_policy=retry_policy,
    )
    service = SyncService(
        orchestrator,
        probe=client.check_connection,
        interval=settings.SYNC_INTERVAL_SECONDS,
    )

    return SyncEngine(
        settings=settings,
        queue=queue,
        local_store=local_store,
        client=client,
        orchestrator=orchestrator,
        service=service,
    )
