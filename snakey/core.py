"""
Snakey client facade.

Wires the on-device stores, the HTTP transport, the orchestrator and the
optimistic write path around one ClientConfig, so callers (the CLI, an app
shell) hold a single object.
"""

import logging
from typing import Optional

from snakey.config import ClientConfig, load_config
from snakey.offline import OfflineWriter
from snakey.storage import LocalDatabase, MirrorStore, MutationQueue, SyncMeta
from snakey.sync import SyncClient, SyncOrchestrator, SyncTransport
from snakey.types import SyncStatus

logger = logging.getLogger(__name__)


class Snakey:
    """Offline-first client for the reptile husbandry sync server.

    Args:
        config: Resolved client settings (load_config() when omitted).
        transport: Server access override, mainly for tests.
        online: Initial connectivity. Defaults to whether credentials exist.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        transport: Optional[SyncTransport] = None,
        online: Optional[bool] = None,
    ):
        self.config = config or load_config()
        self.db = LocalDatabase(self.config.resolved_db_path())
        self.mirror = MirrorStore(self.db)
        self.queue = MutationQueue(self.db)
        self.meta = SyncMeta(self.db)

        self._transport = transport
        self._owns_transport = False
        if self._transport is None and self.config.has_credentials:
            self._transport = SyncClient.from_config(self.config)
            self._owns_transport = True

        if online is None:
            online = self._transport is not None
        self.orchestrator = SyncOrchestrator(
            self.queue,
            self.mirror,
            self.meta,
            self._transport,
            batch_size=self.config.batch_size,
            interval=self.config.sync_interval,
            max_retries=self.config.max_retries,
            online=online and self._transport is not None,
        )
        self.writer = OfflineWriter(
            self.mirror,
            self.queue,
            self._transport,
            is_online=lambda: self.orchestrator.online,
            max_retries=self.config.max_retries,
        )

    @property
    def can_sync(self) -> bool:
        return self._transport is not None

    def set_online(self, online: bool) -> None:
        if online and not self.can_sync:
            logger.warning("No sync credentials configured; staying offline")
            return
        self.orchestrator.set_online(online)

    def status(self) -> SyncStatus:
        return self.orchestrator.status()

    async def aclose(self) -> None:
        await self.orchestrator.stop()
        if self._owns_transport and isinstance(self._transport, SyncClient):
            await self._transport.aclose()

    async def __aenter__(self) -> "Snakey":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
