"""Sync orchestrator: drains the mutation queue and pulls server changes.

Each tick runs, in order:
1. Requeue transient failures whose backoff has elapsed
2. Push: PENDING entries in fixed-size batches, one batch in flight at a time
3. Pull: changes since the stored cursor into the mirror store

Ticks are single-flight per instance. Timer ticks, reconnect ticks and manual
refresh() calls share the same guard, so the queue is never drained twice
concurrently.
"""

import asyncio
import functools
import logging
import random
from typing import List, Optional

from snakey.errors import TransportError
from snakey.logging_config import log_pull, log_push, log_tick_error
from snakey.storage import MirrorStore, MutationQueue, SyncMeta
from snakey.types import (
    ChangesSinceResult,
    MirrorSyncStatus,
    QueueEntry,
    SyncResult,
    SyncStatus,
    TickResult,
)
from snakey.utils import now_ms

from .client import SyncTransport
from .reconcile import Outcome, ResultApplier

logger = logging.getLogger(__name__)

BACKOFF_BASE_SECONDS = 1.0
BACKOFF_MAX_SECONDS = 60.0


def calculate_backoff(retry_count: int, jitter: bool = True) -> float:
    """Exponential retry delay in seconds, capped at 60s, plus up to 1s of jitter."""
    delay = min(BACKOFF_BASE_SECONDS * (2 ** max(retry_count, 0)), BACKOFF_MAX_SECONDS)
    if jitter:
        delay += random.uniform(0, 1.0)
    return delay


class SyncOrchestrator:
    """Owns connectivity state and drives push/pull cycles.

    Args:
        queue: Mutation queue to drain.
        mirror: Mirror store to reconcile into.
        meta: Durable sync progress (pull cursor).
        transport: Server access (SyncClient or a test double).
        batch_size: Entries per push batch.
        interval: Seconds between timer ticks.
        max_retries: Automatic retries allowed for transient failures.
        online: Initial connectivity state.
    """

    def __init__(
        self,
        queue: MutationQueue,
        mirror: MirrorStore,
        meta: SyncMeta,
        transport: SyncTransport,
        batch_size: int = 5,
        interval: float = 5.0,
        max_retries: int = 5,
        online: bool = True,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._queue = queue
        self._mirror = mirror
        self._meta = meta
        self._transport = transport
        self._applier = ResultApplier(queue, mirror)
        self.batch_size = batch_size
        self.interval = interval
        self.max_retries = max_retries
        self._backoff = functools.partial(calculate_backoff, jitter=False)

        self._online = online
        self._lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    # === Connectivity ===

    @property
    def online(self) -> bool:
        return self._online

    @property
    def syncing(self) -> bool:
        return self._lock.locked()

    def set_online(self, online: bool) -> None:
        """Platform connectivity signal. Reconnecting triggers an immediate tick."""
        was_online = self._online
        self._online = online
        if online and not was_online:
            logger.info("Back online, scheduling immediate sync")
            self._wake.set()
        elif not online and was_online:
            logger.info("Offline, writes will queue until reconnect")

    # === Timer ===

    def start(self) -> asyncio.Task:
        """Start the recurring tick on the running loop (first tick runs immediately)."""
        if self._task is not None and not self._task.done():
            return self._task
        recovered = self._queue.recover_interrupted()
        if recovered:
            logger.info(f"Recovered {recovered} interrupted entries before starting sync")
        self._wake.set()
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def stop(self) -> None:
        """Cancel the timer. An in-flight tick finishes its current batch first."""
        if self._task is None:
            return
        task, self._task = self._task, None
        async with self._lock:
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
            if self._online:
                await self.tick()

    # === Ticks ===

    async def refresh(self) -> TickResult:
        """Manual sync trigger, funneled through the single-flight guard."""
        return await self.tick()

    async def tick(self) -> TickResult:
        """Run one push/pull cycle unless offline or another tick is in flight."""
        if not self._online:
            logger.debug("Offline, skipping sync tick")
            return TickResult(skipped=True)
        if self._lock.locked():
            logger.debug("Sync tick already in flight, skipping")
            return TickResult(skipped=True)

        async with self._lock:
            result = TickResult()
            try:
                await asyncio.to_thread(
                    self._queue.requeue_retryable, self.max_retries, self._backoff
                )
                if await self._push(result):
                    await self._pull(result)
            except Exception as e:
                # Local store failures; the queue state is durable so the next tick resumes
                logger.error(f"Sync tick failed: {e}", exc_info=True)
                result.errors.append(f"Sync tick failed: {e}")
                log_tick_error("tick", str(e))

            if result.success:
                await asyncio.to_thread(self._meta.set_last_sync_at, now_ms())

            logger.info(
                f"Sync tick complete: pushed={result.pushed}, failed={result.failed}, "
                f"conflicts={result.conflicts}, pulled={result.pulled}, batches={result.batches}"
            )
            return result

    async def push(self) -> TickResult:
        """Run only the push phase (still single-flight)."""
        if self._lock.locked():
            return TickResult(skipped=True)
        async with self._lock:
            result = TickResult()
            await self._push(result)
            return result

    async def pull(self) -> TickResult:
        """Run only the pull phase (still single-flight)."""
        if self._lock.locked():
            return TickResult(skipped=True)
        async with self._lock:
            result = TickResult()
            await self._pull(result)
            return result

    # === Push ===

    async def _push(self, tick: TickResult) -> bool:
        """Drain PENDING entries batch by batch. Returns False if a batch failed in transit."""
        pending = await asyncio.to_thread(self._queue.list_pending)
        if not pending:
            return True

        logger.info(f"Pushing {len(pending)} queued changes in batches of {self.batch_size}")
        try:
            for start in range(0, len(pending), self.batch_size):
                chunk = pending[start : start + self.batch_size]
                claimed = await asyncio.to_thread(
                    self._queue.mark_syncing, [entry.id for entry in chunk]
                )
                if not claimed:
                    continue
                if not await self._push_batch(claimed, tick):
                    return False
            return True
        finally:
            log_push(tick.pushed, tick.failed, tick.conflicts, tick.batches)

    async def _push_batch(self, batch: List[QueueEntry], tick: TickResult) -> bool:
        tick.batches += 1
        items = [(entry.table, entry.to_sync_operation()) for entry in batch]
        try:
            results = await self._transport.push_batch(items)
        except TransportError as e:
            await self._fail_batch(batch, str(e), tick)
            logger.warning(f"Batch of {len(batch)} failed in transit: {e}")
            return False
        except Exception as e:
            await self._fail_batch(batch, f"Unexpected push error: {e}", tick)
            logger.error(f"Unexpected error pushing batch: {e}", exc_info=True)
            return False

        return await asyncio.to_thread(self._apply_results, batch, results, tick)

    def _apply_results(
        self, batch: List[QueueEntry], results: List[SyncResult], tick: TickResult
    ) -> bool:
        """Reconcile each entry; whatever could not be reconciled goes back to FAILED."""
        for index, entry in enumerate(batch):
            if index >= len(results):
                self._fail_entries(batch[index:], "Missing sync result", tick)
                logger.error(f"Batch returned {len(results)} results for {len(batch)} entries")
                return False
            try:
                outcome = self._applier.apply(entry, results[index])
            except Exception as e:
                self._fail_entries(batch[index:], f"Unexpected reconcile error: {e}", tick)
                logger.error(
                    f"Reconciling {entry.table.value}:{entry.record_id} failed: {e}", exc_info=True
                )
                return False
            if outcome == Outcome.SYNCED:
                tick.pushed += 1
            elif outcome == Outcome.CONFLICT:
                tick.conflicts += 1
            else:
                tick.failed += 1
        return True

    async def _fail_batch(self, batch: List[QueueEntry], error: str, tick: TickResult) -> None:
        await asyncio.to_thread(self._fail_entries, batch, error, tick)

    def _fail_entries(self, entries: List[QueueEntry], error: str, tick: TickResult) -> None:
        for entry in entries:
            self._applier.apply_transport_failure(entry, error)
        tick.failed += len(entries)
        tick.errors.append(f"Push failed: {error}")
        log_tick_error("push", error)

    # === Pull ===

    async def _pull(self, tick: TickResult) -> bool:
        cursor = await asyncio.to_thread(self._meta.get_pull_cursor)
        try:
            changes = await self._transport.pull(cursor)
        except Exception as e:
            # Cursor is not advanced; the next tick retries from the same point
            logger.error(f"Pull sync failed: {e}", exc_info=not isinstance(e, TransportError))
            tick.errors.append(f"Pull failed: {e}")
            log_tick_error("pull", str(e))
            return False

        tick.pulled += await asyncio.to_thread(self._apply_changes, changes)
        await asyncio.to_thread(self._meta.set_pull_cursor, changes.server_timestamp)
        log_pull(changes.total, changes.server_timestamp)
        logger.info(f"Pulled {changes.total} changes, cursor now {changes.server_timestamp}")
        return True

    def _apply_changes(self, changes: ChangesSinceResult) -> int:
        applied = 0
        for table, records in changes.changes.items():
            if not records:
                continue
            deleted = [r["id"] for r in records if r.get("deletedAt") and r.get("id")]
            live = [r for r in records if not r.get("deletedAt")]
            if deleted:
                self._mirror.bulk_delete(table, deleted)
            if live:
                self._mirror.bulk_put(table, live, MirrorSyncStatus.SYNCED)
            applied += len(deleted) + len(live)
        return applied

    # === Status ===

    def status(self) -> SyncStatus:
        counts = self._queue.counts(max_retries=self.max_retries)
        return SyncStatus(
            online=self._online,
            syncing=self.syncing,
            pending=counts.pending + counts.syncing,
            failed_terminal=counts.failed_terminal,
            failed_transient=counts.failed_transient,
            last_pull_cursor=self._meta.get_pull_cursor(),
            last_sync_at=self._meta.get_last_sync_at(),
        )

    async def retry_failed(self, ids: Optional[List[int]] = None) -> TickResult:
        """User-initiated retry of failed entries, followed by a sync."""
        await asyncio.to_thread(self._queue.retry_failed, ids)
        return await self.tick()
