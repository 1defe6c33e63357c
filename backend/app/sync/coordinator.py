"""Sync coordinator: applies client operations through the domain services.

Every operation yields exactly one SyncResult. Domain failures are
classified by their `kind` tag; anything unclassified becomes
INTERNAL_ERROR. An unsupported table is the single exception that escapes,
since it signals a client/server protocol mismatch rather than bad data.
"""

import asyncio
import time
from typing import Sequence

from ..errors import DomainError
from ..logging_config import get_logger, log_sync_operation
from ..models import ChangesSince, ErrorType, Operation, SyncOperation, SyncResult, SyncTable
from ..services.base import DomainServices
from .conflict import ConflictResolver

logger = get_logger("snakey.sync.coordinator")

BATCH_SIZE = 5

GENERIC_ERROR_MESSAGE = "Internal error: operation failed"


def _now_ms() -> int:
    return int(time.time() * 1000)


class SyncCoordinator:
    """Routes sync operations to the domain service for their table.

    Args:
        services: One domain service per table, injected by the caller.
        batch_size: Operations processed concurrently per chunk.
    """

    def __init__(self, services: DomainServices, batch_size: int = BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.services = services
        self.resolver = ConflictResolver(services)
        self.batch_size = batch_size

    async def process_sync_operation(
        self,
        user_id: str,
        table: "SyncTable | str",
        op: SyncOperation,
    ) -> SyncResult:
        """Apply one operation. Raises UnsupportedTableError for unknown tables."""
        table = SyncTable.parse(table)
        try:
            result = await self._dispatch(user_id, table, op)
        except DomainError as e:
            result = SyncResult(
                success=False,
                record_id=op.record_id,
                error=e.message,
                error_type=e.kind,
            )
        except Exception as e:
            logger.error(
                f"Unexpected error during {op.operation.value} on {table.value}/{op.record_id}: {e}",
                exc_info=True,
            )
            result = SyncResult(
                success=False,
                record_id=op.record_id,
                error=GENERIC_ERROR_MESSAGE,
                error_type=ErrorType.INTERNAL_ERROR,
            )

        log_sync_operation(
            user_id,
            op.operation.value,
            table.value,
            op.record_id,
            result.success,
            result.error,
        )
        return result

    async def process_batch_sync(
        self,
        user_id: str,
        items: Sequence[tuple["SyncTable | str", SyncOperation]],
    ) -> list[SyncResult]:
        """Apply operations in chunks, each chunk concurrently; results keep input order.

        Every table is validated before any operation runs.
        """
        parsed = [(SyncTable.parse(table), op) for table, op in items]
        results: list[SyncResult] = []
        for start in range(0, len(parsed), self.batch_size):
            chunk = parsed[start : start + self.batch_size]
            results.extend(
                await asyncio.gather(
                    *(self.process_sync_operation(user_id, table, op) for table, op in chunk)
                )
            )
        if parsed:
            logger.info(
                f"BATCH | {user_id} | total={len(results)} "
                f"ok={sum(1 for r in results if r.success)} "
                f"conflicts={sum(1 for r in results if r.conflict)}"
            )
        return results

    async def get_changes_since(self, user_id: str, since: int) -> ChangesSince:
        """Entities modified strictly after `since`, plus the next cursor.

        The cursor is taken before querying, so a write racing the query is
        returned again next time rather than skipped.
        """
        server_timestamp = _now_ms()
        tables = list(SyncTable)
        changes = await asyncio.gather(
            *(self.services.for_table(t).changed_since(user_id, since) for t in tables)
        )
        result = ChangesSince(
            server_timestamp=server_timestamp,
            **{table.value: rows for table, rows in zip(tables, changes)},
        )
        logger.info(
            f"PULL | {user_id} | since={since} count={sum(len(rows) for rows in changes)}"
        )
        return result

    # === Dispatch ===

    async def _dispatch(self, user_id: str, table: SyncTable, op: SyncOperation) -> SyncResult:
        service = self.services.for_table(table)
        client_timestamp = op.client_timestamp if op.client_timestamp is not None else _now_ms()

        if op.operation == Operation.CREATE:
            payload = op.payload or {}
            parent_id = payload.get("reptileId") if table.has_parent else None
            if table.has_parent and not parent_id:
                return SyncResult(
                    success=False,
                    record_id=op.record_id,
                    error="reptileId is required",
                    error_type=ErrorType.VALIDATION_ERROR,
                )
            record = await service.create(user_id, parent_id, payload, record_id=op.record_id)
            return SyncResult(success=True, record_id=op.record_id, record=record)

        if op.operation == Operation.UPDATE:
            conflict = await self.resolver.check(user_id, table, op, client_timestamp)
            if conflict is not None:
                return conflict
            record = await service.update(user_id, op.record_id, op.payload or {})
            return SyncResult(success=True, record_id=op.record_id, record=record)

        if op.operation == Operation.DELETE:
            await service.delete(user_id, op.record_id)
            return SyncResult(success=True, record_id=op.record_id, record={"id": op.record_id})

        raise ValueError(f"Unknown operation: {op.operation}")
