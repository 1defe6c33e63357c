"""Last-write-wins conflict detection for UPDATE operations.

The check reads the current server record and compares its modification
time with the client's edit time. It is not atomic with the write that
follows: a second writer landing between check and apply is not detected.
"""

from ..errors import DomainError
from ..logging_config import get_logger
from ..models import ErrorType, Operation, SyncOperation, SyncResult, SyncTable
from ..services.base import DomainServices, modified_at_ms

logger = get_logger("snakey.sync.conflict")


class ConflictResolver:
    """Decides whether a client UPDATE loses to a newer server record.

    Args:
        services: The table -> domain service bundle used for lookups.
    """

    def __init__(self, services: DomainServices):
        self.services = services

    async def check(
        self,
        user_id: str,
        table: SyncTable,
        op: SyncOperation,
        client_timestamp: int,
    ) -> SyncResult | None:
        """Return a conflict result if the server copy is newer, else None."""
        if op.operation != Operation.UPDATE:
            return None

        service = self.services.for_table(table)
        try:
            server_record = await service.get_by_id(user_id, op.record_id)
        except DomainError:
            # Missing or foreign records are reported by the update itself
            return None

        server_timestamp = modified_at_ms(server_record)
        if server_timestamp > client_timestamp:
            logger.info(
                f"Conflict on {table.value}/{op.record_id}: "
                f"server={server_timestamp} client={client_timestamp}"
            )
            return SyncResult(
                success=False,
                record_id=op.record_id,
                conflict=True,
                server_record=server_record,
                error="Conflict detected - server record is newer",
                error_type=ErrorType.CONFLICT,
            )
        return None
