"""Sync routes: batch push, single-operation push and incremental pull."""

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from ..auth import CurrentUser
from ..dependencies import Coordinator
from ..errors import UnsupportedTableError
from ..logging_config import get_logger
from ..models import BatchSummary, BatchSyncRequest, ErrorType, SyncOperation, SyncTable
from ..rate_limit import limiter

logger = get_logger("snakey.sync")
router = APIRouter(prefix="/sync", tags=["sync"])

STATUS_BY_ERROR = {
    ErrorType.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorType.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorType.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorType.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorType.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def parse_since(raw: str | None) -> int:
    """Parse a pull cursor given as epoch ms or an ISO timestamp. Missing means 0."""
    if raw is None or raw.strip() == "":
        return 0
    raw = raw.strip()
    try:
        value = int(raw)
    except ValueError:
        value = None
    if value is not None:
        if value < 0:
            raise ValueError(f"Negative timestamp: {raw}")
        return value

    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


@router.post("/batch")
@limiter.limit("60/minute")
async def sync_batch(
    request: Request,
    body: BatchSyncRequest,
    auth: CurrentUser,
    coordinator: Coordinator,
):
    """
    Push a batch of queued operations.

    Results are index-aligned with the request. An unsupported table anywhere
    in the batch rejects the whole request before any operation runs.
    """
    try:
        items = [(SyncTable.parse(item.table), item.operation) for item in body.operations]
    except UnsupportedTableError as e:
        logger.warning(f"BATCH REJECTED | {auth.user_id} | {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info(f"BATCH | {auth.user_id} | {len(items)} operations")
    results = await coordinator.process_batch_sync(auth.user_id, items)

    summary = BatchSummary(
        total=len(results),
        success=sum(1 for r in results if r.success),
        failed=sum(1 for r in results if not r.success and not r.conflict),
        conflicts=sum(1 for r in results if r.conflict),
    )
    return {
        "results": [r.to_wire() for r in results],
        "summary": summary.model_dump(),
    }


@router.get("/pull")
@limiter.limit("120/minute")
async def sync_pull(
    request: Request,
    auth: CurrentUser,
    coordinator: Coordinator,
    since: str | None = Query(default=None, description="Epoch ms or ISO timestamp"),
):
    """
    Pull entities changed strictly after `since`.

    The response's serverTimestamp is the cursor for the next pull.
    """
    try:
        since_ms = parse_since(since)
    except ValueError:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": {
                    "code": "INVALID_TIMESTAMP",
                    "message": "Invalid since timestamp. Use ISO format or Unix timestamp (ms).",
                }
            },
        )

    changes = await coordinator.get_changes_since(auth.user_id, since_ms)
    return changes.to_wire()


@router.post("/{table}")
@limiter.limit("120/minute")
async def sync_one(
    request: Request,
    table: str,
    op: SyncOperation,
    auth: CurrentUser,
    coordinator: Coordinator,
):
    """
    Apply one operation directly (online write path).

    The body is always a SyncResult; the status code reflects its errorType.
    """
    try:
        parsed = SyncTable.parse(table)
    except UnsupportedTableError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    result = await coordinator.process_sync_operation(auth.user_id, parsed, op)
    if result.success:
        code = status.HTTP_200_OK
    elif result.conflict:
        code = status.HTTP_409_CONFLICT
    else:
        code = STATUS_BY_ERROR.get(result.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse(status_code=code, content=result.to_wire())
