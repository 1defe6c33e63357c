"""HTTP transport between the device and the sync server.

Pure HTTP/credential logic, zero DB coupling. Anything that prevents a
well-formed result from coming back raises TransportError.
"""

import logging
from typing import List, Optional, Protocol, Sequence, Tuple

import httpx

from snakey.config import ClientConfig
from snakey.errors import TransportError
from snakey.types import ChangesSinceResult, SyncOperation, SyncResult, SyncTable

logger = logging.getLogger(__name__)

# Status codes whose body is still a SyncResult for the single-operation endpoint
RESULT_STATUS_CODES = frozenset({200, 400, 403, 404, 409, 500})

BatchItem = Tuple[SyncTable, SyncOperation]


class SyncTransport(Protocol):
    """What the orchestrator and the offline writer need from the server."""

    async def push_batch(self, items: Sequence[BatchItem]) -> List[SyncResult]: ...

    async def push_one(self, table: SyncTable, operation: SyncOperation) -> SyncResult: ...

    async def pull(self, since: int) -> ChangesSinceResult: ...


class SyncClient:
    """httpx-backed SyncTransport.

    Args:
        backend_url: Base URL of the sync server.
        auth_token: Bearer token sent with every request.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        backend_url: str,
        auth_token: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.backend_url = backend_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.backend_url,
            headers={
                "Authorization": f"Bearer {auth_token}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: ClientConfig) -> "SyncClient":
        config.require_credentials()
        return cls(config.backend_url, config.auth_token, timeout=config.request_timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SyncClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(f"{method} {path} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                f"Invalid JSON from server (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from e

    async def push_batch(self, items: Sequence[BatchItem]) -> List[SyncResult]:
        """POST /sync/batch; results come back index-aligned with items."""
        body = {
            "operations": [
                {"table": table.value, "operation": op.to_wire()} for table, op in items
            ]
        }
        response = await self._request("POST", "/sync/batch", json=body)
        if response.status_code != 200:
            raise TransportError(
                f"Batch push failed: HTTP {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            results = [SyncResult.from_wire(r) for r in self._json(response).get("results", [])]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise TransportError(f"Malformed batch response: {e}") from e
        if len(results) != len(items):
            raise TransportError(
                f"Batch push returned {len(results)} results for {len(items)} operations"
            )
        return results

    async def push_one(self, table: SyncTable, operation: SyncOperation) -> SyncResult:
        """POST /sync/{table} for a direct online write."""
        response = await self._request(
            "POST", f"/sync/{SyncTable.parse(table).value}", json=operation.to_wire()
        )
        if response.status_code in RESULT_STATUS_CODES:
            data = self._json(response)
            if isinstance(data, dict) and "recordId" in data:
                try:
                    return SyncResult.from_wire(data)
                except (KeyError, TypeError, ValueError) as e:
                    raise TransportError(
                        f"Malformed sync result: {e}", status_code=response.status_code
                    ) from e
        raise TransportError(
            f"Sync {table} failed: HTTP {response.status_code} {response.text[:200]}",
            status_code=response.status_code,
        )

    async def pull(self, since: int) -> ChangesSinceResult:
        """GET /sync/pull?since=<ms>."""
        response = await self._request("GET", "/sync/pull", params={"since": int(since)})
        if response.status_code != 200:
            raise TransportError(
                f"Pull sync failed: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        data = self._json(response)
        try:
            return ChangesSinceResult.from_wire(data)
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"Malformed pull response: {e}") from e

    async def health(self) -> bool:
        """Lightweight reachability probe used as the connectivity fallback."""
        try:
            response = await self._client.get("/health", timeout=3.0)
        except httpx.HTTPError as e:
            logger.debug(f"Health check failed: {e}")
            return False
        return response.status_code == 200
