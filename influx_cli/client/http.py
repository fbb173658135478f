"""
HTTP store client.

Talks to the store's JSON HTTP API using httpx. Credentials travel as the
u/p query parameters on every request.

Endpoints:
    GET    /ping
    GET    /db                          list databases
    POST   /db                          create database
    DELETE /db/<name>                   delete database
    GET    /db/<db>/series?q=...        query
    POST   /db/<db>/series              write series
    GET    /cluster_admins              list cluster admins
    POST   /cluster_admins[/<name>]     create / update cluster admin
    DELETE /cluster_admins/<name>
    GET    /cluster/servers
    DELETE /cluster/servers/<id>
    GET    /cluster/shard_spaces

Invariants:
    - Non-2xx answers raise StoreError with the status and body
    - Transport failures raise StoreConnectionError
    - The password never appears in log records or error messages
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List

import httpx

from ..errors import StoreConnectionError, StoreError
from ..series import Series

logger = logging.getLogger(__name__)


class HttpStoreClient:
    """httpx implementation of the StoreClient protocol.

    Attributes:
        base_url: Store base URL (scheme://host:port)
        user: Database user
        database: Database used by queries and writes

    Example:
        >>> client = HttpStoreClient("http://localhost:8086", "root", "root", "metrics")
        >>> await client.connect()
        >>> await client.ping()
    """

    def __init__(
        self,
        base_url: str,
        user: str,
        password: str,
        database: str = "",
        timeout: float = 10.0,
        time_precision: str = "ms",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Store base URL
            user: Database user
            password: Database password
            database: Database to use for queries and writes
            timeout: Request timeout in seconds
            time_precision: Precision of the time column on writes
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url
        self.user = user
        self._password = password
        self.database = database
        self.timeout = timeout
        self.time_precision = time_precision
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._compression = True

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def compression(self) -> bool:
        return self._compression

    async def connect(self) -> None:
        """Create the underlying httpx client."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )
        logger.debug("Store client connected", extra={"base_url": self.base_url})

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpStoreClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def disable_compression(self) -> None:
        self._compression = False

    async def _request(
        self,
        method: str,
        path: str,
        params: Dict[str, Any] | None = None,
        json_body: Any = None,
    ) -> httpx.Response:
        """Send a request and map failures to StoreError.

        Raises:
            StoreConnectionError: If not connected or the transport fails
            StoreError: On a non-2xx answer
        """
        if self._client is None:
            raise StoreConnectionError("Not connected", address=self.base_url)

        query = {"u": self.user, "p": self._password}
        if params:
            query.update(params)
        headers = {} if self._compression else {"Accept-Encoding": "identity"}

        started = time.monotonic()
        try:
            response = await self._client.request(
                method, path, params=query, json=json_body, headers=headers
            )
        except httpx.TransportError as e:
            raise StoreConnectionError(
                f"Cannot reach {self.base_url}: {e}", address=self.base_url
            ) from e

        logger.debug(
            "Store request",
            extra={
                "method": method,
                "path": path,
                "status": response.status_code,
                "elapsed_ms": int((time.monotonic() - started) * 1000),
            },
        )

        if not response.is_success:
            body = response.text
            raise StoreError(
                f"Server returned ({response.status_code}): {body}",
                status_code=response.status_code,
                body=body,
            )
        return response

    async def _get_json(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        response = await self._request("GET", path, params=params)
        if not response.content:
            return []
        try:
            return response.json()
        except ValueError as e:
            raise StoreError(f"Invalid JSON from server: {e}", body=response.text) from e

    def _series_path(self) -> str:
        if not self.database:
            raise StoreError("No database selected. Use \\db <name> and bind")
        return f"/db/{self.database}/series"

    async def ping(self) -> None:
        await self._request("GET", "/ping")

    async def write_series(self, batch: List[Series]) -> None:
        """Write a batch of series in a single POST."""
        if not batch:
            return
        await self._request(
            "POST",
            self._series_path(),
            params={"time_precision": self.time_precision},
            json_body=[s.to_dict() for s in batch],
        )

    async def query(self, q: str) -> List[Series]:
        data = await self._get_json(self._series_path(), params={"q": q})
        return [Series.from_dict(item) for item in data or []]

    async def list_databases(self) -> List[Dict[str, Any]]:
        return await self._get_json("/db")

    async def create_database(self, name: str) -> None:
        await self._request("POST", "/db", json_body={"name": name})

    async def delete_database(self, name: str) -> None:
        await self._request("DELETE", f"/db/{name}")

    async def list_cluster_admins(self) -> List[Dict[str, Any]]:
        return await self._get_json("/cluster_admins")

    async def create_cluster_admin(self, name: str, password: str) -> None:
        await self._request("POST", "/cluster_admins", json_body={"name": name, "password": password})

    async def update_cluster_admin(self, name: str, password: str) -> None:
        await self._request("POST", f"/cluster_admins/{name}", json_body={"password": password})

    async def delete_cluster_admin(self, name: str) -> None:
        await self._request("DELETE", f"/cluster_admins/{name}")

    async def list_servers(self) -> List[Dict[str, Any]]:
        return await self._get_json("/cluster/servers")

    async def delete_server(self, server_id: int) -> None:
        await self._request("DELETE", f"/cluster/servers/{server_id}")

    async def list_shard_spaces(self) -> List[Dict[str, Any]]:
        return await self._get_json("/cluster/shard_spaces")
