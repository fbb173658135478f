"""
In-memory store client for testing.

This module provides a store double that keeps everything in memory for:
- Unit tests of the batch committer
- Integration tests of the command dispatcher
- Running the shell without a server

Invariants:
    - All data is lost on process exit
    - Every write_series() call is recorded, including failed ones
    - Failure injection affects only write_series()

How to change safely:
    - This is test-only code, changes don't affect the HTTP client
    - Keep the interface compatible with the StoreClient protocol
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections import defaultdict
from typing import Any, Dict, List, Optional

from ..errors import StoreConnectionError, StoreError
from ..series import Series

logger = logging.getLogger(__name__)

_FROM_RE = re.compile(r"\bfrom\s+\"?([A-Za-z0-9_.-]+)\"?", re.IGNORECASE)
_DROP_RE = re.compile(r"^drop series\s+\"?([A-Za-z0-9_.-]+)\"?", re.IGNORECASE)


class InMemoryStoreClient:
    """In-memory implementation of StoreClient.

    Attributes:
        database: Current database
        write_calls: Every batch passed to write_series(), in call order
        failed_writes: Number of write_series() calls that raised

    Example:
        >>> store = InMemoryStoreClient(database="test")
        >>> await store.connect()
        >>> await store.write_series([Series("cpu", ["value"], [[1]])])
        >>> len(store.write_calls)
        1
    """

    def __init__(self, database: str = "test") -> None:
        self.database = database
        self.write_calls: List[List[Series]] = []
        self.failed_writes = 0
        self._connected = False
        self._compression = True
        self._databases: Dict[str, Dict[str, List[Series]]] = {database: defaultdict(list)} if database else {}
        self._admins: Dict[str, str] = {}
        self._servers: List[Dict[str, Any]] = [
            {"id": 1, "protobufConnectString": "localhost:8099", "state": 1}
        ]
        self._fail_writes: Optional[Exception] = None
        self._fail_remaining = 0
        self._write_delay = 0.0
        self._writes_changed = asyncio.Event()

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def compression(self) -> bool:
        return self._compression

    async def connect(self) -> None:
        self._connected = True
        logger.debug("InMemoryStoreClient connected")

    async def close(self) -> None:
        self._connected = False

    def disable_compression(self) -> None:
        self._compression = False

    def _check_connected(self) -> None:
        if not self._connected:
            raise StoreConnectionError("Not connected", address="memory")

    async def ping(self) -> None:
        self._check_connected()

    async def write_series(self, batch: List[Series]) -> None:
        self._check_connected()
        self.write_calls.append(list(batch))
        self._writes_changed.set()

        if self._write_delay:
            await asyncio.sleep(self._write_delay)

        if self._fail_writes is not None and self._fail_remaining != 0:
            if self._fail_remaining > 0:
                self._fail_remaining -= 1
            self.failed_writes += 1
            raise self._fail_writes

        if self.database not in self._databases:
            raise StoreError(f"Server returned (400): Database {self.database} doesn't exist", 400)
        store = self._databases[self.database]
        for series in batch:
            stored = store[series.name]
            stored.append(Series(series.name, list(series.columns), [list(p) for p in series.points]))

    async def query(self, q: str) -> List[Series]:
        self._check_connected()
        if self.database not in self._databases:
            raise StoreError(f"Server returned (400): Database {self.database} doesn't exist", 400)
        store = self._databases[self.database]

        if q.lower().startswith("list series"):
            points = [[0, name] for name in sorted(store)]
            return [Series("list_series_result", ["time", "name"], points)]

        drop = _DROP_RE.match(q)
        if drop:
            store.pop(drop.group(1), None)
            return []

        match = _FROM_RE.search(q)
        if not match:
            raise StoreError(f"Server returned (400): Error at character 0 in {q}", 400)
        name = match.group(1)
        if name not in store:
            return []

        written = store[name]
        columns = written[0].columns
        points = [p for s in written for p in s.points]
        return [Series(name, list(columns), points)]

    async def list_databases(self) -> List[Dict[str, Any]]:
        self._check_connected()
        return [{"name": name} for name in sorted(self._databases)]

    async def create_database(self, name: str) -> None:
        self._check_connected()
        if name in self._databases:
            raise StoreError(f"Server returned (409): database {name} exists", 409)
        self._databases[name] = defaultdict(list)

    async def delete_database(self, name: str) -> None:
        self._check_connected()
        if self._databases.pop(name, None) is None:
            raise StoreError(f"Server returned (400): Database {name} doesn't exist", 400)

    async def list_cluster_admins(self) -> List[Dict[str, Any]]:
        self._check_connected()
        return [{"name": name} for name in sorted(self._admins)]

    async def create_cluster_admin(self, name: str, password: str) -> None:
        self._check_connected()
        self._admins[name] = password

    async def update_cluster_admin(self, name: str, password: str) -> None:
        self._check_connected()
        if name not in self._admins:
            raise StoreError(f"Server returned (400): Invalid user name {name}", 400)
        self._admins[name] = password

    async def delete_cluster_admin(self, name: str) -> None:
        self._check_connected()
        self._admins.pop(name, None)

    async def list_servers(self) -> List[Dict[str, Any]]:
        self._check_connected()
        return [dict(s) for s in self._servers]

    async def delete_server(self, server_id: int) -> None:
        self._check_connected()
        self._servers = [s for s in self._servers if s["id"] != server_id]

    async def list_shard_spaces(self) -> List[Dict[str, Any]]:
        self._check_connected()
        return [
            {
                "name": "default",
                "database": db,
                "regex": "/.*/",
                "retentionPolicy": "inf",
                "shardDuration": "7d",
                "replicationFactor": 1,
                "split": 1,
            }
            for db in sorted(self._databases)
        ]

    # Testing helpers

    def fail_writes(self, exception: Exception | None = None, times: int = -1) -> None:
        """Make write_series() raise.

        Args:
            exception: Exception to raise (defaults to a 500 StoreError)
            times: Number of failing calls, -1 for every call
        """
        self._fail_writes = exception or StoreError("Server returned (500): injected failure", 500)
        self._fail_remaining = times

    def heal(self) -> None:
        """Stop injecting write failures."""
        self._fail_writes = None
        self._fail_remaining = 0

    def set_write_delay(self, seconds: float) -> None:
        """Make every write_series() call take at least this long."""
        self._write_delay = seconds

    def written_series(self, name: str | None = None) -> List[Series]:
        """Series successfully stored in the current database."""
        store = self._databases.get(self.database, {})
        if name is not None:
            return list(store.get(name, []))
        return [s for series in store.values() for s in series]

    async def wait_for_writes(self, count: int, timeout: float = 5.0) -> bool:
        """Wait until write_series() has been called at least count times.

        Returns:
            True if count reached, False on timeout
        """
        deadline = time.monotonic() + timeout
        while len(self.write_calls) < count:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self._writes_changed.clear()
            try:
                await asyncio.wait_for(self._writes_changed.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                return len(self.write_calls) >= count
        return True
