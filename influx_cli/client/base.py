"""
Base protocol for store clients.

This module defines the StoreClient protocol that the HTTP client and the
in-memory test double both implement. The batch committer only ever calls
write_series(); the command dispatcher uses the rest.

Invariants:
    - write_series() either stores the whole batch or raises StoreError
    - Errors are raised as StoreError subclasses, never as transport exceptions
    - Query results come back as Series in server order

How to change safely:
    - Protocol changes require updating all implementations
    - Keep write_series() free of retries; callers decide what a failure means
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Protocol, runtime_checkable

from ..series import Series

if TYPE_CHECKING:
    from ..config import Settings


@runtime_checkable
class StoreClient(Protocol):
    """Protocol for time-series store clients.

    Write contract:
        - write_series() returns only after the store accepted the batch
        - A batch is written in the order given

    Example:
        >>> client = HttpStoreClient(settings)
        >>> await client.connect()
        >>> await client.write_series([Series("cpu", ["value"], [[0.5]])])
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection. Must be called before any other operation."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""
        ...

    @abstractmethod
    async def ping(self) -> None:
        """Check the store is reachable.

        Raises:
            StoreConnectionError: If the store cannot be reached
            StoreError: If the store answers with an error
        """
        ...

    @abstractmethod
    async def write_series(self, batch: List[Series]) -> None:
        """Write a batch of series in one request.

        Args:
            batch: Series to write, in order

        Raises:
            StoreError: If the write failed
        """
        ...

    @abstractmethod
    async def query(self, q: str) -> List[Series]:
        """Run a query verbatim against the current database."""
        ...

    @abstractmethod
    async def list_databases(self) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def create_database(self, name: str) -> None: ...

    @abstractmethod
    async def delete_database(self, name: str) -> None: ...

    @abstractmethod
    async def list_cluster_admins(self) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def create_cluster_admin(self, name: str, password: str) -> None: ...

    @abstractmethod
    async def update_cluster_admin(self, name: str, password: str) -> None: ...

    @abstractmethod
    async def delete_cluster_admin(self, name: str) -> None: ...

    @abstractmethod
    async def list_servers(self) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def delete_server(self, server_id: int) -> None: ...

    @abstractmethod
    async def list_shard_spaces(self) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def disable_compression(self) -> None:
        """Stop asking the store for gzip-compressed responses."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool: ...


def create_store_client(settings: "Settings") -> StoreClient:
    """Factory function to create a store client from configuration.

    Args:
        settings: Client settings

    Returns:
        HttpStoreClient bound to settings.host/port/db
    """
    from .http import HttpStoreClient

    return HttpStoreClient(
        base_url=settings.base_url,
        user=settings.user,
        password=settings.password,
        database=settings.db,
        timeout=settings.request_timeout,
    )
