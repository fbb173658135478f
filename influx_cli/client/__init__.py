"""
Store client abstraction for influx-cli.

This module provides a pluggable client interface supporting:
- The store's JSON HTTP API (httpx)
- In-memory (for testing and offline use)

Invariants:
    - write_series() stores the whole batch or raises StoreError
    - Clients never retry; the caller owns failure policy

How to change safely:
    - New clients must implement the StoreClient protocol
    - Keep StoreError the only exception type that escapes a client
"""

from .base import StoreClient, create_store_client
from .http import HttpStoreClient
from .memory import InMemoryStoreClient

__all__ = [
    # Protocol
    "StoreClient",
    # Factory
    "create_store_client",
    # Implementations
    "HttpStoreClient",
    "InMemoryStoreClient",
]
