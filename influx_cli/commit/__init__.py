"""
Commit module for influx-cli - asynchronous write batching.

This module handles:
- Buffering inserts accepted in async mode
- Flushing on capacity, timer, explicit request and shutdown
- Bounded shutdown drain so exiting never hangs on a dead store

Invariants:
    - A single control loop owns the pending buffer
    - Failed batches are dropped and logged, never retried
"""

from .committer import BatchCommitter, DrainResult, FlushResult, FlushTrigger

__all__ = ["BatchCommitter", "DrainResult", "FlushResult", "FlushTrigger"]
