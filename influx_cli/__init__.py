"""
influx-cli - Interactive shell and script runner for InfluxDB 0.8.

Commands are typed at a prompt, piped in on stdin or passed as arguments.
Inserts can be sent synchronously or, in async mode, buffered by a batch
committer that writes them in bulk.

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌────────────────┐
    │ REPL/stdin  │────▶│ Dispatcher  │────▶│  StoreClient   │
    │   /argv     │     │ (regexes)   │     │  (httpx, HTTP) │
    └─────────────┘     └──────┬──────┘     └───────▲────────┘
                               │ async inserts      │ bulk writes
                               ▼                    │
                        ┌─────────────────────────────┐
                        │       BatchCommitter        │
                        │ capacity / timer / forced / │
                        │       shutdown drain        │
                        └─────────────────────────────┘

Invariants:
    - One control loop owns the async insert buffer
    - A failed bulk write is logged and dropped, never retried
    - Exiting never waits on the store longer than the drain timeout

How to change safely:
    - New commands go through the dispatcher's handler table
    - New store backends implement the StoreClient protocol
"""

from ._version import __version__

__all__ = ["__version__"]
