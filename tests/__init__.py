"""
influx-cli Test Suite.

This package contains:
- unit/: Unit tests (no network, in-memory store or httpx.MockTransport)
- integration/: Integration tests (dispatcher, committer and input loops together)
"""
