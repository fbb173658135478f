"""
Error types for influx-cli.

This module defines all exception types raised by the client:
- InfluxCliError: Base exception
- ConfigError: Invalid or unreadable configuration
- StoreError: The store rejected a request
- StoreConnectionError: The store could not be reached
- CommandError: A command line could not be parsed
- CommitterError / CommitterClosedError: Async batch committer misuse

Invariants:
    - All errors inherit from InfluxCliError
    - Errors carry a code for programmatic handling
    - Secrets (passwords) never appear in error messages
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class InfluxCliError(Exception):
    """Base exception for all influx-cli errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "INFLUX_CLI_ERROR"
        self.details = details or {}


class ConfigError(InfluxCliError):
    """Configuration is invalid.

    Raised when:
    - The rc file exists but cannot be parsed
    - A numeric setting is out of range
    """

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message, code="CONFIG_ERROR", details={"path": path})
        self.path = path


class StoreError(InfluxCliError):
    """The store answered with an error.

    Attributes:
        status_code: HTTP status code, if the store answered at all
        body: Response body text
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="STORE_ERROR",
            details={"status_code": status_code, "body": body},
        )
        self.status_code = status_code
        self.body = body


class StoreConnectionError(StoreError):
    """Failed to reach the store.

    Raised when:
    - The server is unreachable
    - The request times out
    """

    def __init__(self, message: str, address: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = "CONNECTION_ERROR"
        self.details["address"] = address
        self.address = address


class CommandError(InfluxCliError):
    """A command was recognised but its arguments are malformed."""

    def __init__(self, message: str, command: Optional[str] = None) -> None:
        super().__init__(message, code="COMMAND_ERROR", details={"command": command})
        self.command = command


class CommitterError(InfluxCliError):
    """Error in the async batch committer."""

    def __init__(self, message: str, code: str = "COMMITTER_ERROR") -> None:
        super().__init__(message, code=code)


class CommitterClosedError(CommitterError):
    """Series submitted after shutdown began, or before start()."""

    def __init__(self, message: str = "Committer is not accepting series") -> None:
        super().__init__(message, code="COMMITTER_CLOSED")
