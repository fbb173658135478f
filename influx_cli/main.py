"""
influx-cli - Main entry point.

Startup sequence:
- Resolve settings (flags > environment > ~/.influxrc > defaults)
- Connect and ping the store
- Start the batch committer
- Run one of: the query given as arguments, stdin line by line, or the prompt
- Drain the committer and exit

Usage:
    influx-cli [flags] [query to execute on start]
    echo "list db" | influx-cli -host db1

Exit codes:
    0  normal exit
    1  the store could not be reached, or history could not be read/written
    2  the rc file or configuration is invalid, or stdin could not be read

Invariants:
    - The committer is always drained before exit, bounded by the drain timeout
    - Nothing but command output goes to stdout

How to change safely:
    - New flags need a matching Settings field so rc and env can set them too
    - Test the exit path with a dead store; it must not hang
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any, Sequence, TextIO

from .client import StoreClient, create_store_client
from .commit import BatchCommitter
from .config import DEFAULT_RC_PATH, CommitterConfig, Settings
from .errors import ConfigError, InfluxCliError, StoreError
from .shell import Dispatcher, run_interactive, run_stdin

logger = logging.getLogger(__name__)

DRAIN_TIMEOUT_MESSAGE = "Could not flush all inserts. Closing anyway"


def setup_logging(settings: Settings) -> None:
    """Configure logging based on configuration.

    Args:
        settings: Client settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.WARNING)

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="influx-cli",
        usage="influx-cli [flags] [query to execute on start]",
        epilog="Note: you can also pipe queries into stdin, one line per query",
    )
    parser.add_argument("-host", "--host", dest="host", help="host to connect to (default localhost)")
    parser.add_argument("-port", "--port", dest="port", type=int, help="port to connect to (default 8086)")
    parser.add_argument("-user", "--user", dest="user", help="influxdb username (default root)")
    parser.add_argument("-pass", "--pass", dest="password", help="influxdb password (default root)")
    parser.add_argument("-db", "--db", dest="db", help="database to use")
    parser.add_argument(
        "-recordsOnly",
        "--records-only",
        dest="records_only",
        action="store_true",
        help="when enabled, doesn't display header",
    )
    parser.add_argument(
        "-async",
        "--async",
        dest="async_mode",
        action="store_true",
        help="when enabled, asynchronously flushes inserts",
    )
    parser.add_argument("--rc", dest="rc_path", default=DEFAULT_RC_PATH, help="rc file to read")
    parser.add_argument("--log-level", dest="log_level", help="logging level (default WARNING)")
    parser.add_argument("query", nargs="*", help="query to execute on start")
    return parser


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "host": args.host,
        "port": args.port,
        "user": args.user,
        "password": args.password,
        "db": args.db,
        "log_level": args.log_level,
    }


async def drain(committer: BatchCommitter, stdout: TextIO, stderr: TextIO) -> bool:
    """Shut the committer down and report what the final flush did.

    Returns:
        False if the drain timed out
    """
    result = await committer.shutdown()
    if not result.completed:
        stderr.write(DRAIN_TIMEOUT_MESSAGE + "\n")
        return False
    if result.count > 0:
        stdout.write(f"Final {result.count} async inserts committed\n")
    return True


async def run(
    settings: Settings,
    query: str = "",
    records_only: bool = False,
    async_mode: bool = False,
    rc_path: str = DEFAULT_RC_PATH,
    client: StoreClient | None = None,
    interactive: bool | None = None,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    """Connect, run the session and drain.

    Args:
        settings: Resolved settings
        query: Command from the arguments; runs once instead of reading input
        records_only: Start with headers suppressed
        async_mode: Start with async inserts on
        rc_path: rc file that writerc writes to
        client: Store client (built from settings when None)
        interactive: Force prompt or stdin mode (detected from stdin when None)
        stdin: Input stream for stdin mode
        stdout: Output stream
        stderr: Error stream

    Returns:
        Process exit code
    """
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    client = client or create_store_client(settings)
    try:
        await client.connect()
        await client.ping()
    except StoreError as e:
        stderr.write(f"{e.message}\n")
        await client.close()
        return 1

    committer = BatchCommitter(client, CommitterConfig.from_settings(settings))
    committer.start()

    dispatcher = Dispatcher(
        settings,
        client,
        committer,
        async_mode=async_mode,
        records_only=records_only,
        rc_path=rc_path,
        stdout=stdout,
        stderr=stderr,
    )

    code = 0
    try:
        if query:
            await dispatcher.handle(query.strip().removesuffix(";"))
        elif interactive is False or (interactive is None and not stdin.isatty()):
            try:
                await run_stdin(dispatcher, stdin)
            except OSError as e:
                stderr.write(f"{e}\n")
                code = 2
        else:
            code = await run_interactive(dispatcher, settings.history_path)
    finally:
        await drain(committer, stdout, stderr)
        stdout.flush()
        await dispatcher.client.close()

    return code


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    # Load configuration
    try:
        settings = Settings.load(rc_path=args.rc_path, overrides=_overrides(args))
    except (ConfigError, ValueError) as e:
        message = e.message if isinstance(e, InfluxCliError) else str(e)
        print(f"Configuration error: {message}", file=sys.stderr)
        return 2

    # Setup logging
    setup_logging(settings)
    settings.log_config()

    try:
        return asyncio.run(
            run(
                settings,
                query=" ".join(args.query),
                records_only=args.records_only,
                async_mode=args.async_mode,
                rc_path=args.rc_path,
            )
        )
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
