"""
Command dispatcher for the influx shell.

Each command line is matched against an ordered table of regular expressions;
the first match runs its handler. Handlers talk to the store client directly,
except inserts in async mode, which are handed to the BatchCommitter.

Invariants:
    - Exactly one handler runs per command line
    - Store and command errors are printed to stderr and never end the shell
    - Turning async mode off flushes the committer before returning
    - The dispatcher never touches the committer's buffer, only its public API

How to change safely:
    - New commands go in _build_handlers(); order matters, first match wins
    - Keep user-visible messages stable, scripts grep for them
"""

from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, TextIO

from ..client.base import StoreClient, create_store_client
from ..commit import BatchCommitter
from ..config import DEFAULT_RC_PATH, Settings
from ..errors import CommandError, InfluxCliError
from ..series import DEFAULT_COLUMNS, Series, parse_value, split_values
from . import formatting
from .output import open_output, parse_command_line
from .timing import Timing

logger = logging.getLogger(__name__)

Handler = Callable[["re.Match[str]", TextIO], Awaitable[Optional[Timing]]]
ClientFactory = Callable[[Settings], StoreClient]

UNHANDLED_MESSAGE = "Could not handle the command. type 'help' to get a help menu"

REGEX_BIND = r"^bind"
REGEX_CONN = r"^conn$"
REGEX_CREATE_ADMIN = r"^create admin ([a-zA-Z0-9_-]+) (.+)"
REGEX_CREATE_DB = r"^create db ([a-zA-Z0-9_-]+)"
REGEX_DELETE_ADMIN = r"^delete admin ([a-zA-Z0-9_-]+)"
REGEX_DELETE_DB = r"^delete db ([a-zA-Z0-9_-]+)"
REGEX_DELETE_SERVER = r"^delete server (.+)"
REGEX_DROP_SERIES = r"^drop series .+"
REGEX_ECHO = r"^echo (.+)"
REGEX_HELP = r"^(help|commands)$"
REGEX_INSERT = r"^insert into ([a-zA-Z0-9_-]+) ?(\(.+\))? values \((.*)\)$"
REGEX_INSERT_QUOTED = r'^insert into "(.+)" ?(\(.+\))? values \((.*)\)$'
REGEX_LIST_ADMIN = r"^list admin"
REGEX_LIST_DB = r"^list db"
REGEX_LIST_SERIES = r"^list series.*"
REGEX_LIST_SERVERS = r"^list servers$"
REGEX_LIST_SHARDSPACES = r"^list shardspaces$"
REGEX_OPTION = r"^\\([a-z]+) ?([a-zA-Z0-9_-]+)?"
REGEX_PING = r"^ping$"
REGEX_RAW = r"^raw (.+)"
REGEX_SELECT = r"^select .*"
REGEX_UPDATE_ADMIN = r"^update admin ([a-zA-Z0-9_-]+) (.+)"
REGEX_WRITE_RC = r"^writerc"

HELP_TEXT = r"""Help:

options & current session
-------------------------

\dt              : print timestamps as datetime strings
\r               : show records only, no headers
\t               : toggle timing, which displays timing of
                   query execution + network and output displaying
                   (default: false)
\async           : asynchronously flush inserts
\comp            : disable compression (client lib doesn't support enabling)
\db <db>         : switch to databasename (requires a bind call to be effective)
\user <username> : switch to different user (requires a bind call to be effective)
\pass <password> : update password (requires a bind call to be effective)

bind             : bind again, possibly after updating db, user or pass
ping             : ping the server


admin
-----

create admin <user> <pass>      : add given admin user
delete admin <user>             : delete admin user
update admin <user> <pass>      : update the password for given admin user
list admin                      : list admins

create db <name>                : create database
delete db <name>                : drop database
list db                         : list databases

list series [/regex/[i]]        : list series, optionally filtered by regex
drop series <name>              : drop series by given name

delete server <id>              : delete server by id
list servers                    : list servers

list shardspaces                : list shardspaces


data i/o
--------

insert into <name> [(col1[,col2[...]])] values (val1[,val2[,val3[...]]])
                           : insert values into the given columns for given series name.
                             columns is optional and defaults to (time, sequence_number, value)
                             (timestamp is assumed to be in ms. ms/u/s prefixes don't work yet)
select ...                 : select statement for data retrieval


misc
----

conn             : display info about current connection
raw <str>        : execute query raw (fallback for unsupported queries)
echo <str>       : echo string + newline.
                   this is useful when the input is not visible, i.e. from scripts
writerc          : write current parameters to ~/.influxrc file
commands         : this menu
help             : this menu
exit / ctrl-D    : exit the program

modifiers
---------

ANY command above can be subject to piping to another command or writing output to a file, like so:

command; | <command>     : pipe the output into an external command (example: list series; | sort)
                           note: currently you can only pipe into one external command at a time
command; > <filename>    : redirect the output into a file
"""


def _flag(value: bool) -> str:
    return "true" if value else "false"


@dataclass(frozen=True)
class HandlerSpec:
    """A command pattern and the coroutine that handles it."""

    pattern: re.Pattern[str]
    handler: Handler


def parse_insert(match: re.Match[str]) -> Series:
    """Build a one-point Series from an insert command match.

    Raises:
        CommandError: If the values cannot be parsed or don't match the columns
    """
    name = match.group(1)
    cols_str = (match.group(2) or "").strip()
    if cols_str:
        columns = [c.strip() for c in cols_str[1:-1].split(",")]
    else:
        columns = list(DEFAULT_COLUMNS)

    try:
        raw_values = split_values(match.group(3))
    except ValueError as e:
        raise CommandError(f"Could not parse values: {e}", command=match.group(0)) from e

    try:
        return Series.single(name, columns, [parse_value(v) for v in raw_values])
    except ValueError as e:
        raise CommandError(str(e), command=match.group(0)) from e


class Dispatcher:
    """Routes command lines to store operations.

    Attributes:
        settings: Connection settings; \\db, \\user and \\pass edit them in place
        client: Current store client (replaced by bind)
        committer: Batch committer for async inserts
        async_mode: Whether inserts go through the committer
        timing: Print timings after each command
        date_time: Render time columns as datetimes
        records_only: Omit headers in select output

    Example:
        >>> dispatcher = Dispatcher(settings, client, committer)
        >>> await dispatcher.handle("list db")
    """

    def __init__(
        self,
        settings: Settings,
        client: StoreClient,
        committer: BatchCommitter,
        async_mode: bool = False,
        records_only: bool = False,
        rc_path: str = DEFAULT_RC_PATH,
        client_factory: ClientFactory = create_store_client,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.committer = committer
        self.async_mode = async_mode
        self.records_only = records_only
        self.timing = False
        self.date_time = False
        self.rc_path = rc_path
        self.client_factory = client_factory
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self._handlers = self._build_handlers()

    def _build_handlers(self) -> List[HandlerSpec]:
        table = [
            (REGEX_BIND, self._bind),
            (REGEX_CONN, self._conn),
            (REGEX_CREATE_ADMIN, self._create_admin),
            (REGEX_CREATE_DB, self._create_db),
            (REGEX_DELETE_ADMIN, self._delete_admin),
            (REGEX_DELETE_DB, self._delete_db),
            (REGEX_DELETE_SERVER, self._delete_server),
            (REGEX_DROP_SERIES, self._drop_series),
            (REGEX_ECHO, self._echo),
            (REGEX_HELP, self._help),
            (REGEX_INSERT, self._insert),
            (REGEX_INSERT_QUOTED, self._insert),
            (REGEX_LIST_ADMIN, self._list_admin),
            (REGEX_LIST_DB, self._list_db),
            (REGEX_LIST_SERIES, self._list_series),
            (REGEX_LIST_SERVERS, self._list_servers),
            (REGEX_LIST_SHARDSPACES, self._list_shardspaces),
            (REGEX_OPTION, self._option),
            (REGEX_PING, self._ping),
            (REGEX_RAW, self._raw),
            (REGEX_SELECT, self._select),
            (REGEX_UPDATE_ADMIN, self._update_admin),
            (REGEX_WRITE_RC, self._write_rc),
        ]
        return [HandlerSpec(re.compile(pattern), handler) for pattern, handler in table]

    def _error(self, message: str) -> None:
        self.stderr.write(message.rstrip("\n") + "\n")

    async def handle(self, line: str) -> bool:
        """Run one command line.

        Args:
            line: Raw command line, optionally with an output modifier

        Returns:
            True if a handler matched, False otherwise
        """
        try:
            cmdline = parse_command_line(line)
        except CommandError as e:
            self._error(e.message)
            return False

        for spec in self._handlers:
            match = spec.pattern.match(cmdline.command)
            if not match:
                continue

            try:
                async with open_output(cmdline, self.stdout, self.stderr) as out:
                    timing = await spec.handler(match, out)
            except InfluxCliError as e:
                logger.debug("Command failed", extra={"command": cmdline.command, "code": e.code})
                self._error(e.message)
                return True

            if self.timing and timing is not None:
                self.stdout.write(f"timing>\n{timing}\n")
            return True

        self._error(UNHANDLED_MESSAGE)
        return False

    def print_help(self, out: TextIO | None = None) -> None:
        (out or self.stdout).write(HELP_TEXT + "\n")

    # Session

    async def _help(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        self.print_help(out)
        return None

    async def _option(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        option, arg = match.group(1), match.group(2) or ""

        if option == "async":
            if self.async_mode:
                # so we don't get any insert errors after disabling async
                out.write("flushing any pending async inserts\n")
                await self.committer.force_flush(wait=True)
            self.async_mode = not self.async_mode
            out.write(f"async is now {_flag(self.async_mode)}\n")
        elif option == "dt":
            self.date_time = not self.date_time
            out.write(f"datetime printing is now {_flag(self.date_time)}\n")
        elif option == "r":
            self.records_only = not self.records_only
            out.write(f"records-only is now {_flag(self.records_only)}\n")
        elif option == "t":
            self.timing = not self.timing
            out.write(f"timing is now {_flag(self.timing)}\n")
        elif option == "comp":
            self.client.disable_compression()
            out.write("compression is now disabled\n")
        elif option in ("db", "user", "pass"):
            if not arg:
                self._error(f"{'password' if option == 'pass' else option} argument must be set")
                return None
            field_name = "password" if option == "pass" else option
            setattr(self.settings, field_name, arg)
        else:
            self._error("unrecognized option")
        return None

    async def _bind(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        client = self.client_factory(self.settings)
        await client.connect()
        try:
            await client.ping()
        except InfluxCliError:
            await client.close()
            raise
        timing.mark_executed()

        # series buffered for the old binding go to the old binding
        if self.committer.accepting:
            await self.committer.force_flush(wait=True)
        old, self.client = self.client, client
        self.committer.use_client(client)
        await old.close()
        logger.info("Rebound store client", extra={"address": self.settings.address, "db": self.settings.db})
        timing.mark_printed()
        return timing

    async def _conn(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        s = self.settings
        compression = getattr(self.client, "compression", None)
        out.write(f"Host        : {s.address}\n")
        out.write(f"User        : {s.user}\n")
        out.write(f"Pass        : {s.password}\n")
        out.write(f"Db          : {s.db}\n")
        out.write(f"secure      : {_flag(s.secure)}\n")
        out.write("udp         : false\n")
        out.write(f"compression : {'?' if compression is None else _flag(compression)}\n")
        out.write(f"Client      : {type(self.client).__name__}\n")
        return None

    async def _write_rc(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        try:
            self.settings.write_rc(self.rc_path)
        except OSError as e:
            raise CommandError(str(e), command=match.group(0)) from e
        timing.mark_executed()
        return timing

    async def _echo(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        timing.mark_executed()
        out.write(f"{match.group(1)}\n")
        timing.mark_printed()
        return timing

    async def _ping(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        await self.client.ping()
        timing.mark_executed()
        timing.mark_printed()
        return timing

    # Admin

    async def _create_admin(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        await self.client.create_cluster_admin(match.group(1).strip(), match.group(2).strip())
        timing.mark_executed()
        timing.mark_printed()
        return timing

    async def _update_admin(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        await self.client.update_cluster_admin(match.group(1).strip(), match.group(2).strip())
        timing.mark_executed()
        timing.mark_printed()
        return timing

    async def _delete_admin(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        await self.client.delete_cluster_admin(match.group(1).strip())
        timing.mark_executed()
        timing.mark_printed()
        return timing

    async def _list_admin(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        admins = await self.client.list_cluster_admins()
        timing.mark_executed()
        formatting.write_records(admins, out)
        timing.mark_printed()
        return timing

    async def _create_db(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        await self.client.create_database(match.group(1))
        timing.mark_executed()
        timing.mark_printed()
        return timing

    async def _delete_db(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        await self.client.delete_database(match.group(1))
        timing.mark_executed()
        timing.mark_printed()
        return timing

    async def _list_db(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        databases = await self.client.list_databases()
        timing.mark_executed()
        for item in databases:
            out.write(f"{item.get('name')}\n")
        timing.mark_printed()
        return timing

    async def _delete_server(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        try:
            server_id = int(match.group(1).strip())
        except ValueError as e:
            raise CommandError(f"invalid server id: {match.group(1)}", command=match.group(0)) from e
        await self.client.delete_server(server_id)
        timing.mark_executed()
        timing.mark_printed()
        return timing

    async def _list_servers(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        servers = await self.client.list_servers()
        timing.mark_executed()
        formatting.write_records(servers, out, id_key="id")
        timing.mark_printed()
        return timing

    async def _list_shardspaces(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        shard_spaces = await self.client.list_shard_spaces()
        timing.mark_executed()
        formatting.write_shard_spaces(shard_spaces, out)
        timing.mark_printed()
        return timing

    # Data

    async def _insert(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        series = parse_insert(match)

        if self.async_mode:
            await self.committer.submit(series)
        else:
            await self.client.write_series([series])
        timing.mark_executed()
        timing.mark_printed()
        return timing

    async def _list_series(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        result = await self.client.query(match.group(0))
        timing.mark_executed()
        formatting.write_series_names(result, out)
        timing.mark_printed()
        return timing

    async def _drop_series(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        await self.client.query(match.group(0) + ";")
        timing.mark_executed()
        timing.mark_printed()
        return timing

    async def _select(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        result = await self.client.query(match.group(0) + ";")
        timing.mark_executed()
        formatting.write_select(
            result, out, records_only=self.records_only, date_time=self.date_time
        )
        timing.mark_printed()
        return timing

    async def _raw(self, match: re.Match[str], out: TextIO) -> Optional[Timing]:
        timing = Timing()
        result = await self.client.query(match.group(1) + ";")
        timing.mark_executed()
        formatting.write_raw(result, out)
        timing.mark_printed()
        return timing
