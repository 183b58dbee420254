# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Database client contract used by the bulk service, and its asyncpg implementation.

Generated commands use named ``@param_<column>_<index>`` placeholders. asyncpg
only understands positional ``$n`` placeholders and runs one statement per
prepared query, so :class:`AsyncpgConnection` executes a script statement by
statement and rewrites every placeholder into a typed positional one. json and
jsonb values travel as Python objects through orjson codecs.
"""

from __future__ import annotations

import logging
import re
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

import asyncpg
import orjson

from .constants import ErrorMessages, LoggingConstants, PostgresDataType, SqlConstants
from .exceptions import PgSqlBulkError
from .pg_command import SqlCommandBuilderResult, SqlParameter

if TYPE_CHECKING:
    from .settings import BulkSettings

logger = logging.getLogger(__name__)

_PARAMETER_RE = re.compile(SqlConstants.PARAMETER_PATTERN)
_STATEMENT_BOUNDARY = f"{SqlConstants.STATEMENT_TERMINATOR}{SqlConstants.STATEMENT_SEPARATOR}"

# Types whose values are sent and received as Python objects
_JSON_TYPES: Tuple[PostgresDataType, ...] = (PostgresDataType.JSON, PostgresDataType.JSONB)

# Casts whose bare type name would truncate the value
_CAST_OVERRIDES: Dict[PostgresDataType, str] = {
    PostgresDataType.CHAR: "bpchar",
}


# -----------------------------------------------------------------------------
# Collaborator contract
# -----------------------------------------------------------------------------

class DatabaseTransaction(Protocol):
    """An open transaction."""

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


@runtime_checkable
class DatabaseConnection(Protocol):
    """
    What the bulk service needs from a database client.

    One connection is used by one bulk call at a time.
    """

    @property
    def is_open(self) -> bool: ...

    async def open(self) -> None: ...

    async def begin(self) -> DatabaseTransaction: ...

    def execute(self, command: SqlCommandBuilderResult) -> AsyncIterator[Sequence[Mapping[str, Any]]]:
        """
        Execute a generated command statement by statement.

        Yields one sequence per statement holding the rows it returned, in order;
        an empty sequence when the statement returned nothing.
        """
        ...


# -----------------------------------------------------------------------------
# Placeholder rewriting
# -----------------------------------------------------------------------------

def split_statements(script: str) -> List[str]:
    """Split a generated script into its statements, each keeping its terminator."""
    parts = script.split(_STATEMENT_BOUNDARY)
    statements = [part + SqlConstants.STATEMENT_TERMINATOR for part in parts[:-1]]
    if parts[-1].strip():
        statements.append(parts[-1])
    return statements


def to_positional(statement: str, parameters: Mapping[str, SqlParameter]) -> Tuple[str, List[Any]]:
    """
    Rewrite named placeholders of one statement into ``$n::<type>`` placeholders.

    Positions follow the first appearance of each name; a name used twice maps
    to the same position.

    Returns:
        Tuple of (rewritten statement, positional argument values)
    """
    positions: Dict[str, int] = {}
    args: List[Any] = []

    def replace(match: "re.Match[str]") -> str:
        name = match.group(0)
        param = parameters.get(name)
        if param is None:
            raise PgSqlBulkError(ErrorMessages.MISSING_PARAMETER.format(parameter=name))
        if name not in positions:
            args.append(param.value)
            positions[name] = len(args)
        db_type = _CAST_OVERRIDES.get(param.db_type, param.db_type.value)
        return SqlConstants.POSITIONAL_PARAMETER_TEMPLATE.format(position=positions[name], db_type=db_type)

    return _PARAMETER_RE.sub(replace, statement), args


def _encode_json(value: Any) -> str:
    return orjson.dumps(value).decode()


# -----------------------------------------------------------------------------
# asyncpg implementation
# -----------------------------------------------------------------------------

class AsyncpgConnection:
    """
    :class:`DatabaseConnection` over an ``asyncpg.Connection``.

    Either wraps an existing connection (which stays owned by the caller) or
    connects lazily from a DSN on :meth:`open`.
    """

    def __init__(
        self,
        connection: Optional[asyncpg.Connection] = None,
        dsn: Optional[str] = None,
        **connect_kwargs: Any,
    ):
        if connection is None and dsn is None:
            raise ValueError(ErrorMessages.CONNECTION_NOT_CONFIGURED)
        self._conn = connection
        self._dsn = dsn
        self._connect_kwargs = connect_kwargs
        self._owns_connection = connection is None
        self._codecs_ready = False

    @classmethod
    def from_settings(cls, settings: "BulkSettings", **connect_kwargs: Any) -> "AsyncpgConnection":
        return cls(dsn=settings.dsn, **connect_kwargs)

    @property
    def raw_connection(self) -> Optional[asyncpg.Connection]:
        return self._conn

    @property
    def is_open(self) -> bool:
        return self._conn is not None and not self._conn.is_closed()

    async def open(self) -> None:
        if self.is_open:
            return
        if self._dsn is None:
            raise PgSqlBulkError(ErrorMessages.CONNECTION_NOT_CONFIGURED)
        logger.info(LoggingConstants.OPENING_CONNECTION)
        self._conn = await asyncpg.connect(self._dsn, **self._connect_kwargs)
        self._owns_connection = True
        self._codecs_ready = False
        await self._configure_codecs()

    async def _configure_codecs(self) -> None:
        """Encode and decode json/jsonb values with orjson instead of passing text."""
        if self._codecs_ready:
            return
        for db_type in _JSON_TYPES:
            await self._conn.set_type_codec(
                db_type.value,
                encoder=_encode_json,
                decoder=orjson.loads,
                schema="pg_catalog",
            )
        self._codecs_ready = True

    async def begin(self) -> DatabaseTransaction:
        if not self.is_open:
            await self.open()
        await self._configure_codecs()
        transaction = self._conn.transaction()
        await transaction.start()
        return transaction

    async def execute(self, command: SqlCommandBuilderResult) -> AsyncIterator[Sequence[Mapping[str, Any]]]:
        await self._configure_codecs()
        parameters = command.parameters_by_name()
        statements = split_statements(command.command)
        for number, statement in enumerate(statements, start=1):
            query, args = to_positional(statement, parameters)
            logger.debug(LoggingConstants.EXECUTING_STATEMENT, number, len(statements), len(args))
            if command.has_returning_clause:
                yield await self._conn.fetch(query, *args)
            else:
                await self._conn.execute(query, *args)
                yield []

    async def close(self) -> None:
        if self._owns_connection and self.is_open:
            await self._conn.close()

    async def __aenter__(self) -> "AsyncpgConnection":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        _ = exc_type, exc_val, exc_tb  # Mark as intentionally unused
        await self.close()

    def __repr__(self) -> str:
        return f"<AsyncpgConnection(open={self.is_open}, owns_connection={self._owns_connection})>"
