# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Bulk service: chunked, transactional execution of generated commands.

A call is split into consecutive chunks according to the batch-size policy.
Every chunk is one round trip in one transaction: commands are generated,
executed, returned rows are copied back onto the elements, and the transaction
is committed. Rows are matched to elements by position within the statement
that returned them, never by key, so the database must return them in
submission order.

A failing chunk is rolled back and the error propagates. Chunks committed
before it stay committed: a multi-chunk call is not atomic.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import (
    Any,
    AsyncIterator,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from .constants import ErrorMessages, LoggingConstants, SqlOperation
from .exceptions import EmptyCollectionError, InconsistentResultError
from .pg_command import SqlCommandBuilderResult, raise_if_cancelled
from .pg_connection import DatabaseConnection
from .pg_insert_builder import InsertSqlCommandBuilder
from .pg_mapping import BulkServiceOptions, EntityMapping, PropertyMapping
from .pg_update_builder import UpdateSqlCommandBuilder

ModelType = TypeVar("ModelType")

logger = logging.getLogger(__name__)

_CommandBuilder = Union[InsertSqlCommandBuilder, UpdateSqlCommandBuilder]


class PostgreSqlBulkService:
    """
    Inserts and updates collections of mapped elements.

    Provides SQLAlchemy-like bulk operations over a :class:`DatabaseConnection`.
    Calls on the same connection must not run concurrently.
    """

    def __init__(
        self,
        options: BulkServiceOptions,
        insert_builder: Optional[InsertSqlCommandBuilder] = None,
        update_builder: Optional[UpdateSqlCommandBuilder] = None,
    ):
        """
        Initialize the bulk service.

        Args:
            options: Registry of mappings plus batching and parameter limits
            insert_builder: Insert command builder, built from the options when omitted
            update_builder: Update command builder
        """
        self.options = options
        self.insert_builder = insert_builder or InsertSqlCommandBuilder.from_options(options)
        self.update_builder = update_builder or UpdateSqlCommandBuilder()

    async def insert_all(
        self,
        connection: DatabaseConnection,
        elements: Sequence[ModelType],
        cancel_event: Optional[asyncio.Event] = None,
        entity_type: Optional[Type[ModelType]] = None,
    ) -> List[ModelType]:
        """
        Insert elements and copy returned columns (generated keys, defaults) back onto them.

        Args:
            connection: Database connection, opened if needed
            elements: Elements to insert; None entries are skipped
            cancel_event: Optional cooperative cancellation signal
            entity_type: Mapped type, defaults to the type of the first element

        Returns:
            The same elements, updated with the values returned by the database
        """
        return await self._process(SqlOperation.INSERT, connection, elements, cancel_event, entity_type)

    async def update_all(
        self,
        connection: DatabaseConnection,
        elements: Sequence[ModelType],
        cancel_event: Optional[asyncio.Event] = None,
        entity_type: Optional[Type[ModelType]] = None,
    ) -> List[ModelType]:
        """
        Update elements by key and copy columns returned after update back onto them.

        Returns:
            The same elements, updated with the values returned by the database
        """
        return await self._process(SqlOperation.UPDATE, connection, elements, cancel_event, entity_type)

    # ---- orchestration ------------------------------------------------------

    async def _process(
        self,
        operation: SqlOperation,
        connection: DatabaseConnection,
        elements: Optional[Sequence[ModelType]],
        cancel_event: Optional[asyncio.Event],
        entity_type: Optional[Type[ModelType]],
    ) -> List[ModelType]:
        if not elements:
            raise EmptyCollectionError()
        items = list(elements)
        mapping = self._resolve_mapping(items, entity_type)
        batch_size = self.options.effective_batch_size(mapping)
        chunks_total = math.ceil(len(items) / batch_size) if batch_size > 0 else 1

        for number, portion in self._iter_chunks(items, batch_size):
            raise_if_cancelled(cancel_event)
            if all(item is None for item in portion):
                logger.info(LoggingConstants.CHUNK_SKIPPED, number, chunks_total)
                continue
            logger.info(LoggingConstants.CHUNK_STARTED, number, chunks_total, len(portion))
            rows = await self.execute_portion(operation, connection, portion, mapping, cancel_event)
            logger.info(LoggingConstants.CHUNK_COMMITTED, number, chunks_total, rows)
        return items

    async def execute_portion(
        self,
        operation: SqlOperation,
        connection: DatabaseConnection,
        portion: Sequence[Any],
        mapping: EntityMapping,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> int:
        """
        Run one chunk in its own transaction.

        Returns:
            Number of returned rows copied onto elements

        Raises:
            InconsistentResultError: More rows came back than elements were sent
        """
        builder, returning = self._builder_for(operation, mapping)
        commands = builder.generate(portion, mapping, cancel_event)
        live = [item for item in portion if item is not None]

        if not connection.is_open:
            await connection.open()
        raise_if_cancelled(cancel_event)

        transaction = await connection.begin()
        try:
            reconciled = 0
            offset = 0
            for command in commands:
                targets = live[offset:offset + command.elements_count]
                offset += command.elements_count
                reconciled += await self._reconcile(
                    connection.execute(command), command, targets, returning, cancel_event
                )
            await transaction.commit()
        except (Exception, asyncio.CancelledError) as e:
            logger.warning(LoggingConstants.CHUNK_ROLLED_BACK, operation.value, mapping.entity_name, type(e).__name__, e)
            await transaction.rollback()
            raise
        return reconciled

    async def _reconcile(
        self,
        results: AsyncIterator[Sequence[Mapping[str, Any]]],
        command: SqlCommandBuilderResult,
        targets: List[Any],
        returning: List[PropertyMapping],
        cancel_event: Optional[asyncio.Event],
    ) -> int:
        """
        Copy returned rows onto the targets, statement by statement.

        Each statement covers its own consecutive slice of the targets, so a
        statement that returns no row (an update matching nothing) leaves its
        element untouched instead of shifting later rows.
        """
        sizes = command.elements_per_statement()
        reconciled = 0
        offset = 0
        statement = 0
        async for rows in results:
            if statement >= len(sizes):
                message = ErrorMessages.TOO_MANY_STATEMENT_RESULTS.format(count=len(sizes))
                logger.error(message)
                raise InconsistentResultError(message)
            window = targets[offset:offset + sizes[statement]]
            offset += sizes[statement]
            statement += 1
            for position, row in enumerate(rows):
                raise_if_cancelled(cancel_event)
                if position >= len(window):
                    message = ErrorMessages.TOO_MANY_ROWS.format(count=len(window))
                    logger.error(message)
                    raise InconsistentResultError(message)
                if command.has_returning_clause:
                    self._apply_row(row, window[position], returning)
                reconciled += 1
        return reconciled

    @staticmethod
    def _apply_row(row: Mapping[str, Any], item: Any, returning: List[PropertyMapping]) -> None:
        for prop in returning:
            try:
                value = row[prop.column]
            except KeyError as e:
                raise InconsistentResultError(
                    ErrorMessages.MISSING_RETURNED_COLUMN.format(column=prop.column)
                ) from e
            prop.setter(item, value)

    # ---- helpers ------------------------------------------------------------

    def _builder_for(
        self, operation: SqlOperation, mapping: EntityMapping
    ) -> Tuple[_CommandBuilder, List[PropertyMapping]]:
        if operation is SqlOperation.INSERT:
            return self.insert_builder, mapping.returning_after_insert
        return self.update_builder, mapping.returning_after_update

    def _resolve_mapping(self, items: List[Any], entity_type: Optional[Type[Any]]) -> EntityMapping:
        live = [(index, item) for index, item in enumerate(items) if item is not None]
        if not live:
            raise EmptyCollectionError()
        expected = entity_type or type(live[0][1])
        for index, item in live:
            if not isinstance(item, expected):
                raise TypeError(
                    ErrorMessages.MIXED_ELEMENT_TYPES.format(
                        index=index, actual=type(item).__name__, expected=expected.__name__
                    )
                )
        return self.options.get_mapping(expected)

    @staticmethod
    def _iter_chunks(items: List[Any], batch_size: int) -> Iterator[Tuple[int, List[Any]]]:
        """Consecutive windows of ``batch_size`` elements; one window when the size is 0."""
        if batch_size <= 0:
            yield 1, items
            return
        for number, start in enumerate(range(0, len(items), batch_size), start=1):
            yield number, items[start:start + batch_size]

    def __repr__(self) -> str:
        return f"<PostgreSqlBulkService(types={len(self.options.supported_entity_types)})>"
