# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and shared fixtures for pgsqlbulk tests.

No live database is used: :class:`ScriptedConnection` implements the
``DatabaseConnection`` contract, records every executed command and yields
rows produced by a row factory.
"""

from __future__ import annotations

import itertools
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest

from pgsqlbulk import BulkServiceOptions, PostgreSqlBulkService, SqlCommandBuilderResult

from . import _env  # noqa: F401  # pylint: disable=unused-import
from .models import (
    CompositeKeyReading,
    SensorReading,
    TaggedReading,
    composite_key_mapping,
    returning_mapping,
    simple_mapping,
)

RowFactory = Callable[[SqlCommandBuilderResult], List[Any]]


def sequential_ids(start: int = 1) -> RowFactory:
    """Row factory returning one ``{"id": n}`` row per element of a returning command."""
    counter = itertools.count(start)

    def factory(command: SqlCommandBuilderResult) -> List[Dict[str, Any]]:
        if not command.has_returning_clause:
            return []
        return [{"id": next(counter)} for _ in range(command.elements_count)]

    return factory


class ScriptedConnection:
    """In-memory ``DatabaseConnection`` driven by a row factory."""

    def __init__(
        self,
        row_factory: Optional[RowFactory] = None,
        fail_on_execute: Optional[int] = None,
        is_open: bool = True,
    ):
        self.row_factory = row_factory or sequential_ids()
        self.fail_on_execute = fail_on_execute
        self._is_open = is_open
        self.open_calls = 0
        self.executed: List[SqlCommandBuilderResult] = []
        self.transactions: List[MagicMock] = []

    @property
    def is_open(self) -> bool:
        return self._is_open

    async def open(self) -> None:
        self.open_calls += 1
        self._is_open = True

    async def begin(self) -> MagicMock:
        transaction = MagicMock()
        transaction.commit = AsyncMock()
        transaction.rollback = AsyncMock()
        self.transactions.append(transaction)
        return transaction

    async def execute(self, command: SqlCommandBuilderResult) -> AsyncIterator[Sequence[Mapping[str, Any]]]:
        """
        Yield the factory rows grouped by statement.

        A factory returning a list of lists scripts each statement explicitly.
        A flat list is spread over the statements by their element counts, the
        last statement taking whatever remains.
        """
        self.executed.append(command)
        if self.fail_on_execute == len(self.executed):
            raise RuntimeError("connection reset by peer")
        rows = self.row_factory(command)
        if rows and isinstance(rows[0], list):
            for statement_rows in rows:
                yield statement_rows
            return
        sizes = command.elements_per_statement()
        offset = 0
        for number, size in enumerate(sizes, start=1):
            end = len(rows) if number == len(sizes) else offset + size
            yield rows[offset:end]
            offset = end

    @property
    def committed(self) -> int:
        return sum(1 for tx in self.transactions if tx.commit.await_count)

    @property
    def rolled_back(self) -> int:
        return sum(1 for tx in self.transactions if tx.rollback.await_count)


@pytest.fixture
def connection() -> ScriptedConnection:
    return ScriptedConnection()


@pytest.fixture
def options() -> BulkServiceOptions:
    """Registry holding the simple, returning and composite-key mappings."""
    opts = BulkServiceOptions()
    opts.add(simple_mapping())
    opts.add(returning_mapping())
    opts.add(composite_key_mapping())
    return opts


@pytest.fixture
def service(options: BulkServiceOptions) -> PostgreSqlBulkService:
    return PostgreSqlBulkService(options)


@pytest.fixture
def readings() -> List[SensorReading]:
    return [SensorReading(f"rec-{i}", f"sensor-{i % 3}", i) for i in range(10)]


@pytest.fixture
def tagged() -> List[TaggedReading]:
    return [TaggedReading(f"rec-{i}", f"sensor-{i}", i) for i in range(4)]


@pytest.fixture
def daily() -> List[CompositeKeyReading]:
    return [CompositeKeyReading(f"sensor-{i}", value=float(i)) for i in range(3)]
