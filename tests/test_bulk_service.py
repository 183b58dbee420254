# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the bulk service: chunking, transactions and reconciliation of returned rows.

Tests cover:
- Reconciliation of generated keys and returned columns, in order
- One transaction per chunk and per-mapping batch sizes
- Rollback of the failing chunk only
- Inconsistent results and cooperative cancellation
"""

from __future__ import annotations

import asyncio
import datetime

import pytest

from pgsqlbulk import (
    BulkServiceOptions,
    EmptyCollectionError,
    InconsistentResultError,
    InsertSqlCommandBuilder,
    MappingNotFoundError,
    PostgreSqlBulkService,
    SqlGenerationError,
    SqlOperation,
)

from .conftest import ScriptedConnection, sequential_ids
from .models import (
    Measurement,
    SensorReading,
    TaggedReading,
    simple_mapping,
)


class TestInsertReconciliation:

    @pytest.mark.asyncio
    async def test_generated_keys_assigned_in_order(self, service, connection, readings):
        result = await service.insert_all(connection, readings)
        assert result == readings
        assert [r.id for r in readings] == list(range(1, len(readings) + 1))
        assert connection.committed == 1
        assert connection.rolled_back == 0

    @pytest.mark.asyncio
    async def test_same_instances_returned(self, service, connection, readings):
        result = await service.insert_all(connection, readings)
        assert all(a is b for a, b in zip(result, readings))

    @pytest.mark.asyncio
    async def test_only_returned_columns_written(self, service, tagged):
        def rows(command):
            return [
                {"id": 100 + i, "record_id": f"db-{i}", "sensor_id": f"canon-{i}", "value": -1}
                for i in range(command.elements_count)
            ]

        connection = ScriptedConnection(rows)
        await service.insert_all(connection, tagged)
        assert [t.id for t in tagged] == [100, 101, 102, 103]
        assert [t.record_id for t in tagged] == ["db-0", "db-1", "db-2", "db-3"]
        assert [t.sensor_id for t in tagged] == ["canon-0", "canon-1", "canon-2", "canon-3"]
        assert [t.value for t in tagged] == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_none_elements_kept_and_skipped(self, service, connection):
        items = [SensorReading("a", "s", 1), None, SensorReading("b", "s", 2)]
        result = await service.insert_all(connection, items)
        assert result[1] is None
        assert [items[0].id, items[2].id] == [1, 2]
        assert connection.executed[0].elements_count == 2

    @pytest.mark.asyncio
    async def test_fewer_rows_than_elements_tolerated(self, service, readings):
        connection = ScriptedConnection(lambda command: [{"id": 7}])
        await service.insert_all(connection, readings)
        assert readings[0].id == 7
        assert all(r.id is None for r in readings[1:])
        assert connection.committed == 1

    @pytest.mark.asyncio
    async def test_reconciliation_across_split_statements(self, readings):
        options = BulkServiceOptions(max_parameters_per_command=9)
        options.add(simple_mapping())
        connection = ScriptedConnection()
        await PostgreSqlBulkService(options).insert_all(connection, readings)
        assert [c.elements_count for c in connection.executed] == [3, 3, 3, 1]
        assert [r.id for r in readings] == list(range(1, 11))
        assert len(connection.transactions) == 1

    @pytest.mark.asyncio
    async def test_pydantic_model(self, connection):
        options = BulkServiceOptions().add_model(Measurement)
        models = [
            Measurement(device=f"d-{i}", taken_at=datetime.datetime(2025, 1, i + 1), reading=i / 2)
            for i in range(3)
        ]
        await PostgreSqlBulkService(options).insert_all(connection, models)
        assert [m.id for m in models] == [1, 2, 3]
        # batch_size=2 on the model
        assert len(connection.transactions) == 2


class TestChunking:

    @pytest.mark.asyncio
    async def test_one_transaction_per_chunk(self, readings):
        options = BulkServiceOptions(maximum_sent_elements=4)
        options.add(simple_mapping())
        connection = ScriptedConnection()
        await PostgreSqlBulkService(options).insert_all(connection, readings)
        assert [c.elements_count for c in connection.executed] == [4, 4, 2]
        assert len(connection.transactions) == 3
        assert connection.committed == 3
        assert [r.id for r in readings] == list(range(1, 11))

    @pytest.mark.asyncio
    async def test_mapping_batch_size_overrides_global(self, readings):
        options = BulkServiceOptions(maximum_sent_elements=4)
        options.add(simple_mapping(batch_size=5))
        connection = ScriptedConnection()
        await PostgreSqlBulkService(options).insert_all(connection, readings)
        assert len(connection.transactions) == 2

    @pytest.mark.asyncio
    async def test_zero_batch_size_sends_everything(self, service, connection, readings):
        await service.insert_all(connection, readings)
        assert len(connection.transactions) == 1

    @pytest.mark.asyncio
    async def test_chunk_of_only_none_skipped(self, readings):
        options = BulkServiceOptions(maximum_sent_elements=2)
        options.add(simple_mapping())
        connection = ScriptedConnection()
        items = [readings[0], readings[1], None, None, readings[2]]
        await PostgreSqlBulkService(options).insert_all(connection, items)
        assert len(connection.transactions) == 2
        assert readings[2].id == 3

    @pytest.mark.asyncio
    async def test_connection_opened_when_closed(self, service, readings):
        connection = ScriptedConnection(is_open=False)
        await service.insert_all(connection, readings)
        assert connection.open_calls == 1


class TestFailures:

    @pytest.mark.asyncio
    async def test_failing_chunk_rolled_back_earlier_kept(self, readings):
        options = BulkServiceOptions(maximum_sent_elements=4)
        options.add(simple_mapping())
        connection = ScriptedConnection(fail_on_execute=2)
        with pytest.raises(RuntimeError, match="connection reset"):
            await PostgreSqlBulkService(options).insert_all(connection, readings)

        first, second = connection.transactions
        first.commit.assert_awaited_once()
        first.rollback.assert_not_awaited()
        second.rollback.assert_awaited_once()
        second.commit.assert_not_awaited()
        assert [r.id for r in readings[:4]] == [1, 2, 3, 4]
        assert all(r.id is None for r in readings[4:])

    @pytest.mark.asyncio
    async def test_too_many_rows(self, service, readings):
        connection = ScriptedConnection(
            lambda command: [{"id": i} for i in range(command.elements_count + 1)]
        )
        with pytest.raises(InconsistentResultError, match="elements count: 10"):
            await service.insert_all(connection, readings)
        assert connection.rolled_back == 1
        assert connection.committed == 0

    @pytest.mark.asyncio
    async def test_missing_returned_column(self, service, readings):
        connection = ScriptedConnection(lambda command: [{"other": 1}])
        with pytest.raises(InconsistentResultError, match="no column 'id'"):
            await service.insert_all(connection, readings)
        assert connection.rolled_back == 1

    @pytest.mark.asyncio
    async def test_generation_error_before_transaction(self, readings):
        options = BulkServiceOptions()
        options.add(simple_mapping())
        service = PostgreSqlBulkService(
            options, insert_builder=InsertSqlCommandBuilder(max_parameters_per_command=1)
        )
        connection = ScriptedConnection()
        with pytest.raises(SqlGenerationError):
            await service.insert_all(connection, readings)
        assert connection.transactions == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("elements", [None, [], [None, None]])
    async def test_empty_input(self, service, connection, elements):
        with pytest.raises(EmptyCollectionError):
            await service.insert_all(connection, elements)
        assert connection.executed == []

    @pytest.mark.asyncio
    async def test_unmapped_type(self, service, connection):
        class Unmapped:
            pass

        with pytest.raises(MappingNotFoundError):
            await service.insert_all(connection, [Unmapped()])

    @pytest.mark.asyncio
    async def test_mixed_element_types(self, service, connection):
        with pytest.raises(TypeError, match="index 1"):
            await service.insert_all(connection, [SensorReading(), TaggedReading()])

    @pytest.mark.asyncio
    async def test_explicit_entity_type(self, service, connection):
        with pytest.raises(TypeError):
            await service.insert_all(connection, [SensorReading()], entity_type=TaggedReading)


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, service, connection, readings):
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(asyncio.CancelledError):
            await service.insert_all(connection, readings, cancel)
        assert connection.transactions == []

    @pytest.mark.asyncio
    async def test_cancelled_during_reconciliation(self, service, readings):
        cancel = asyncio.Event()

        def rows(command):
            cancel.set()
            return [{"id": 1}]

        connection = ScriptedConnection(rows)
        with pytest.raises(asyncio.CancelledError):
            await service.insert_all(connection, readings, cancel)
        assert connection.rolled_back == 1
        assert connection.committed == 0


class TestUpdateReconciliation:

    @pytest.mark.asyncio
    async def test_update_writes_returned_columns_only(self, service, tagged):
        for i, item in enumerate(tagged):
            item.id = i + 1

        def rows(command):
            return [{"id": 99, "record_id": f"v{i}"} for i in range(command.elements_count)]

        connection = ScriptedConnection(rows)
        await service.update_all(connection, tagged)
        assert [t.record_id for t in tagged] == ["v0", "v1", "v2", "v3"]
        assert [t.id for t in tagged] == [1, 2, 3, 4]
        assert connection.committed == 1

    @pytest.mark.asyncio
    async def test_statement_matching_no_row_leaves_its_element(self, service):
        items = [TaggedReading("a", "s", 1, id=1), TaggedReading("b", "s", 2, id=2)]
        connection = ScriptedConnection(lambda command: [[], [{"record_id": "from-row-2"}]])
        await service.update_all(connection, items)
        assert items[0].record_id == "a"
        assert items[1].record_id == "from-row-2"
        assert connection.committed == 1

    @pytest.mark.asyncio
    async def test_statement_returning_two_rows(self, service):
        items = [TaggedReading("a", "s", 1, id=1), TaggedReading("b", "s", 2, id=2)]
        connection = ScriptedConnection(
            lambda command: [[{"record_id": "x"}, {"record_id": "y"}], [{"record_id": "z"}]]
        )
        with pytest.raises(InconsistentResultError, match="elements count: 1"):
            await service.update_all(connection, items)
        assert connection.rolled_back == 1

    @pytest.mark.asyncio
    async def test_more_statement_results_than_statements(self, service):
        items = [TaggedReading("a", "s", 1, id=1)]
        connection = ScriptedConnection(lambda command: [[{"record_id": "x"}], [{"record_id": "y"}]])
        with pytest.raises(InconsistentResultError, match="more statements"):
            await service.update_all(connection, items)
        assert connection.rolled_back == 1

    @pytest.mark.asyncio
    async def test_update_without_returning(self, service, connection, readings):
        for i, item in enumerate(readings):
            item.id = i + 1
        await service.update_all(connection, readings)
        [command] = connection.executed
        assert not command.has_returning_clause
        assert command.elements_count == len(readings)
        assert connection.committed == 1

    @pytest.mark.asyncio
    async def test_execute_portion_direct(self, service, connection, readings):
        mapping = service.options.get_mapping(SensorReading)
        rows = await service.execute_portion(SqlOperation.INSERT, connection, readings[:3], mapping)
        assert rows == 3
        assert [r.id for r in readings[:3]] == [1, 2, 3]


def test_repr(service):
    assert repr(service) == "<PostgreSqlBulkService(types=3)>"


def test_default_builders_follow_options():
    options = BulkServiceOptions(max_parameters_per_command=100, inline_numeric_literals=True)
    service = PostgreSqlBulkService(options)
    assert service.insert_builder.max_parameters_per_command == 100
    assert service.insert_builder.inline_numeric_literals


def test_sequential_ids_skip_plain_commands():
    from pgsqlbulk import SqlCommandBuilderResult

    factory = sequential_ids()
    assert factory(SqlCommandBuilderResult("update x;", elements_count=3)) == []
