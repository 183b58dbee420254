# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Bulk insert command generation.

Elements are rendered as the value tuples of multi-row ``insert ... values``
statements. The number of bound parameters of one statement is capped, so a large
collection may produce several statements; each one remembers how many elements
it covers so returned rows can be matched back to the right elements.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from .constants import (
    ErrorMessages,
    LoggingConstants,
    PerformanceConstants,
    SqlConstants,
    SqlOperation,
)
from .exceptions import EmptyCollectionError, SqlGenerationError
from .pg_command import SqlCommandBuilderResult, SqlParameter, command_size, raise_if_cancelled
from .pg_mapping import BulkServiceOptions, EntityMapping, PropertyMapping
from .pg_types import LiteralRendererRegistry

logger = logging.getLogger(__name__)

# (property, value, literal text or None when the value must be bound)
_EvaluatedValue = Tuple[PropertyMapping, Any, Optional[str]]


class InsertSqlCommandBuilder:
    """Generates ``insert into ... values ... returning ...`` commands for a collection."""

    def __init__(
        self,
        max_parameters_per_command: int = PerformanceConstants.MAX_PARAMETERS_PER_COMMAND,
        inline_numeric_literals: bool = False,
    ):
        """
        Args:
            max_parameters_per_command: Ceiling of bound parameters in one statement
            inline_numeric_literals: Render literal-safe values as SQL text instead of parameters
        """
        self.max_parameters_per_command = max_parameters_per_command
        self.inline_numeric_literals = inline_numeric_literals

    @classmethod
    def from_options(cls, options: BulkServiceOptions) -> "InsertSqlCommandBuilder":
        return cls(
            max_parameters_per_command=options.max_parameters_per_command,
            inline_numeric_literals=options.inline_numeric_literals,
        )

    def generate(
        self,
        elements: Optional[Sequence[Any]],
        mapping: EntityMapping,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[SqlCommandBuilderResult]:
        """
        Generate insert commands for a collection of elements.

        Args:
            elements: Elements to insert; None entries are skipped
            mapping: Mapping of the element type
            cancel_event: Optional cancellation signal checked per element

        Returns:
            One result per physical statement, in element order

        Raises:
            EmptyCollectionError: No element to insert
            SqlGenerationError: A property value can not be evaluated or one
                element alone exceeds the parameter ceiling
        """
        if not elements:
            raise EmptyCollectionError()
        mapping.validate()

        logger.debug(LoggingConstants.GENERATING_INSERT, len(elements))
        logger.debug(LoggingConstants.ENTITY_TYPE, mapping.entity_name, len(elements))

        columns, returning_clause = self.generate_columns_and_returning_clauses(
            mapping.properties.values()
        )
        raise_if_cancelled(cancel_event)

        header = (
            f"{SqlConstants.INSERT_INTO} {mapping.qualified_table_name} "
            f"{SqlConstants.TUPLE_OPEN}{columns}{SqlConstants.TUPLE_CLOSE} {SqlConstants.VALUES} "
        )
        result: List[SqlCommandBuilderResult] = []
        tuples: List[str] = []
        parameters: List[SqlParameter] = []

        for element_abs_index, item in enumerate(elements):
            if item is None:
                continue
            raise_if_cancelled(cancel_event)

            values = self._evaluate(item, mapping, element_abs_index)
            needed = sum(1 for _, _, literal in values if literal is None)
            if needed > self.max_parameters_per_command:
                raise SqlGenerationError(
                    SqlOperation.INSERT,
                    ErrorMessages.TUPLE_EXCEEDS_LIMIT.format(
                        entity_name=mapping.entity_name,
                        needed=needed,
                        limit=self.max_parameters_per_command,
                    ),
                )

            # @@ STEP: Split at element boundaries only
            if tuples and len(parameters) + needed > self.max_parameters_per_command:
                result.append(self._close(header, tuples, parameters, returning_clause, mapping))
                tuples = []
                parameters = []

            tuple_text, tuple_parameters = self._render_tuple(values, len(tuples))
            tuples.append(tuple_text)
            parameters.extend(tuple_parameters)

        if not tuples:
            raise EmptyCollectionError()
        result.append(self._close(header, tuples, parameters, returning_clause, mapping))
        return result

    def generate_columns_and_returning_clauses(
        self, properties: Iterable[PropertyMapping]
    ) -> Tuple[str, str]:
        """
        In one pass generate both the column list and the returning list.

        Returns:
            Tuple of (columns, returning columns). The returning part is an empty
            string when no property is read back after insert.
        """
        columns: List[str] = []
        returning: List[str] = []
        for prop in properties:
            if prop.returns_after_insert:
                returning.append(prop.quoted_column)
            if prop.is_auto_generated:
                continue
            columns.append(prop.quoted_column)

        columns_text = SqlConstants.FIELD_SEPARATOR.join(columns)
        returning_text = SqlConstants.FIELD_SEPARATOR.join(returning)
        logger.debug(LoggingConstants.COLUMNS, columns_text)
        logger.debug(LoggingConstants.RETURNING_COLUMNS, returning_text)
        return columns_text, returning_text

    def _evaluate(self, item: Any, mapping: EntityMapping, element_abs_index: int) -> List[_EvaluatedValue]:
        values: List[_EvaluatedValue] = []
        for prop in mapping.properties.values():
            if prop.is_auto_generated:
                continue
            try:
                value = prop.get_value(item)
            except Exception as e:
                raise SqlGenerationError(
                    SqlOperation.INSERT,
                    ErrorMessages.PROPERTY_EVALUATION_FAILED.format(
                        column=prop.column, entity_name=mapping.entity_name, index=element_abs_index
                    ),
                    e,
                ) from e

            if value is None:
                # || S.1: Parameters are limited, nulls are cheaper as literals
                literal: Optional[str] = SqlConstants.NULL
            elif self.inline_numeric_literals:
                literal = LiteralRendererRegistry.render(prop.column_type, value)
            else:
                literal = None
            values.append((prop, value, literal))
        return values

    @staticmethod
    def _render_tuple(values: List[_EvaluatedValue], element_index: int) -> Tuple[str, List[SqlParameter]]:
        parts: List[str] = []
        parameters: List[SqlParameter] = []
        for prop, value, literal in values:
            if literal is not None:
                parts.append(literal)
                continue
            name = prop.parameter_name(element_index)
            parameters.append(SqlParameter(name, prop.column_type, value, prop.is_nullable))
            parts.append(name)
        text = f"{SqlConstants.TUPLE_OPEN}{SqlConstants.FIELD_SEPARATOR.join(parts)}{SqlConstants.TUPLE_CLOSE}"
        return text, parameters

    @staticmethod
    def _close(
        header: str,
        tuples: List[str],
        parameters: List[SqlParameter],
        returning_clause: str,
        mapping: EntityMapping,
    ) -> SqlCommandBuilderResult:
        has_returning_clause = bool(returning_clause)
        command = header + SqlConstants.FIELD_SEPARATOR.join(tuples)
        if has_returning_clause:
            command += f" {SqlConstants.RETURNING} {returning_clause}"
        command += SqlConstants.STATEMENT_TERMINATOR

        if logger.isEnabledFor(logging.INFO):
            size, unit = command_size(command)
            logger.info(LoggingConstants.INSERT_GENERATED, len(tuples), mapping.entity_name, size, unit)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(LoggingConstants.RESULT_COMMAND, command)

        return SqlCommandBuilderResult(
            command=command,
            parameters=list(parameters),
            has_returning_clause=has_returning_clause,
            elements_count=len(tuples),
            statement_sizes=[len(tuples)],
        )
