# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Bulk update command generation: one ``update`` statement per element, joined into a script.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Sequence, Tuple

from .constants import ErrorMessages, LoggingConstants, SqlConstants, SqlOperation
from .exceptions import EmptyCollectionError, SqlGenerationError
from .pg_command import SqlCommandBuilderResult, SqlParameter, command_size, raise_if_cancelled
from .pg_mapping import EntityMapping

logger = logging.getLogger(__name__)


class UpdateSqlCommandBuilder:
    """Generates a multi-statement update script for a collection."""

    def generate(
        self,
        elements: Optional[Sequence[Any]],
        mapping: EntityMapping,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[SqlCommandBuilderResult]:
        """
        Generate an update script for a collection of elements.

        Args:
            elements: Elements to update; None entries are skipped
            mapping: Mapping of the element type
            cancel_event: Optional cancellation signal checked per element

        Returns:
            A list holding exactly one result

        Raises:
            EmptyCollectionError: No element to update
            SqlGenerationError: The mapping has no key, nothing can be set, or a
                property value can not be evaluated
        """
        if not elements:
            raise EmptyCollectionError()
        mapping.validate()
        self._validate_mapping(mapping)

        logger.debug(LoggingConstants.GENERATING_UPDATE, len(elements))
        logger.debug(LoggingConstants.ENTITY_TYPE, mapping.entity_name, len(elements))
        raise_if_cancelled(cancel_event)

        statements: List[str] = []
        parameters: List[SqlParameter] = []
        has_returning_clause = False
        for item in elements:
            if item is None:
                continue
            raise_if_cancelled(cancel_event)
            command, item_parameters, has_returning_clause = self.generate_for_item(
                mapping, item, len(statements)
            )
            statements.append(command)
            parameters.extend(item_parameters)

        if not statements:
            raise EmptyCollectionError()

        script = SqlConstants.STATEMENT_SEPARATOR.join(statements)
        if logger.isEnabledFor(logging.INFO):
            size, unit = command_size(script)
            logger.info(LoggingConstants.UPDATE_GENERATED, len(statements), mapping.entity_name, size, unit)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(LoggingConstants.RESULT_COMMAND, script)

        return [
            SqlCommandBuilderResult(
                command=script,
                parameters=parameters,
                has_returning_clause=has_returning_clause,
                elements_count=len(statements),
                statement_sizes=[1] * len(statements),
            )
        ]

    def generate_for_item(
        self, mapping: EntityMapping, item: Any, element_index: int
    ) -> Tuple[str, List[SqlParameter], bool]:
        """
        Generate the update statement of one element.

        Args:
            mapping: Mapping of the element type
            item: The element
            element_index: Position of the element in the script, appended to parameter names

        Returns:
            Tuple of (statement, parameters, has returning clause)
        """
        self._validate_mapping(mapping)
        set_clause: List[str] = []
        where_clause: List[str] = []
        returning_clause: List[str] = []
        parameters: List[SqlParameter] = []

        for prop in mapping.properties.values():
            name = prop.parameter_name(element_index)
            if prop.is_key or not prop.is_auto_generated:
                try:
                    value = prop.get_value(item)
                except Exception as e:
                    raise SqlGenerationError(
                        SqlOperation.UPDATE,
                        ErrorMessages.PARAMETER_EVALUATION_FAILED.format(parameter=name),
                        e,
                    ) from e
                # || S.1: Bound once even when the column is both set and matched on
                parameters.append(SqlParameter(name, prop.column_type, value, prop.is_nullable))

            assignment = f"{prop.quoted_column}{SqlConstants.EQUALS}{name}"
            if prop.is_key:
                where_clause.append(assignment)
            if prop.returns_after_update:
                returning_clause.append(prop.quoted_column)
            if not prop.is_auto_generated:
                set_clause.append(assignment)

        where_separator = f" {SqlConstants.AND} "
        command = (
            f"{SqlConstants.UPDATE} {mapping.qualified_table_name} "
            f"{SqlConstants.SET} {SqlConstants.FIELD_SEPARATOR.join(set_clause)} "
            f"{SqlConstants.WHERE} {where_separator.join(where_clause)}"
        )
        if returning_clause:
            command += f" {SqlConstants.RETURNING} {SqlConstants.FIELD_SEPARATOR.join(returning_clause)}"
        command += SqlConstants.STATEMENT_TERMINATOR
        return command, parameters, bool(returning_clause)

    @staticmethod
    def _validate_mapping(mapping: EntityMapping) -> None:
        if not mapping.key_properties:
            raise SqlGenerationError(
                SqlOperation.UPDATE, ErrorMessages.MISSING_KEY.format(entity_name=mapping.entity_name)
            )
        if all(prop.is_auto_generated for prop in mapping.properties.values()):
            raise SqlGenerationError(
                SqlOperation.UPDATE, ErrorMessages.NOTHING_TO_SET.format(entity_name=mapping.entity_name)
            )
