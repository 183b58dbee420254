# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Column type handling: type tags, inference from annotations and literal rendering.

A value is only ever written into SQL text as a literal when its column type is in
a category that can be rendered without injection or precision loss. Everything
else is sent as a bound parameter.
"""

from __future__ import annotations

import datetime
import decimal
import math
import types
import uuid
from typing import Any, Callable, Dict, Optional, Tuple, Union, get_args, get_origin

from .constants import ErrorMessages, PostgresDataType, SqlConstants
from .exceptions import MappingConfigurationError


# -----------------------------------------------------------------------------
# Type tag resolution
# -----------------------------------------------------------------------------

_TYPE_ALIASES: Dict[str, PostgresDataType] = {
    "int": PostgresDataType.INTEGER,
    "int2": PostgresDataType.SMALLINT,
    "int4": PostgresDataType.INTEGER,
    "int8": PostgresDataType.BIGINT,
    "float4": PostgresDataType.REAL,
    "float8": PostgresDataType.DOUBLE,
    "decimal": PostgresDataType.NUMERIC,
    "bool": PostgresDataType.BOOLEAN,
    "character varying": PostgresDataType.VARCHAR,
    "timestamp with time zone": PostgresDataType.TIMESTAMP_TZ,
    "timestamp without time zone": PostgresDataType.TIMESTAMP,
}


def resolve_column_type(column_type: Union[PostgresDataType, str], column: str) -> PostgresDataType:
    """
    Normalize a type tag given by the caller.

    Args:
        column_type: Enum member, its value, or a common PostgreSQL alias
        column: Column name, used in the error message

    Raises:
        MappingConfigurationError: If the tag is not a known type
    """
    if isinstance(column_type, PostgresDataType):
        return column_type
    tag = str(column_type).strip().lower()
    if tag in _TYPE_ALIASES:
        return _TYPE_ALIASES[tag]
    try:
        return PostgresDataType(tag)
    except ValueError as e:
        raise MappingConfigurationError(
            ErrorMessages.UNKNOWN_COLUMN_TYPE.format(column_type=column_type, column=column)
        ) from e


# -----------------------------------------------------------------------------
# Inference from Python annotations
# -----------------------------------------------------------------------------

# Order matters: bool before int, datetime before date
_PYTHON_TYPE_MAP: Tuple[Tuple[type, PostgresDataType], ...] = (
    (bool, PostgresDataType.BOOLEAN),
    (int, PostgresDataType.INTEGER),
    (float, PostgresDataType.DOUBLE),
    (decimal.Decimal, PostgresDataType.NUMERIC),
    (str, PostgresDataType.TEXT),
    (datetime.datetime, PostgresDataType.TIMESTAMP),
    (datetime.date, PostgresDataType.DATE),
    (datetime.time, PostgresDataType.TIME),
    (datetime.timedelta, PostgresDataType.INTERVAL),
    (uuid.UUID, PostgresDataType.UUID),
    (bytes, PostgresDataType.BYTEA),
    (bytearray, PostgresDataType.BYTEA),
    (dict, PostgresDataType.JSONB),
)


def infer_column_type(annotation: Any) -> Tuple[PostgresDataType, bool]:
    """
    Infer a column type and nullability from a field annotation.

    ``Optional[X]`` and ``X | None`` are nullable. Unknown or missing annotations
    map to text.

    Returns:
        Tuple of (column type, is nullable)
    """
    nullable = False
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        nullable = len(args) != len(get_args(annotation))
        annotation = args[0] if len(args) == 1 else None
        origin = get_origin(annotation)

    if origin is not None:
        annotation = origin

    if isinstance(annotation, type):
        for python_type, db_type in _PYTHON_TYPE_MAP:
            if issubclass(annotation, python_type):
                return db_type, nullable
    return PostgresDataType.TEXT, nullable


# -----------------------------------------------------------------------------
# Literal rendering
# -----------------------------------------------------------------------------

# Value types each literal-safe column type accepts as a literal. Exact type
# match: a bool is not an integer here, a float is not rendered into an integer column.
_LITERAL_VALUE_TYPES: Dict[PostgresDataType, Tuple[type, ...]] = {
    PostgresDataType.SMALLINT: (int,),
    PostgresDataType.INTEGER: (int,),
    PostgresDataType.BIGINT: (int,),
    PostgresDataType.REAL: (float, int),
    PostgresDataType.DOUBLE: (float, int),
    PostgresDataType.NUMERIC: (decimal.Decimal, int, float),
    PostgresDataType.BOOLEAN: (bool,),
}

LITERAL_SAFE_TYPES = frozenset(_LITERAL_VALUE_TYPES)


def is_literal_safe(db_type: PostgresDataType) -> bool:
    """Whether values of this column type may be rendered as SQL text."""
    return db_type in LITERAL_SAFE_TYPES


class LiteralRendererRegistry:
    """Registry of renderers for values that are safe to inline as SQL literals."""

    _renderers: Dict[type, Callable[[Any], Optional[str]]] = {}

    @classmethod
    def register_renderer(cls, value_type: type, renderer: Callable[[Any], Optional[str]]) -> None:
        """Register a renderer for a specific type."""
        cls._renderers[value_type] = renderer

    @classmethod
    def render(cls, db_type: PostgresDataType, value: Any) -> Optional[str]:
        """
        Render a value as a SQL literal.

        Returns None when the value has to be bound as a parameter instead: the
        column type is not literal-safe, the value does not belong to the column
        type, the value type has no renderer, or the renderer refuses the value
        (NaN, infinities).
        """
        value_type = type(value)
        if value_type not in _LITERAL_VALUE_TYPES.get(db_type, ()):
            return None
        # Direct type-based dispatch only
        renderer = cls._renderers.get(value_type)
        if renderer is None:
            return None
        return renderer(value)

    @staticmethod
    def _bool_renderer(value: bool) -> str:
        return SqlConstants.TRUE if value else SqlConstants.FALSE

    @staticmethod
    def _int_renderer(value: int) -> str:
        return str(value)

    @staticmethod
    def _float_renderer(value: float) -> Optional[str]:
        if not math.isfinite(value):
            return None
        return repr(value)

    @staticmethod
    def _decimal_renderer(value: decimal.Decimal) -> Optional[str]:
        if not value.is_finite():
            return None
        return str(value)


LiteralRendererRegistry.register_renderer(bool, LiteralRendererRegistry._bool_renderer)
LiteralRendererRegistry.register_renderer(int, LiteralRendererRegistry._int_renderer)
LiteralRendererRegistry.register_renderer(float, LiteralRendererRegistry._float_renderer)
LiteralRendererRegistry.register_renderer(decimal.Decimal, LiteralRendererRegistry._decimal_renderer)


def quote_identifier(name: str) -> str:
    """Double-quote an identifier, doubling embedded quotes."""
    escaped = name.replace(SqlConstants.IDENTIFIER_QUOTE, SqlConstants.ESCAPED_IDENTIFIER_QUOTE)
    return f"{SqlConstants.IDENTIFIER_QUOTE}{escaped}{SqlConstants.IDENTIFIER_QUOTE}"
