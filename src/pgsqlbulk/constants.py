# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Constants module for pgsqlbulk.

This module centralizes all constants, configuration defaults, and literal strings
used throughout the pgsqlbulk codebase. No magic values are allowed elsewhere.

:module: constants
:synopsis: Centralized constants and configuration defaults for pgsqlbulk
:author: pgsqlbulk Contributors
"""

from __future__ import annotations

from enum import Enum, StrEnum
from typing import Final


# ============================================================================
# SQL OPERATIONS
# ============================================================================

class SqlOperation(Enum):
    """
    Kind of write operation a command is generated for.

    :class: SqlOperation
    :synopsis: Enumeration of supported bulk write operations
    """

    INSERT = "insert"
    UPDATE = "update"


# ============================================================================
# POSTGRESQL DATA TYPE CONSTANTS
# ============================================================================

class PostgresDataType(StrEnum):
    """Constants for PostgreSQL column types."""

    # @@ STEP 1: Define integer types
    SMALLINT: Final[str] = "smallint"
    INTEGER: Final[str] = "integer"
    BIGINT: Final[str] = "bigint"

    # @@ STEP 2: Define floating point and exact numeric types
    REAL: Final[str] = "real"
    DOUBLE: Final[str] = "double precision"
    NUMERIC: Final[str] = "numeric"

    # @@ STEP 3: Define string types
    TEXT: Final[str] = "text"
    VARCHAR: Final[str] = "varchar"
    CHAR: Final[str] = "char"

    # @@ STEP 4: Define boolean types
    BOOLEAN: Final[str] = "boolean"

    # @@ STEP 5: Define temporal types
    DATE: Final[str] = "date"
    TIME: Final[str] = "time"
    TIMESTAMP: Final[str] = "timestamp"
    TIMESTAMP_TZ: Final[str] = "timestamptz"
    INTERVAL: Final[str] = "interval"

    # @@ STEP 6: Define binary and identifier types
    BYTEA: Final[str] = "bytea"
    UUID: Final[str] = "uuid"

    # @@ STEP 7: Define document types
    JSON: Final[str] = "json"
    JSONB: Final[str] = "jsonb"


# ============================================================================
# SQL GENERATION CONSTANTS
# ============================================================================

class SqlConstants(StrEnum):
    """SQL text fragments used by the command builders."""

    # @@ STEP 1: Define statement keywords
    INSERT_INTO: Final[str] = "insert into"
    VALUES: Final[str] = "values"
    UPDATE: Final[str] = "update"
    SET: Final[str] = "set"
    WHERE: Final[str] = "where"
    AND: Final[str] = "and"
    RETURNING: Final[str] = "returning"
    NULL: Final[str] = "null"
    TRUE: Final[str] = "true"
    FALSE: Final[str] = "false"

    # @@ STEP 2: Define formatting constants
    STATEMENT_TERMINATOR: Final[str] = ";"
    STATEMENT_SEPARATOR: Final[str] = "\n"
    FIELD_SEPARATOR: Final[str] = ", "
    IDENTIFIER_QUOTE: Final[str] = '"'
    ESCAPED_IDENTIFIER_QUOTE: Final[str] = '""'
    QUALIFIED_NAME_SEPARATOR: Final[str] = "."
    TUPLE_OPEN: Final[str] = "("
    TUPLE_CLOSE: Final[str] = ")"
    EQUALS: Final[str] = "="

    # @@ STEP 3: Define parameter naming
    PARAMETER_NAME_TEMPLATE: Final[str] = "@param_{token}_{index}"
    # || S.1: Column characters outside this set are replaced in parameter names
    PARAMETER_TOKEN_INVALID_CHARS: Final[str] = r"[^0-9A-Za-z_]"
    PARAMETER_TOKEN_REPLACEMENT: Final[str] = "_"
    PARAMETER_PATTERN: Final[str] = r"@param_\w+"
    POSITIONAL_PARAMETER_TEMPLATE: Final[str] = "${position}::{db_type}"


class PerformanceConstants:
    """Limits and defaults for bulk processing."""

    # @@ STEP 1: Define protocol limits
    # || S.1: The wire protocol carries the parameter count as a 16-bit integer
    MAX_PARAMETERS_PER_COMMAND: Final[int] = 65_535

    # @@ STEP 2: Define batch defaults
    # || S.1: 0 means the collection is not split by element count
    DEFAULT_MAXIMUM_SENT_ELEMENTS: Final[int] = 0

    # @@ STEP 3: Define size estimates
    BYTES_PER_CHARACTER: Final[int] = 2


class SizeConstants:
    """Units used to prettify command sizes in log output."""

    KILOBYTE: Final[int] = 1024
    UNITS: Final[tuple[str, ...]] = ("B", "KB", "MB", "GB")


class SettingsConstants:
    """Environment configuration constants."""

    ENV_PREFIX: Final[str] = "PGSQLBULK_"
    ENV_FILE: Final[str] = ".env"
    ENV_FILE_ENCODING: Final[str] = "utf-8"


class ModelMetadataConstants:
    """Attribute names attached to mapped model classes."""

    ENTITY_MAPPING_ATTR: Final[str] = "__pg_entity_mapping__"
    FIELD_METADATA_KEY: Final[str] = "pg_metadata"


# ============================================================================
# ERROR MESSAGES
# ============================================================================

class ErrorMessages:
    """Error message constants."""

    # @@ STEP 1: Define mapping configuration errors
    EMPTY_COLUMN_NAME: Final[str] = "Column name of property '{attribute}' must not be empty"
    INVALID_ACCESSOR: Final[str] = (
        "Property accessor '{attribute}' of {entity_name} is not a simple attribute reference"
    )
    UNKNOWN_ATTRIBUTE: Final[str] = "Attribute '{attribute}' is not a field of {entity_name}"
    DUPLICATE_COLUMN: Final[str] = "Column '{column}' is already mapped for {entity_name}"
    DUPLICATE_PARAMETER_TOKEN: Final[str] = (
        "Column '{column}' of {entity_name} has the same parameter name as column '{other}'"
    )
    MISSING_TABLE_NAME: Final[str] = "Table name is not defined for {entity_name}"
    NO_PROPERTIES: Final[str] = "No properties are mapped for {entity_name}"
    UNKNOWN_COLUMN_TYPE: Final[str] = "Unknown column type '{column_type}' for column '{column}'"
    NEGATIVE_BATCH_SIZE: Final[str] = "Batch size must not be negative, got {batch_size}"
    MAPPING_FROZEN: Final[str] = "Mapping of {entity_name} is frozen and can no longer be changed"
    DUPLICATE_MAPPING: Final[str] = "Mapping for type '{entity_name}' is already registered"
    MAPPING_NOT_FOUND: Final[str] = "Mapping for type '{entity_name}' was not found"
    NOT_A_MODEL: Final[str] = "{entity_name} is not decorated with @pg_entity"
    INVALID_MODEL_TYPE: Final[str] = "Invalid entity type: expected a class, got {actual}"

    # @@ STEP 2: Define input validation errors
    EMPTY_COLLECTION: Final[str] = (
        "There is no elements in the collection. At least one element must be."
    )
    MIXED_ELEMENT_TYPES: Final[str] = (
        "Element at index {index} is {actual}, expected an instance of {expected}"
    )

    # @@ STEP 3: Define generation errors
    GENERATION_FAILED: Final[str] = "Failed to generate {operation} command: {message}"
    PROPERTY_EVALUATION_FAILED: Final[str] = (
        "an error occurred while processing property '{column}' of {entity_name}, item idx: {index}"
    )
    PARAMETER_EVALUATION_FAILED: Final[str] = "an error occurred while calculating {parameter}"
    MISSING_KEY: Final[str] = "There is no key property defined for the entity type: '{entity_name}'"
    NOTHING_TO_SET: Final[str] = "There is no updatable property defined for the entity type: '{entity_name}'"
    TUPLE_EXCEEDS_LIMIT: Final[str] = (
        "One element of {entity_name} needs {needed} parameters, the limit per command is {limit}"
    )

    # @@ STEP 4: Define execution errors
    TOO_MANY_ROWS: Final[str] = (
        "There is no more items in the elements collection, but reader still has tuples to read. "
        "elements count: {count}"
    )
    TOO_MANY_STATEMENT_RESULTS: Final[str] = (
        "The database returned results for more statements than the command holds: {count}"
    )
    MISSING_RETURNED_COLUMN: Final[str] = "Returned row has no column '{column}'"
    MISSING_PARAMETER: Final[str] = "Parameter '{parameter}' is referenced but not bound"
    CONNECTION_NOT_CONFIGURED: Final[str] = "Either an asyncpg connection or a dsn must be provided"

    # @@ STEP 5: Define settings errors
    INVALID_PARAMETER_LIMIT: Final[str] = (
        "max_parameters_per_command must be between 1 and {limit}, got {value}"
    )


# ============================================================================
# LOG MESSAGES
# ============================================================================

class LoggingConstants:
    """Log message templates."""

    GENERATING_INSERT: Final[str] = "Generating insert sql for %d elements."
    GENERATING_UPDATE: Final[str] = "Generating update sql for %d elements."
    ENTITY_TYPE: Final[str] = "entity type: %s, elements count: %d"
    COLUMNS: Final[str] = "columns: %s"
    RETURNING_COLUMNS: Final[str] = "returning clause: %s"
    INSERT_GENERATED: Final[str] = (
        "Generated sql insert command for %d %s elements, command size %.2f %s"
    )
    UPDATE_GENERATED: Final[str] = (
        "Generated sql update script for %d %s elements, command size %.2f %s"
    )
    RESULT_COMMAND: Final[str] = "result command: %s"
    CHUNK_STARTED: Final[str] = "Processing chunk %d of %s: %d elements"
    CHUNK_COMMITTED: Final[str] = "Chunk %d of %s committed, %d rows reconciled"
    CHUNK_ROLLED_BACK: Final[str] = "%s chunk of %s rolled back: %s: %s"
    CHUNK_SKIPPED: Final[str] = "Chunk %d of %s contains only null elements, skipped"
    OPENING_CONNECTION: Final[str] = "Opening database connection"
    EXECUTING_STATEMENT: Final[str] = "Executing statement %d of %d with %d parameters"
