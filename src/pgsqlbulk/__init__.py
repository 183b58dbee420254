# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
pgsqlbulk: bulk insert and update for PostgreSQL with returned-value reconciliation.
"""

from .constants import PostgresDataType, SqlOperation
from .exceptions import (
    EmptyCollectionError,
    InconsistentResultError,
    MappingConfigurationError,
    MappingNotFoundError,
    PgSqlBulkError,
    SqlGenerationError,
)
from .pg_bulk_service import PostgreSqlBulkService
from .pg_command import SqlCommandBuilderResult, SqlParameter
from .pg_connection import AsyncpgConnection, DatabaseConnection, DatabaseTransaction
from .pg_insert_builder import InsertSqlCommandBuilder
from .pg_mapping import (
    BulkServiceOptions,
    EntityMapping,
    PropertyMapping,
    build_model_mapping,
    get_model_mapping,
    pg_entity,
    pg_field,
)
from .pg_update_builder import UpdateSqlCommandBuilder
from .settings import BulkSettings

__version__ = "0.1.0"

__all__ = [
    "AsyncpgConnection",
    "BulkServiceOptions",
    "BulkSettings",
    "DatabaseConnection",
    "DatabaseTransaction",
    "EmptyCollectionError",
    "EntityMapping",
    "InconsistentResultError",
    "InsertSqlCommandBuilder",
    "MappingConfigurationError",
    "MappingNotFoundError",
    "PgSqlBulkError",
    "PostgreSqlBulkService",
    "PostgresDataType",
    "PropertyMapping",
    "SqlCommandBuilderResult",
    "SqlGenerationError",
    "SqlOperation",
    "SqlParameter",
    "UpdateSqlCommandBuilder",
    "build_model_mapping",
    "get_model_mapping",
    "pg_entity",
    "pg_field",
]
