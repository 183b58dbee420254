# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Exception hierarchy for pgsqlbulk.

Configuration and validation errors also derive from the builtin exception a
caller would naturally catch (``ValueError`` / ``KeyError``), so code that does
not know about pgsqlbulk still handles them sensibly.
"""

from __future__ import annotations

from typing import Optional

from .constants import ErrorMessages, SqlOperation


class PgSqlBulkError(Exception):
    """Base class of every error raised by pgsqlbulk."""


class MappingConfigurationError(PgSqlBulkError, ValueError):
    """
    Raised while an entity mapping is being declared or registered.

    Examples:
    - Duplicate column
    - Accessor that is not a plain attribute name
    - Missing table identity

    These errors are fatal for the entity type: the mapping can not be used.
    """


class MappingNotFoundError(PgSqlBulkError, KeyError):
    """Raised when no mapping is registered for an entity type."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable
        return str(self.args[0]) if self.args else ""


class EmptyCollectionError(PgSqlBulkError, ValueError):
    """Raised before any SQL is built when there is nothing to write."""

    def __init__(self, message: str = ErrorMessages.EMPTY_COLLECTION):
        super().__init__(message)


class SqlGenerationError(PgSqlBulkError):
    """
    Raised when a command builder can not produce a command.

    The original error, if any, is chained as ``__cause__``. No partial command
    is ever returned together with this error.
    """

    def __init__(self, operation: SqlOperation, message: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(
            ErrorMessages.GENERATION_FAILED.format(operation=operation.value, message=message)
        )


class InconsistentResultError(PgSqlBulkError):
    """
    Raised when the database returns more rows than there are elements to reconcile.

    Rows are matched to elements by position only, so extra rows mean the
    reconciliation can not be trusted for the whole chunk.
    """
