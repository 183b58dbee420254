# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Generated command containers shared by the builders, the bulk service and the driver glue.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .constants import PerformanceConstants, PostgresDataType, SizeConstants


@dataclass(frozen=True)
class SqlParameter:
    """A named, typed bound parameter."""
    name: str
    db_type: PostgresDataType
    value: Any
    is_nullable: bool = True


@dataclass
class SqlCommandBuilderResult:
    """
    One generated command ready to be executed.

    :class: SqlCommandBuilderResult
    :synopsis: Command text, its parameters and the number of elements it covers
    """
    command: str
    parameters: List[SqlParameter] = field(default_factory=list)
    has_returning_clause: bool = False
    elements_count: int = 0
    statement_sizes: List[int] = field(default_factory=list)

    def elements_per_statement(self) -> List[int]:
        """Number of elements each statement of the command covers, in order."""
        return list(self.statement_sizes) or [self.elements_count]

    def parameters_by_name(self) -> Dict[str, SqlParameter]:
        return {param.name: param for param in self.parameters}

    def __str__(self) -> str:
        return self.command


def prettify_size(size: int) -> Tuple[float, str]:
    """Convert a byte count to (value, unit) for log output."""
    value = float(size)
    for unit in SizeConstants.UNITS[:-1]:
        if value < SizeConstants.KILOBYTE:
            return value, unit
        value /= SizeConstants.KILOBYTE
    return value, SizeConstants.UNITS[-1]


def command_size(command: str) -> Tuple[float, str]:
    return prettify_size(len(command) * PerformanceConstants.BYTES_PER_CHARACTER)


def raise_if_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    """Cooperative cancellation check used inside generation and reconciliation loops."""
    if cancel_event is not None and cancel_event.is_set():
        raise asyncio.CancelledError()
