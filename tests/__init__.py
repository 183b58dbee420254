# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Test suite for pgsqlbulk.

This package contains tests for all components of pgsqlbulk:
- Mapping declaration and registry
- Insert and update command generation
- Chunked execution and reconciliation against a scripted connection
- asyncpg glue and environment settings
"""

# Isolate tests from PGSQLBULK_* variables of the developer shell
from . import _env  # noqa: F401  # pylint: disable=unused-import
