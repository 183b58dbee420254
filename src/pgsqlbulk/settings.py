# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Configuration Settings.

Bulk settings are loaded from ``PGSQLBULK_*`` environment variables and the
``.env`` file, e.g. ``PGSQLBULK_MAXIMUM_SENT_ELEMENTS=5000``.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import ErrorMessages, PerformanceConstants, SettingsConstants


class BulkSettings(BaseSettings):
    """Environment-driven defaults for the bulk service."""

    maximum_sent_elements: int = Field(
        default=PerformanceConstants.DEFAULT_MAXIMUM_SENT_ELEMENTS,
        ge=0,
        description="Default number of elements sent per round trip, 0 disables splitting",
    )
    max_parameters_per_command: int = Field(
        default=PerformanceConstants.MAX_PARAMETERS_PER_COMMAND,
        description="Ceiling of bound parameters in one insert statement",
    )
    inline_numeric_literals: bool = Field(
        default=False,
        description="Render numeric and boolean values as SQL literals",
    )
    dsn: Optional[str] = Field(default=None, description="PostgreSQL connection string")

    model_config = SettingsConfigDict(
        env_prefix=SettingsConstants.ENV_PREFIX,
        env_file=SettingsConstants.ENV_FILE,
        env_file_encoding=SettingsConstants.ENV_FILE_ENCODING,
        extra="ignore",
    )

    @field_validator("max_parameters_per_command")
    @classmethod
    def _check_parameter_limit(cls, value: int) -> int:
        limit = PerformanceConstants.MAX_PARAMETERS_PER_COMMAND
        if not 1 <= value <= limit:
            raise ValueError(ErrorMessages.INVALID_PARAMETER_LIMIT.format(limit=limit, value=value))
        return value
