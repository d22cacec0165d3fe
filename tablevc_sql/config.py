"""
Configuration management for tablevc-sql.

All configuration can be loaded from environment variables. Components never
read ambient process-wide state: the configuration objects built here are
passed explicitly to Database, RecordTable and the logging setup.

Invariants:
    - All settings have sensible defaults for local development
    - The database URL must name an asyncio driver
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep environment variable names prefixed with TABLEVC_
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from sqlalchemy.engine import make_url

logger = logging.getLogger(__name__)

ASYNC_DRIVERS = ("aiosqlite", "asyncpg", "psycopg", "aiomysql", "asyncmy")
LOG_FORMATS = ("json", "text")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Attributes:
        url: SQLAlchemy URL with an asyncio driver
        echo: Log every SQL statement through the sqlalchemy.engine logger
        pool_pre_ping: Test pooled connections before handing them out
    """

    url: str = "sqlite+aiosqlite:///./tablevc.db"
    echo: bool = False
    pool_pre_ping: bool = False

    @classmethod
    def from_env(cls) -> DatabaseConfig:
        """Load configuration from environment variables."""
        return cls(
            url=os.getenv("TABLEVC_DATABASE_URL", "sqlite+aiosqlite:///./tablevc.db"),
            echo=_env_bool("TABLEVC_DATABASE_ECHO", "false"),
            pool_pre_ping=_env_bool("TABLEVC_DATABASE_PRE_PING", "false"),
        )

    @property
    def redacted_url(self) -> str:
        """URL safe for logging (password hidden)."""
        return make_url(self.url).render_as_string(hide_password=True)


@dataclass(frozen=True)
class TableConfig:
    """Record table mapper behavior.

    Attributes:
        generate_missing_id: Generate a key on insert when the record has none
        scope_deletes: Restrict deletes by the table's base filter
        strict_operators: Reject unknown comparison operators instead of
            falling back to equals
    """

    generate_missing_id: bool = True
    scope_deletes: bool = False
    strict_operators: bool = True

    @classmethod
    def from_env(cls) -> TableConfig:
        """Load configuration from environment variables."""
        return cls(
            generate_missing_id=_env_bool("TABLEVC_GENERATE_MISSING_ID", "true"),
            scope_deletes=_env_bool("TABLEVC_SCOPE_DELETES", "false"),
            strict_operators=_env_bool("TABLEVC_STRICT_OPERATORS", "true"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("TABLEVC_LOG_LEVEL", "INFO"),
            log_format=os.getenv("TABLEVC_LOG_FORMAT", "json"),
        )


@dataclass
class BackendConfig:
    """Complete backend configuration.

    Attributes:
        database: Database connection configuration
        table: Record table mapper configuration
        observability: Logging configuration
    """

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    table: TableConfig = field(default_factory=TableConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> BackendConfig:
        """Load complete configuration from environment variables.

        Returns:
            BackendConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            database=DatabaseConfig.from_env(),
            table=TableConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        driver = make_url(self.database.url).get_driver_name()
        if driver not in ASYNC_DRIVERS:
            raise ValueError(
                f"TABLEVC_DATABASE_URL must use an asyncio driver ({', '.join(ASYNC_DRIVERS)}), "
                f"got '{driver}'"
            )
        if self.observability.log_format not in LOG_FORMATS:
            raise ValueError(
                f"Invalid TABLEVC_LOG_FORMAT '{self.observability.log_format}'. "
                f"Must be one of: {', '.join(LOG_FORMATS)}"
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Backend configuration loaded",
            extra={
                "database_url": self.database.redacted_url,
                "database_echo": self.database.echo,
                "generate_missing_id": self.table.generate_missing_id,
                "scope_deletes": self.table.scope_deletes,
                "strict_operators": self.table.strict_operators,
                "log_level": self.observability.log_level,
            },
        )
