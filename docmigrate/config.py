"""Migration configuration.

Environment-based settings for the migration runner and the SurrealDB
backend, plus the explicit description of each migratable database.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Optional

# Collection/table names must be usable as SurrealDB identifiers and MongoDB
# collection names without quoting.
COLLECTION_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class MigrationSettings:
    """Runner-wide migration settings.

    Attributes:
        state_collection_name: Default collection holding version records
        stop_timeout: Seconds to wait for in-flight work when stopping
        connect_timeout: Store connection timeout in seconds
    """

    state_collection_name: str = field(
        default_factory=lambda: os.getenv("DOCMIGRATE_STATE_COLLECTION", "migration_state")
    )
    stop_timeout: float = field(
        default_factory=lambda: float(os.getenv("DOCMIGRATE_STOP_TIMEOUT", "30.0"))
    )
    connect_timeout: float = field(
        default_factory=lambda: float(os.getenv("DOCMIGRATE_CONNECT_TIMEOUT", "10.0"))
    )


@dataclass
class SurrealConfig:
    """SurrealDB connection configuration.

    The server URL is taken from each database's connection string; this
    holds the credentials and timeouts shared by all SurrealDB connections.

    Attributes:
        namespace: SurrealDB namespace for isolation
        user: Authentication username
        password: Authentication password
        connect_timeout: Connection timeout in seconds
        query_timeout: Query timeout in seconds
        skip_ssl_verify: Disable certificate checks for wss:// URLs
    """

    namespace: str = field(default_factory=lambda: os.getenv("SURREAL_NAMESPACE", "docmigrate"))
    user: str = field(default_factory=lambda: os.getenv("SURREAL_USER", "root"))
    password: str = field(
        default_factory=lambda: os.getenv("SURREAL_PASS", "root")  # Default for local development
    )
    connect_timeout: float = field(
        default_factory=lambda: float(os.getenv("SURREAL_CONNECT_TIMEOUT", "10.0"))
    )
    query_timeout: float = field(
        default_factory=lambda: float(os.getenv("SURREAL_QUERY_TIMEOUT", "30.0"))
    )
    skip_ssl_verify: bool = field(
        default_factory=lambda: os.getenv("SURREAL_SKIP_SSL_VERIFY", "false").lower() == "true"
    )

    def validate(self) -> list[str]:
        """Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.namespace:
            errors.append("SURREAL_NAMESPACE is required")

        if not self.user:
            errors.append("SURREAL_USER is required")

        if self.connect_timeout <= 0:
            errors.append("SURREAL_CONNECT_TIMEOUT must be positive")

        if self.query_timeout <= 0:
            errors.append("SURREAL_QUERY_TIMEOUT must be positive")

        return errors


@dataclass(frozen=True)
class MigratableDatabase:
    """A logical database managed by the migration runner.

    Attributes:
        alias: Stable identifier used by code and migration tags
        name: Actual database name in the store
        connection_string: Store URL (memory://, ws://, wss://, mongodb://)
        state_collection_name: Collection holding the version records
        fixed_target_version: Version to migrate to; latest when None
    """

    alias: str
    name: str
    connection_string: str
    state_collection_name: str = field(
        default_factory=lambda: get_settings().state_collection_name
    )
    fixed_target_version: Optional[int] = None

    def validate(self) -> list[str]:
        """Validate the database definition.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.alias:
            errors.append("Database alias is required")

        if not self.name:
            errors.append(f"Database name is required for '{self.alias}'")

        if not self.connection_string:
            errors.append(f"Connection string is required for '{self.alias}'")
        elif "://" not in self.connection_string:
            errors.append(
                f"Connection string for '{self.alias}' must include a scheme "
                "(memory://, ws://, wss://, mongodb://)"
            )

        if not COLLECTION_NAME_PATTERN.match(self.state_collection_name or ""):
            errors.append(
                f"Invalid state collection name for '{self.alias}': "
                f"{self.state_collection_name!r}"
            )

        return errors


# Global configuration instances
_settings: Optional[MigrationSettings] = None
_surreal_config: Optional[SurrealConfig] = None


def get_settings() -> MigrationSettings:
    """Get the global migration settings.

    Returns:
        MigrationSettings instance
    """
    global _settings
    if _settings is None:
        _settings = MigrationSettings()
    return _settings


def set_settings(settings: Optional[MigrationSettings]) -> None:
    """Set the global migration settings.

    Args:
        settings: Settings to use (None resets to environment defaults)
    """
    global _settings
    _settings = settings


def get_surreal_config() -> SurrealConfig:
    """Get the global SurrealDB configuration.

    Returns:
        SurrealConfig instance
    """
    global _surreal_config
    if _surreal_config is None:
        _surreal_config = SurrealConfig()
    return _surreal_config


def set_surreal_config(config: Optional[SurrealConfig]) -> None:
    """Set the global SurrealDB configuration.

    Args:
        config: Configuration to use (None resets to environment defaults)
    """
    global _surreal_config
    _surreal_config = config
