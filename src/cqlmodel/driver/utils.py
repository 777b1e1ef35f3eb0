"""Utility functions for database operations.

Extracts common DB logic from CLI for reuse and testability.
"""

from typing import Optional

from cqlmodel.config import Config
from cqlmodel.driver.client import CassandraClient
from cqlmodel.schema.introspect import SchemaIntrospector
from cqlmodel.schema.models import LiveSchema


def build_config_and_validate(
    *,
    keyspace: Optional[str] = None,
    contact_points: Optional[str] = None,
    migration: Optional[str] = None,
    environment: Optional[str] = None,
) -> Config:
    """Load config from cqlshrc/env and validate for DB operations.

    Args:
        keyspace: Keyspace name (overrides env/config)
        contact_points: Comma-separated hosts (overrides env/config)
        migration: Migration mode (overrides env)
        environment: Execution environment, e.g. "production"

    Returns:
        Config: Validated configuration.

    Raises:
        ConfigError: If required configuration is missing.
    """
    config = Config.from_env(
        keyspace=keyspace,
        contact_points=contact_points,
        migration=migration,
        environment=environment,
    )
    config.validate_for_db_ops()
    return config


def make_client(config: Config) -> CassandraClient:
    return CassandraClient(
        contact_points=config.contact_points,
        port=config.port,
        keyspace=config.keyspace,
        username=config.username,
        password=config.password,
    )


def get_live_schema(config: Config, table_name: str) -> Optional[LiveSchema]:
    """Read a table's current schema from the database.

    Returns:
        The live schema, or None if the table does not exist.

    Raises:
        ConfigError: If DB config is invalid.
        DefinitionError: If the catalog cannot be read.
    """
    config.validate_for_db_ops()

    with make_client(config) as client:
        introspector = SchemaIntrospector(client, config.keyspace)
        return introspector.introspect_table(table_name)
