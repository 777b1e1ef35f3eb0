"""Configuration management for cqlmodel."""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from cqlmodel.exceptions import ConfigError
from cqlmodel.types import MigrationMode

PRODUCTION_ENVIRONMENTS = frozenset({"production", "prod"})
TRUTHY = frozenset({"1", "true", "yes", "on"})


def load_cqlshrc(path: Optional[Path] = None) -> dict[str, str]:
    """Load connection settings from ~/.cassandra/cqlshrc.

    Args:
        path: Alternative cqlshrc location

    Returns:
        Dict with any of contact_points, port, username, password, keyspace

    Raises:
        ConfigError: If the file exists but cannot be parsed
    """
    cfg_path = path or Path.home() / ".cassandra" / "cqlshrc"
    if not cfg_path.exists():
        return {}

    config = configparser.ConfigParser()
    try:
        config.read(cfg_path)
    except configparser.Error as e:
        raise ConfigError(f"Cannot parse {cfg_path}: {e}") from e

    result = {}
    if config.has_section("connection"):
        section = config["connection"]
        if "hostname" in section:
            result["contact_points"] = section["hostname"].strip()
        if "port" in section:
            result["port"] = section["port"].strip()

    if config.has_section("authentication"):
        section = config["authentication"]
        for key in ("username", "password", "keyspace"):
            if key in section:
                result[key] = section[key].strip()

    return result


def _parse_bool(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in TRUTHY


@dataclass
class Config:
    """Configuration for cqlmodel."""

    keyspace: Optional[str] = None
    contact_points: list[str] = field(default_factory=lambda: ["127.0.0.1"])
    port: int = 9042
    username: Optional[str] = None
    password: Optional[str] = None
    schema_dir: str = "schema"
    migration: str = MigrationMode.SAFE.value
    disable_tty_confirmation: bool = False
    environment: Optional[str] = None

    def __post_init__(self) -> None:
        try:
            MigrationMode(self.migration)
        except ValueError:
            allowed = ", ".join(m.value for m in MigrationMode)
            raise ConfigError(
                f"Invalid migration mode '{self.migration}' (expected one of: {allowed})"
            ) from None

    @property
    def is_production(self) -> bool:
        return (self.environment or "").lower() in PRODUCTION_ENVIRONMENTS

    @classmethod
    def from_env(
        cls,
        *,
        keyspace: Optional[str] = None,
        contact_points: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        schema_dir: Optional[str] = None,
        migration: Optional[str] = None,
        disable_tty_confirmation: Optional[bool] = None,
        environment: Optional[str] = None,
        cqlshrc: Optional[Path] = None,
    ) -> "Config":
        """Load configuration from ~/.cassandra/cqlshrc, env vars, with CLI overrides.

        Priority (highest to lowest):
        1. Explicit parameters (CLI args)
        2. Environment variables
        3. cqlshrc
        """
        cqlshrc_cfg = load_cqlshrc(cqlshrc)

        def resolve(explicit, env_key, cfg_key=None):
            if explicit is not None:
                return explicit
            env_val = os.environ.get(env_key)
            if env_val is not None:
                return env_val
            if cfg_key and cfg_key in cqlshrc_cfg:
                return cqlshrc_cfg[cfg_key]
            return None

        hosts = resolve(contact_points, "CQLMODEL_CONTACT_POINTS", "contact_points")
        raw_port = resolve(port, "CQLMODEL_PORT", "port")
        try:
            port_value = int(raw_port) if raw_port is not None else 9042
        except ValueError:
            raise ConfigError(f"Invalid port: '{raw_port}'") from None

        tty = disable_tty_confirmation
        if tty is None:
            tty = _parse_bool(os.environ.get("CQLMODEL_DISABLE_TTY_CONFIRMATION"))

        return cls(
            keyspace=resolve(keyspace, "CQLMODEL_KEYSPACE", "keyspace"),
            contact_points=[h.strip() for h in hosts.split(",") if h.strip()]
            if hosts
            else ["127.0.0.1"],
            port=port_value,
            username=resolve(username, "CQLMODEL_USERNAME", "username"),
            password=resolve(password, "CQLMODEL_PASSWORD", "password"),
            schema_dir=schema_dir
            if schema_dir is not None
            else os.environ.get("CQLMODEL_SCHEMA_DIR", "schema"),
            migration=(
                resolve(migration, "CQLMODEL_MIGRATION") or MigrationMode.SAFE.value
            ).lower(),
            disable_tty_confirmation=tty,
            environment=resolve(environment, "CQLMODEL_ENV"),
        )

    def validate_for_db_ops(self) -> None:
        """Validate that all required fields for database operations are present.

        Raises:
            ConfigError: If keyspace or connection info is missing.
        """
        missing = []
        if not self.keyspace:
            missing.append("keyspace (use --keyspace or CQLMODEL_KEYSPACE)")
        if not self.contact_points:
            missing.append("contact_points (use --hosts or CQLMODEL_CONTACT_POINTS)")
        if self.username and not self.password:
            missing.append("password (use CQLMODEL_PASSWORD)")

        if missing:
            raise ConfigError(
                "Missing required configuration:\n  - " + "\n  - ".join(missing)
            )
