"""Connection and access settings for the PostgreSQL adapter."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class TableAccess:
    """Permissions and allowed fields of one table."""

    name: str
    permissions: list[str] = field(default_factory=list)
    fields: list[str] = field(default_factory=list)


@dataclass
class AccessConfig:
    """Table access rules."""

    restrict: bool = False
    ignore_table: list[str] = field(default_factory=list)
    tables: list[TableAccess] = field(default_factory=list)


@dataclass
class Settings:
    """Database connection, cache and access settings."""

    pg_user: str = "postgres"
    pg_pass: str = ""
    pg_host: str = "127.0.0.1"
    pg_port: int = 5432
    pg_database: str = "prest"
    ssl_mode: str = "disable"
    ssl_cert: str = ""
    ssl_key: str = ""
    ssl_root_cert: str = ""
    pg_conn_timeout: int = 10
    pg_max_idle_conn: int = 10
    pg_max_open_conn: int = 10
    enable_cache: bool = False
    queries_path: str = ""
    access: AccessConfig = field(default_factory=AccessConfig)


def connection_uri(settings: Settings, dbname: str = "") -> str:
    """Build a libpq keyword/value connection string.

    An empty ``dbname`` falls back to the configured database.
    """
    name = dbname or settings.pg_database
    uri = (
        f"user={settings.pg_user} dbname={name} host={settings.pg_host} "
        f"port={settings.pg_port} sslmode={settings.ssl_mode} "
        f"connect_timeout={int(settings.pg_conn_timeout)}"
    )
    optional = (
        ("password", settings.pg_pass),
        ("sslcert", settings.ssl_cert),
        ("sslkey", settings.ssl_key),
        ("sslrootcert", settings.ssl_root_cert),
    )
    for key, value in optional:
        if value:
            uri += f" {key}={value}"
    return uri