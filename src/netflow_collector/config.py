# config.py -- Collector configuration
# Probes and storage come from an INI file ([General], [Database],
# [SondeCount], [SondaN]). Environment variables (or a .env file) override the
# [Database] keys so Docker deployments can inject them directly.

from __future__ import annotations

import configparser
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

log = logging.getLogger(__name__)

load_dotenv(override=False)

DEFAULT_CONFIG_PATH = "nf_sond.ini"
DB_TYPES = ("sqlite", "csv", "mysql")


class ConfigError(Exception):
    """Configuration file missing, unreadable or inconsistent."""


def _safe_int(
    name: str, raw: str | None, default: int, min_val: int | None = None, max_val: int | None = None
) -> int:
    if raw is None or raw.strip() == "":
        return default
    try:
        val = int(raw)
    except (ValueError, TypeError):
        log.warning("Invalid integer for %s=%r, using default %d", name, raw, default)
        return default
    if min_val is not None and val < min_val:
        log.warning("%s=%d below minimum %d, using %d", name, val, min_val, min_val)
        return min_val
    if max_val is not None and val > max_val:
        log.warning("%s=%d above maximum %d, using %d", name, val, max_val, max_val)
        return max_val
    return val


@dataclass(frozen=True)
class ProbeConfig:
    name: str
    port: int
    filter_address: str | None = None
    version: str = ""


@dataclass
class DatabaseConfig:
    type: str = ""
    sqlite_path: str = ""
    csv_path: str = ""
    mysql_host: str = "localhost"
    mysql_port: int = 3306
    mysql_user: str = ""
    mysql_password: str = ""
    mysql_database: str = ""


@dataclass
class CollectorConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    probes: list[ProbeConfig] = field(default_factory=list)
    log_to_syslog: bool = False
    listen_host: str = "0.0.0.0"
    status_host: str = "127.0.0.1"
    status_port: int = 0


def default_config_path() -> str:
    return os.getenv("NF_CONFIG", DEFAULT_CONFIG_PATH)


def _get(parser: configparser.ConfigParser, section: str, key: str, default: str = "") -> str:
    return parser.get(section, key, fallback=default).strip()


def _database_config(parser: configparser.ConfigParser) -> DatabaseConfig:
    def pick(key: str, env: str, default: str = "") -> str:
        return os.getenv(env) or _get(parser, "Database", key, default)

    db = DatabaseConfig(
        type=pick("type", "DB_TYPE").lower(),
        sqlite_path=pick("sqlite_path", "SQLITE_PATH"),
        csv_path=pick("csv_path", "CSV_PATH"),
        mysql_host=pick("mysql_host", "MYSQL_HOST", "localhost"),
        mysql_port=_safe_int(
            "mysql_port", pick("mysql_port", "MYSQL_PORT"), 3306, min_val=1, max_val=65535
        ),
        mysql_user=pick("mysql_user", "MYSQL_USER"),
        mysql_password=pick("mysql_password", "MYSQL_PASSWORD"),
        mysql_database=pick("mysql_database", "MYSQL_DATABASE"),
    )
    if db.type not in DB_TYPES:
        raise ConfigError(f"Database type not implemented: {db.type!r}")
    if db.type == "sqlite" and not db.sqlite_path:
        raise ConfigError("Database type sqlite requires sqlite_path")
    if db.type == "csv" and not db.csv_path:
        raise ConfigError("Database type csv requires csv_path")
    return db


def _probe_configs(parser: configparser.ConfigParser) -> list[ProbeConfig]:
    count = _safe_int("SondeCount.count", _get(parser, "SondeCount", "count"), 0, min_val=0)
    probes: list[ProbeConfig] = []
    for i in range(1, count + 1):
        section = f"Sonda{i}"
        name = _get(parser, section, "name")
        port = _safe_int(f"{section}.port", _get(parser, section, "port"), 0)
        if not name or port == 0:
            raise ConfigError(f"Missing data in configuration for {section}")
        if not 1 <= port <= 65535:
            raise ConfigError(f"{section}: port {port} out of range")
        probes.append(
            ProbeConfig(
                name=name,
                port=port,
                # "listen_address" is the expected exporter address, not a bind address
                filter_address=_get(parser, section, "listen_address") or None,
                version=_get(parser, section, "version"),
            )
        )

    ports = [p.port for p in probes]
    if len(set(ports)) != len(ports):
        raise ConfigError("Two probes configured on the same port")
    return probes


def load_config(path: str | Path) -> CollectorConfig:
    """Read and validate the INI file at `path`. Raises ConfigError."""
    parser = configparser.ConfigParser(inline_comment_prefixes=(";", "#"), interpolation=None)
    try:
        with open(path, encoding="utf-8") as f:
            parser.read_file(f)
    except OSError as e:
        raise ConfigError(f"Cannot open configuration file {path}: {e}") from e
    except configparser.Error as e:
        raise ConfigError(f"Failed to parse configuration file {path}: {e}") from e

    status_raw = os.getenv("NF_STATUS_PORT") or _get(parser, "General", "status_port")
    return CollectorConfig(
        database=_database_config(parser),
        probes=_probe_configs(parser),
        log_to_syslog=_get(parser, "General", "log", "0") == "1",
        listen_host=os.getenv("NF_LISTEN_HOST") or _get(parser, "General", "listen_host", "0.0.0.0"),
        status_host=_get(parser, "General", "status_host", "127.0.0.1"),
        status_port=_safe_int("status_port", status_raw, 0, min_val=0, max_val=65535),
    )
