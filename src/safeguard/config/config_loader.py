"""
Configuration loader for the safeguard process.
"""

import copy
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ..core.exceptions import ConfigurationError
from ..storage import DatabaseSettings
from ..storage.sql import is_valid_identifier


logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "database": {
        "backend": "mysql",
        "address": "127.0.0.1:3306",
        "username": "root",
        "password": "password",
        "database": "faka",
        "driver": None,
        "connection_string": None,
        "path": None,
        "timeout": 10,
    },
    "directories": {
        "interval_seconds": 5,
        "digest_algorithm": "sha256",
        "pairs": [
            {"name": "pay", "source": "", "target": ""},
            {"name": "plugin", "source": "", "target": ""},
        ],
    },
    "protection": {
        "interval_seconds": 5,
        "prune": {
            "enabled": True,
            "table": "acg_manage",
            "key_column": "id",
            "sentinel_key": 1,
            "audit_log": "acg_manage_cleanup.log",
        },
        "restore": {
            "enabled": True,
            "table": "acg_pay",
            "key_column": "id",
            "audit_log": "acg_pay_protection.log",
        },
    },
    "logging": {
        "level": "INFO",
        "structured": False,
        "audit_dir": ".",
    },
}


DIGEST_ALGORITHMS = ("sha256", "md5")

ENV_OVERRIDES = {
    "SAFEGUARD_DB_BACKEND": ("database", "backend"),
    "SAFEGUARD_DB_ADDRESS": ("database", "address"),
    "SAFEGUARD_DB_USERNAME": ("database", "username"),
    "SAFEGUARD_DB_PASSWORD": ("database", "password"),
    "SAFEGUARD_DB_NAME": ("database", "database"),
    "SAFEGUARD_DB_CONN_STR": ("database", "connection_string"),
    "SAFEGUARD_DB_PATH": ("database", "path"),
}


@dataclass
class DirectoryPair:
    """A source/target pair to mirror; disabled when either side is empty."""
    name: str
    source: str
    target: str

    @property
    def enabled(self) -> bool:
        return bool(self.source) and bool(self.target)


@dataclass
class TableProtection:
    """
    Settings for one protected table.

    Attributes:
        enabled: Whether the reconciler runs
        table: Table name, optionally schema-qualified
        key_column: Primary key column
        audit_log: Audit file name, relative to logging.audit_dir
        interval_seconds: Seconds between cycles
        sentinel_key: Row kept by the prune policy (prune only)
    """
    enabled: bool
    table: str
    key_column: str
    audit_log: str
    interval_seconds: float
    sentinel_key: Any = None


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class SafeguardConfig:
    """
    Configuration for the safeguard process.

    Loads a YAML file over the built-in defaults and applies environment
    variable overrides.
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML config file (optional)

        Raises:
            FileNotFoundError: If config_path does not exist
            ConfigurationError: If the file cannot be parsed
        """
        self.config_path = Path(config_path) if config_path else None
        self.config = self._load_config() if self.config_path else self._default_config()
        self._apply_env_overrides()

    @classmethod
    def load_or_create(cls, config_path: Union[str, Path]) -> "SafeguardConfig":
        """Load config_path, writing the default configuration there first if it is missing."""
        path = Path(config_path)
        if not path.exists():
            save_default_config(path)
            logger.warning(f"Default config file created at {path}")
        return cls(path)

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse config file {self.config_path}: {e}") from e

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigurationError(
                f"Config file {self.config_path} must contain a mapping at the top level"
            )
        return _deep_merge(DEFAULT_CONFIG, loaded)

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration."""
        return copy.deepcopy(DEFAULT_CONFIG)

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                self.config.setdefault(section, {})[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def _section(self, name: str) -> Dict[str, Any]:
        section = self.config.get(name) or {}
        if not isinstance(section, dict):
            raise ConfigurationError(f"Config section '{name}' must be a mapping")
        return section

    def get_database_config(self) -> DatabaseSettings:
        """Get resolved database connection settings."""
        section = self._section("database")
        backend = str(section.get("backend") or "mysql").lower()
        if backend not in ("mysql", "sqlserver", "sqlite"):
            raise ConfigurationError(
                f"Unknown database backend: {backend}. "
                "Supported backends: 'mysql', 'sqlserver', 'sqlite'"
            )
        return DatabaseSettings(
            backend=backend,
            address=str(section.get("address") or "127.0.0.1:3306"),
            username=str(section.get("username") or ""),
            password=str(section.get("password") or ""),
            database=str(section.get("database") or ""),
            driver=section.get("driver"),
            connection_string=section.get("connection_string"),
            path=section.get("path"),
            timeout=int(section.get("timeout") or 10),
        )

    def get_directory_interval(self) -> float:
        return self._interval("directories")

    def get_digest_algorithm(self) -> str:
        algorithm = str(self._section("directories").get("digest_algorithm") or "sha256").lower()
        if algorithm not in DIGEST_ALGORITHMS:
            raise ConfigurationError(
                f"directories.digest_algorithm must be one of {', '.join(DIGEST_ALGORITHMS)}, got {algorithm!r}"
            )
        return algorithm

    def get_directory_pairs(self) -> List[DirectoryPair]:
        """Get every configured directory pair, enabled or not."""
        pairs = self._section("directories").get("pairs") or []
        if not isinstance(pairs, list):
            raise ConfigurationError("directories.pairs must be a list")

        result = []
        for i, pair in enumerate(pairs):
            if not isinstance(pair, dict):
                raise ConfigurationError(f"directories.pairs[{i}] must be a mapping")
            result.append(
                DirectoryPair(
                    name=str(pair.get("name") or f"pair{i}"),
                    source=str(pair.get("source") or ""),
                    target=str(pair.get("target") or ""),
                )
            )
        return result

    def get_prune_config(self) -> TableProtection:
        protection = self._table_protection("prune")
        section = self._section("protection").get("prune") or {}
        protection.sentinel_key = section.get("sentinel_key", 1)
        return protection

    def get_restore_config(self) -> TableProtection:
        return self._table_protection("restore")

    def get_logging_config(self) -> Dict[str, Any]:
        return self._section("logging")

    def get_audit_dir(self) -> Path:
        return Path(self.get_logging_config().get("audit_dir") or ".")

    def _interval(self, section_name: str) -> float:
        value = self._section(section_name).get("interval_seconds", 5)
        try:
            interval = float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"{section_name}.interval_seconds must be a number, got {value!r}"
            ) from None
        if interval <= 0:
            raise ConfigurationError(f"{section_name}.interval_seconds must be positive")
        return interval

    def _table_protection(self, policy: str) -> TableProtection:
        section = self._section("protection").get(policy) or {}
        if not isinstance(section, dict):
            raise ConfigurationError(f"protection.{policy} must be a mapping")

        table = str(section.get("table") or "")
        key_column = str(section.get("key_column") or "id")
        enabled = bool(section.get("enabled", False))

        if enabled:
            if not table or not all(is_valid_identifier(p) for p in table.split(".")):
                raise ConfigurationError(f"protection.{policy}.table is not a valid table name: {table!r}")
            if not is_valid_identifier(key_column):
                raise ConfigurationError(
                    f"protection.{policy}.key_column is not a valid column name: {key_column!r}"
                )

        return TableProtection(
            enabled=enabled,
            table=table,
            key_column=key_column,
            audit_log=str(section.get("audit_log") or f"{table or policy}_{policy}.log"),
            interval_seconds=self._interval("protection"),
        )


def save_default_config(path: Union[str, Path]) -> Path:
    """
    Write the default configuration as YAML.

    Returns:
        The path written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(DEFAULT_CONFIG, f, sort_keys=False, default_flow_style=False)
    return path
