# config/config_loader.py

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

from connectors.schema import CollectorConfig, DatabaseList

PASSWORD_ENV_VAR = "PGCOLLECTOR_PASSWORD"

_SECRET_FIELDS = ("password", "publish_token")


class ConfigurationError(Exception):
    """Invalid or incomplete collector configuration."""


@dataclass
class ArgumentList:
    hostname: str = "localhost"
    port: str = "5432"
    username: str = ""
    password: str = ""
    database: str = "postgres"
    collection_list: DatabaseList = field(default_factory=dict)
    enable_ssl: bool = False
    trust_server_certificate: bool = False
    ssl_root_cert_location: Optional[str] = None
    ssl_cert_location: Optional[str] = None
    ssl_key_location: Optional[str] = None
    timeout: str = "10"
    pgbouncer: bool = False
    collect_db_lock_metrics: bool = False
    verbose: bool = False
    log_file: Optional[str] = None
    output: Optional[str] = None
    publish_url: Optional[str] = None
    publish_token: Optional[str] = None

    def validate(self):
        if not self.username or not self.password:
            raise ConfigurationError("invalid configuration: must specify a username and password")

        if self.enable_ssl and not self.trust_server_certificate and not self.ssl_root_cert_location:
            raise ConfigurationError(
                "invalid configuration: must specify a root certificate file when using SSL "
                "without trusting the server certificate"
            )

        if bool(self.ssl_cert_location) != bool(self.ssl_key_location):
            raise ConfigurationError(
                "invalid configuration: must specify both a certificate file and a key file "
                "when using client certificates"
            )

        for name in ("port", "timeout"):
            value = str(getattr(self, name))
            if not value.isdigit():
                raise ConfigurationError(f"invalid configuration: {name} must be an integer, got {value!r}")

    def sanitized(self) -> dict:
        """Field values with secrets masked, safe for logging."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for name in _SECRET_FIELDS:
            if values.get(name):
                values[name] = "****"
        return values


def parse_collection_list(value) -> DatabaseList:
    """
    Normalize the topology to ``{database: [schema, ...]}``.

    Accepts a mapping (or its JSON text) whose values are a list of schema
    names, null (no schemas), or a nested ``{schema: tables}`` mapping of which
    only the schema names are used.
    """
    if value is None:
        return {}

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return {}
        try:
            value = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"invalid collection_list JSON: {e}") from e

    if not isinstance(value, dict):
        raise ConfigurationError(
            "collection_list must map each database to its schemas; "
            "database discovery forms (\"ALL\", a bare list of databases) are not supported"
        )

    databases: DatabaseList = {}
    for database, schemas in value.items():
        if not isinstance(database, str) or not database:
            raise ConfigurationError(f"collection_list: invalid database name {database!r}")
        if schemas is None:
            databases[database] = []
        elif isinstance(schemas, dict):
            databases[database] = _unique_names(database, schemas.keys())
        elif isinstance(schemas, (list, tuple)):
            databases[database] = _unique_names(database, schemas)
        else:
            raise ConfigurationError(
                f"collection_list: schemas of database {database!r} must be a list, got {type(schemas).__name__}"
            )
    return databases


def _unique_names(database, names):
    result = []
    for name in names:
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"collection_list: invalid schema name {name!r} in database {database!r}")
        if name not in result:
            result.append(name)
    return result


class ConfigLoader:
    """
    Builds an ``ArgumentList`` from, in increasing precedence: defaults, a
    YAML file, the environment (password only) and explicit overrides
    (normally the CLI flags that were set).
    """

    def __init__(self, path=None, environ=None):
        self.path = Path(path) if path else None
        self.environ = os.environ if environ is None else environ

    def _load_yaml(self, path: Path) -> CollectorConfig:
        if not Path(path).exists():
            raise FileNotFoundError(f"YAML not found: {path}")
        try:
            data = yaml.safe_load(Path(path).read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path}: top level must be a mapping")
        return data

    def load_arguments(self, overrides=None) -> ArgumentList:
        known = {f.name for f in fields(ArgumentList)}
        values = {}

        if self.path:
            for key, value in self._load_yaml(self.path).items():
                name = str(key).replace("-", "_")
                if name not in known:
                    raise ConfigurationError(f"{self.path}: unknown setting {key!r}")
                values[name] = value

        if self.environ.get(PASSWORD_ENV_VAR):
            values["password"] = self.environ[PASSWORD_ENV_VAR]

        for name, value in (overrides or {}).items():
            if value is not None:
                values[name] = value

        values["collection_list"] = parse_collection_list(values.get("collection_list"))
        for name in ("port", "timeout"):
            if name in values:
                values[name] = str(values[name])

        return ArgumentList(**values)
