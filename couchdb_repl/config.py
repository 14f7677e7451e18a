# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""Run configuration.

Configuration is built once at startup from command line values with
environment-variable fallbacks and is never mutated afterwards.
"""

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .errors import ConfigurationError
from .models import Credential, ServerEndpoint, UpdateStrategy

DEFAULT_REQUEST_TIMEOUT = 5.0

ENV_ADMIN_USERNAME = "COUCHDB_ADMIN_USERNAME"
ENV_ADMIN_PASSWORD = "COUCHDB_ADMIN_PASSWORD"
ENV_REPLICATOR_USERNAME = "COUCHDB_REPLICATOR_USERNAME"
ENV_REPLICATOR_PASSWORD = "COUCHDB_REPLICATOR_PASSWORD"
ENV_EDITOR_USERNAME = "COUCHDB_USERNAME"
ENV_EDITOR_PASSWORD = "COUCHDB_PASSWORD"
ENV_SERVER_URLS = "COUCHDB_SERVER_URLS"
ENV_DATABASES = "COUCHDB_DATABASES"
ENV_RECREATE_CHANGED = "COUCHDB_RECREATE_CHANGED"
ENV_NO_USER_CTX = "COUCHDB_NO_USER_CTX"
ENV_REQUEST_TIMEOUT = "COUCHDB_REQUEST_TIMEOUT"


class EnvConfigProvider:
    """Configuration provider that reads from environment variables."""

    def __init__(self, environ: Mapping[str, str] | None = None):
        self._environ = environ if environ is not None else os.environ

    def get(self, key: str, default: Any = None) -> Any:
        value = self._environ.get(key)
        if value is None or value == "":
            return default
        return value

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._environ.get(key)
        if value is None:
            return default

        value_lower = value.lower()
        if value_lower in ("true", "1", "yes", "on"):
            return True
        if value_lower in ("false", "0", "no", "off"):
            return False
        return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self._environ.get(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            return default

    def get_list(self, key: str) -> list[str]:
        return split_list(self._environ.get(key) or "")


def split_list(values: str | Iterable[str] | None) -> list[str]:
    """Flatten repeated and comma-separated values, dropping blanks.

    ``["a,b", "c"]`` and ``"a, b,c"`` both become ``["a", "b", "c"]``.
    """
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    result = []
    for value in values:
        result.extend(part.strip() for part in value.split(",") if part.strip())
    return result


@dataclass(frozen=True)
class ServiceConfig:
    """Immutable configuration for one provisioning run.

    Attributes:
        server_urls: Servers to configure, in processing order
        database_names: Databases to replicate; they must already exist everywhere
        admin_user: Server admin credential used for all provisioning calls
        replicator_user: Identity that owns and performs replication
        editor_user: Optional general document access account. When None the
            editor account and editor roles are skipped
        update_strategy: How a changed replication document is written back
        include_user_ctx: Whether replication documents carry a user_ctx
        request_timeout: Per-request HTTP timeout in seconds
    """
    server_urls: tuple[ServerEndpoint, ...]
    database_names: tuple[str, ...]
    admin_user: Credential
    replicator_user: Credential
    editor_user: Credential | None = None
    update_strategy: UpdateStrategy = UpdateStrategy.UPDATE_IN_PLACE
    include_user_ctx: bool = True
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    def __post_init__(self) -> None:
        if not self.server_urls:
            raise ConfigurationError("at least one server URL must be set")
        if not self.database_names:
            raise ConfigurationError("at least one database name must be set")
        if self.request_timeout <= 0:
            raise ConfigurationError(f"request timeout must be positive, got {self.request_timeout}")


def load_config(args: Any, environ: Mapping[str, str] | None = None) -> ServiceConfig:
    """Build a :class:`ServiceConfig` from parsed CLI arguments.

    Every value not given on the command line falls back to its environment
    variable. All problems are collected so the error lists every missing
    input at once.

    Args:
        args: argparse namespace (attributes may be None when not supplied)
        environ: Environment mapping (defaults to os.environ)

    Raises:
        ConfigurationError: If a required input is missing or invalid
        StructuralError: If a server URL cannot be parsed
    """
    env = EnvConfigProvider(environ)
    missing = []

    def pick(attr: str, env_key: str, flag: str, required: bool = True) -> str | None:
        value = getattr(args, attr, None) or env.get(env_key)
        if required and not value:
            missing.append(f"{flag} (or {env_key})")
        return value

    admin_name = pick("admin_user", ENV_ADMIN_USERNAME, "--admin-user")
    admin_password = pick("admin_password", ENV_ADMIN_PASSWORD, "--admin-password")
    replicator_name = pick("replicator_user", ENV_REPLICATOR_USERNAME, "--replicator-user")
    replicator_password = pick("replicator_password", ENV_REPLICATOR_PASSWORD, "--replicator-password")
    editor_name = pick("editor_user", ENV_EDITOR_USERNAME, "--editor-user", required=False)
    editor_password = pick("editor_password", ENV_EDITOR_PASSWORD, "--editor-password", required=False)

    server_urls = split_list(getattr(args, "server_url", None)) or env.get_list(ENV_SERVER_URLS)
    database_names = split_list(getattr(args, "db", None)) or env.get_list(ENV_DATABASES)
    if not server_urls:
        missing.append(f"--server-url (or {ENV_SERVER_URLS})")
    if not database_names:
        missing.append(f"--db (or {ENV_DATABASES})")

    if bool(editor_name) != bool(editor_password):
        missing.append("--editor-user and --editor-password must be set together")

    if missing:
        raise ConfigurationError("missing required configuration: " + ", ".join(missing))

    recreate = getattr(args, "recreate_changed", None) or env.get_bool(ENV_RECREATE_CHANGED)
    no_user_ctx = getattr(args, "no_user_ctx", None) or env.get_bool(ENV_NO_USER_CTX)
    timeout = getattr(args, "request_timeout", None)
    if timeout is None:
        timeout = env.get_float(ENV_REQUEST_TIMEOUT, DEFAULT_REQUEST_TIMEOUT)

    return ServiceConfig(
        server_urls=tuple(dict.fromkeys(ServerEndpoint.parse(url) for url in server_urls)),
        database_names=tuple(dict.fromkeys(database_names)),
        admin_user=Credential(admin_name, admin_password),
        replicator_user=Credential(replicator_name, replicator_password),
        editor_user=Credential(editor_name, editor_password) if editor_name else None,
        update_strategy=UpdateStrategy.DELETE_AND_RECREATE if recreate else UpdateStrategy.UPDATE_IN_PLACE,
        include_user_ctx=not no_user_ctx,
        request_timeout=float(timeout),
    )
