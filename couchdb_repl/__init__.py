# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""couchdb-repl: full mesh continuous replication setup for CouchDB clusters.

For every configured server and database the tool makes sure the service
accounts and database roles exist, then writes one replicator document per
peer so each server continuously pulls from every other server.
"""

__version__ = "0.1.0"
__build__ = "dev"

from .accounts import ensure_account, verify_admin
from .config import EnvConfigProvider, ServiceConfig, load_config
from .connection import establish_connection
from .errors import (
    ConfigurationError,
    CouchDBError,
    ErrorKind,
    NotFoundError,
    ReplicationSetupError,
    RetryExhaustedError,
    StructuralError,
)
from .http_server import HttpCouchServer
from .inmemory_server import InMemoryCluster, InMemoryCouchServer
from .logger import Logger, SilentLogger, StdoutLogger, create_logger
from .models import (
    Credential,
    DocumentAction,
    ReplicationDocument,
    ServerEndpoint,
    UpdateStrategy,
    UserContext,
    document_id,
)
from .replication import build_replication_document, reconcile
from .retry import DOCUMENT_RETRY, PING_RETRY, PROVISION_RETRY, RetryConfig, retry_call
from .roles import ensure_database_roles
from .server import CouchServer
from .service import ReplicationService

__all__ = [
    # Version
    "__version__",
    # Orchestration
    "ReplicationService",
    "establish_connection",
    "ensure_account",
    "verify_admin",
    "ensure_database_roles",
    "build_replication_document",
    "reconcile",
    "document_id",
    # Servers
    "CouchServer",
    "HttpCouchServer",
    "InMemoryCouchServer",
    "InMemoryCluster",
    # Models and configuration
    "Credential",
    "ServerEndpoint",
    "ReplicationDocument",
    "UserContext",
    "DocumentAction",
    "UpdateStrategy",
    "ServiceConfig",
    "EnvConfigProvider",
    "load_config",
    # Retry
    "RetryConfig",
    "retry_call",
    "PING_RETRY",
    "DOCUMENT_RETRY",
    "PROVISION_RETRY",
    # Logging
    "Logger",
    "StdoutLogger",
    "SilentLogger",
    "create_logger",
    # Exceptions
    "ReplicationSetupError",
    "ConfigurationError",
    "StructuralError",
    "CouchDBError",
    "NotFoundError",
    "RetryExhaustedError",
    "ErrorKind",
]
