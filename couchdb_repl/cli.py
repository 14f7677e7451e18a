# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""Command line entry point.

Usage:
    couchdb-repl \
        --server-url http://couch-1:5984 --server-url http://couch-2:5984 \
        --db orders,customers \
        --admin-user admin --admin-password secret \
        --replicator-user replicator --replicator-password secret

Exit codes:
    0: Replication setup succeeded
    1: Replication setup failed (configuration or remote error)
"""

import argparse
import sys
from collections.abc import Mapping, Sequence

from . import __build__, __version__
from .config import (
    ENV_ADMIN_PASSWORD,
    ENV_ADMIN_USERNAME,
    ENV_DATABASES,
    ENV_EDITOR_PASSWORD,
    ENV_EDITOR_USERNAME,
    ENV_NO_USER_CTX,
    ENV_RECREATE_CHANGED,
    ENV_REPLICATOR_PASSWORD,
    ENV_REPLICATOR_USERNAME,
    ENV_REQUEST_TIMEOUT,
    ENV_SERVER_URLS,
    load_config,
)
from .connection import ServerFactory
from .errors import ConfigurationError, ReplicationSetupError
from .logger import create_logger
from .service import ReplicationService

PROJECT_NAME = "couchdb-repl"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROJECT_NAME,
        description="Configure full mesh continuous replication between CouchDB servers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Environment Variables:
  {ENV_ADMIN_USERNAME:<28} Admin user of databases
  {ENV_ADMIN_PASSWORD:<28} Admin password of databases
  {ENV_REPLICATOR_USERNAME:<28} Replicator user of databases
  {ENV_REPLICATOR_PASSWORD:<28} Replicator password of databases
  {ENV_EDITOR_USERNAME:<28} Editor user of databases (optional)
  {ENV_EDITOR_PASSWORD:<28} Editor password of databases (optional)
  {ENV_SERVER_URLS:<28} Comma-separated server URLs
  {ENV_DATABASES:<28} Comma-separated database names
  {ENV_RECREATE_CHANGED:<28} Delete and recreate changed replicator documents
  {ENV_NO_USER_CTX:<28} Omit user_ctx from replicator documents
  {ENV_REQUEST_TIMEOUT:<28} Per-request timeout in seconds (default: 5)
  {"LOG_LEVEL":<28} DEBUG, INFO, WARNING or ERROR (default: INFO)
  {"LOG_TYPE":<28} stdout or silent (default: stdout)
        """,
    )
    parser.add_argument("--admin-user", help="Admin user of databases")
    parser.add_argument("--admin-password", help="Admin password of databases")
    parser.add_argument("--editor-user", help="Editor user of databases")
    parser.add_argument("--editor-password", help="Editor password of databases")
    parser.add_argument("--replicator-user", help="Replicator user of databases")
    parser.add_argument("--replicator-password", help="Replicator password of databases")
    parser.add_argument(
        "--server-url",
        action="append",
        help="URL of a server to configure (repeatable, comma-separated values allowed)",
    )
    parser.add_argument(
        "--db",
        action="append",
        help="Name of a database to replicate (repeatable, comma-separated values allowed)",
    )
    parser.add_argument(
        "--recreate-changed",
        action="store_true",
        default=None,
        help="Delete and recreate changed replicator documents instead of updating them in place",
    )
    parser.add_argument(
        "--no-user-ctx",
        action="store_true",
        default=None,
        help="Do not add a user_ctx to replicator documents",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        help="Per-request timeout in seconds (default: 5)",
    )
    parser.add_argument("--log-level", help="Log level (default: INFO)")
    parser.add_argument("--log-type", help="Logger type: stdout or silent (default: stdout)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__} build {__build__}")
    return parser


def main(
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
    server_factory: ServerFactory | None = None,
) -> int:
    """Run the replication setup and return the process exit code."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args, environ)
    except ReplicationSetupError as e:
        print(f"{e}", file=sys.stderr)
        return 1

    try:
        logger = create_logger(logger_type=args.log_type, level=args.log_level, name=PROJECT_NAME)
    except ValueError as e:
        print(f"{ConfigurationError(str(e))}", file=sys.stderr)
        return 1

    logger.info(f"Starting {PROJECT_NAME}, version {__version__} build {__build__}")

    service = ReplicationService(config, server_factory=server_factory, logger=logger)
    try:
        result = service.run()
    except ReplicationSetupError as e:
        print(f"Replication setup failed: {e}", file=sys.stderr)
        return 1

    logger.info(
        "Replication setup succeeded",
        servers=len(result.servers),
        documents=len(result.documents),
        changed_documents=result.changed_documents,
    )
    print("Replication setup succeeded")
    return 0


if __name__ == "__main__":
    sys.exit(main())
