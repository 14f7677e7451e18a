# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""Full mesh replication setup across all configured servers."""

from collections.abc import Callable
from typing import Any, TypeVar

from .accounts import ensure_account, verify_admin
from .config import ServiceConfig
from .connection import ServerFactory, establish_connection
from .logger import Logger, SilentLogger
from .models import (
    ROLE_EDITOR,
    ROLE_REPLICATOR,
    AccountAction,
    AccountResult,
    DocumentAction,
    DocumentResult,
    RolesResult,
    RunResult,
    ServerEndpoint,
    ServerResult,
)
from .replication import build_replication_document, reconcile, replicator_roles
from .retry import (
    DOCUMENT_RETRY,
    DOCUMENT_RETRYABLE_KINDS,
    PING_RETRY,
    PROVISION_RETRY,
    RetryConfig,
    retry_call,
)
from .roles import ensure_database_roles
from .server import REPLICATOR_DB, CouchServer

T = TypeVar("T")


class ReplicationService:
    """Configures replication on every server from every other server.

    Holds only immutable configuration; all remote state is re-read on each
    run. Servers are processed strictly one after another and the run stops at
    the first unrecoverable error.
    """

    def __init__(
        self,
        config: ServiceConfig,
        server_factory: ServerFactory | None = None,
        logger: Logger | None = None,
        sleep: Callable[[float], None] | None = None,
        ping_retry: RetryConfig = PING_RETRY,
        provision_retry: RetryConfig = PROVISION_RETRY,
        document_retry: RetryConfig = DOCUMENT_RETRY,
    ):
        """Initialize the service.

        Args:
            config: Run configuration
            server_factory: Builds server handles (defaults to the HTTP backend)
            logger: Logger for progress reporting (defaults to a silent logger)
            sleep: Optional sleep function for every retry loop
            ping_retry: Bounds for the liveness check
            provision_retry: Bounds for account and role provisioning
            document_retry: Bounds for replication document reconciliation
        """
        self.config = config
        self.server_factory = server_factory
        self.logger = logger or SilentLogger()
        self.sleep = sleep
        self.ping_retry = ping_retry
        self.provision_retry = provision_retry
        self.document_retry = document_retry

    @property
    def member_roles(self) -> list[str]:
        return [ROLE_EDITOR] if self.config.editor_user else []

    @property
    def admin_roles(self) -> list[str]:
        roles = [ROLE_REPLICATOR]
        if self.config.editor_user:
            roles.append(ROLE_EDITOR)
        return roles

    def run(self) -> RunResult:
        """Configure replication for every configured server.

        Raises:
            ReplicationSetupError: On the first unrecoverable failure
        """
        result = RunResult()
        for endpoint in self.config.server_urls:
            self.logger.info(f"Configuring replication for '{endpoint}'", server=endpoint.url)
            try:
                server_result = self.setup_server(endpoint)
            except Exception as e:
                self.logger.exception(f"Configuring replication for '{endpoint}' failed: {e}", server=endpoint.url)
                raise
            result.servers.append(server_result)
        return result

    def setup_server(self, endpoint: ServerEndpoint) -> ServerResult:
        """Configure accounts, roles and replication documents on one server."""
        server = establish_connection(
            endpoint,
            server_factory=self.server_factory,
            retry_config=self.ping_retry,
            request_timeout=self.config.request_timeout,
            sleep=self.sleep,
            on_retry=self._retry_reporter(f"Pinging '{endpoint}'", endpoint),
        )
        try:
            return self._setup(server, endpoint)
        finally:
            server.close()

    def _setup(self, server: CouchServer, endpoint: ServerEndpoint) -> ServerResult:
        config = self.config
        result = ServerResult(endpoint)

        account = self._provision(
            lambda: verify_admin(server, config.admin_user),
            f"failed to verify admin user '{config.admin_user.username}' on '{endpoint}'",
            endpoint,
        )
        self._report_account(account, endpoint)
        result.accounts.append(account)

        accounts = [(config.replicator_user, [ROLE_REPLICATOR], "replicator")]
        if config.editor_user:
            accounts.append((config.editor_user, [ROLE_EDITOR], "editor"))
        for credential, roles, label in accounts:
            account = self._provision(
                lambda: ensure_account(server, credential, roles, config.admin_user),
                f"failed to create {label} user '{credential.username}' on '{endpoint}'",
                endpoint,
            )
            self._report_account(account, endpoint)
            result.accounts.append(account)

        roles = self._provision(
            lambda: ensure_database_roles(server, REPLICATOR_DB, [], [ROLE_REPLICATOR], config.admin_user),
            f"failed to configure roles of database '{REPLICATOR_DB}' on '{endpoint}'",
            endpoint,
        )
        self._report_roles(roles, endpoint)
        result.roles.append(roles)

        for source in config.server_urls:
            if source.url == endpoint.url:
                continue
            for database in config.database_names:
                roles = self._provision(
                    lambda: ensure_database_roles(
                        server, database, self.member_roles, self.admin_roles, config.admin_user
                    ),
                    f"failed to configure roles of database '{database}' on '{endpoint}'",
                    endpoint,
                )
                self._report_roles(roles, endpoint)
                result.roles.append(roles)

                document = build_replication_document(
                    source, database, config.replicator_user, replicator_roles(config.include_user_ctx)
                )
                outcome = retry_call(
                    lambda: reconcile(server, document, config.replicator_user, config.update_strategy),
                    self.document_retry,
                    f"failed to setup replicator document for '{database}', source '{source}' on '{endpoint}'",
                    on_retry=self._retry_reporter("Updating replicator document", endpoint, database=database),
                    sleep=self.sleep,
                    retryable_kinds=DOCUMENT_RETRYABLE_KINDS,
                )
                self._report_document(outcome, endpoint, source)
                result.documents.append(outcome)

        return result

    def _provision(self, func: Callable[[], T], context: str, endpoint: ServerEndpoint) -> T:
        return retry_call(
            func,
            self.provision_retry,
            context,
            on_retry=self._retry_reporter(context, endpoint),
            sleep=self.sleep,
        )

    def _retry_reporter(
        self, operation: str, endpoint: ServerEndpoint, **fields: Any
    ) -> Callable[[Exception, int], None]:
        """Build an on_retry callback that reports each failed attempt as a warning."""

        def report(error: Exception, attempt: int) -> None:
            self.logger.warning(
                f"{operation}: attempt {attempt} failed, retrying: {error}", server=endpoint.url, **fields
            )

        return report

    def _report_account(self, account: AccountResult, endpoint: ServerEndpoint) -> None:
        if account.action is AccountAction.CREATED:
            self.logger.info(f"Added user '{account.username}'", server=endpoint.url, roles=account.granted_roles)
        elif account.action is AccountAction.UPDATED:
            self.logger.info(
                f"Granted roles to user '{account.username}'", server=endpoint.url, roles=account.granted_roles
            )
        else:
            self.logger.debug(f"User '{account.username}' already {account.action.value}", server=endpoint.url)

    def _report_roles(self, roles: RolesResult, endpoint: ServerEndpoint) -> None:
        if roles.changed:
            self.logger.info(
                f"Added roles to database '{roles.database}'",
                server=endpoint.url,
                member_roles=roles.added_member_roles,
                admin_roles=roles.added_admin_roles,
            )

    def _report_document(self, document: DocumentResult, endpoint: ServerEndpoint, source: ServerEndpoint) -> None:
        if document.action is DocumentAction.UNCHANGED:
            self.logger.info(
                f"Nothing has changed in replicator document '{document.doc_id}'",
                server=endpoint.url,
                source=source.url,
                database=document.target,
            )
        else:
            self.logger.info(
                f"Replicator document '{document.doc_id}' {document.action.value}",
                server=endpoint.url,
                source=source.url,
                database=document.target,
            )
