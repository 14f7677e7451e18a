# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""Abstract interface to one CouchDB server.

This is the full capability surface the provisioning logic uses. Every call
takes the credential to authenticate with, so a single handle serves both the
admin and the replicator identities.
"""

from abc import ABC, abstractmethod
from typing import Any

from .models import Credential, ServerEndpoint

USERS_DB = "_users"
REPLICATOR_DB = "_replicator"
USER_ID_PREFIX = "org.couchdb.user:"


class CouchServer(ABC):
    """Abstract base class for CouchDB server backends."""

    endpoint: ServerEndpoint

    @abstractmethod
    def ping(self) -> None:
        """Unauthenticated liveness check.

        Raises:
            CouchDBError: If the server does not answer successfully
        """

    @abstractmethod
    def session(self, auth: Credential) -> dict[str, Any]:
        """Return the ``userCtx`` (``name``, ``roles``) ``auth`` authenticates as.

        Raises:
            CouchDBError: If the credential is rejected or the call fails
        """

    @abstractmethod
    def get_user(self, username: str, auth: Credential) -> dict[str, Any]:
        """Fetch the ``_users`` record of ``username``.

        Raises:
            NotFoundError: If the user does not exist
            CouchDBError: On any other failure
        """

    @abstractmethod
    def create_user(self, username: str, password: str, roles: list[str], auth: Credential) -> None:
        """Create ``username`` with ``password`` and ``roles`` in one call."""

    @abstractmethod
    def grant_role(self, username: str, role: str, auth: Credential) -> bool:
        """Add ``role`` to an existing user.

        Returns:
            True if the role was added, False if the user already had it
        """

    @abstractmethod
    def add_database_role(self, database: str, role: str, admin: bool, auth: Credential) -> bool:
        """Add ``role`` to the member (or admin) roles of ``database``.

        Additive only: existing roles are never removed.

        Returns:
            True if the role was added, False if it was already present
        """

    def add_member_role(self, database: str, role: str, auth: Credential) -> bool:
        return self.add_database_role(database, role, False, auth)

    def add_admin_role(self, database: str, role: str, auth: Credential) -> bool:
        return self.add_database_role(database, role, True, auth)

    @abstractmethod
    def read_document(self, database: str, doc_id: str, auth: Credential) -> tuple[dict[str, Any], str]:
        """Read a document.

        Returns:
            Tuple of (document body, revision token)

        Raises:
            NotFoundError: If the document does not exist
        """

    @abstractmethod
    def delete_document(self, database: str, doc_id: str, rev: str, auth: Credential) -> None:
        """Delete revision ``rev`` of a document."""

    @abstractmethod
    def save_document(
        self, database: str, doc_id: str, doc: dict[str, Any], rev: str | None, auth: Credential
    ) -> str:
        """Create (``rev`` None) or update (``rev`` given) a document.

        Returns:
            The new revision token

        Raises:
            CouchDBError: With kind CONFLICT when ``rev`` is stale
        """

    def close(self) -> None:
        """Release any resources held by the handle."""
