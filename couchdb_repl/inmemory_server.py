# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""In-memory CouchDB server for testing and local development."""

import copy
import logging
import uuid
from collections import defaultdict
from typing import Any

from .errors import CouchDBError, ErrorKind, NotFoundError
from .models import ROLE_SERVER_ADMIN, Credential, ServerEndpoint
from .server import REPLICATOR_DB, USER_ID_PREFIX, USERS_DB, CouchServer

logger = logging.getLogger(__name__)

MUTATING_CALLS = frozenset({
    "create_user",
    "grant_role",
    "add_database_role",
    "delete_document",
    "save_document",
})


class InMemoryCouchServer(CouchServer):
    """In-memory CouchDB server.

    Keeps users, database security documents and documents with revision
    tokens, and records every call in :attr:`calls`. Only calls that actually
    changed state are recorded as mutations, so an idempotent re-run shows
    up as zero mutations.

    Errors can be injected per method with :meth:`fail`.
    """

    def __init__(self, endpoint: ServerEndpoint | None = None, admins: dict[str, str] | None = None):
        self.endpoint = endpoint or ServerEndpoint("http", "localhost", 5984)
        self.admins: dict[str, str] = dict(admins or {})
        self.users: dict[str, dict[str, Any]] = {}
        self.security: dict[str, dict[str, Any]] = {}
        self.documents: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.mutations: list[tuple[str, tuple[Any, ...]]] = []
        self._failures: dict[str, list[Exception]] = defaultdict(list)
        self.closed = False
        self.create_database(REPLICATOR_DB)

    def create_database(self, name: str, security: dict[str, Any] | None = None) -> None:
        self.security.setdefault(name, copy.deepcopy(security) if security else {})

    def fail(self, method: str, *errors: Exception) -> None:
        """Make the next ``len(errors)`` calls of ``method`` raise ``errors`` in order."""
        self._failures[method].extend(errors)

    def _enter(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        if self._failures[method]:
            raise self._failures[method].pop(0)

    def _mutated(self, method: str, *args: Any) -> None:
        self.mutations.append((method, args))

    def calls_to(self, method: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == method]

    def ping(self) -> None:
        self._enter("ping")

    def session(self, auth: Credential) -> dict[str, Any]:
        self._enter("session", auth.username)
        if self.admins.get(auth.username) == auth.password:
            return {"name": auth.username, "roles": [ROLE_SERVER_ADMIN]}
        user = self.users.get(auth.username)
        if user is not None and user["password"] == auth.password:
            return {"name": auth.username, "roles": list(user["roles"])}
        raise CouchDBError(
            "Name or password is incorrect.", status_code=401, kind=ErrorKind.REJECTED, reason="unauthorized"
        )

    def get_user(self, username: str, auth: Credential) -> dict[str, Any]:
        self._enter("get_user", username)
        if username not in self.users:
            raise NotFoundError(f"user {USER_ID_PREFIX}{username} not found in {USERS_DB}", reason="missing")
        user = copy.deepcopy(self.users[username])
        user.pop("password", None)
        return user

    def create_user(self, username: str, password: str, roles: list[str], auth: Credential) -> None:
        self._enter("create_user", username, tuple(roles))
        if username in self.users:
            raise CouchDBError(f"user {username} already exists", status_code=409, reason="conflict")
        self.users[username] = {
            "_id": USER_ID_PREFIX + username,
            "name": username,
            "password": password,
            "roles": list(roles),
            "type": "user",
        }
        self._mutated("create_user", username, tuple(roles))

    def grant_role(self, username: str, role: str, auth: Credential) -> bool:
        self._enter("grant_role", username, role)
        if username not in self.users:
            raise NotFoundError(f"user {USER_ID_PREFIX}{username} not found in {USERS_DB}", reason="missing")
        roles = self.users[username]["roles"]
        if role in roles:
            return False
        roles.append(role)
        self._mutated("grant_role", username, role)
        return True

    def add_database_role(self, database: str, role: str, admin: bool, auth: Credential) -> bool:
        self._enter("add_database_role", database, role, admin)
        if database not in self.security:
            raise NotFoundError(f"database {database} does not exist", reason="Database does not exist.")
        section = self.security[database].setdefault("admins" if admin else "members", {})
        section.setdefault("names", [])
        roles = section.setdefault("roles", [])
        if role in roles:
            return False
        roles.append(role)
        self._mutated("add_database_role", database, role, admin)
        return True

    def database_roles(self, database: str, admin: bool) -> list[str]:
        section = self.security.get(database, {}).get("admins" if admin else "members", {})
        return list(section.get("roles", []))

    def read_document(self, database: str, doc_id: str, auth: Credential) -> tuple[dict[str, Any], str]:
        self._enter("read_document", database, doc_id)
        doc = self.documents[database].get(doc_id)
        if doc is None:
            raise NotFoundError(f"document {doc_id} not found in {database}", reason="missing")
        return copy.deepcopy(doc), doc["_rev"]

    def delete_document(self, database: str, doc_id: str, rev: str, auth: Credential) -> None:
        self._enter("delete_document", database, doc_id, rev)
        doc = self.documents[database].get(doc_id)
        if doc is None:
            raise NotFoundError(f"document {doc_id} not found in {database}", reason="deleted")
        if doc["_rev"] != rev:
            raise CouchDBError("Document update conflict.", status_code=409, reason="conflict")
        del self.documents[database][doc_id]
        self._mutated("delete_document", database, doc_id, rev)

    def save_document(
        self, database: str, doc_id: str, doc: dict[str, Any], rev: str | None, auth: Credential
    ) -> str:
        self._enter("save_document", database, doc_id, rev)
        current = self.documents[database].get(doc_id)
        current_rev = current["_rev"] if current else None
        if current_rev != (rev or None):
            raise CouchDBError("Document update conflict.", status_code=409, reason="conflict")

        generation = int(current_rev.split("-", 1)[0]) + 1 if current_rev else 1
        new_rev = f"{generation}-{uuid.uuid4().hex}"
        stored = copy.deepcopy(doc)
        stored["_id"] = doc_id
        stored["_rev"] = new_rev
        self.documents[database][doc_id] = stored
        self._mutated("save_document", database, doc_id, rev)
        logger.debug("InMemoryCouchServer: saved %s/%s as %s", database, doc_id, new_rev)
        return new_rev

    def close(self) -> None:
        self.closed = True


class InMemoryCluster:
    """A set of in-memory servers keyed by endpoint URL.

    Its :meth:`server_factory` can stand in for ``HttpCouchServer`` when
    constructing a ``ReplicationService``.
    """

    def __init__(self, admins: dict[str, str] | None = None, databases: list[str] | None = None):
        self.admins = dict(admins or {})
        self.databases = list(databases or [])
        self.servers: dict[str, InMemoryCouchServer] = {}

    def server(self, endpoint: ServerEndpoint) -> InMemoryCouchServer:
        if endpoint.url not in self.servers:
            server = InMemoryCouchServer(endpoint, admins=self.admins)
            for name in self.databases:
                server.create_database(name)
            self.servers[endpoint.url] = server
        return self.servers[endpoint.url]

    def server_factory(self, endpoint: ServerEndpoint, timeout: float | None = None) -> InMemoryCouchServer:
        return self.server(endpoint)

    def mutations(self) -> list[tuple[str, tuple[Any, ...]]]:
        return [mutation for server in self.servers.values() for mutation in server.mutations]
