# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""Data models for replication provisioning.

Configuration values (endpoints, credentials) are immutable. Replication
documents are recomputed from configuration on every run and compared
field-by-field against what the server has stored.
"""

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import quote, urlsplit

from .errors import StructuralError

DEFAULT_PORTS = {
    "http": 5984,
    "https": 6984,
}

ROLE_REPLICATOR = "replicator"
ROLE_EDITOR = "editor"
ROLE_SERVER_ADMIN = "_admin"


@dataclass(frozen=True)
class Credential:
    """A username/password pair. Supplied by configuration, never generated."""
    username: str
    password: str = field(repr=False)

    def __repr__(self) -> str:
        return f"Credential(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class ServerEndpoint:
    """A URL identifying one CouchDB node.

    Attributes:
        scheme: "http" or "https"
        host: Hostname or IP address (IPv6 without brackets)
        port: TCP port
        path: Optional path prefix without trailing slash (reverse proxies)
    """
    scheme: str
    host: str
    port: int
    path: str = ""

    @classmethod
    def parse(cls, url: str) -> "ServerEndpoint":
        """Parse a server URL such as ``http://couch-1:5984``.

        A missing port falls back to the scheme's CouchDB default. Userinfo in
        the URL is ignored; credentials come from configuration.

        Raises:
            StructuralError: If the URL is malformed, has an unsupported scheme,
                no host, or a non-numeric/out-of-range port
        """
        text = (url or "").strip()
        if not text:
            raise StructuralError("server URL must not be empty")
        try:
            parsed = urlsplit(text)
        except ValueError as e:
            raise StructuralError(f"failed to parse server URL '{url}': {e}") from e

        scheme = parsed.scheme.lower()
        if scheme not in DEFAULT_PORTS:
            raise StructuralError(
                f"unsupported scheme in server URL '{url}'; expected one of {sorted(DEFAULT_PORTS)}"
            )
        if not parsed.hostname:
            raise StructuralError(f"server URL '{url}' has no host")
        try:
            port = parsed.port
        except ValueError as e:
            raise StructuralError(f"invalid port in server URL '{url}': {e}") from e

        return cls(
            scheme=scheme,
            host=parsed.hostname,
            port=port if port is not None else DEFAULT_PORTS[scheme],
            path=parsed.path.rstrip("/"),
        )

    @property
    def netloc(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"

    @property
    def url(self) -> str:
        """Canonical URL without credentials. Used for self-exclusion equality."""
        return f"{self.scheme}://{self.netloc}{self.path}"

    def database_url(self, database: str, credential: Credential | None = None) -> str:
        """URL of ``database`` on this server, with ``credential`` embedded as userinfo."""
        userinfo = ""
        if credential is not None:
            userinfo = f"{quote(credential.username, safe='')}:{quote(credential.password, safe='')}@"
        return f"{self.scheme}://{userinfo}{self.netloc}{self.path}/{quote(database, safe='')}"

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True)
class UserContext:
    """Identity the replicator runs as when the server checks per-document ownership."""
    name: str
    roles: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "roles": list(self.roles)}


@dataclass(frozen=True)
class ReplicationDocument:
    """Desired state of one directional, continuous replication stream.

    Stored in the target server's ``_replicator`` database under
    :attr:`doc_id`, which depends only on ``source`` and ``target``.
    """
    source: str
    target: str
    continuous: bool = True
    create_target: bool = False
    user_ctx: UserContext | None = None

    @property
    def doc_id(self) -> str:
        return document_id(self.source, self.target)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON body CouchDB expects.

        ``create_target`` and ``continuous`` are omitted when false and
        ``user_ctx`` when absent.
        """
        body: dict[str, Any] = {
            "source": self.source,
            "target": self.target,
        }
        if self.create_target:
            body["create_target"] = True
        if self.continuous:
            body["continuous"] = True
        if self.user_ctx is not None:
            body["user_ctx"] = self.user_ctx.to_dict()
        return body

    @classmethod
    def from_dict(cls, body: dict[str, Any]) -> "ReplicationDocument":
        """Build from a stored document, ignoring ``_id``, ``_rev`` and fields
        the server adds on its own (``_replication_state``, ``owner``, ...)."""
        user_ctx = None
        raw_ctx = body.get("user_ctx")
        if isinstance(raw_ctx, dict):
            user_ctx = UserContext(
                name=raw_ctx.get("name", ""),
                roles=tuple(raw_ctx.get("roles") or ()),
            )
        source = body.get("source", "")
        target = body.get("target", "")
        # Older servers store endpoints as {"url": ...} objects.
        if isinstance(source, dict):
            source = source.get("url", "")
        if isinstance(target, dict):
            target = target.get("url", "")
        return cls(
            source=source,
            target=target,
            continuous=bool(body.get("continuous", False)),
            create_target=bool(body.get("create_target", False)),
            user_ctx=user_ctx,
        )


def document_id(source: str, target: str) -> str:
    """Deterministic identifier of the replication edge ``source`` -> ``target``.

    Lowercase SHA-1 hex digest of ``"{source},{target}"``.
    """
    data = f"{source},{target}"
    return hashlib.sha1(data.encode("utf-8")).hexdigest()


class AccountAction(Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    VERIFIED = "verified"


class DocumentAction(Enum):
    CREATED = "created"
    UPDATED = "updated"
    RECREATED = "recreated"
    UNCHANGED = "unchanged"


class UpdateStrategy(Enum):
    """How a changed replication document is written back."""
    UPDATE_IN_PLACE = "update"
    DELETE_AND_RECREATE = "recreate"


@dataclass
class AccountResult:
    username: str
    action: AccountAction
    granted_roles: list[str] = field(default_factory=list)


@dataclass
class RolesResult:
    database: str
    added_member_roles: list[str] = field(default_factory=list)
    added_admin_roles: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added_member_roles or self.added_admin_roles)


@dataclass
class DocumentResult:
    doc_id: str
    source: str
    target: str
    action: DocumentAction

    @property
    def changed(self) -> bool:
        return self.action is not DocumentAction.UNCHANGED


@dataclass
class ServerResult:
    """Everything done while configuring replication for one server."""
    endpoint: ServerEndpoint
    accounts: list[AccountResult] = field(default_factory=list)
    roles: list[RolesResult] = field(default_factory=list)
    documents: list[DocumentResult] = field(default_factory=list)


@dataclass
class RunResult:
    servers: list[ServerResult] = field(default_factory=list)

    @property
    def documents(self) -> list[DocumentResult]:
        return [doc for server in self.servers for doc in server.documents]

    @property
    def changed_documents(self) -> int:
        return sum(1 for doc in self.documents if doc.changed)
