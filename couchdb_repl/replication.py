# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""Replication document reconciliation.

A replication document in a server's ``_replicator`` database tells CouchDB
to continuously pull one database from a peer. Documents are keyed by a hash
of their source and target, so the same replication edge always maps to the
same document and re-running with unchanged configuration writes nothing.
"""

import logging

from .errors import NotFoundError, as_transient
from .models import (
    ROLE_REPLICATOR,
    Credential,
    DocumentAction,
    DocumentResult,
    ReplicationDocument,
    ServerEndpoint,
    UpdateStrategy,
    UserContext,
    document_id,
)
from .server import REPLICATOR_DB, CouchServer

logger = logging.getLogger(__name__)

__all__ = [
    "build_replication_document",
    "document_id",
    "reconcile",
    "replicator_roles",
]


def build_replication_document(
    source: ServerEndpoint,
    database: str,
    replicator: Credential,
    user_ctx_roles: list[str] | None = None,
) -> ReplicationDocument:
    """Desired document for replicating ``database`` from ``source`` into the local ``database``.

    Args:
        source: Peer server to pull from
        database: Database name, used both remotely and locally
        replicator: Credential embedded in the source URL
        user_ctx_roles: Roles for the document's user_ctx. None omits user_ctx.
    """
    user_ctx = None
    if user_ctx_roles is not None:
        user_ctx = UserContext(name=replicator.username, roles=tuple(user_ctx_roles))
    return ReplicationDocument(
        source=source.database_url(database, replicator),
        target=database,
        continuous=True,
        user_ctx=user_ctx,
    )


def reconcile(
    server: CouchServer,
    document: ReplicationDocument,
    replicator: Credential,
    strategy: UpdateStrategy = UpdateStrategy.UPDATE_IN_PLACE,
) -> DocumentResult:
    """Make the stored replication document match ``document``.

    Reads the current document as the replicator user:

    - not found: the document is saved without a revision
    - equal field-by-field: nothing is written
    - different: depending on ``strategy``, saved over the current revision
      or deleted and then saved fresh

    Args:
        server: Server whose ``_replicator`` database holds the document
        document: Desired document
        replicator: Credential that owns the replicator documents
        strategy: How a changed document is written back

    Returns:
        DocumentResult with the action taken

    Raises:
        CouchDBError: If the read fails for a reason other than "not found",
            or if a delete or save fails. A 404 from a write is reported as
            transient so the caller re-reads and tries again
    """
    doc_id = document.doc_id
    result = DocumentResult(doc_id=doc_id, source=document.source, target=document.target,
                            action=DocumentAction.CREATED)

    try:
        stored, rev = server.read_document(REPLICATOR_DB, doc_id, replicator)
    except NotFoundError:
        rev = None
    else:
        if ReplicationDocument.from_dict(stored) == document:
            logger.debug("replicator document '%s' is up to date", doc_id)
            result.action = DocumentAction.UNCHANGED
            return result

    body = document.to_dict()
    try:
        if rev and strategy is UpdateStrategy.DELETE_AND_RECREATE:
            server.delete_document(REPLICATOR_DB, doc_id, rev, replicator)
            server.save_document(REPLICATOR_DB, doc_id, body, None, replicator)
            result.action = DocumentAction.RECREATED
        elif rev:
            server.save_document(REPLICATOR_DB, doc_id, body, rev, replicator)
            result.action = DocumentAction.UPDATED
        else:
            server.save_document(REPLICATOR_DB, doc_id, body, None, replicator)
    except NotFoundError as e:
        # _replicator may not exist yet, or the document vanished between read and write.
        raise as_transient(e) from e
    return result


def replicator_roles(include_user_ctx: bool) -> list[str] | None:
    """user_ctx roles for replication documents, or None to omit user_ctx."""
    return [ROLE_REPLICATOR] if include_user_ctx else None
