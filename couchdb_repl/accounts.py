# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""Service account provisioning."""

import logging

from .errors import CouchDBError, ErrorKind, NotFoundError, as_transient
from .models import ROLE_SERVER_ADMIN, AccountAction, AccountResult, Credential
from .server import CouchServer

logger = logging.getLogger(__name__)


def ensure_account(
    server: CouchServer,
    credential: Credential,
    required_roles: list[str],
    admin: Credential,
) -> AccountResult:
    """Ensure ``credential.username`` exists with at least ``required_roles``.

    An existing account only gets the roles it is missing, one grant call per
    role; roles it already has are left alone. A missing account is created
    with the password and the full role set in a single call.

    Args:
        server: Server handle
        credential: Account to ensure
        required_roles: Minimum set of roles the account must hold
        admin: Server admin credential used for the calls

    Returns:
        AccountResult describing what changed

    Raises:
        CouchDBError: If the lookup fails for a reason other than "not found",
            or if a create or grant call fails. A 404 from a write is
            reported as transient
    """
    try:
        user = server.get_user(credential.username, admin)
    except NotFoundError:
        logger.debug("user '%s' not found, creating it", credential.username)
        try:
            server.create_user(credential.username, credential.password, list(required_roles), admin)
        except NotFoundError as e:
            # _users is created late during node startup.
            raise as_transient(e) from e
        return AccountResult(credential.username, AccountAction.CREATED, list(required_roles))

    current_roles = set(user.get("roles") or [])
    granted = []
    for role in required_roles:
        if role in current_roles:
            continue
        try:
            server.grant_role(credential.username, role, admin)
        except NotFoundError as e:
            raise as_transient(e) from e
        granted.append(role)

    action = AccountAction.UPDATED if granted else AccountAction.UNCHANGED
    return AccountResult(credential.username, action, granted)


def verify_admin(server: CouchServer, admin: Credential) -> AccountResult:
    """Check that ``admin`` authenticates as a server admin.

    Server admins are part of the server configuration rather than the
    ``_users`` database, so they are verified instead of created.

    Raises:
        CouchDBError: With kind REJECTED if the credential is not a server admin
    """
    user_ctx = server.session(admin)
    if ROLE_SERVER_ADMIN not in (user_ctx.get("roles") or []):
        raise CouchDBError(
            f"user '{admin.username}' is not a server admin (roles: {user_ctx.get('roles') or []})",
            status_code=403,
            kind=ErrorKind.REJECTED,
        )
    return AccountResult(admin.username, AccountAction.VERIFIED)
