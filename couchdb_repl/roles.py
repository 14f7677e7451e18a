# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""Database security role configuration."""

from .models import Credential, RolesResult
from .server import CouchServer


def ensure_database_roles(
    server: CouchServer,
    database: str,
    member_roles: list[str],
    admin_roles: list[str],
    admin: Credential,
) -> RolesResult:
    """Ensure ``database`` has at least the given member and admin roles.

    One add call is issued per role, member roles first. Adding a role that is
    already present is a no-op on the server. Existing roles are never removed.
    The first failing call aborts; nothing is rolled back.

    Raises:
        CouchDBError: If any add call fails
    """
    result = RolesResult(database)
    for role in member_roles:
        if server.add_member_role(database, role, admin):
            result.added_member_roles.append(role)
    for role in admin_roles:
        if server.add_admin_role(database, role, admin):
            result.added_admin_roles.append(role)
    return result
