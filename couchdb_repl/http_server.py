# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""CouchDB server backend speaking the HTTP API through ``requests``."""

import logging
from typing import Any
from urllib.parse import quote

import requests

from .config import DEFAULT_REQUEST_TIMEOUT
from .errors import CouchDBError, ErrorKind, NotFoundError
from .models import Credential, ServerEndpoint
from .server import USER_ID_PREFIX, USERS_DB, CouchServer

logger = logging.getLogger(__name__)


class HttpCouchServer(CouchServer):
    """CouchDB server reached over HTTP(S) with basic authentication."""

    def __init__(
        self,
        endpoint: ServerEndpoint,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        session: requests.Session | None = None,
    ):
        """Initialize the server handle. No network traffic happens here.

        Args:
            endpoint: Server to talk to
            timeout: Per-request timeout in seconds
            session: Optional pre-configured requests session
        """
        self.endpoint = endpoint
        self.timeout = timeout
        self.base_url = endpoint.url
        self._session = session or requests.Session()
        self._session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

    def _url(self, *parts: str) -> str:
        path = "/".join(quote(part, safe="") for part in parts)
        return f"{self.base_url}/{path}"

    def _request(
        self,
        method: str,
        *parts: str,
        auth: Credential | None = None,
        body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Send one request and decode the JSON response.

        Raises:
            NotFoundError: On HTTP 404
            CouchDBError: On any other HTTP error or transport failure
        """
        url = self._url(*parts)
        target = f"{method} {url}"
        logger.debug("HttpCouchServer: %s", target)
        try:
            response = self._session.request(
                method,
                url,
                auth=(auth.username, auth.password) if auth else None,
                json=body,
                params=params,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise CouchDBError(f"{target} failed: {e}", status_code=None, kind=ErrorKind.TRANSIENT) from e
        except requests.RequestException as e:
            raise CouchDBError(f"{target} failed: {e}", status_code=None, kind=ErrorKind.REMOTE) from e

        if response.status_code >= 400:
            error, reason = _error_details(response)
            message = f"{target} returned HTTP {response.status_code}"
            if error or reason:
                message = f"{message} ({error}: {reason})"
            if response.status_code == 404:
                raise NotFoundError(message, reason=reason)
            raise CouchDBError(message, status_code=response.status_code, reason=reason)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise CouchDBError(
                f"{target} returned invalid JSON", status_code=response.status_code, kind=ErrorKind.REMOTE
            ) from e

    def ping(self) -> None:
        self._request("GET")

    def session(self, auth: Credential) -> dict[str, Any]:
        body = self._request("GET", "_session", auth=auth)
        return body.get("userCtx") or {}

    def get_user(self, username: str, auth: Credential) -> dict[str, Any]:
        return self._request("GET", USERS_DB, USER_ID_PREFIX + username, auth=auth)

    def create_user(self, username: str, password: str, roles: list[str], auth: Credential) -> None:
        user_id = USER_ID_PREFIX + username
        self._request(
            "PUT",
            USERS_DB,
            user_id,
            auth=auth,
            body={
                "_id": user_id,
                "name": username,
                "password": password,
                "roles": list(roles),
                "type": "user",
            },
        )
        logger.debug("HttpCouchServer: created user %s on %s", username, self.base_url)

    def grant_role(self, username: str, role: str, auth: Credential) -> bool:
        user = self.get_user(username, auth)
        roles = list(user.get("roles") or [])
        if role in roles:
            return False
        user["roles"] = roles + [role]
        self._request("PUT", USERS_DB, USER_ID_PREFIX + username, auth=auth, body=user)
        return True

    def add_database_role(self, database: str, role: str, admin: bool, auth: Credential) -> bool:
        security = self._request("GET", database, "_security", auth=auth)
        section = security.setdefault("admins" if admin else "members", {})
        section.setdefault("names", [])
        roles = section.setdefault("roles", [])
        if role in roles:
            return False
        roles.append(role)
        self._request("PUT", database, "_security", auth=auth, body=security)
        return True

    def read_document(self, database: str, doc_id: str, auth: Credential) -> tuple[dict[str, Any], str]:
        body = self._request("GET", database, doc_id, auth=auth)
        return body, body.get("_rev", "")

    def delete_document(self, database: str, doc_id: str, rev: str, auth: Credential) -> None:
        self._request("DELETE", database, doc_id, auth=auth, params={"rev": rev})

    def save_document(
        self, database: str, doc_id: str, doc: dict[str, Any], rev: str | None, auth: Credential
    ) -> str:
        body = dict(doc)
        body["_id"] = doc_id
        if rev:
            body["_rev"] = rev
        result = self._request("PUT", database, doc_id, auth=auth, body=body)
        return result.get("rev", "")

    def close(self) -> None:
        self._session.close()


def _error_details(response: requests.Response) -> tuple[str | None, str | None]:
    """Extract CouchDB's ``error``/``reason`` pair from an error response."""
    try:
        payload = response.json()
    except ValueError:
        return None, None
    if not isinstance(payload, dict):
        return None, None
    return payload.get("error"), payload.get("reason")
