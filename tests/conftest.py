# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""Shared fixtures for couchdb-repl tests."""

import pytest

from couchdb_repl import (
    Credential,
    InMemoryCluster,
    InMemoryCouchServer,
    RetryConfig,
    ServerEndpoint,
    ServiceConfig,
)

ADMIN = Credential("admin", "admin-secret")
REPLICATOR = Credential("replicator", "repl-secret")
EDITOR = Credential("editor", "edit-secret")


@pytest.fixture
def fast_retry():
    """Three attempts without delay."""
    return RetryConfig(max_attempts=3, delay_seconds=0, timeout_seconds=60)


@pytest.fixture
def admin():
    return ADMIN


@pytest.fixture
def replicator():
    return REPLICATOR


@pytest.fixture
def editor():
    return EDITOR


@pytest.fixture
def endpoints():
    """Three servers A, B and C."""
    return (
        ServerEndpoint.parse("http://couch-a:5984"),
        ServerEndpoint.parse("http://couch-b:5984"),
        ServerEndpoint.parse("http://couch-c:5984"),
    )


@pytest.fixture
def server(admin):
    """Single in-memory server with an 'orders' database."""
    store = InMemoryCouchServer(admins={admin.username: admin.password})
    store.create_database("orders")
    return store


@pytest.fixture
def cluster(admin):
    """In-memory cluster where every server has 'orders' and 'customers'."""
    return InMemoryCluster(admins={admin.username: admin.password}, databases=["orders", "customers"])


@pytest.fixture
def make_config(endpoints):
    """Factory for ServiceConfig with test defaults."""

    def _make(**overrides):
        values = {
            "server_urls": endpoints,
            "database_names": ("orders", "customers"),
            "admin_user": ADMIN,
            "replicator_user": REPLICATOR,
            "editor_user": EDITOR,
        }
        values.update(overrides)
        return ServiceConfig(**values)

    return _make


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays."""
    delays = []

    def _sleep(seconds):
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep
