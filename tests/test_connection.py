# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""Tests for connection establishment."""

from unittest.mock import Mock, call, patch

import pytest

from couchdb_repl import connection as connection_module
from couchdb_repl.connection import establish_connection
from couchdb_repl.errors import CouchDBError, ErrorKind, RetryExhaustedError
from couchdb_repl.inmemory_server import InMemoryCouchServer


def unreachable():
    return CouchDBError("GET http://couch-a:5984/ failed: connection refused", status_code=None)


class TestEstablishConnection:
    """Tests for establish_connection."""

    def test_returns_handle_when_server_answers(self, endpoints, fast_retry):
        """Test that a live server is returned after one ping."""
        server = InMemoryCouchServer(endpoints[0])
        factory = Mock(return_value=server)

        result = establish_connection(endpoints[0], server_factory=factory, retry_config=fast_retry,
                                      request_timeout=7.0)

        assert result is server
        factory.assert_called_once_with(endpoints[0], 7.0)
        assert len(server.calls_to("ping")) == 1
        assert not server.closed

    def test_waits_for_cold_start(self, endpoints, fast_retry, no_sleep):
        """Test that the ping is retried until the server comes up."""
        server = InMemoryCouchServer(endpoints[0])
        server.fail("ping", unreachable(), unreachable())

        result = establish_connection(endpoints[0], server_factory=lambda e, t: server,
                                      retry_config=fast_retry, sleep=no_sleep)

        assert result is server
        assert len(server.calls_to("ping")) == 3

    def test_on_retry_reports_each_failed_ping(self, endpoints, fast_retry, no_sleep):
        """Test that on_retry sees every failed ping before the next attempt."""
        server = InMemoryCouchServer(endpoints[0])
        first, second = unreachable(), unreachable()
        server.fail("ping", first, second)
        on_retry = Mock()

        establish_connection(endpoints[0], server_factory=lambda e, t: server,
                             retry_config=fast_retry, sleep=no_sleep, on_retry=on_retry)

        assert on_retry.call_args_list == [call(first, 1), call(second, 2)]

    def test_gives_up_after_bounds(self, endpoints, fast_retry, no_sleep):
        """Test that a server that never answers is fatal and the handle is closed."""
        server = InMemoryCouchServer(endpoints[0])
        server.fail("ping", *[unreachable() for _ in range(10)])

        with pytest.raises(RetryExhaustedError) as exc_info:
            establish_connection(endpoints[0], server_factory=lambda e, t: server,
                                 retry_config=fast_retry, sleep=no_sleep)

        assert len(server.calls_to("ping")) == fast_retry.max_attempts
        assert str(exc_info.value).startswith("cannot ping database 'http://couch-a:5984': ")
        assert server.closed

    def test_non_retryable_ping_failure(self, endpoints, fast_retry):
        """Test that a rejected ping fails immediately."""
        server = InMemoryCouchServer(endpoints[0])
        server.fail("ping", CouchDBError("forbidden", status_code=403))

        with pytest.raises(CouchDBError) as exc_info:
            establish_connection(endpoints[0], server_factory=lambda e, t: server, retry_config=fast_retry)

        assert exc_info.value.kind is ErrorKind.REJECTED
        assert len(server.calls_to("ping")) == 1
        assert server.closed

    def test_defaults_to_http_backend(self, endpoints, fast_retry):
        """Test that the HTTP backend is used when no factory is given."""
        with patch.object(connection_module, "HttpCouchServer") as http_backend:
            result = establish_connection(endpoints[1], retry_config=fast_retry, request_timeout=2.0)

        http_backend.assert_called_once_with(endpoints[1], 2.0)
        http_backend.return_value.ping.assert_called_once_with()
        assert result is http_backend.return_value
