# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""Open a server handle and wait until the server answers."""

import logging
from collections.abc import Callable

from .config import DEFAULT_REQUEST_TIMEOUT
from .http_server import HttpCouchServer
from .models import ServerEndpoint
from .retry import PING_RETRY, RetryConfig, retry_call
from .server import CouchServer

logger = logging.getLogger(__name__)

ServerFactory = Callable[[ServerEndpoint, float], CouchServer]


def establish_connection(
    endpoint: ServerEndpoint,
    server_factory: ServerFactory | None = None,
    retry_config: RetryConfig = PING_RETRY,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    sleep: Callable[[float], None] | None = None,
    on_retry: Callable[[Exception, int], None] | None = None,
) -> CouchServer:
    """Return a handle to ``endpoint`` once it responds to a liveness check.

    The ping is retried with a fixed delay until it succeeds or the attempt
    or time bound of ``retry_config`` is reached. Exhaustion is fatal for the
    run.

    Args:
        endpoint: Server to connect to
        server_factory: Builds the handle (defaults to the HTTP backend)
        retry_config: Ping retry bounds
        request_timeout: Per-request timeout passed to the factory
        sleep: Optional sleep function for the retry loop
        on_retry: Optional callback invoked before each new ping

    Raises:
        RetryExhaustedError: If the server never answered
    """
    factory = server_factory or HttpCouchServer
    server = factory(endpoint, request_timeout)

    logger.debug("Probing %s", endpoint.url)
    try:
        retry_call(
            server.ping,
            retry_config,
            f"cannot ping database '{endpoint.url}'",
            on_retry=on_retry,
            sleep=sleep,
        )
    except Exception:
        server.close()
        raise
    return server
