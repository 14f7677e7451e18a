# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""Retry policy with a fixed delay, an attempt limit and an overall timeout.

Every potentially transient remote call goes through :func:`retry_call`.
Call sites pick one of the predefined :class:`RetryConfig` bounds:

- ``PING_RETRY`` covers cluster cold start and is the most generous
- ``DOCUMENT_RETRY`` is used for replication document reconciliation
- ``PROVISION_RETRY`` is used for accounts and database roles and is the tightest
"""

import logging
import time
from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from typing import TypeVar

from .errors import RETRYABLE_KINDS, ErrorKind, ReplicationSetupError, RetryExhaustedError, annotate

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Bounds for a retry loop. Whichever bound is hit first stops retrying.

    Attributes:
        max_attempts: Maximum number of attempts, including the first one
        delay_seconds: Fixed delay between attempts
        timeout_seconds: Overall wall-clock ceiling measured from the first attempt
    """
    max_attempts: int = 5
    delay_seconds: float = 2.0
    timeout_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.delay_seconds < 0:
            raise ValueError(f"delay_seconds must not be negative, got {self.delay_seconds}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {self.timeout_seconds}")


PING_RETRY = RetryConfig(max_attempts=60, delay_seconds=2.0, timeout_seconds=300.0)
DOCUMENT_RETRY = RetryConfig(max_attempts=5, delay_seconds=2.0, timeout_seconds=60.0)
PROVISION_RETRY = RetryConfig(max_attempts=5, delay_seconds=2.0, timeout_seconds=30.0)

# A freshly created replicator user can be rejected until the node's
# authentication cache has caught up.
DOCUMENT_RETRYABLE_KINDS = RETRYABLE_KINDS | {ErrorKind.REJECTED}


@dataclass
class RetryContext:
    """State tracked across the attempts of one retry loop."""
    description: str
    attempt_number: int = 1
    start_time: float = field(default_factory=lambda: time.monotonic())
    last_exception: Exception | None = None

    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.start_time


class RetryPolicy:
    """Decides whether and how long to wait before the next attempt."""

    def __init__(
        self,
        config: RetryConfig | None = None,
        sleep: Callable[[float], None] | None = None,
        retryable_kinds: Collection[ErrorKind] = RETRYABLE_KINDS,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep or time.sleep
        self.retryable_kinds = frozenset(retryable_kinds)

    def is_retryable(self, exception: Exception) -> bool:
        # An exhausted inner loop is final.
        if isinstance(exception, RetryExhaustedError):
            return False
        if isinstance(exception, ReplicationSetupError):
            return exception.kind in self.retryable_kinds
        return False

    def next_delay(self, context: RetryContext) -> float | None:
        """Return the delay before the next attempt, or None to stop.

        The delay is clipped so the next attempt still starts before the
        overall timeout expires.
        """
        if context.attempt_number >= self.config.max_attempts:
            return None
        remaining = self.config.timeout_seconds - context.elapsed_seconds()
        if remaining <= 0:
            return None
        return min(self.config.delay_seconds, remaining)

    def sleep(self, delay_seconds: float) -> None:
        if delay_seconds > 0:
            self._sleep(delay_seconds)


def retry_call(
    func: Callable[[], T],
    config: RetryConfig,
    context: str,
    on_retry: Callable[[Exception, int], None] | None = None,
    sleep: Callable[[float], None] | None = None,
    retryable_kinds: Collection[ErrorKind] = RETRYABLE_KINDS,
) -> T:
    """Call ``func`` until it succeeds or the bounds in ``config`` are used up.

    Args:
        func: Operation to execute
        config: Attempt/delay/timeout bounds for this call site
        context: Description of the operation and its target, used to
            annotate surfaced errors (e.g. "failed to create user 'bob' on 'http://a:5984'")
        on_retry: Optional callback invoked before each retry with the error
            and the number of the attempt that failed
        sleep: Optional sleep function (defaults to time.sleep)
        retryable_kinds: Error kinds worth another attempt at this call site

    Returns:
        Result of the first successful call

    Raises:
        RetryExhaustedError: When a retryable error persists past the bounds
        ReplicationSetupError: Non-retryable errors, annotated with ``context``
        Exception: Anything that is not a ReplicationSetupError is re-raised unchanged
    """
    policy = RetryPolicy(config, sleep=sleep, retryable_kinds=retryable_kinds)
    retry_context = RetryContext(description=context)

    while True:
        try:
            result = func()
        except Exception as e:
            retry_context.last_exception = e
            if not policy.is_retryable(e):
                logger.debug("%s: non-retryable error on attempt %d: %s", context, retry_context.attempt_number, e)
                if isinstance(e, ReplicationSetupError):
                    raise annotate(e, context) from e
                raise

            delay = policy.next_delay(retry_context)
            if delay is None:
                elapsed = retry_context.elapsed_seconds()
                logger.warning(
                    "%s: giving up after %d attempt(s) (%.1fs elapsed): %s",
                    context, retry_context.attempt_number, elapsed, e,
                )
                raise RetryExhaustedError(context, retry_context.attempt_number, elapsed, e) from e

            logger.info(
                "%s: attempt %d/%d failed, retrying in %.1fs: %s",
                context, retry_context.attempt_number, config.max_attempts, delay, e,
            )
            if on_retry:
                on_retry(e, retry_context.attempt_number)
            policy.sleep(delay)
            retry_context.attempt_number += 1
            continue

        if retry_context.attempt_number > 1:
            logger.info(
                "%s: succeeded after %d attempts (%.1fs elapsed)",
                context, retry_context.attempt_number, retry_context.elapsed_seconds(),
            )
        return result
