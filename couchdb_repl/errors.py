# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""Typed errors raised while provisioning replication."""

from enum import Enum


class ErrorKind(Enum):
    """Machine-readable classification of a failure."""
    CONFIGURATION = "configuration"
    TRANSIENT = "transient"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    REJECTED = "rejected"
    REMOTE = "remote"
    STRUCTURAL = "structural"


RETRYABLE_KINDS = frozenset({ErrorKind.TRANSIENT, ErrorKind.CONFLICT})


class ReplicationSetupError(Exception):
    """Base exception for all replication setup failures.

    Attributes:
        kind: Classification used by the retry policy and the CLI
        context: Human readable description of the operation and target
            (which user, database or server the failure concerns)
    """

    default_kind = ErrorKind.REMOTE

    def __init__(self, message: str, kind: ErrorKind | None = None, context: str | None = None):
        self.message = message
        self.kind = kind or self.default_kind
        self.context = context
        super().__init__(f"{context}: {message}" if context else message)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class ConfigurationError(ReplicationSetupError):
    """Required input is missing or invalid. Detected before any network call."""

    default_kind = ErrorKind.CONFIGURATION


class StructuralError(ReplicationSetupError):
    """Malformed input such as an unparsable URL or a non-numeric port."""

    default_kind = ErrorKind.STRUCTURAL


class CouchDBError(ReplicationSetupError):
    """Error reported by (or while talking to) a CouchDB server.

    Attributes:
        status_code: HTTP status code, or None when no response was received
        reason: CouchDB ``error``/``reason`` text when the body carried one
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        kind: ErrorKind | None = None,
        context: str | None = None,
        reason: str | None = None,
    ):
        self.status_code = status_code
        self.reason = reason
        super().__init__(message, kind=kind or kind_for_status(status_code), context=context)


class NotFoundError(CouchDBError):
    """The requested resource does not exist.

    Used as a branching signal (create instead of update) rather than a failure.
    """

    default_kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str, context: str | None = None, reason: str | None = None):
        super().__init__(message, status_code=404, kind=ErrorKind.NOT_FOUND, context=context, reason=reason)


class RetryExhaustedError(ReplicationSetupError):
    """All retry attempts (or the overall timeout) were used up.

    The kind and message of the last underlying error are carried over so the
    surfaced message stays self-describing.
    """

    def __init__(self, context: str, attempts: int, elapsed_seconds: float, last_error: Exception):
        self.attempts = attempts
        self.elapsed_seconds = elapsed_seconds
        self.last_error = last_error
        kind = last_error.kind if isinstance(last_error, ReplicationSetupError) else ErrorKind.TRANSIENT
        super().__init__(
            f"gave up after {attempts} attempt(s) in {elapsed_seconds:.1f}s: {last_error}",
            kind=kind,
            context=context,
        )

    @property
    def retryable(self) -> bool:
        # Already retried; callers must not wrap it in another retry loop.
        return False


def kind_for_status(status_code: int | None) -> ErrorKind:
    """Classify an HTTP status code.

    ``None`` means the request never got a response (connection refused,
    timeout) and is treated as transient.
    """
    if status_code is None:
        return ErrorKind.TRANSIENT
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code in (409, 412):
        return ErrorKind.CONFLICT
    if status_code in (401, 403):
        return ErrorKind.REJECTED
    if status_code == 429 or status_code >= 500:
        return ErrorKind.TRANSIENT
    return ErrorKind.REMOTE


def annotate(error: Exception, context: str) -> ReplicationSetupError:
    """Return a copy of ``error`` of the same kind with ``context`` prefixed.

    Callers raise the result ``from error`` so the original traceback is kept.
    """
    if isinstance(error, RetryExhaustedError):
        return RetryExhaustedError(
            f"{context}: {error.context}" if error.context else context,
            error.attempts,
            error.elapsed_seconds,
            error.last_error,
        )
    if isinstance(error, ReplicationSetupError):
        message = f"{error.context}: {error.message}" if error.context else error.message
        if isinstance(error, NotFoundError):
            return NotFoundError(message, context=context, reason=error.reason)
        if isinstance(error, CouchDBError):
            return CouchDBError(
                message,
                status_code=error.status_code,
                kind=error.kind,
                context=context,
                reason=error.reason,
            )
        return type(error)(message, kind=error.kind, context=context)
    return ReplicationSetupError(str(error), kind=ErrorKind.REMOTE, context=context)


def as_transient(error: CouchDBError) -> CouchDBError:
    """Reclassify ``error`` as transient, keeping its status code and reason.

    Used for failures that only mean the server is not ready yet, such as a
    404 from a system database that has not been created during startup.
    """
    return CouchDBError(
        error.message,
        status_code=error.status_code,
        kind=ErrorKind.TRANSIENT,
        context=error.context,
        reason=error.reason,
    )
