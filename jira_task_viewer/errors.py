"""Error hierarchy for the viewer.

Every failure that crosses the tracker port is a ``TrackerError`` carrying an
``ErrorKind``; ``classify`` maps anything else (requests exceptions, bugs in an
adapter) onto the same kinds so the controller only ever reasons about kinds.
"""

from __future__ import annotations

import enum
import logging
from typing import Optional

import requests

logger = logging.getLogger('jira_task_viewer.errors')


class ErrorKind(enum.Enum):
    TRANSPORT = "transport"
    REMOTE_REJECTION = "remote_rejection"
    VALIDATION = "validation"
    STALE_RESULT = "stale_result"
    CONCURRENT_MUTATION_REJECTED = "concurrent_mutation_rejected"


class TrackerError(Exception):
    """Base class for every error surfaced by the port or the core."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class TransportError(TrackerError):
    """Connection failures and timeouts."""

    kind = ErrorKind.TRANSPORT


class RemoteRejection(TrackerError):
    """The service answered with an error status."""

    kind = ErrorKind.REMOTE_REJECTION


class NotFound(RemoteRejection):
    pass


class Unauthorized(RemoteRejection):
    def __init__(self, message: str = "Unauthorized operation. Check credentials.", status: Optional[int] = 401):
        super().__init__(message, status)


class ValidationError(TrackerError):
    """Local form data failed structural checks; never dispatched."""

    kind = ErrorKind.VALIDATION


class ConcurrentMutationRejected(TrackerError):
    kind = ErrorKind.CONCURRENT_MUTATION_REJECTED


class ConfigError(Exception):
    """Missing or malformed configuration (not a runtime tracker failure)."""

    exit_code = 2


def classify(exc: BaseException) -> TrackerError:
    """Return ``exc`` as a ``TrackerError``, wrapping foreign exceptions."""
    if isinstance(exc, TrackerError):
        return exc
    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return TransportError(f"Network error: {exc}")
    if isinstance(exc, requests.exceptions.HTTPError):
        status = exc.response.status_code if exc.response is not None else None
        return RemoteRejection(f"Jira API Error: {status}", status)
    logger.error("Unclassified failure treated as transport error", exc_info=exc)
    return TransportError(f"Network error: {exc}")


def user_message(err: TrackerError) -> str:
    text = err.message or err.__class__.__name__
    if err.kind is ErrorKind.TRANSPORT and not text.lower().startswith("network error"):
        return f"Network error: {text}"
    return text
