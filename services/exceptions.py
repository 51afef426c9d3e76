"""
Exceptions raised by the notification pipeline.

Request-level errors (InvalidPayloadError, AuthorizationError) abort the
whole batch before anything is stored. Item-level errors (ProcessingError)
only fail the affected notification.
"""

from typing import Optional


class NotificationError(Exception):
    """Base class for notification pipeline errors."""


class InvalidPayloadError(NotificationError):
    """The request body is not a well-formed notification batch."""

    @classmethod
    def missing_body(cls) -> 'InvalidPayloadError':
        return cls("Missing notification body")

    @classmethod
    def invalid_body(cls) -> 'InvalidPayloadError':
        return cls("Invalid notification body")


class AuthorizationError(NotificationError):
    """
    Notification credentials did not match.

    Attributes:
        status: HTTP status to answer with (401 bad credentials, 403 unknown account)
    """

    def __init__(self, message: str, status: int = 401):
        super().__init__(message)
        self.status = status

    @classmethod
    def forbidden(cls, message: str) -> 'AuthorizationError':
        return cls(message, status=403)


class ProcessingError(NotificationError):
    """A processor could not apply a notification to the order."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class OrderServiceError(NotificationError):
    """The order subsystem rejected or failed a request."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
