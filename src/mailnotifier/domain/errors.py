"""Error taxonomy for the mail notifier.

Adapters translate library exceptions into these types at their boundary;
the worker loop is the only place that decides what happens next.
"""

from __future__ import annotations

from enum import Enum


class MailNotifierError(Exception):
    """Base class for all mail notifier errors."""


class ConfigurationError(MailNotifierError):
    """Missing or malformed startup configuration. Fatal."""


class ConnectionErrorKind(str, Enum):
    RETRYABLE = "retryable"
    CREDENTIAL_REJECTED = "credential_rejected"


class MailConnectionError(MailNotifierError):
    """The IMAP session could not be established or verified."""

    def __init__(
        self,
        message: str,
        kind: ConnectionErrorKind = ConnectionErrorKind.RETRYABLE,
        operation: str | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.operation = operation

    @property
    def credential_rejected(self) -> bool:
        return self.kind is ConnectionErrorKind.CREDENTIAL_REJECTED


class ProtocolError(MailNotifierError):
    """An IMAP command failed on an established session."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class DeliveryError(MailNotifierError):
    """A chat notification could not be delivered."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after
