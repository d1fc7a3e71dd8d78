"""Domain models, entities and errors."""

from mailnotifier.domain.errors import (
    ConfigurationError,
    ConnectionErrorKind,
    DeliveryError,
    MailConnectionError,
    MailNotifierError,
    ProtocolError,
)
from mailnotifier.domain.models import ConnectionState, WorkerState

__all__ = [
    "ConnectionState",
    "WorkerState",
    "MailNotifierError",
    "ConfigurationError",
    "ConnectionErrorKind",
    "MailConnectionError",
    "ProtocolError",
    "DeliveryError",
]
