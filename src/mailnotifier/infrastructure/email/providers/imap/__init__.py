"""IMAP mail source: authentication, commands and session lifecycle."""

from mailnotifier.infrastructure.email.providers.imap.auth import (
    ImapAuthenticator,
    ImapCredentials,
)
from mailnotifier.infrastructure.email.providers.imap.client import ImapMailClient
from mailnotifier.infrastructure.email.providers.imap.session import ImapSessionManager

__all__ = [
    "ImapAuthenticator",
    "ImapCredentials",
    "ImapMailClient",
    "ImapSessionManager",
]
