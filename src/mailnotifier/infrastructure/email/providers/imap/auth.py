from __future__ import annotations
from dataclasses import dataclass
import imaplib
import ssl

from mailnotifier.domain.errors import ConnectionErrorKind, MailConnectionError

DEFAULT_IMAP_HOST = "imap.gmail.com"
DEFAULT_IMAP_PORT = 993

# Server response fragments that mean the account/secret pair was refused
CREDENTIAL_MARKERS = (
    "AUTHENTICATIONFAILED",
    "AUTHORIZATIONFAILED",
    "INVALID CREDENTIALS",
    "LOGIN FAILED",
    "AUTHENTICATE FAILED",
    "APPLICATION-SPECIFIC PASSWORD REQUIRED",
    "WEB LOGIN REQUIRED",
)


@dataclass(frozen=True)
class ImapCredentials:
    """
    Represents credentials for the monitored mailbox.
    The secret is an app-specific password, not the account password.
    """
    email: str
    password: str

    def __repr__(self) -> str:
        return f"ImapCredentials(email={self.email!r}, password='**********')"


def classify_login_error(exc: Exception) -> ConnectionErrorKind:
    """Unknown responses are retryable so a flaky server never looks fatal."""
    if isinstance(exc, (imaplib.IMAP4.abort, OSError)):
        return ConnectionErrorKind.RETRYABLE
    text = str(exc).upper()
    if any(marker in text for marker in CREDENTIAL_MARKERS):
        return ConnectionErrorKind.CREDENTIAL_REJECTED
    return ConnectionErrorKind.RETRYABLE


class ImapAuthenticator:
    """
    Responsible ONLY for establishing an authenticated IMAP connection.
    No folder logic, no fetching, no parsing.
    """

    def __init__(
        self,
        creds: ImapCredentials,
        host: str = DEFAULT_IMAP_HOST,
        port: int = DEFAULT_IMAP_PORT,
        timeout: float = 30.0,
    ) -> None:
        self.creds = creds
        self.host = host
        self.port = port
        self.timeout = timeout

    def connect(self) -> imaplib.IMAP4_SSL:
        """
        Opens an IMAPS connection with certificate and hostname verification.
        There is no STARTTLS or plaintext fallback.
        """
        context = ssl.create_default_context()
        try:
            return imaplib.IMAP4_SSL(
                host=self.host,
                port=self.port,
                ssl_context=context,
                timeout=self.timeout,
            )
        except ssl.SSLCertVerificationError as e:
            raise MailConnectionError(
                f"Certificate validation failed for {self.host}: {e}",
                operation="connect",
            ) from e
        except (OSError, imaplib.IMAP4.error) as e:
            raise MailConnectionError(
                f"Failed to connect to {self.host}:{self.port}: {e}",
                operation="connect",
            ) from e

    def login(self) -> imaplib.IMAP4_SSL:
        """Returns an authenticated IMAP4_SSL connection."""
        conn = self.connect()
        try:
            conn.login(self.creds.email, self.creds.password)
        except (imaplib.IMAP4.error, OSError) as e:
            try:
                conn.shutdown()
            except OSError:
                pass
            kind = classify_login_error(e)
            raise MailConnectionError(
                f"IMAP login failed for {self.creds.email}: {e}",
                kind=kind,
                operation="login",
            ) from e
        return conn
