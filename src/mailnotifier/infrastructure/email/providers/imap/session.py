"""Owner of the long-lived IMAP session."""

from __future__ import annotations

from typing import Callable, Optional

from loguru import logger

from mailnotifier.application.ports.mail_source import MailSession
from mailnotifier.domain.errors import MailConnectionError, ProtocolError
from mailnotifier.domain.models import ConnectionState
from mailnotifier.infrastructure.email.providers.imap.auth import ImapAuthenticator
from mailnotifier.infrastructure.email.providers.imap.client import ImapMailClient

SessionFactory = Callable[[], MailSession]


class ImapSessionManager:
    """
    Establish, verify and tear down the authenticated IMAP session.

    ``ensure_session`` hands back the live session when a NOOP still
    succeeds; otherwise it drops whatever is left and logs in again.
    Usable as a context manager so the transport is closed on exit.
    """

    def __init__(self, factory: SessionFactory) -> None:
        self._factory = factory
        self._session: Optional[MailSession] = None
        self.state = ConnectionState.DISCONNECTED

    @classmethod
    def from_authenticator(cls, auth: ImapAuthenticator, folder: str = "INBOX") -> "ImapSessionManager":
        def factory() -> MailSession:
            client = ImapMailClient(auth.login(), folder=folder)
            try:
                count = client.select_folder()
            except MailConnectionError:
                client.logout()
                raise
            logger.info(f"Selected {folder} ({count} messages) on {auth.host}")
            return client

        return cls(factory)

    @property
    def session(self) -> Optional[MailSession]:
        return self._session

    def ensure_session(self) -> MailSession:
        if self.state is ConnectionState.AUTHENTICATED and self._session is not None:
            try:
                self._session.noop()
                return self._session
            except ProtocolError as e:
                logger.warning(f"IMAP liveness check failed, reconnecting: {e}")

        self._drop_session()
        self.state = ConnectionState.CONNECTING
        try:
            self._session = self._factory()
        except MailConnectionError:
            self.state = ConnectionState.FAULTED
            raise

        self.state = ConnectionState.AUTHENTICATED
        logger.info("IMAP session established")
        return self._session

    def invalidate(self) -> None:
        """Throw the session away after a fault; the next ensure_session reconnects."""
        self._drop_session()
        self.state = ConnectionState.FAULTED

    def close(self) -> None:
        self._drop_session()
        self.state = ConnectionState.DISCONNECTED

    def _drop_session(self) -> None:
        if self._session is not None:
            self._session.logout()
            self._session = None

    def __enter__(self) -> "ImapSessionManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
