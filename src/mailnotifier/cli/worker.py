"""Mail notifier worker - polls one mailbox and DMs new mail to Discord."""

from __future__ import annotations

import os
import signal
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from loguru import logger

from mailnotifier.application.backoff import backoff_delay
from mailnotifier.application.ports.cursor_store import CursorStore
from mailnotifier.application.ports.mail_source import MailboxCursor
from mailnotifier.application.use_cases.detect_new_mail import ChangeDetector
from mailnotifier.application.use_cases.notify import NotificationDispatcher
from mailnotifier.domain.errors import ConfigurationError, DeliveryError, MailConnectionError, ProtocolError
from mailnotifier.domain.models import WorkerState
from mailnotifier.infrastructure.chat.providers.discord import DiscordProvider
from mailnotifier.infrastructure.email.providers.imap import (
    ImapAuthenticator,
    ImapCredentials,
    ImapSessionManager,
)
from mailnotifier.infrastructure.settings import REQUIRED_ENV_VARS, load_settings
from mailnotifier.infrastructure.stores import JsonCursorStore

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


@dataclass
class WorkerStats:
    """Track worker statistics."""
    polls_completed: int = 0
    notified: int = 0
    delivery_failures: int = 0
    faults: int = 0
    last_poll: datetime | None = None


class NotifierWorker:
    """
    Supervisory poll loop.

    Each cycle: ensure an IMAP session, detect new mail against the cursor,
    dispatch one DM per message, then sleep the poll interval. Connection
    and protocol faults back off exponentially and retry forever; only a
    shutdown signal ends the loop.
    """

    def __init__(
        self,
        sessions: ImapSessionManager,
        detector: ChangeDetector,
        dispatcher: NotificationDispatcher,
        account: str,
        poll_interval: float = 30.0,
        backoff_initial: float = 5.0,
        backoff_max: float = 300.0,
        cursor_store: Optional[CursorStore] = None,
        folder: str = "INBOX",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.sessions = sessions
        self.detector = detector
        self.dispatcher = dispatcher
        self.account = account
        self.folder = folder
        self.poll_interval = poll_interval
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max
        self.cursor_store = cursor_store
        self._sleep_fn = sleep

        self.cursor: Optional[MailboxCursor] = None
        self.failures = 0
        self.state = WorkerState.IDLE
        self.running = False
        self.stats = WorkerStats()

    def load_cursor(self) -> None:
        if self.cursor_store is None:
            return
        self.cursor = self.cursor_store.load(self.account, self.folder)
        if self.cursor is not None:
            logger.info(
                f"Resuming {self.folder} from checkpoint UID {self.cursor.last_uid} "
                f"(uidvalidity {self.cursor.uidvalidity})"
            )

    def _save_cursor(self, cursor: MailboxCursor) -> None:
        if self.cursor_store is None:
            return
        try:
            self.cursor_store.save(self.account, cursor)
        except OSError as e:
            logger.error(f"Failed to save cursor checkpoint: {e}")

    def _fault(self) -> float:
        self.failures += 1
        self.stats.faults += 1
        return backoff_delay(self.failures, self.backoff_initial, self.backoff_max)

    def run_cycle(self) -> float:
        """Run one connect/poll/notify cycle. Returns seconds to sleep before the next."""
        self.stats.last_poll = datetime.now()
        logger.info(f"Starting poll cycle #{self.stats.polls_completed + 1}")

        self.state = WorkerState.CONNECTING
        try:
            session = self.sessions.ensure_session()
        except MailConnectionError as e:
            delay = self._fault()
            if e.credential_rejected:
                logger.error(
                    f"IMAP credentials rejected ({e}); check GMAIL_EMAIL/GMAIL_APP_PASSWORD. "
                    f"Retrying in {delay:.0f}s (failure #{self.failures})"
                )
            else:
                logger.warning(
                    f"IMAP connection failed during {e.operation or 'connect'}: {e}. "
                    f"Retrying in {delay:.0f}s (failure #{self.failures})"
                )
            return delay

        self.state = WorkerState.POLLING
        try:
            summaries, cursor = self.detector.poll_new(session, self.cursor)
        except ProtocolError as e:
            self.sessions.invalidate()
            delay = self._fault()
            logger.warning(
                f"IMAP {e.operation or 'command'} failed: {e}. "
                f"Reconnecting in {delay:.0f}s (failure #{self.failures})"
            )
            return delay

        self.failures = 0
        if cursor != self.cursor:
            self._save_cursor(cursor)
        self.cursor = cursor

        logger.info(f"Found {len(summaries)} new email(s) in {self.folder}")
        for summary in summaries:
            if self.dispatcher.notify(summary):
                self.stats.notified += 1
            else:
                self.stats.delivery_failures += 1

        self.stats.polls_completed += 1
        self._log_stats()
        return self.poll_interval

    def _log_stats(self) -> None:
        """Log current worker statistics."""
        logger.info(
            f"Worker stats: "
            f"polls={self.stats.polls_completed}, "
            f"notified={self.stats.notified}, "
            f"delivery_failures={self.stats.delivery_failures}, "
            f"faults={self.stats.faults}"
        )

    def _sleep(self, seconds: float) -> None:
        # Sleep in small increments to respond to signals quickly
        remaining = seconds
        while remaining > 0 and self.running:
            step = min(remaining, 1.0)
            self._sleep_fn(step)
            remaining -= step

    def _handle_shutdown(self, signum, frame) -> None:
        """Handle graceful shutdown."""
        logger.info(f"Received signal {signum}, shutting down...")
        self.running = False

    def stop(self) -> None:
        self.running = False

    def run(self) -> int:
        """Run the worker loop until a shutdown signal."""
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)

        logger.info(
            f"Mail notifier started for {self.account}/{self.folder}. "
            f"Checking for new emails every {self.poll_interval:.0f} seconds..."
        )
        self.load_cursor()
        self.running = True

        with self.sessions:
            while self.running:
                try:
                    delay = self.run_cycle()
                except Exception as e:
                    self.sessions.invalidate()
                    delay = self._fault()
                    logger.exception(f"Unexpected error in poll cycle, retrying in {delay:.0f}s: {e}")

                if not self.running:
                    break
                self.state = WorkerState.SLEEPING
                logger.debug(f"Sleeping for {delay:.0f} seconds...")
                self._sleep(delay)

        self.state = WorkerState.STOPPED
        logger.info("Worker shutdown complete")
        self._log_stats()
        return 0


def _startup_log_level(name: str) -> str:
    # Settings aren't validated yet; an unknown level must not stop the config report
    level = name.strip().upper()
    try:
        logger.level(level)
    except ValueError:
        return "INFO"
    return level


def _print_required_env() -> None:
    print("\nRequired environment variables:", file=sys.stderr)
    print("GMAIL_EMAIL=your_gmail_address", file=sys.stderr)
    print("GMAIL_APP_PASSWORD=your_gmail_app_password", file=sys.stderr)
    print("DISCORD_TOKEN=your_discord_bot_token", file=sys.stderr)
    print("DISCORD_USER_ID=your_discord_user_id", file=sys.stderr)
    print("\nNote: Use a Gmail App Password, not your regular password!", file=sys.stderr)


def main() -> int:
    """Entry point for the mail notifier worker."""
    # Configure logging
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=_startup_log_level(os.getenv("LOG_LEVEL", "INFO")))

    logger.info("Starting Gmail to Discord notifier...")

    try:
        settings = load_settings()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        missing = [name for name in REQUIRED_ENV_VARS if not os.getenv(name)]
        if missing:
            logger.error(f"Missing required environment variable(s): {', '.join(missing)}")
        _print_required_env()
        return 1

    # LOG_LEVEL may only be set in .env
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=settings.log_level)

    auth = ImapAuthenticator(
        ImapCredentials(
            email=settings.gmail_email,
            password=settings.gmail_app_password.get_secret_value(),
        ),
        host=settings.imap_host,
        port=settings.imap_port,
        timeout=settings.imap_timeout_seconds,
    )
    sessions = ImapSessionManager.from_authenticator(auth, folder=settings.imap_folder)

    chat = DiscordProvider(
        token=settings.discord_token.get_secret_value(),
        timeout=settings.discord_timeout_seconds,
    )
    try:
        chat.connect()
    except DeliveryError as e:
        logger.error(f"Discord token check failed, notifications may not be delivered: {e}")

    cursor_store = None
    if settings.cursor_state_file:
        cursor_store = JsonCursorStore(settings.cursor_state_file)
        logger.info(f"Cursor checkpoints enabled: {cursor_store.path}")

    worker = NotifierWorker(
        sessions=sessions,
        detector=ChangeDetector(),
        dispatcher=NotificationDispatcher(chat, settings.discord_user_id),
        account=settings.gmail_email,
        folder=settings.imap_folder,
        poll_interval=settings.poll_interval_seconds,
        backoff_initial=settings.backoff_initial_seconds,
        backoff_max=settings.backoff_max_seconds,
        cursor_store=cursor_store,
    )

    try:
        return worker.run()
    finally:
        chat.close()


if __name__ == "__main__":
    raise SystemExit(main())
