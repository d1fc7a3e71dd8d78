"""Detect mail that arrived since the last successful poll."""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from loguru import logger

from mailnotifier.application.ports.mail_source import FolderStatus, MailboxCursor, MailSession
from mailnotifier.domain.entities.message_summary import MessageSummary


class ChangeDetector:
    """Compare the folder against a UID cursor and return what is new.

    Flow:
    1. Read folder STATUS (UIDVALIDITY, UIDNEXT)
    2. No cursor yet -> baseline at UIDNEXT - 1, notify nothing
    3. UIDVALIDITY changed -> re-baseline; the cursor never moves back otherwise
    4. Otherwise UID SEARCH above the cursor and fetch headers, oldest first

    The caller's cursor is never mutated; a failed poll raises and the same
    UID range is searched again on the next cycle.
    """

    def poll_new(
        self,
        session: MailSession,
        cursor: Optional[MailboxCursor],
    ) -> tuple[list[MessageSummary], MailboxCursor]:
        status = session.folder_status()

        if cursor is None:
            baseline = self._baseline(status)
            logger.info(
                f"Initialized cursor for {status.folder} at UID {baseline.last_uid} "
                f"({status.messages} existing messages, not notified)"
            )
            return [], baseline

        if self._is_reset(cursor, status):
            baseline = self._baseline(status)
            logger.warning(
                f"Mailbox {status.folder} reset detected "
                f"(uidvalidity {cursor.uidvalidity} -> {status.uidvalidity}, "
                f"uidnext {status.uid_next}, cursor UID {cursor.last_uid}); "
                f"re-baselined at UID {baseline.last_uid}, "
                f"mail in between may be missed or duplicated"
            )
            return [], baseline

        if status.uid_next <= cursor.last_uid:
            # Same UIDVALIDITY means UIDs are stable; a low UIDNEXT is a stale STATUS
            logger.warning(
                f"STATUS for {status.folder} reports uidnext {status.uid_next} at or below "
                f"cursor UID {cursor.last_uid} with unchanged uidvalidity; keeping cursor"
            )

        # "UID n:*" always matches the highest UID, even when it is below n
        uids = sorted({uid for uid in session.search_since(cursor.last_uid) if uid > cursor.last_uid})
        if not uids:
            return [], cursor

        summaries = session.fetch_headers(uids)
        summaries = sorted(
            (s for s in summaries if s.uid > cursor.last_uid),
            key=lambda s: s.uid,
        )
        if len(summaries) < len(uids):
            logger.debug(
                f"{len(uids) - len(summaries)} message(s) vanished between search and fetch"
            )

        return summaries, replace(cursor, last_uid=uids[-1])

    @staticmethod
    def _baseline(status: FolderStatus) -> MailboxCursor:
        return MailboxCursor(
            folder=status.folder,
            uidvalidity=status.uidvalidity,
            last_uid=max(status.uid_next - 1, 0),
        )

    @staticmethod
    def _is_reset(cursor: MailboxCursor, status: FolderStatus) -> bool:
        if cursor.folder != status.folder:
            return True
        return cursor.uidvalidity != status.uidvalidity
