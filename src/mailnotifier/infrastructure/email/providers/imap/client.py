from __future__ import annotations
import imaplib
import re
from typing import Callable, Sequence

from loguru import logger

from mailnotifier.application.ports.mail_source import FolderStatus
from mailnotifier.domain.entities.message_summary import MessageSummary
from mailnotifier.domain.errors import MailConnectionError, ProtocolError
from mailnotifier.infrastructure.email.providers.imap.mapper import parse_fetch_response

HEADER_FETCH_ITEMS = "(UID BODY.PEEK[HEADER.FIELDS (FROM SUBJECT DATE)])"
_STATUS_RE = re.compile(rb"(MESSAGES|UIDNEXT|UIDVALIDITY) (\d+)")


def quote_mailbox(name: str) -> str:
    """imaplib sends mailbox names verbatim; quote anything that isn't an atom."""
    if name.startswith('"') and name.endswith('"'):
        return name
    if re.fullmatch(r"[A-Za-z0-9_./\-]+", name):
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class ImapMailClient:
    """A logged-in IMAP connection bound to one read-only folder.

    Commands that fail on the established session raise ProtocolError;
    selecting the folder is part of session setup and raises
    MailConnectionError instead.
    """

    def __init__(self, conn: imaplib.IMAP4, folder: str = "INBOX") -> None:
        self._conn = conn
        self.folder = folder

    def _run(self, operation: str, command: Callable, *args) -> list:
        try:
            typ, data = command(*args)
        except (imaplib.IMAP4.error, OSError) as e:
            raise ProtocolError(f"IMAP {operation} failed: {e}", operation=operation) from e
        if typ != "OK":
            raise ProtocolError(f"IMAP {operation} returned {typ}: {data!r}", operation=operation)
        return data

    def select_folder(self) -> int:
        """Select the folder read-only so flags are left alone. Returns its message count."""
        try:
            typ, data = self._conn.select(quote_mailbox(self.folder), readonly=True)
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailConnectionError(
                f"Failed to select folder {self.folder}: {e}", operation="select"
            ) from e
        if typ != "OK":
            raise MailConnectionError(
                f"Failed to select folder {self.folder}: {data!r}", operation="select"
            )
        try:
            return int(data[0]) if data and data[0] else 0
        except (TypeError, ValueError):
            return 0

    def noop(self) -> None:
        self._run("noop", self._conn.noop)

    def folder_status(self) -> FolderStatus:
        data = self._run(
            "status",
            self._conn.status,
            quote_mailbox(self.folder),
            "(MESSAGES UIDNEXT UIDVALIDITY)",
        )
        raw = b" ".join(d for d in data if isinstance(d, bytes))
        values = {key.decode(): int(num) for key, num in _STATUS_RE.findall(raw)}
        missing = {"MESSAGES", "UIDNEXT", "UIDVALIDITY"} - values.keys()
        if missing:
            raise ProtocolError(
                f"STATUS response for {self.folder} lacks {sorted(missing)}: {raw!r}",
                operation="status",
            )
        return FolderStatus(
            folder=self.folder,
            messages=values["MESSAGES"],
            uid_next=values["UIDNEXT"],
            uidvalidity=values["UIDVALIDITY"],
        )

    def search_since(self, last_uid: int) -> list[int]:
        data = self._run("search", self._conn.uid, "SEARCH", None, f"UID {last_uid + 1}:*")
        uids: list[int] = []
        if data and data[0]:
            uids = [int(x) for x in data[0].split()]
        logger.debug(f"UID SEARCH above {last_uid} in {self.folder}: {uids}")
        return uids

    def fetch_headers(self, uids: Sequence[int]) -> list[MessageSummary]:
        if not uids:
            return []
        uid_set = ",".join(str(uid) for uid in uids)
        data = self._run("fetch", self._conn.uid, "FETCH", uid_set, HEADER_FETCH_ITEMS)
        return parse_fetch_response(data or [])

    def logout(self) -> None:
        try:
            self._conn.logout()
        except (imaplib.IMAP4.error, OSError) as e:
            logger.debug(f"IMAP logout failed (connection already gone?): {e}")
