from __future__ import annotations
from dataclasses import dataclass
from typing import Protocol, Sequence

from mailnotifier.domain.entities.message_summary import MessageSummary

@dataclass(frozen=True)
class MailboxCursor:
    # IMAP cursor: UIDVALIDITY + last seen UID for folder
    folder: str
    uidvalidity: int
    last_uid: int

@dataclass(frozen=True)
class FolderStatus:
    # Snapshot from IMAP STATUS (MESSAGES UIDNEXT UIDVALIDITY)
    folder: str
    messages: int
    uid_next: int
    uidvalidity: int

class MailSession(Protocol):
    """An authenticated IMAP session with the monitored folder selected."""

    folder: str

    def noop(self) -> None: ...
    def folder_status(self) -> FolderStatus: ...
    def search_since(self, last_uid: int) -> list[int]: ...
    def fetch_headers(self, uids: Sequence[int]) -> list[MessageSummary]: ...
    def logout(self) -> None: ...
