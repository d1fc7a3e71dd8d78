from __future__ import annotations
from typing import Optional, Protocol
from mailnotifier.application.ports.mail_source import MailboxCursor

class CursorStore(Protocol):
    def load(self, account: str, folder: str) -> Optional[MailboxCursor]: ...
    def save(self, account: str, cursor: MailboxCursor) -> None: ...
