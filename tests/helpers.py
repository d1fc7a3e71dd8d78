"""In-memory fakes for the IMAP session and the chat client."""

from __future__ import annotations

from mailnotifier.application.ports.mail_source import FolderStatus
from mailnotifier.domain.entities.message_summary import MessageSummary
from mailnotifier.domain.errors import DeliveryError, ProtocolError


class FakeMailbox:
    """In-memory stand-in for an authenticated IMAP session."""

    def __init__(self, folder="INBOX", uidvalidity=1, existing=0):
        self.folder = folder
        self.uidvalidity = uidvalidity
        self.messages: dict[int, MessageSummary] = {}
        self.uid_next = 1
        self.fail_status = 0
        self.fail_fetch = 0
        self.fail_noop = False
        self.reverse_fetch = False
        self.stale_uid_next: int | None = None
        self.vanish_on_fetch: set[int] = set()
        self.logged_out = False
        self.fetch_calls: list[list[int]] = []
        for _ in range(existing):
            self.deliver()

    def deliver(self, sender="alice@example.com", subject=None) -> int:
        uid = self.uid_next
        self.uid_next += 1
        self.messages[uid] = MessageSummary(
            uid=uid,
            sender=sender,
            subject=subject if subject is not None else f"Message {uid}",
            date="Mon, 1 Jan 2024 10:00:00 +0000",
        )
        return uid

    def recreate(self, uidvalidity: int, count: int) -> None:
        """Simulate the folder being rebuilt with fresh UIDs."""
        self.uidvalidity = uidvalidity
        self.messages = {}
        self.uid_next = 1
        for _ in range(count):
            self.deliver()

    def noop(self) -> None:
        if self.fail_noop:
            raise ProtocolError("connection reset", operation="noop")

    def folder_status(self) -> FolderStatus:
        if self.fail_status:
            self.fail_status -= 1
            raise ProtocolError("socket error", operation="status")
        return FolderStatus(
            folder=self.folder,
            messages=len(self.messages),
            uid_next=self.stale_uid_next if self.stale_uid_next is not None else self.uid_next,
            uidvalidity=self.uidvalidity,
        )

    def search_since(self, last_uid: int) -> list[int]:
        found = sorted(uid for uid in self.messages if uid > last_uid)
        if not found and self.messages:
            # Real servers answer "UID n:*" with the highest UID even when it's below n
            return [max(self.messages)]
        return found

    def fetch_headers(self, uids) -> list[MessageSummary]:
        self.fetch_calls.append(list(uids))
        if self.fail_fetch:
            self.fail_fetch -= 1
            raise ProtocolError("connection dropped mid-fetch", operation="fetch")
        out = [self.messages[uid] for uid in uids if uid in self.messages and uid not in self.vanish_on_fetch]
        return list(reversed(out)) if self.reverse_fetch else out

    def logout(self) -> None:
        self.logged_out = True


class FakeChat:
    """Records DMs; raises DeliveryError for subjects listed in fail_subjects."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.fail_subjects: set[str] = set()
        self.closed = False

    def connect(self) -> str:
        return "mailbot"

    def send_dm(self, user_id: str, text: str) -> str:
        for subject in self.fail_subjects:
            if subject in text:
                raise DeliveryError("HTTP 500: upstream error", status_code=500)
        self.sent.append((user_id, text))
        return str(len(self.sent))

    def close(self) -> None:
        self.closed = True



