"""JSON file checkpoint store for the mailbox cursor."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Optional

from loguru import logger

from mailnotifier.application.ports.cursor_store import CursorStore
from mailnotifier.application.ports.mail_source import MailboxCursor


class JsonCursorStore(CursorStore):
    """Persist cursors as ``{"account:folder": {...}}`` in a single JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def _make_id(self, account: str, folder: str) -> str:
        return f"{account}:{folder}"

    def _read_all(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable cursor state {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, account: str, folder: str) -> Optional[MailboxCursor]:
        """Load checkpoint for account/folder."""
        checkpoint_id = self._make_id(account, folder)
        cursor_data = self._read_all().get(checkpoint_id)
        if not cursor_data:
            logger.debug(f"No checkpoint found for {checkpoint_id}")
            return None

        try:
            cursor = MailboxCursor(
                folder=cursor_data["folder"],
                uidvalidity=int(cursor_data["uidvalidity"]),
                last_uid=int(cursor_data["last_uid"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed checkpoint for {checkpoint_id}: {e}")
            return None

        logger.debug(f"Loaded checkpoint for {checkpoint_id}: UID {cursor.last_uid}")
        return cursor

    def save(self, account: str, cursor: MailboxCursor) -> None:
        """Save checkpoint for account/folder (atomic replace)."""
        checkpoint_id = self._make_id(account, cursor.folder)
        data = self._read_all()
        data[checkpoint_id] = {
            "folder": cursor.folder,
            "uidvalidity": cursor.uidvalidity,
            "last_uid": cursor.last_uid,
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".cursor-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug(f"Saved checkpoint for {checkpoint_id}: UID {cursor.last_uid}")
