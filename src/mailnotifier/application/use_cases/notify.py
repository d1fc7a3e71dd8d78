"""Deliver new-mail notifications as chat direct messages."""

from __future__ import annotations

from loguru import logger

from mailnotifier.application.ports.chat_client import ChatClient
from mailnotifier.domain.entities.message_summary import MessageSummary
from mailnotifier.domain.errors import DeliveryError

# Discord rejects message content over 2000 characters
MAX_MESSAGE_LENGTH = 2000


def format_notification(summary: MessageSummary) -> str:
    text = (
        "📧 **New Email Received!**\n\n"
        f"**From:** {summary.sender or 'Unknown Sender'}\n"
        f"**Subject:** {summary.subject or 'No Subject'}\n"
        f"**Date:** {summary.date or 'Unknown Date'}\n"
        f"**UID:** {summary.uid}"
    )
    if len(text) > MAX_MESSAGE_LENGTH:
        text = text[: MAX_MESSAGE_LENGTH - 3] + "..."
    return text


class NotificationDispatcher:
    """Send one DM per new message to a single fixed recipient.

    Delivery is at-most-once: failures are logged and dropped, never raised,
    so a broken chat integration can't stall mail polling.
    """

    def __init__(self, client: ChatClient, recipient_id: str) -> None:
        self.client = client
        self.recipient_id = recipient_id

    def notify(self, summary: MessageSummary) -> bool:
        text = format_notification(summary)
        logger.info(f"New email from: {summary.sender} - Subject: {summary.subject}")

        try:
            message_id = self.client.send_dm(self.recipient_id, text)
        except DeliveryError as e:
            extra = f", retry after {e.retry_after}s" if e.retry_after else ""
            logger.error(f"Failed to deliver notification for UID {summary.uid}: {e}{extra}")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error delivering notification for UID {summary.uid}: {e}")
            return False

        logger.info(f"Discord DM sent for UID {summary.uid} (message_id={message_id})")
        return True
