"""Application layer - polling, change detection and notification."""

from mailnotifier.application.backoff import backoff_delay
from mailnotifier.application.use_cases.detect_new_mail import ChangeDetector
from mailnotifier.application.use_cases.notify import NotificationDispatcher, format_notification

__all__ = [
    "backoff_delay",
    "ChangeDetector",
    "NotificationDispatcher",
    "format_notification",
]
