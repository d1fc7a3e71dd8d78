"""Infrastructure layer - IMAP, Discord, checkpoint storage and configuration."""

from mailnotifier.infrastructure.settings import Settings, load_settings

__all__ = [
    "Settings",
    "load_settings",
]
