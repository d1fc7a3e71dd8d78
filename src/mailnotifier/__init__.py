"""Mail notifier - forwards new IMAP mail to a Discord direct message."""

__version__ = "0.1.0"
