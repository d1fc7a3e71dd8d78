"""Domain state enums for the mail notifier."""

from enum import Enum


class ConnectionState(str, Enum):
    """Health of the IMAP session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    FAULTED = "faulted"


class WorkerState(str, Enum):
    """Phases of the supervisory poll loop."""

    IDLE = "idle"
    CONNECTING = "connecting"
    POLLING = "polling"
    SLEEPING = "sleeping"
    STOPPED = "stopped"
