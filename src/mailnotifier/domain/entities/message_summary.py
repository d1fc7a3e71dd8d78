from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class MessageSummary:
    # Header-only view of a newly arrived message
    uid: int
    sender: str
    subject: str
    date: str
