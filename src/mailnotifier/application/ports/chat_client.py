from __future__ import annotations
from typing import Protocol

class ChatClient(Protocol):
    def connect(self) -> str: ...
    def send_dm(self, user_id: str, text: str) -> str: ...
    def close(self) -> None: ...
