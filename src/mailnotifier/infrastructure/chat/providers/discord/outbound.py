"""Discord provider for sending direct messages through the REST API."""

from __future__ import annotations

import os

import httpx
from loguru import logger

from mailnotifier.domain.errors import DeliveryError


class DiscordProvider:
    """Discord bot client that delivers DMs to a user.

    The DM channel id for each recipient is resolved once and cached.
    Every failure is raised as DeliveryError.
    """

    BASE_URL = "https://discord.com/api/v10"

    def __init__(
        self,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.token = token or os.getenv("DISCORD_TOKEN")
        if not self.token:
            raise ValueError("DISCORD_TOKEN is required")

        self._client = httpx.Client(
            base_url=self.BASE_URL,
            headers={
                "Authorization": f"Bot {self.token}",
                "Content-Type": "application/json",
                "User-Agent": "DiscordBot (mailnotifier, 0.1.0)",
            },
            timeout=timeout,
            transport=transport,
        )
        self._dm_channels: dict[str, str] = {}

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Discord API timeout on {method} {path}")
            raise DeliveryError(f"Request timeout on {method} {path}") from e
        except httpx.HTTPError as e:
            logger.error(f"Discord API exception: {e}")
            raise DeliveryError(f"Request to {path} failed: {e}") from e

        if response.status_code == 429:
            retry_after = _retry_after(response)
            raise DeliveryError(
                f"Rate limited on {method} {path}",
                status_code=429,
                retry_after=retry_after,
            )

        if response.status_code >= 400:
            error_text = response.text
            logger.error(f"Discord API error {response.status_code}: {error_text[:200]}")
            raise DeliveryError(
                f"HTTP {response.status_code}: {error_text[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise DeliveryError(f"Invalid JSON from {path}", status_code=response.status_code) from e

    def connect(self) -> str:
        """Verify the bot token. Returns the bot's username."""
        data = self._request("GET", "/users/@me")
        username = data.get("username", "unknown")
        logger.info(f"Discord bot authenticated as {username}")
        return username

    def open_dm(self, user_id: str) -> str:
        """Return the DM channel id for ``user_id``, creating it if needed."""
        channel_id = self._dm_channels.get(user_id)
        if channel_id is None:
            data = self._request("POST", "/users/@me/channels", json={"recipient_id": user_id})
            channel_id = data.get("id")
            if not channel_id:
                raise DeliveryError(f"No DM channel id returned for user {user_id}")
            self._dm_channels[user_id] = channel_id
            logger.debug(f"Opened DM channel {channel_id} for user {user_id}")
        return channel_id

    def send_dm(self, user_id: str, text: str) -> str:
        """Send ``text`` to ``user_id``. Returns the Discord message id."""
        channel_id = self.open_dm(user_id)
        try:
            data = self._request("POST", f"/channels/{channel_id}/messages", json={"content": text})
        except DeliveryError as e:
            # A deleted or inaccessible channel shouldn't stay cached
            if e.status_code in (403, 404):
                self._dm_channels.pop(user_id, None)
            raise
        return data.get("id", "")

    def close(self) -> None:
        self._client.close()


def _retry_after(response: httpx.Response) -> float | None:
    try:
        return float(response.json().get("retry_after"))
    except (ValueError, TypeError, AttributeError):
        pass
    header = response.headers.get("Retry-After")
    try:
        return float(header) if header else None
    except ValueError:
        return None

