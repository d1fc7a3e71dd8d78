"""Chat infrastructure for Discord direct messages."""

from mailnotifier.infrastructure.chat.providers.discord.outbound import DiscordProvider

__all__ = ["DiscordProvider"]
