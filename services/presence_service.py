"""
Presence collaborator: reports which players are in the lobby's voice channel.

The core only queries presence; Discord is the source of truth when a bot
token is configured.
"""

import asyncio
import logging
from abc import ABC, abstractmethod

import discord

logger = logging.getLogger("lobby_server.services.presence")


class PresenceUnavailable(Exception):
    """Raised when presence cannot be determined right now."""


class PresenceProvider(ABC):
    @abstractmethod
    async def check(self, player_ids: list[str]) -> dict[str, bool]:
        """Map each player ID to whether they are present."""
        ...

    async def start(self) -> None:
        """Start any background connection."""

    async def close(self) -> None:
        """Release any background connection."""


class AlwaysPresentProvider(PresenceProvider):
    """Used when no Discord bot is configured: everyone counts as present."""

    async def check(self, player_ids: list[str]) -> dict[str, bool]:
        return {pid: True for pid in player_ids}


def create_discord_client() -> discord.Client:
    """Client with the intents needed to see guild members and voice states."""
    intents = discord.Intents.default()
    intents.members = True
    intents.voice_states = True
    return discord.Client(intents=intents)


class DiscordPresenceProvider(PresenceProvider):
    """
    Reads voice-channel membership from a connected discord.py client.

    With a voice channel configured, a player is present when they are in that
    channel; otherwise any voice channel of the guild counts.
    """

    def __init__(
        self,
        client: discord.Client,
        token: str,
        guild_id: int,
        voice_channel_id: int | None = None,
    ):
        self.client = client
        self.token = token
        self.guild_id = guild_id
        self.voice_channel_id = voice_channel_id
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.client.start(self.token), name="discord-presence")
            logger.info(f"Starting Discord presence client for guild {self.guild_id}")

    async def close(self) -> None:
        if not self.client.is_closed():
            await self.client.close()
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    async def check(self, player_ids: list[str]) -> dict[str, bool]:
        if not self.client.is_ready():
            raise PresenceUnavailable("Discord presence is not connected yet.")
        guild = self.client.get_guild(self.guild_id)
        if guild is None:
            raise PresenceUnavailable(f"Guild {self.guild_id} is not available.")

        if self.voice_channel_id is not None:
            channel = guild.get_channel(self.voice_channel_id)
            if channel is None:
                raise PresenceUnavailable(f"Voice channel {self.voice_channel_id} not found.")
            present = {str(member.id) for member in channel.members}
            return {pid: pid in present for pid in player_ids}

        result = {}
        for pid in player_ids:
            member = guild.get_member(int(pid)) if pid.isdigit() else None
            result[pid] = bool(member and member.voice and member.voice.channel)
        return result
