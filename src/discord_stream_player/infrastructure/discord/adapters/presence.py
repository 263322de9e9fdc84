"""Now-playing indicator backed by the bot's Discord presence."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord

from discord_stream_player.application.interfaces.now_playing import NowPlayingIndicator
from discord_stream_player.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ....domain.playback.entities import QueueItem

logger = logging.getLogger(__name__)

# Discord truncates activity names past this length.
MAX_ACTIVITY_NAME = 128


class DiscordPresenceIndicator(NowPlayingIndicator):
    """Shows the current item as a "Listening to" activity."""

    def __init__(self, bot: discord.Client) -> None:
        self._bot = bot

    async def show(self, item: QueueItem) -> None:
        activity = discord.Activity(
            type=discord.ActivityType.listening,
            name=item.title[:MAX_ACTIVITY_NAME],
        )
        try:
            await self._bot.change_presence(activity=activity)
        except Exception as e:
            logger.warning(LogTemplates.PRESENCE_UPDATE_FAILED, e)

    async def clear(self) -> None:
        try:
            await self._bot.change_presence(activity=None)
        except Exception as e:
            logger.warning(LogTemplates.PRESENCE_UPDATE_FAILED, e)
