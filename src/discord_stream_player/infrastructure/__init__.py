"""Infrastructure layer - external systems integration.

This layer contains implementations for:
- Discord (bot, voice transport, presence indicator)
- Audio (ffmpeg decoder, Opus encoder, stream supervisor)
"""

from discord_stream_player.infrastructure.discord.adapters.voice_transport import (
    DiscordVoiceConnector,
    DiscordVoiceTransport,
)
from discord_stream_player.infrastructure.discord.bot import create_bot

__all__ = [
    "create_bot",
    "DiscordVoiceConnector",
    "DiscordVoiceTransport",
]
