"""Port interfaces for live voice connections."""

from __future__ import annotations

from abc import ABC, abstractmethod

from discord_stream_player.domain.shared.types import ChannelIdField, DiscordSnowflake


class VoiceTransport(ABC):
    """A live voice channel connection that accepts encoded audio frames."""

    @property
    @abstractmethod
    def channel_id(self) -> ChannelIdField | None:
        ...

    @abstractmethod
    def is_ready(self) -> bool:
        """Whether the connection can accept frames right now."""
        ...

    @abstractmethod
    async def set_speaking(self, speaking: bool) -> None:
        """Toggle the speaking indicator shown to other channel members."""
        ...

    @abstractmethod
    async def send_frame(self, frame: bytes, *, timeout: float) -> bool:
        """Hand one encoded frame to the transport.

        Returns False when the frame could not be accepted within ``timeout``
        and was dropped.
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        ...


class VoiceConnector(ABC):
    """Produces ready voice transports for a guild's channel."""

    @abstractmethod
    async def connect(
        self, guild_id: DiscordSnowflake, channel_id: ChannelIdField
    ) -> VoiceTransport:
        """Join (or move to) ``channel_id`` and return a ready transport.

        Raises:
            VoiceConnectionError: If no ready connection could be established.
        """
        ...
