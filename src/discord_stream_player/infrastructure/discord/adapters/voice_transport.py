"""Discord voice adapters implementing the voice transport and connector ports."""

from __future__ import annotations

import asyncio
import logging
import time

import discord
from discord.enums import SpeakingState

from discord_stream_player.application.interfaces.voice_transport import (
    VoiceConnector,
    VoiceTransport,
)
from discord_stream_player.config.settings import StreamSettings, VoiceSettings
from discord_stream_player.domain.playback.errors import VoiceConnectionError
from discord_stream_player.domain.shared.messages import ErrorMessages, LogTemplates

logger = logging.getLogger(__name__)

# Discord expects one Opus packet per 20 ms.
FRAME_INTERVAL: float = 0.02

_READY_POLL_INTERVAL: float = 0.1


class DiscordVoiceTransport(VoiceTransport):
    """Sends pre-encoded Opus frames through a ``discord.VoiceClient``.

    Frames are buffered in a bounded queue and released by a pacing task at
    the voice gateway's frame rate, so ``send_frame`` only blocks while the
    buffer is full.
    """

    def __init__(self, voice_client: discord.VoiceClient, *, queue_size: int = 8) -> None:
        self._vc = voice_client
        self._frames: asyncio.Queue[bytes] = asyncio.Queue(maxsize=queue_size)
        self._pacer: asyncio.Task[None] | None = None

    @property
    def voice_client(self) -> discord.VoiceClient:
        return self._vc

    @property
    def channel_id(self) -> int | None:
        channel = self._vc.channel
        return channel.id if channel is not None else None

    @property
    def guild_id(self) -> int:
        return self._vc.guild.id

    def is_ready(self) -> bool:
        return self._vc.is_connected()

    async def set_speaking(self, speaking: bool) -> None:
        if not self._vc.is_connected():
            return
        await self._vc.ws.speak(SpeakingState.voice if speaking else SpeakingState.none)

    async def send_frame(self, frame: bytes, *, timeout: float) -> bool:
        self._ensure_pacer()
        try:
            await asyncio.wait_for(self._frames.put(frame), timeout=timeout)
        except TimeoutError:
            return False
        return True

    async def disconnect(self) -> None:
        await self._stop_pacer()
        try:
            await self._vc.disconnect(force=True)
            logger.info(LogTemplates.VOICE_DISCONNECTED, self.guild_id)
        except Exception as e:
            logger.warning(LogTemplates.VOICE_DISCONNECT_FAILED, self.guild_id, e)

    def _ensure_pacer(self) -> None:
        if self._pacer is None or self._pacer.done():
            self._pacer = asyncio.create_task(self._pace(), name=f"voice-pacer-{self.guild_id}")

    async def _stop_pacer(self) -> None:
        pacer, self._pacer = self._pacer, None
        if pacer is not None:
            pacer.cancel()
            await asyncio.gather(pacer, return_exceptions=True)
        while not self._frames.empty():
            self._frames.get_nowait()

    async def _pace(self) -> None:
        next_at = time.perf_counter()
        while True:
            frame = await self._frames.get()
            now = time.perf_counter()
            if now > next_at + FRAME_INTERVAL:
                # Fell behind (buffer ran dry); restart the clock.
                next_at = now
            try:
                self._vc.send_audio_packet(frame, encode=False)
            except Exception as e:
                logger.debug(LogTemplates.VOICE_SEND_FAILED, e)
            next_at += FRAME_INTERVAL
            await asyncio.sleep(max(0.0, next_at - time.perf_counter()))


class DiscordVoiceConnector(VoiceConnector):
    """Joins voice channels through discord.py and wraps them as transports."""

    def __init__(
        self,
        bot: discord.Client,
        settings: VoiceSettings | None = None,
        stream_settings: StreamSettings | None = None,
    ) -> None:
        self._bot = bot
        self._settings = settings or VoiceSettings()
        self._stream_settings = stream_settings or StreamSettings()
        self._transports: dict[int, DiscordVoiceTransport] = {}

    async def connect(self, guild_id: int, channel_id: int) -> VoiceTransport:
        guild = self._bot.get_guild(guild_id)
        if guild is None:
            raise VoiceConnectionError(ErrorMessages.GUILD_NOT_FOUND.format(guild_id=guild_id))

        channel = guild.get_channel(channel_id)
        if not isinstance(channel, discord.VoiceChannel | discord.StageChannel):
            raise VoiceConnectionError(
                ErrorMessages.CHANNEL_NOT_VOICE.format(channel_id=channel_id), channel_id
            )

        existing = guild.voice_client
        if isinstance(existing, discord.VoiceClient) and existing.is_connected():
            return await self._reuse(guild, channel, existing)

        return await self._join(guild, channel)

    async def _reuse(
        self,
        guild: discord.Guild,
        channel: discord.VoiceChannel | discord.StageChannel,
        vc: discord.VoiceClient,
    ) -> VoiceTransport:
        if vc.channel is None or vc.channel.id != channel.id:
            try:
                async with asyncio.timeout(self._settings.connect_timeout_s):
                    await vc.move_to(channel)
            except (TimeoutError, discord.ClientException) as e:
                raise VoiceConnectionError(
                    ErrorMessages.VOICE_CONNECT_FAILED.format(channel_id=channel.id, attempts=1),
                    channel.id,
                ) from e
            logger.info(LogTemplates.VOICE_MOVED, channel.id, guild.id)
        else:
            logger.debug(LogTemplates.VOICE_REUSED, guild.id)
        await self._wait_ready(vc, channel.id)
        return self._wrap(guild.id, vc)

    async def _join(
        self,
        guild: discord.Guild,
        channel: discord.VoiceChannel | discord.StageChannel,
    ) -> VoiceTransport:
        attempts = self._settings.connect_retries
        last_error: BaseException | None = None

        for attempt in range(1, attempts + 1):
            logger.info(LogTemplates.VOICE_CONNECTING, channel.id, guild.id, attempt, attempts)
            try:
                async with asyncio.timeout(self._settings.connect_timeout_s):
                    vc = await channel.connect(self_deaf=True)
                await self._wait_ready(vc, channel.id)
                logger.info(LogTemplates.VOICE_CONNECTED, channel.id, guild.id)
                return self._wrap(guild.id, vc)
            except (TimeoutError, discord.ClientException, discord.Forbidden, VoiceConnectionError) as e:
                last_error = e
                logger.warning(LogTemplates.VOICE_CONNECT_ATTEMPT_FAILED, attempt, attempts, e)
                await self._drop_stale_client(guild)
                if attempt < attempts:
                    await asyncio.sleep(self._settings.retry_backoff_s * attempt)

        raise VoiceConnectionError(
            ErrorMessages.VOICE_CONNECT_FAILED.format(channel_id=channel.id, attempts=attempts),
            channel.id,
        ) from last_error

    async def _wait_ready(self, vc: discord.VoiceClient, channel_id: int) -> None:
        try:
            async with asyncio.timeout(self._stream_settings.ready_timeout_s):
                while not vc.is_connected():
                    await asyncio.sleep(_READY_POLL_INTERVAL)
        except TimeoutError as e:
            raise VoiceConnectionError(
                ErrorMessages.VOICE_NOT_READY.format(channel_id=channel_id), channel_id
            ) from e

    async def _drop_stale_client(self, guild: discord.Guild) -> None:
        stale = guild.voice_client
        if stale is None:
            return
        try:
            await stale.disconnect(force=True)
        except Exception as e:
            logger.debug(LogTemplates.VOICE_DISCONNECT_FAILED, guild.id, e)

    def _wrap(self, guild_id: int, vc: discord.VoiceClient) -> DiscordVoiceTransport:
        transport = self._transports.get(guild_id)
        if transport is None or transport.voice_client is not vc:
            transport = DiscordVoiceTransport(vc, queue_size=self._stream_settings.send_queue_size)
            self._transports[guild_id] = transport
        return transport
