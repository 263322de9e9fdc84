"""Dependency Injection Container

Manages the application's dependency graph, providing lazy initialization
and lifecycle management for the registry, adapters, services and
background jobs. Components are created on-demand and cached for reuse
throughout the application.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..domain.shared.messages import ErrorMessages

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from discord.ext.commands import Bot

    from ..application.interfaces.audio_stream import (
        AudioStreamFactory,
        FrameEncoderFactory,
        PcmSourceFactory,
    )
    from ..application.interfaces.now_playing import NowPlayingIndicator
    from ..application.interfaces.voice_transport import VoiceConnector
    from ..application.services.idle_reaper import IdleReaper
    from ..application.services.playback_service import PlaybackApplicationService
    from ..application.services.queue_service import QueueApplicationService
    from ..application.services.session_registry import ActivityLedger, SessionRegistry
    from ..domain.shared.events import EventBus
    from .settings import Settings


@dataclass
class Container:
    """Dependency injection container.

    This container manages all application dependencies and their lifecycle.
    Components are lazily initialized when first accessed; any of them can be
    supplied up front (tests pass fakes for the voice and audio adapters).
    """

    settings: Settings
    _bot: Bot | None = None

    # Session state
    _session_registry: SessionRegistry | None = None
    _activity_ledger: ActivityLedger | None = None
    _event_bus: EventBus | None = None

    # Infrastructure adapters
    _voice_connector: VoiceConnector | None = None
    _now_playing: NowPlayingIndicator | None = None
    _decoder_factory: PcmSourceFactory | None = None
    _encoder_factory: FrameEncoderFactory | None = None
    _supervisor_factory: AudioStreamFactory | None = None

    # Application services
    _playback_service: PlaybackApplicationService | None = None
    _queue_service: QueueApplicationService | None = None

    # Background jobs
    _idle_reaper: IdleReaper | None = None

    def set_bot(self, bot: Bot) -> None:
        """Set the Discord bot instance."""
        self._bot = bot

    @property
    def bot(self) -> Bot:
        """Get the Discord bot instance."""
        if self._bot is None:
            raise RuntimeError(ErrorMessages.BOT_NOT_INITIALIZED)
        return self._bot

    # === Session State ===

    @property
    def session_registry(self) -> SessionRegistry:
        if self._session_registry is None:
            from ..application.services.session_registry import SessionRegistry

            self._session_registry = SessionRegistry()
        return self._session_registry

    @property
    def activity_ledger(self) -> ActivityLedger:
        if self._activity_ledger is None:
            from ..application.services.session_registry import ActivityLedger

            self._activity_ledger = ActivityLedger()
        return self._activity_ledger

    @property
    def event_bus(self) -> EventBus:
        """Get the event bus (the process-wide one unless supplied)."""
        if self._event_bus is None:
            from ..domain.shared.events import get_event_bus

            self._event_bus = get_event_bus()
        return self._event_bus

    # === Infrastructure Adapters ===

    @property
    def voice_connector(self) -> VoiceConnector:
        """Get the voice connector."""
        if self._voice_connector is None:
            from ..infrastructure.discord.adapters.voice_transport import (
                DiscordVoiceConnector,
            )

            self._voice_connector = DiscordVoiceConnector(
                self.bot, self.settings.voice, self.settings.stream
            )
        return self._voice_connector

    @property
    def now_playing(self) -> NowPlayingIndicator:
        """Get the now-playing indicator."""
        if self._now_playing is None:
            from ..infrastructure.discord.adapters.presence import (
                DiscordPresenceIndicator,
            )

            self._now_playing = DiscordPresenceIndicator(self.bot)
        return self._now_playing

    @property
    def decoder_factory(self) -> PcmSourceFactory:
        """Get the factory building ffmpeg decoder processes."""
        if self._decoder_factory is None:
            from ..infrastructure.audio.ffmpeg_process import (
                FFmpegConfig,
                create_ffmpeg_source_factory,
            )

            config = FFmpegConfig.from_settings(self.settings.decoder, self.settings.encoder)
            self._decoder_factory = create_ffmpeg_source_factory(config)
        return self._decoder_factory

    @property
    def encoder_factory(self) -> FrameEncoderFactory:
        """Get the factory building Opus frame encoders."""
        if self._encoder_factory is None:
            from ..infrastructure.audio.frame_encoder import create_opus_encoder_factory

            self._encoder_factory = create_opus_encoder_factory(self.settings.encoder)
        return self._encoder_factory

    @property
    def supervisor_factory(self) -> AudioStreamFactory:
        """Get the factory binding stream supervisors to transports."""
        if self._supervisor_factory is None:
            from ..infrastructure.audio.stream_supervisor import create_supervisor_factory

            self._supervisor_factory = create_supervisor_factory(
                decoder_factory=self.decoder_factory,
                encoder_factory=self.encoder_factory,
                settings=self.settings.stream,
            )
        return self._supervisor_factory

    # === Application Services ===

    @property
    def playback_service(self) -> PlaybackApplicationService:
        """Get the playback application service."""
        if self._playback_service is None:
            from ..application.services.playback_service import (
                PlaybackApplicationService,
            )

            self._playback_service = PlaybackApplicationService(
                session_registry=self.session_registry,
                voice_connector=self.voice_connector,
                supervisor_factory=self.supervisor_factory,
                now_playing=self.now_playing,
                activity_ledger=self.activity_ledger,
                event_bus=self.event_bus,
            )
        return self._playback_service

    @property
    def queue_service(self) -> QueueApplicationService:
        """Get the queue application service."""
        if self._queue_service is None:
            from ..application.services.queue_service import QueueApplicationService

            self._queue_service = QueueApplicationService(
                session_registry=self.session_registry,
                activity_ledger=self.activity_ledger,
                playback_service=self.playback_service,
                settings=self.settings.queue,
                event_bus=self.event_bus,
            )
        return self._queue_service

    # === Background Jobs ===

    @property
    def idle_reaper(self) -> IdleReaper:
        """Get the idle reaper."""
        if self._idle_reaper is None:
            from ..application.services.idle_reaper import IdleReaper

            self._idle_reaper = IdleReaper(
                session_registry=self.session_registry,
                activity_ledger=self.activity_ledger,
                playback_service=self.playback_service,
                settings=self.settings.idle,
                event_bus=self.event_bus,
            )
        return self._idle_reaper

    # === Lifecycle ===

    async def initialize(self) -> None:
        """Build the service graph and start background jobs."""
        _ = self.queue_service
        if self.settings.idle.enabled:
            self.idle_reaper.start()

    async def shutdown(self) -> None:
        """Stop background jobs and release all playback resources."""
        if self._idle_reaper is not None:
            try:
                await self._idle_reaper.stop()
            except Exception as exc:
                logger.warning("Failed stopping idle reaper: %r", exc)

        if self._playback_service is not None:
            try:
                await self._playback_service.shutdown()
            except Exception as exc:
                logger.warning("Failed shutting down playback: %r", exc)


def create_container(settings: Settings) -> Container:
    """Create a new dependency injection container."""
    return Container(settings)
