"""Playback Application Service - drives each guild's queue through stream supervisors."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ...domain.playback.entities import GuildPlaybackState, QueueItem
from ...domain.playback.value_objects import SupervisorState
from ...domain.shared.events import (
    EventBus,
    PlaybackFailed,
    QueueEnded,
    TrackFinished,
    TrackStarted,
    get_event_bus,
)
from ...domain.shared.messages import LogTemplates
from ...domain.shared.types import ChannelIdField, DiscordSnowflake

if TYPE_CHECKING:
    from ..interfaces.audio_stream import AudioStream, AudioStreamFactory
    from ..interfaces.now_playing import NowPlayingIndicator
    from ..interfaces.voice_transport import VoiceConnector, VoiceTransport
    from .session_registry import ActivityLedger, SessionRegistry

logger = logging.getLogger(__name__)


class PlaybackApplicationService:
    """Runs one playback loop per guild.

    The loop dequeues an item, makes sure a ready voice transport is bound,
    binds a fresh supervisor once the previous one has finished, starts the
    stream and waits for the supervisor's terminal signal before moving on.
    At most one supervisor is active per guild at any time.
    """

    def __init__(
        self,
        *,
        session_registry: SessionRegistry,
        voice_connector: VoiceConnector,
        supervisor_factory: AudioStreamFactory,
        now_playing: NowPlayingIndicator,
        activity_ledger: ActivityLedger | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._registry = session_registry
        self._connector = voice_connector
        self._supervisor_factory = supervisor_factory
        self._now_playing = now_playing
        self._ledger = activity_ledger
        self._event_bus = event_bus or get_event_bus()
        self._runners: dict[DiscordSnowflake, asyncio.Task[None]] = {}

    def has_runner(self, guild_id: DiscordSnowflake) -> bool:
        runner = self._runners.get(guild_id)
        return runner is not None and not runner.done()

    async def ensure_playing(self, guild_id: DiscordSnowflake, channel_id: ChannelIdField) -> bool:
        """Start the guild's playback loop unless one is already running.

        Returns True if a new loop was started.
        """
        if self.has_runner(guild_id):
            logger.debug(LogTemplates.PLAYBACK_RUNNER_ALREADY_ACTIVE, guild_id)
            return False

        state = await self._registry.get_or_create(guild_id)
        if self.has_runner(guild_id):
            return False
        self._runners[guild_id] = asyncio.create_task(
            self._run(state, channel_id), name=f"playback-runner-{guild_id}"
        )
        await state.set_playing(True)
        return True

    async def skip(self, guild_id: DiscordSnowflake) -> QueueItem | None:
        """Stop the current item so the loop advances; returns the skipped item."""
        state = self._registry.get(guild_id)
        if state is None:
            return None
        self._touch(guild_id)

        supervisor = await state.get_supervisor()
        if supervisor is None or supervisor.state.is_terminal:
            return None

        current = await state.current_item()
        await state.set_skip(True)
        await supervisor.stop()
        logger.info(LogTemplates.PLAYBACK_SKIPPED, current.title if current else None, guild_id)
        return current

    async def stop(self, guild_id: DiscordSnowflake) -> bool:
        """Clear the queue and stop the current item; the loop then ends on its own."""
        state = self._registry.get(guild_id)
        if state is None:
            return False
        self._touch(guild_id)

        await state.clear()
        await state.set_playing(False)
        supervisor = await state.get_supervisor()
        if supervisor is not None:
            await supervisor.stop()
        await self._now_playing.clear()
        logger.info(LogTemplates.PLAYBACK_STOPPED, guild_id)
        return True

    async def leave(self, guild_id: DiscordSnowflake) -> bool:
        """Stop playback and disconnect the guild's voice transport."""
        state = self._registry.get(guild_id)
        if state is None:
            return False

        await self.stop(guild_id)
        await self.release(guild_id)
        if self._ledger is not None:
            self._ledger.remove(guild_id)
        return True

    async def release(self, guild_id: DiscordSnowflake) -> bool:
        """End the guild's loop and free its supervisor and transport, keeping the queue."""
        state = self._registry.get(guild_id)
        if state is None:
            return False

        await self._cancel_runner(guild_id)
        await self._release(state)
        await self._now_playing.clear()
        return True

    async def shutdown(self) -> None:
        """Cancel every playback loop and release all voice resources."""
        runners = list(self._runners)
        for guild_id in runners:
            await self._cancel_runner(guild_id)
        for state in self._registry.all():
            await self._release(state)
        await self._now_playing.clear()

    # === Playback loop ===

    async def _run(self, state: GuildPlaybackState, channel_id: ChannelIdField) -> None:
        guild_id = state.guild_id
        logger.debug(LogTemplates.PLAYBACK_RUNNER_STARTED, guild_id)
        try:
            while True:
                item = await state.next()
                if item is None:
                    await self._now_playing.clear()
                    if not await state.end_if_empty():
                        continue
                    # No await between the decision and deregistering, so a
                    # concurrent ensure_playing sees no runner and starts one.
                    self._deregister(guild_id)
                    logger.info(LogTemplates.QUEUE_ENDED, guild_id)
                    await self._event_bus.publish(QueueEnded(guild_id=guild_id))
                    return

                await state.set_playing(True)
                try:
                    transport = await self._acquire_transport(state, channel_id)
                    supervisor = await self._bind_supervisor(state, transport)
                    await self._now_playing.show(item)
                    logger.info(LogTemplates.PLAYBACK_NOW_PLAYING, item.title, guild_id)
                    await self._event_bus.publish(
                        TrackStarted(
                            guild_id=guild_id,
                            channel_id=transport.channel_id or channel_id,
                            item_title=item.title,
                            stream_url=item.stream_url,
                            duration_seconds=item.duration_seconds,
                        )
                    )
                    await supervisor.play_stream(item.stream_url)
                except Exception as e:
                    logger.error(LogTemplates.PLAYBACK_START_FAILED, item.title, guild_id, e)
                    await self._fail(state, item, e)
                    return

                await supervisor.wait_finished()
                await self._finish(state, item, supervisor)
        finally:
            self._deregister(guild_id)
            logger.debug(LogTemplates.PLAYBACK_RUNNER_STOPPED, guild_id)

    def _deregister(self, guild_id: DiscordSnowflake) -> None:
        if self._runners.get(guild_id) is asyncio.current_task():
            del self._runners[guild_id]

    async def _acquire_transport(
        self, state: GuildPlaybackState, channel_id: ChannelIdField
    ) -> VoiceTransport:
        transport = await state.get_voice_transport()
        if transport is not None and transport.is_ready():
            return transport
        transport = await self._connector.connect(state.guild_id, channel_id)
        await state.set_voice_transport(transport)
        return transport

    async def _bind_supervisor(
        self, state: GuildPlaybackState, transport: VoiceTransport
    ) -> AudioStream:
        previous = await state.get_supervisor()
        if previous is not None and not previous.state.is_terminal:
            logger.debug(LogTemplates.PLAYBACK_WAITING_PREVIOUS, state.guild_id)
            await previous.stop()
            await previous.wait_finished()
        supervisor = self._supervisor_factory(transport)
        await state.set_supervisor(supervisor)
        return supervisor

    async def _finish(
        self, state: GuildPlaybackState, item: QueueItem, supervisor: AudioStream
    ) -> None:
        skipped = await state.consume_skip()
        stats = supervisor.stats
        logger.info(
            LogTemplates.PLAYBACK_FINISHED, item.title, state.guild_id, skipped, supervisor.state.value
        )
        failed = supervisor.state is SupervisorState.STOPPED and supervisor.last_error is not None
        if failed and not skipped:
            await self._event_bus.publish(
                PlaybackFailed(
                    guild_id=state.guild_id,
                    item_title=item.title,
                    reason=str(supervisor.last_error),
                )
            )
        await self._event_bus.publish(
            TrackFinished(
                guild_id=state.guild_id,
                item_title=item.title,
                skipped=skipped,
                final_state=supervisor.state.value,
                restarts=supervisor.restart_count,
                frames_sent=stats.frames_sent,
            )
        )

    async def _fail(self, state: GuildPlaybackState, item: QueueItem, error: Exception) -> None:
        await self._event_bus.publish(
            PlaybackFailed(guild_id=state.guild_id, item_title=item.title, reason=str(error))
        )
        await self._release(state)
        await self._now_playing.clear()

    # === Resources ===

    async def _release(self, state: GuildPlaybackState) -> None:
        """Unbind and stop the supervisor, then disconnect the transport."""
        transport, supervisor = await state.detach()
        if supervisor is not None:
            await supervisor.stop()
        if transport is not None:
            await transport.disconnect()

    async def _cancel_runner(self, guild_id: DiscordSnowflake) -> None:
        runner = self._runners.pop(guild_id, None)
        if runner is None or runner is asyncio.current_task():
            return
        runner.cancel()
        try:
            await runner
        except asyncio.CancelledError:
            pass

    def _touch(self, guild_id: DiscordSnowflake) -> None:
        if self._ledger is not None:
            self._ledger.touch(guild_id)
