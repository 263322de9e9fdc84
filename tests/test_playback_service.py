"""
Unit Tests for PlaybackApplicationService

Tests for:
- Sequential playback of queued items and queue end
- Transport acquisition and reuse
- skip / stop / leave / release / shutdown
- Failure handling (voice connect failure, fatal pipeline errors)
- Domain events published along the way

Runs real StreamSupervisors over the fake decoder, encoder and transport.
"""

import asyncio

import pytest
import pytest_asyncio

from conftest import (
    CHANNEL_ID,
    GUILD_ID,
    FakeConnector,
    FakeDecoderFactory,
    FakeEncoder,
    FakeIndicator,
    FakePcmSource,
    FakeTransport,
)

from discord_stream_player.application.services.playback_service import (
    PlaybackApplicationService,
)
from discord_stream_player.application.services.session_registry import (
    ActivityLedger,
    SessionRegistry,
)
from discord_stream_player.config.settings import StreamSettings
from discord_stream_player.domain.playback.entities import QueueItem
from discord_stream_player.domain.playback.errors import AcquisitionError, VoiceConnectionError
from discord_stream_player.domain.playback.value_objects import PlaybackPhase
from discord_stream_player.domain.shared.events import (
    PlaybackFailed,
    QueueEnded,
    TrackFinished,
    TrackStarted,
)
from discord_stream_player.infrastructure.audio.stream_supervisor import create_supervisor_factory


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.005)


def _item(title: str) -> QueueItem:
    return QueueItem(stream_url=f"https://cdn.example/{title}.opus", title=title)


@pytest.fixture
def decoder():
    return FakeDecoderFactory()


@pytest.fixture
def connector():
    return FakeConnector(FakeTransport(ready=False))


@pytest.fixture
def indicator():
    return FakeIndicator()


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def ledger():
    return ActivityLedger()


@pytest.fixture
def events(event_bus):
    """Record every playback event published on the bus."""
    seen = []

    async def record(event):
        seen.append(event)

    for event_type in (TrackStarted, TrackFinished, QueueEnded, PlaybackFailed):
        event_bus.subscribe(event_type, record)
    return seen


@pytest_asyncio.fixture
async def service(registry, ledger, connector, indicator, decoder, event_bus):
    settings = StreamSettings(
        read_timeout_s=5.0,
        ready_timeout_s=0.2,
        send_timeout_s=0.05,
        health_interval_s=10.0,
        stale_after_s=10.0,
        max_restarts=1,
        restart_backoff_s=0.0,
    )
    svc = PlaybackApplicationService(
        session_registry=registry,
        voice_connector=connector,
        supervisor_factory=create_supervisor_factory(
            decoder_factory=decoder,
            encoder_factory=FakeEncoder,
            settings=settings,
        ),
        now_playing=indicator,
        activity_ledger=ledger,
        event_bus=event_bus,
    )
    yield svc
    await svc.shutdown()


async def _queue(registry, *titles):
    state = await registry.get_or_create(GUILD_ID)
    for title in titles:
        await state.add(_item(title))
    return state


def _of(events, event_type):
    return [e for e in events if isinstance(e, event_type)]


# =============================================================================
# Sequential Playback
# =============================================================================


class TestSequentialPlayback:
    """Tests for the per-guild playback loop."""

    @pytest.mark.asyncio
    async def test_plays_queue_in_order_then_ends(self, service, registry, decoder, indicator, events):
        """Should play every item in order and publish QueueEnded."""
        decoder.script(FakePcmSource(blocks=2), FakePcmSource(blocks=1))
        state = await _queue(registry, "A", "B")

        assert await service.ensure_playing(GUILD_ID, CHANNEL_ID) is True
        await wait_until(lambda: not service.has_runner(GUILD_ID))

        assert indicator.shown == ["A", "B"]
        assert [e.item_title for e in _of(events, TrackFinished)] == ["A", "B"]
        assert all(e.final_state == "completed" for e in _of(events, TrackFinished))
        assert len(_of(events, QueueEnded)) == 1
        assert await state.is_playing() is False
        assert decoder.locators == ["https://cdn.example/A.opus", "https://cdn.example/B.opus"]

    @pytest.mark.asyncio
    async def test_track_started_carries_channel(self, service, registry, decoder, events):
        """Should publish TrackStarted with the transport's channel."""
        decoder.script(FakePcmSource(blocks=1))
        await _queue(registry, "A")

        await service.ensure_playing(GUILD_ID, CHANNEL_ID)
        await wait_until(lambda: not service.has_runner(GUILD_ID))

        (started,) = _of(events, TrackStarted)
        assert started.channel_id == CHANNEL_ID
        assert started.stream_url == "https://cdn.example/A.opus"

    @pytest.mark.asyncio
    async def test_transport_reused_between_items(self, service, registry, decoder, connector):
        """Should connect once and reuse the ready transport for later items."""
        decoder.script(FakePcmSource(blocks=1), FakePcmSource(blocks=1), FakePcmSource(blocks=1))
        await _queue(registry, "A", "B", "C")

        await service.ensure_playing(GUILD_ID, CHANNEL_ID)
        await wait_until(lambda: not service.has_runner(GUILD_ID))

        assert connector.calls == [(GUILD_ID, CHANNEL_ID)]
        assert len(connector.transport.frames) == 3

    @pytest.mark.asyncio
    async def test_ensure_playing_is_idempotent(self, service, registry, decoder):
        """Should not start a second loop while one is running."""
        decoder.script(FakePcmSource(blocks=0, stall=True))
        await _queue(registry, "A")

        assert await service.ensure_playing(GUILD_ID, CHANNEL_ID) is True
        assert await service.ensure_playing(GUILD_ID, CHANNEL_ID) is False

    @pytest.mark.asyncio
    async def test_enqueue_while_queue_is_ending(self, service, registry, decoder, indicator, events):
        """Should play an item added while the loop is clearing the indicator."""
        decoder.script(FakePcmSource(blocks=1), FakePcmSource(blocks=1))
        indicator.clear_delay = 0.2
        state = await _queue(registry, "A")

        await service.ensure_playing(GUILD_ID, CHANNEL_ID)
        await wait_until(indicator.clearing.is_set)
        await state.add(_item("B"))
        await service.ensure_playing(GUILD_ID, CHANNEL_ID)
        await wait_until(lambda: not service.has_runner(GUILD_ID))

        assert decoder.locators == ["https://cdn.example/A.opus", "https://cdn.example/B.opus"]
        assert indicator.shown == ["A", "B"]
        assert await state.size() == 0
        assert await state.is_playing() is False
        assert len(_of(events, QueueEnded)) == 1

    @pytest.mark.asyncio
    async def test_enqueue_after_queue_end_starts_new_loop(self, service, registry, decoder):
        """Should start a fresh loop for an item added once the previous loop ended."""
        decoder.script(FakePcmSource(blocks=1), FakePcmSource(blocks=1))
        state = await _queue(registry, "A")

        await service.ensure_playing(GUILD_ID, CHANNEL_ID)
        await wait_until(lambda: not service.has_runner(GUILD_ID))
        await state.add(_item("B"))

        assert await service.ensure_playing(GUILD_ID, CHANNEL_ID) is True
        await wait_until(lambda: not service.has_runner(GUILD_ID))
        assert decoder.locators[-1] == "https://cdn.example/B.opus"

    @pytest.mark.asyncio
    async def test_phase_active_while_streaming(self, service, registry, decoder):
        """Should report PIPELINE_ACTIVE once frames are flowing."""
        decoder.script(FakePcmSource(blocks=0, stall=True))
        state = await _queue(registry, "A")

        await service.ensure_playing(GUILD_ID, CHANNEL_ID)
        await wait_until(lambda: state.phase is PlaybackPhase.PIPELINE_ACTIVE)

        assert await state.is_playing() is True


# =============================================================================
# Controls
# =============================================================================


class TestControls:
    """Tests for skip, stop, leave and release."""

    @pytest.mark.asyncio
    async def test_skip_advances_to_next_item(self, service, registry, decoder, events):
        """Should stop the current item and continue with the next one."""
        decoder.script(FakePcmSource(blocks=0, stall=True), FakePcmSource(blocks=1))
        state = await _queue(registry, "A", "B")

        await service.ensure_playing(GUILD_ID, CHANNEL_ID)
        await wait_until(lambda: state.phase is PlaybackPhase.PIPELINE_ACTIVE)
        skipped = await service.skip(GUILD_ID)
        await wait_until(lambda: not service.has_runner(GUILD_ID))

        assert skipped.title == "A"
        finished = _of(events, TrackFinished)
        assert [(e.item_title, e.skipped) for e in finished] == [("A", True), ("B", False)]
        assert _of(events, PlaybackFailed) == []

    @pytest.mark.asyncio
    async def test_skip_without_playback(self, service, registry):
        """Should return None when nothing is playing."""
        await _queue(registry, "A")

        assert await service.skip(GUILD_ID) is None
        assert await service.skip(999999) is None

    @pytest.mark.asyncio
    async def test_stop_clears_queue_and_ends_loop(self, service, registry, decoder, indicator, events):
        """Should drop pending items, stop the stream and end the loop."""
        decoder.script(FakePcmSource(blocks=0, stall=True))
        state = await _queue(registry, "A", "B")

        await service.ensure_playing(GUILD_ID, CHANNEL_ID)
        await wait_until(lambda: state.phase is PlaybackPhase.PIPELINE_ACTIVE)
        assert await service.stop(GUILD_ID) is True
        await wait_until(lambda: not service.has_runner(GUILD_ID))

        assert await state.size() == 0
        assert indicator.shown == ["A"]
        assert indicator.cleared >= 1
        assert len(_of(events, QueueEnded)) == 1

    @pytest.mark.asyncio
    async def test_stop_unknown_guild(self, service):
        """Should return False for a guild without a session."""
        assert await service.stop(999999) is False

    @pytest.mark.asyncio
    async def test_leave_disconnects(self, service, registry, decoder, connector, ledger):
        """Should stop playback, disconnect and forget the guild's activity."""
        decoder.script(FakePcmSource(blocks=0, stall=True))
        state = await _queue(registry, "A")

        await service.ensure_playing(GUILD_ID, CHANNEL_ID)
        await wait_until(lambda: state.phase is PlaybackPhase.PIPELINE_ACTIVE)
        assert await service.leave(GUILD_ID) is True

        assert connector.transport.disconnected == 1
        assert ledger.last_activity(GUILD_ID) is None
        assert service.has_runner(GUILD_ID) is False
        assert await state.get_voice_transport() is None

    @pytest.mark.asyncio
    async def test_release_keeps_pending_queue(self, service, registry, decoder, connector):
        """Should free the transport and supervisor but keep queued items."""
        decoder.script(FakePcmSource(blocks=0, stall=True))
        state = await _queue(registry, "A", "B")

        await service.ensure_playing(GUILD_ID, CHANNEL_ID)
        await wait_until(lambda: state.phase is PlaybackPhase.PIPELINE_ACTIVE)
        supervisor = await state.get_supervisor()
        assert await service.release(GUILD_ID) is True

        assert [i.title for i in await state.list()] == ["B"]
        assert connector.transport.disconnected == 1
        assert supervisor.is_playing() is False
        assert await state.is_playing() is False
        assert service.has_runner(GUILD_ID) is False

    @pytest.mark.asyncio
    async def test_shutdown_releases_everything(self, service, registry, decoder, connector):
        """Should cancel loops and disconnect every session."""
        decoder.script(FakePcmSource(blocks=0, stall=True))
        state = await _queue(registry, "A")

        await service.ensure_playing(GUILD_ID, CHANNEL_ID)
        await wait_until(lambda: state.phase is PlaybackPhase.PIPELINE_ACTIVE)
        await service.shutdown()

        assert service.has_runner(GUILD_ID) is False
        assert connector.transport.disconnected == 1


# =============================================================================
# Failures
# =============================================================================


class TestFailures:
    """Tests for failures while starting or running a stream."""

    @pytest.mark.asyncio
    async def test_voice_connect_failure_ends_loop(self, service, registry, connector, events):
        """Should publish PlaybackFailed and stop when no transport can be acquired."""
        connector.error = VoiceConnectionError("cannot join", CHANNEL_ID)
        state = await _queue(registry, "A", "B")

        await service.ensure_playing(GUILD_ID, CHANNEL_ID)
        await wait_until(lambda: not service.has_runner(GUILD_ID))

        (failed,) = _of(events, PlaybackFailed)
        assert failed.item_title == "A"
        assert "cannot join" in failed.reason
        assert await state.is_playing() is False
        assert [i.title for i in await state.list()] == ["B"]

    @pytest.mark.asyncio
    async def test_fatal_stream_error_moves_on(self, service, registry, decoder, events):
        """Should report a failed item and continue with the next one."""
        decoder.script(
            FakePcmSource(start_error=AcquisitionError("ffmpeg missing")),
            FakePcmSource(blocks=1),
        )
        await _queue(registry, "A", "B")

        await service.ensure_playing(GUILD_ID, CHANNEL_ID)
        await wait_until(lambda: not service.has_runner(GUILD_ID))

        (failed,) = _of(events, PlaybackFailed)
        assert failed.item_title == "A"
        assert "ffmpeg missing" in failed.reason
        finished = {e.item_title: e.final_state for e in _of(events, TrackFinished)}
        assert finished == {"A": "stopped", "B": "completed"}
        assert len(_of(events, QueueEnded)) == 1
