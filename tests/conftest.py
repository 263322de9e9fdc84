import asyncio

import pytest
import pytest_asyncio

from discord_stream_player.application.interfaces.audio_stream import FrameEncoder, PcmSource
from discord_stream_player.application.interfaces.now_playing import NowPlayingIndicator
from discord_stream_player.application.interfaces.voice_transport import (
    VoiceConnector,
    VoiceTransport,
)
from discord_stream_player.config.settings import StreamSettings
from discord_stream_player.domain.shared.events import EventBus, reset_event_bus

FRAME_SIZE = 3840
GUILD_ID = 111111111111111111
CHANNEL_ID = 222222222222222222


# ============================================================================
# Voice Fakes
# ============================================================================


class FakeTransport(VoiceTransport):
    """In-memory voice transport recording frames and speaking toggles."""

    def __init__(self, channel_id: int = CHANNEL_ID, *, ready: bool = True) -> None:
        self._channel_id = channel_id
        self.ready = ready
        self.accept = True
        self.frames: list[bytes] = []
        self.speaking_calls: list[bool] = []
        self.speaking = False
        self.disconnected = 0

    @property
    def channel_id(self) -> int:
        return self._channel_id

    def is_ready(self) -> bool:
        return self.ready

    async def set_speaking(self, speaking: bool) -> None:
        self.speaking_calls.append(speaking)
        self.speaking = speaking

    async def send_frame(self, frame: bytes, *, timeout: float) -> bool:
        if not self.accept:
            return False
        self.frames.append(frame)
        # Let other tasks run between frames.
        await asyncio.sleep(0)
        return True

    async def disconnect(self) -> None:
        self.disconnected += 1
        self.ready = False


class FakeConnector(VoiceConnector):
    def __init__(self, transport: FakeTransport | None = None) -> None:
        self.transport = transport or FakeTransport()
        self.calls: list[tuple[int, int]] = []
        self.error: Exception | None = None

    async def connect(self, guild_id: int, channel_id: int) -> VoiceTransport:
        self.calls.append((guild_id, channel_id))
        if self.error is not None:
            raise self.error
        self.transport.ready = True
        return self.transport


class FakeIndicator(NowPlayingIndicator):
    def __init__(self, clear_delay: float = 0.0) -> None:
        self.shown: list[str] = []
        self.cleared = 0
        self.clear_delay = clear_delay
        self.clearing = asyncio.Event()

    async def show(self, item) -> None:
        self.shown.append(item.title)

    async def clear(self) -> None:
        self.clearing.set()
        if self.clear_delay:
            await asyncio.sleep(self.clear_delay)
        self.cleared += 1


# ============================================================================
# Audio Fakes
# ============================================================================


class FakePcmSource(PcmSource):
    """Scripted decoder.

    Serves ``blocks`` full frames, then either reports end of stream or, with
    ``stall=True``, blocks until cancelled so the read times out.
    ``terminate_delay`` makes process teardown slow.
    """

    def __init__(
        self,
        blocks: int = 3,
        *,
        stall: bool = False,
        start_error: Exception | None = None,
        tail: bytes = b"",
        terminate_delay: float = 0.0,
    ) -> None:
        self.remaining = blocks
        self.stall = stall
        self.start_error = start_error
        self.tail = tail
        self.terminate_delay = terminate_delay
        self.started = False
        self.terminated = 0
        self.hold = asyncio.Event()

    @property
    def pid(self) -> int | None:
        return 4242 if self.started else None

    async def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    async def read_block(self, size: int) -> bytes:
        if self.remaining > 0:
            self.remaining -= 1
            return b"\x01" * size
        if self.tail:
            tail, self.tail = self.tail, b""
            return tail
        if self.stall:
            await self.hold.wait()
        return b""

    async def drain_diagnostics(self) -> None:
        return None

    async def terminate(self) -> None:
        if self.terminate_delay:
            await asyncio.sleep(self.terminate_delay)
        self.terminated += 1


class FakeDecoderFactory:
    """Hands out pre-scripted sources in order, recording each locator."""

    def __init__(self, *sources: FakePcmSource) -> None:
        self._sources = list(sources)
        self.locators: list[str] = []
        self.created: list[FakePcmSource] = []

    def script(self, *sources: FakePcmSource) -> None:
        self._sources.extend(sources)

    def __call__(self, locator: str) -> FakePcmSource:
        self.locators.append(locator)
        source = self._sources.pop(0) if self._sources else FakePcmSource()
        self.created.append(source)
        return source


class FakeEncoder(FrameEncoder):
    def __init__(self, *, fail_on: set[int] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.calls = 0

    @property
    def frame_size_bytes(self) -> int:
        return FRAME_SIZE

    def encode(self, pcm: bytes) -> bytes:
        self.calls += 1
        if self.calls in self.fail_on:
            raise RuntimeError("bad frame")
        return b"opus" + len(pcm).to_bytes(2, "big")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _reset_global_event_bus():
    reset_event_bus()
    yield
    reset_event_bus()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def fast_stream_settings():
    """Stream settings with timeouts small enough for unit tests."""
    return StreamSettings(
        read_timeout_s=0.05,
        ready_timeout_s=0.2,
        send_timeout_s=0.05,
        health_interval_s=10.0,
        stale_after_s=10.0,
        max_restarts=3,
        restart_backoff_s=0.0,
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest_asyncio.fixture
async def make_supervisor(transport, fast_stream_settings):
    """Build supervisors on the fake transport and stop them afterwards."""
    from discord_stream_player.infrastructure.audio.stream_supervisor import StreamSupervisor

    created = []

    def _make(*sources, settings=None, encoder=None, clock=None, target=None):
        decoder = FakeDecoderFactory(*sources)
        kwargs = {}
        if clock is not None:
            kwargs["clock"] = clock
        supervisor = StreamSupervisor(
            target or transport,
            decoder_factory=decoder,
            encoder_factory=lambda: encoder or FakeEncoder(),
            settings=settings or fast_stream_settings,
            **kwargs,
        )
        supervisor.decoder = decoder
        created.append(supervisor)
        return supervisor

    yield _make

    for supervisor in created:
        await supervisor.stop()
