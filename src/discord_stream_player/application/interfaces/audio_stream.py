"""Port interfaces for the decode, encode and stream stages of audio playback."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ...domain.playback.value_objects import StreamStats, SupervisorState
    from .voice_transport import VoiceTransport


class PcmSource(ABC):
    """A running decoder that turns a stream locator into raw PCM bytes."""

    @property
    @abstractmethod
    def pid(self) -> int | None:
        ...

    @abstractmethod
    async def start(self) -> None:
        """Launch the decoder.

        Raises:
            AcquisitionError: If the decoder could not be started.
        """
        ...

    @abstractmethod
    async def read_block(self, size: int) -> bytes:
        """Read up to ``size`` bytes.

        Returns fewer bytes only for the final block, and ``b""`` at end of stream.
        """
        ...

    @abstractmethod
    async def drain_diagnostics(self) -> None:
        """Consume the decoder's diagnostic output until it closes."""
        ...

    @abstractmethod
    async def terminate(self) -> None:
        """Stop the decoder and reap it. Safe to call more than once."""
        ...


class FrameEncoder(ABC):
    """Encodes fixed-size PCM blocks into compressed frames."""

    @property
    @abstractmethod
    def frame_size_bytes(self) -> int:
        """Exact PCM block size consumed by one ``encode`` call."""
        ...

    @abstractmethod
    def encode(self, pcm: bytes) -> bytes:
        ...


PcmSourceFactory = Callable[[str], PcmSource]
"""Builds a not-yet-started decoder for a stream locator."""

FrameEncoderFactory = Callable[[], FrameEncoder]


class AudioStream(ABC):
    """One supervised decode, encode and send pipeline bound to a transport."""

    @property
    @abstractmethod
    def state(self) -> SupervisorState:
        ...

    @property
    @abstractmethod
    def restart_count(self) -> int:
        ...

    @property
    @abstractmethod
    def stats(self) -> StreamStats:
        ...

    @property
    @abstractmethod
    def last_error(self) -> BaseException | None:
        ...

    @abstractmethod
    def is_playing(self) -> bool:
        ...

    @abstractmethod
    async def play_stream(self, locator: str) -> None:
        """Start streaming ``locator`` in the background and return immediately.

        Raises:
            AlreadyPlayingError: If a stream is already active.
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Cancel all in-flight work and release resources. Idempotent."""
        ...

    @abstractmethod
    async def wait_finished(self, timeout: float | None = None) -> bool:
        """Wait for a terminal state; returns False if ``timeout`` elapsed first."""
        ...


AudioStreamFactory = Callable[["VoiceTransport"], AudioStream]
"""Builds a fresh supervisor bound to a voice transport."""
