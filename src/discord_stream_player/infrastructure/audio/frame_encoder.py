"""
Opus Frame Encoder

Turns 20 ms blocks of 48 kHz stereo s16le PCM into Opus frames using the
libopus binding shipped with discord.py.
"""

from __future__ import annotations

import logging
from typing import Any

import discord

from discord_stream_player.application.interfaces.audio_stream import FrameEncoder, FrameEncoderFactory
from discord_stream_player.config.settings import EncoderSettings
from discord_stream_player.domain.shared.messages import ErrorMessages, LogTemplates

logger = logging.getLogger(__name__)


def pad_to_frame(pcm: bytes, frame_size: int) -> bytes:
    """Pad a short PCM block with silence up to exactly ``frame_size`` bytes.

    Raises:
        ValueError: If ``pcm`` is longer than one frame.
    """
    if len(pcm) > frame_size:
        raise ValueError(ErrorMessages.ENCODER_BAD_BLOCK.format(size=len(pcm), frame_size=frame_size))
    if len(pcm) == frame_size:
        return pcm
    return pcm + b"\x00" * (frame_size - len(pcm))


class OpusFrameEncoder(FrameEncoder):
    """Encode one PCM block per call into one Opus frame.

    Args:
        settings: Encoder settings (frame geometry and bitrate).
        opus_encoder: Object with ``set_bitrate(kbps)`` and
            ``encode(pcm, frame_size)``; defaults to ``discord.opus.Encoder``.
    """

    def __init__(self, settings: EncoderSettings | None = None, *, opus_encoder: Any = None) -> None:
        self._settings = settings or EncoderSettings()
        self._encoder = opus_encoder if opus_encoder is not None else discord.opus.Encoder()
        self._encoder.set_bitrate(self._settings.bitrate_kbps)
        logger.debug(
            LogTemplates.ENCODER_CREATED,
            self._settings.sample_rate,
            self._settings.channels,
            self._settings.bitrate_kbps,
        )

    @property
    def frame_size_bytes(self) -> int:
        return self._settings.frame_size_bytes

    @property
    def samples_per_frame(self) -> int:
        return self._settings.samples_per_frame

    def encode(self, pcm: bytes) -> bytes:
        block = pad_to_frame(pcm, self.frame_size_bytes)
        return self._encoder.encode(block, self.samples_per_frame)


def create_opus_encoder_factory(settings: EncoderSettings) -> FrameEncoderFactory:
    """Return a zero-argument factory building encoders from ``settings``."""

    def factory() -> FrameEncoder:
        return OpusFrameEncoder(settings)

    return factory
