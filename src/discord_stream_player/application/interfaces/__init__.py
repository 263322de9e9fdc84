"""
Application Interfaces (Ports)

Abstract interfaces that define contracts between the application
layer and infrastructure adapters. These are the "ports" in
hexagonal architecture.
"""

from discord_stream_player.application.interfaces.audio_stream import (
    AudioStream,
    AudioStreamFactory,
    FrameEncoder,
    FrameEncoderFactory,
    PcmSource,
    PcmSourceFactory,
)
from discord_stream_player.application.interfaces.now_playing import NowPlayingIndicator
from discord_stream_player.application.interfaces.voice_transport import (
    VoiceConnector,
    VoiceTransport,
)

__all__ = [
    "VoiceTransport",
    "VoiceConnector",
    "NowPlayingIndicator",
    "PcmSource",
    "PcmSourceFactory",
    "FrameEncoder",
    "FrameEncoderFactory",
    "AudioStream",
    "AudioStreamFactory",
]
