"""Audio infrastructure - ffmpeg decoder, Opus encoder and stream supervisor."""

from discord_stream_player.infrastructure.audio.ffmpeg_process import (
    FFmpegConfig,
    FFmpegPcmSource,
    create_ffmpeg_source_factory,
)
from discord_stream_player.infrastructure.audio.frame_encoder import (
    OpusFrameEncoder,
    create_opus_encoder_factory,
    pad_to_frame,
)
from discord_stream_player.infrastructure.audio.stream_supervisor import (
    StreamSupervisor,
    create_supervisor_factory,
)

__all__ = [
    "FFmpegConfig",
    "FFmpegPcmSource",
    "OpusFrameEncoder",
    "StreamSupervisor",
    "create_ffmpeg_source_factory",
    "create_opus_encoder_factory",
    "create_supervisor_factory",
    "pad_to_frame",
]
