"""
FFmpeg Decoder Process

Infrastructure component that runs ffmpeg as a child process and exposes
its raw PCM output as a :class:`PcmSource`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from discord_stream_player.application.interfaces.audio_stream import PcmSource, PcmSourceFactory
from discord_stream_player.config.settings import DecoderSettings, EncoderSettings
from discord_stream_player.domain.playback.errors import AcquisitionError
from discord_stream_player.domain.shared.messages import ErrorMessages, LogTemplates

logger = logging.getLogger(__name__)

# Seconds to wait for ffmpeg to exit after SIGKILL.
_REAP_TIMEOUT = 2.0


@dataclass
class FFmpegConfig:
    """Configuration for the ffmpeg decode command line."""

    executable: str = "ffmpeg"

    # Reconnection settings for streaming
    reconnect: bool = True
    reconnect_streamed: bool = True
    reconnect_delay_max: int = 5
    extra_before_options: tuple[str, ...] = field(default_factory=tuple)

    # PCM output format
    sample_rate: int = 48000
    channels: int = 2

    log_output: bool = False

    @classmethod
    def from_settings(
        cls, decoder: DecoderSettings, encoder: EncoderSettings | None = None
    ) -> FFmpegConfig:
        encoder = encoder or EncoderSettings()
        return cls(
            executable=decoder.ffmpeg_path,
            reconnect=decoder.reconnect,
            reconnect_streamed=decoder.reconnect_streamed,
            reconnect_delay_max=decoder.reconnect_delay_max,
            extra_before_options=decoder.extra_before_options,
            sample_rate=encoder.sample_rate,
            channels=encoder.channels,
            log_output=decoder.log_decoder_output,
        )

    def get_before_options(self) -> list[str]:
        """Get ffmpeg input options."""
        opts: list[str] = []
        if self.reconnect:
            opts += ["-reconnect", "1"]
        if self.reconnect_streamed:
            opts += ["-reconnect_streamed", "1"]
        if self.reconnect_delay_max:
            opts += ["-reconnect_delay_max", str(self.reconnect_delay_max)]
        opts += list(self.extra_before_options)
        return opts

    def get_options(self) -> list[str]:
        """Get ffmpeg output options: raw s16le PCM on stdout."""
        return [
            "-vn",
            "-f", "s16le",
            "-acodec", "pcm_s16le",
            "-ar", str(self.sample_rate),
            "-ac", str(self.channels),
            "-",
        ]

    def build_command(self, locator: str) -> list[str]:
        return [
            self.executable,
            "-hide_banner",
            "-loglevel", "warning",
            *self.get_before_options(),
            "-i", locator,
            *self.get_options(),
        ]


class FFmpegPcmSource(PcmSource):
    """One ffmpeg process decoding ``locator`` to PCM on stdout."""

    def __init__(self, locator: str, config: FFmpegConfig | None = None) -> None:
        self._locator = locator
        self._config = config or FFmpegConfig()
        self._process: asyncio.subprocess.Process | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process is not None else None

    async def start(self) -> None:
        command = self._config.build_command(self._locator)
        logger.debug(LogTemplates.DECODER_STARTING, self._locator)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise AcquisitionError(ErrorMessages.DECODER_START_FAILED.format(error=e)) from e
        if self._process.stdout is None:
            raise AcquisitionError(ErrorMessages.DECODER_NO_STDOUT)
        logger.debug(LogTemplates.DECODER_STARTED, self._process.pid)

    async def read_block(self, size: int) -> bytes:
        if self._process is None or self._process.stdout is None:
            raise AcquisitionError(ErrorMessages.DECODER_NO_STDOUT)
        try:
            return await self._process.stdout.readexactly(size)
        except asyncio.IncompleteReadError as e:
            return e.partial

    async def drain_diagnostics(self) -> None:
        if self._process is None or self._process.stderr is None:
            return
        pid = self._process.pid
        while line := await self._process.stderr.readline():
            if self._config.log_output:
                logger.debug(LogTemplates.DECODER_STDERR, pid, line.decode(errors="replace").rstrip())

    async def terminate(self) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.warning(LogTemplates.DECODER_KILL_FAILED, process.pid, e)
            return
        try:
            async with asyncio.timeout(_REAP_TIMEOUT):
                await process.wait()
        except TimeoutError:
            logger.warning(LogTemplates.DECODER_KILL_FAILED, process.pid, "wait timed out")
            return
        logger.debug(LogTemplates.DECODER_TERMINATED, process.pid, process.returncode)


def create_ffmpeg_source_factory(config: FFmpegConfig) -> PcmSourceFactory:
    """Return a factory building (not yet started) ffmpeg sources."""

    def factory(locator: str) -> PcmSource:
        return FFmpegPcmSource(locator, config)

    return factory
