#!/usr/bin/env python3
"""Main entry point for the Discord stream player.

Loads settings, configures logging, checks that the audio toolchain
(ffmpeg on disk, libopus in process) is usable, then runs the bot until
it is interrupted.
"""

from __future__ import annotations

import json
import logging
import logging.config
import shutil
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import discord

from discord_stream_player.domain.shared.messages import ErrorMessages, LogTemplates

if TYPE_CHECKING:
    from discord_stream_player.config.settings import Settings

_LOGGING_CONFIG_PATH = Path(__file__).resolve().parents[2] / "logging_config.json"


def setup_logging(log_level: str = "INFO") -> None:
    resolved_level = getattr(logging, log_level.upper(), logging.INFO)

    try:
        with open(_LOGGING_CONFIG_PATH) as f:
            config = json.load(f)
        logging.config.dictConfig(config)
    except (FileNotFoundError, json.JSONDecodeError, ValueError):
        logging.warning("Could not load %s, falling back to basic config", _LOGGING_CONFIG_PATH)
        logging.basicConfig(
            level=resolved_level,
            format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    logging.getLogger().setLevel(resolved_level)


def check_audio_runtime(settings: Settings) -> list[str]:
    """Return the problems that would stop any stream from playing."""
    problems: list[str] = []

    ffmpeg_path = settings.decoder.ffmpeg_path
    if shutil.which(ffmpeg_path) is None:
        problems.append(ErrorMessages.FFMPEG_NOT_FOUND.format(path=ffmpeg_path))

    if not discord.opus.is_loaded():
        try:
            discord.opus.Encoder()
        except discord.opus.OpusNotLoaded:
            problems.append(ErrorMessages.OPUS_NOT_LOADED)

    return problems


def _log_stream_policy(logger: logging.Logger, settings: Settings) -> None:
    logger.info(
        LogTemplates.BOT_STREAM_POLICY,
        settings.encoder.bitrate_kbps,
        settings.stream.max_restarts,
        settings.idle.idle_timeout_s,
        "on" if settings.idle.enabled else "off",
    )


def main() -> int:
    from discord_stream_player.config.settings import get_settings

    settings = get_settings()
    setup_logging(settings.log_level)

    logger = logging.getLogger(__name__)

    token_value = settings.discord.token.get_secret_value()
    if not token_value:
        logger.error(ErrorMessages.DISCORD_TOKEN_REQUIRED)
        return 1

    problems = check_audio_runtime(settings)
    for problem in problems:
        logger.error(LogTemplates.BOT_PREFLIGHT_FAILED, problem)
    if problems:
        return 1

    logger.info(LogTemplates.BOT_STARTING, settings.environment)
    _log_stream_policy(logger, settings)

    from discord_stream_player.config.container import create_container
    from discord_stream_player.infrastructure.discord.bot import create_bot

    container = create_container(settings)
    bot = create_bot(container, settings)

    try:
        logger.info(LogTemplates.BOT_STARTING_RUN)
        bot.run_with_graceful_shutdown(token_value)
        logger.info(LogTemplates.BOT_STOPPED)
        return 0
    except KeyboardInterrupt:
        logger.info(LogTemplates.BOT_KEYBOARD_INTERRUPT)
        return 0
    except Exception as e:
        logger.exception(LogTemplates.BOT_FATAL_ERROR, e)
        return 1


def cli() -> None:
    """Console script entry point (used by pyproject.toml [project.scripts])."""
    sys.exit(main())


if __name__ == "__main__":
    cli()  # pragma: no cover
