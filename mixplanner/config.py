"""
Configuration management for Mix Planner.

Reads configuration from an optional .env file and environment variables with
sensible defaults.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from mixplanner.errors import ConfigurationError
from mixplanner.planner.request import BITRATE_RE


# Default .env file location
DEFAULT_ENV_FILE = Path("/etc/mixplanner/mixplanner.env")

STREAM_ERROR_POLICIES = ("degrade", "abort")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

logger = logging.getLogger(__name__)


def _load_env_file(env_file: Optional[str] = None) -> None:
    """Load environment variables from .env file if it exists."""
    env_file = env_file or os.getenv("MIXPLANNER_ENV_FILE", str(DEFAULT_ENV_FILE))
    env_path = Path(env_file)

    if env_path.exists():
        load_dotenv(env_path, override=False)  # Don't override existing env vars
        logger.debug(f"Loaded environment file {env_path}")


def _parse_int(name: str, default: str, minimum: int, maximum: Optional[int] = None) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid {name}: {raw} (must be an integer)")
    if value < minimum or (maximum is not None and value > maximum):
        bound = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        raise ConfigurationError(f"Invalid {name}: {raw} (must be {bound})")
    return value


def _parse_bool(name: str, default: str) -> bool:
    raw = os.getenv(name, default).strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"Invalid {name}: {raw} (must be true or false)")


@dataclass
class MixConfig:
    """Mix Planner configuration loaded from .env file and environment variables."""

    # External tools
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"

    # Reference format fallback when the first input reports an unusable layout.
    # 2 keeps stereo output for odd layouts; 1 selects the mono variant.
    default_channels: int = 2

    # Samples per decoded/mixed frame
    frame_size: int = 1024

    # What a mid-stream decode failure does: "degrade" drops the stream and
    # keeps mixing the rest, "abort" fails the whole mix
    stream_error_policy: str = "degrade"

    # Output quality defaults
    flac_compression_level: int = 5
    aac_bitrate: str = "192k"
    overwrite: bool = True

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        if self.default_channels not in (1, 2):
            raise ConfigurationError(
                f"default_channels must be 1 or 2, got {self.default_channels}"
            )
        if self.frame_size <= 0:
            raise ConfigurationError(f"frame_size must be positive, got {self.frame_size}")
        if self.stream_error_policy not in STREAM_ERROR_POLICIES:
            raise ConfigurationError(
                f"stream_error_policy must be one of {STREAM_ERROR_POLICIES}, "
                f"got {self.stream_error_policy!r}"
            )
        if not BITRATE_RE.match(str(self.aac_bitrate)):
            raise ConfigurationError(f"aac_bitrate must look like 192k or 128000, got {self.aac_bitrate!r}")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(f"log_level must be one of {LOG_LEVELS}, got {self.log_level!r}")

    @classmethod
    def load_config(cls, env_file: Optional[str] = None) -> "MixConfig":
        """
        Load configuration from environment variables.

        Args:
            env_file: Optional .env file overriding MIXPLANNER_ENV_FILE

        Returns:
            MixConfig instance with loaded values

        Raises:
            ConfigurationError: If configuration is invalid
        """
        # Load .env file first (if it exists)
        _load_env_file(env_file)

        ffmpeg_bin = os.getenv("MIXPLANNER_FFMPEG_BIN") or os.getenv("FFMPEG_BIN") or "ffmpeg"
        ffprobe_bin = os.getenv("MIXPLANNER_FFPROBE_BIN", "ffprobe")

        default_channels = _parse_int("MIXPLANNER_DEFAULT_CHANNELS", "2", 1, 2)
        frame_size = _parse_int("MIXPLANNER_FRAME_SIZE", "1024", 1)

        stream_error_policy = os.getenv("MIXPLANNER_STREAM_ERRORS", "degrade").strip().lower()
        if stream_error_policy not in STREAM_ERROR_POLICIES:
            raise ConfigurationError(
                f"Invalid MIXPLANNER_STREAM_ERRORS: {stream_error_policy} "
                f"(must be one of {', '.join(STREAM_ERROR_POLICIES)})"
            )

        flac_compression_level = _parse_int("MIXPLANNER_FLAC_COMPRESSION", "5", 0, 12)
        aac_bitrate = os.getenv("MIXPLANNER_AAC_BITRATE", "192k").strip()
        if not BITRATE_RE.match(aac_bitrate):
            raise ConfigurationError(
                f"Invalid MIXPLANNER_AAC_BITRATE: {aac_bitrate} (must be bits per second, e.g. 192k or 128000)"
            )
        overwrite = _parse_bool("MIXPLANNER_OVERWRITE", "true")

        log_level = os.getenv("MIXPLANNER_LOG_LEVEL", "INFO").strip().upper()
        if log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"Invalid MIXPLANNER_LOG_LEVEL: {log_level} (must be one of {', '.join(LOG_LEVELS)})"
            )
        log_file = os.getenv("MIXPLANNER_LOG_FILE") or None

        return cls(
            ffmpeg_bin=ffmpeg_bin,
            ffprobe_bin=ffprobe_bin,
            default_channels=default_channels,
            frame_size=frame_size,
            stream_error_policy=stream_error_policy,
            flac_compression_level=flac_compression_level,
            aac_bitrate=aac_bitrate,
            overwrite=overwrite,
            log_level=log_level,
            log_file=log_file,
        )
