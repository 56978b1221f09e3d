"""
Reference format resolution.

The reference format is derived once per mix from the first opened input and
is the target every other input is normalized to.
"""

from dataclasses import dataclass
from typing import Optional

DEFAULT_SAMPLE_RATE = 44100
DEFAULT_SAMPLE_FORMAT = "s16"
SUPPORTED_CHANNELS = (1, 2)


@dataclass(frozen=True)
class ReferenceFormat:
    """
    Audio format every input is normalized to.

    Attributes:
        sample_rate: Sample rate in Hz (always positive)
        channels: 1 (mono) or 2 (stereo)
        sample_format: ffmpeg sample format code reported by the first input
    """

    sample_rate: int
    channels: int
    sample_format: str = DEFAULT_SAMPLE_FORMAT

    @property
    def layout(self) -> str:
        """ffmpeg channel layout name."""
        return "stereo" if self.channels == 2 else "mono"


def resolve_reference_format(
    sample_rate: int,
    channels: int,
    sample_format: Optional[str] = None,
    default_channels: int = 2,
) -> ReferenceFormat:
    """
    Build the reference format from the first input's reported properties.

    Never fails: unknown sample rates fall back to 44100 Hz, channel counts
    other than 1 or 2 fall back to ``default_channels`` and an unknown sample
    format falls back to signed 16-bit.
    """
    if default_channels not in SUPPORTED_CHANNELS:
        default_channels = 2

    rate = sample_rate if sample_rate and sample_rate > 0 else DEFAULT_SAMPLE_RATE
    ch = channels if channels in SUPPORTED_CHANNELS else default_channels
    fmt = sample_format or DEFAULT_SAMPLE_FORMAT
    return ReferenceFormat(sample_rate=int(rate), channels=ch, sample_format=fmt)
