"""
Mix request model.

A MixRequest is validated when it is built so that bad arguments fail before
any decoder, filter or encoder is opened.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

from mixplanner.errors import ConfigurationError

Quality = Union[int, str]

# Positive bits per second, optionally with a k or M suffix
BITRATE_RE = re.compile(r"^(?=.*[1-9])\d+(\.\d+)?[kKmM]?$")

FLAC_COMPRESSION_RANGE = (0, 12)


class DurationPolicy(enum.Enum):
    """How the mixed output length relates to differing input lengths."""
    LONGEST = "longest"   # pad shorter inputs with silence
    SHORTEST = "shortest"  # stop at the shortest input
    FIRST = "first"       # follow the first input

    @classmethod
    def parse(cls, value: Union[str, "DurationPolicy"]) -> "DurationPolicy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise ConfigurationError(f"Invalid duration policy {value!r} (must be one of {choices})")


@dataclass(frozen=True)
class OutputFormat:
    """
    Container/codec pair handed to the encoder.

    Attributes:
        container: ffmpeg muxer name ("flac" or "mp4")
        codec: ffmpeg encoder name ("flac" or "aac")
        lossless: True when the quality parameter is a compression level
        movflags: Muxer flags (fast start for MP4), None when not applicable
    """

    container: str
    codec: str
    lossless: bool
    movflags: Optional[str] = None

    @classmethod
    def for_path(cls, path: Union[str, Path]) -> "OutputFormat":
        suffix = Path(path).suffix.lower()
        if suffix == ".flac":
            return FLAC_OUTPUT
        if suffix in (".m4a", ".mp4", ".aac"):
            return AAC_OUTPUT
        raise ConfigurationError(
            f"Unsupported output extension {suffix or '(none)'!r} for {path} "
            f"(expected .flac, .m4a, .mp4 or .aac)"
        )

    def validate_quality(self, quality: Optional[Quality]) -> Optional[Quality]:
        """Return the normalized quality parameter or raise ConfigurationError."""
        if quality is None:
            return None
        if self.lossless:
            try:
                level = int(quality)
            except (TypeError, ValueError):
                raise ConfigurationError(f"FLAC compression level must be an integer, got {quality!r}")
            low, high = FLAC_COMPRESSION_RANGE
            if not low <= level <= high:
                raise ConfigurationError(f"FLAC compression level must be between {low} and {high}, got {level}")
            return level
        if isinstance(quality, bool):
            raise ConfigurationError(f"AAC bitrate must be a number or a string like '192k', got {quality!r}")
        if isinstance(quality, int):
            if quality <= 0:
                raise ConfigurationError(f"AAC bitrate must be positive, got {quality}")
            return str(quality)
        text = str(quality).strip()
        if not BITRATE_RE.match(text):
            raise ConfigurationError(f"AAC bitrate must look like '192k' or '128000', got {quality!r}")
        return text


FLAC_OUTPUT = OutputFormat(container="flac", codec="flac", lossless=True)
AAC_OUTPUT = OutputFormat(container="mp4", codec="aac", lossless=False, movflags="+faststart")


@dataclass(frozen=True)
class MixRequest:
    """
    Full parameter set for one mix operation.

    Attributes:
        inputs: Ordered input paths; the first one defines the reference format
        output: Output path; its extension selects FLAC or MP4/AAC
        weights: Optional per-input gains, exactly one per input
        duration: Duration policy for differing input lengths
        normalize: Scale the mix by the sum of active weights
        quality: Compression level (FLAC) or bitrate (AAC); None uses the configured default
    """

    inputs: Tuple[str, ...]
    output: str
    weights: Optional[Tuple[float, ...]] = None
    duration: DurationPolicy = DurationPolicy.LONGEST
    normalize: bool = True
    quality: Optional[Quality] = None

    def __post_init__(self):
        inputs = tuple(str(p) for p in (self.inputs or ()))
        if not inputs:
            raise ConfigurationError("No inputs provided for mixing")
        object.__setattr__(self, "inputs", inputs)
        object.__setattr__(self, "output", str(self.output))

        if self.weights is not None:
            weights = tuple(_as_weight(w) for w in self.weights)
            if len(weights) != len(inputs):
                raise ConfigurationError(
                    f"Got {len(weights)} weights for {len(inputs)} inputs (need exactly one per input)"
                )
            object.__setattr__(self, "weights", weights)

        object.__setattr__(self, "duration", DurationPolicy.parse(self.duration))
        object.__setattr__(self, "normalize", bool(self.normalize))
        object.__setattr__(self, "quality", self.output_format.validate_quality(self.quality))

    @property
    def output_format(self) -> OutputFormat:
        return OutputFormat.for_path(self.output)

    def require_inputs(self, minimum: int) -> None:
        """Raise ConfigurationError unless at least ``minimum`` inputs were given."""
        if len(self.inputs) < minimum:
            raise ConfigurationError(f"Need at least {minimum} input files, got {len(self.inputs)}")


def _as_weight(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid weight {value!r} (must be a number)")


def build_request(
    inputs: Sequence[Union[str, Path]],
    output: Union[str, Path],
    weights: Optional[Sequence[float]] = None,
    duration: Union[str, DurationPolicy] = DurationPolicy.LONGEST,
    normalize: bool = True,
    quality: Optional[Quality] = None,
) -> MixRequest:
    """Convenience constructor accepting lists and Path objects."""
    return MixRequest(
        inputs=tuple(str(p) for p in inputs),
        output=str(output),
        weights=tuple(weights) if weights is not None else None,
        duration=duration,
        normalize=normalize,
        quality=quality,
    )
